"""
窗口管理模块
===========

封装 OpenCV 窗口创建、显示、键盘处理和健康检查逻辑。
同时作为主循环的显示端（present / clear）。
"""
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from ..core.logger import logger
from ..pose.types import FeedbackState, LandmarkSet
from ..visualization import PoseVisualizer


class WindowManager:
    """
    显示端 + OpenCV 窗口

    present / clear / set_status 可在任意线程调用，只更新待显示的画面；
    render / poll_keys_and_health 必须在 GUI 线程调用。enabled=False 时
    只保留最新画面（无头模式、测试）。

    GUI 线程:
        ui = WindowManager(title="Posture Coach", width=960)
        ui.create()

        while True:
            scheduler.pump()
            ui.render()
            action = ui.poll_keys_and_health()
            if action == "quit":
                break

        ui.destroy()
    """

    ACTION_KEYS = {
        ord('q'): "quit",
        27: "quit",  # ESC
        ord(' '): "toggle",
        ord('s'): "toggle",
        ord('p'): "screenshot",
    }

    def __init__(
        self,
        title: str = "Posture Coach - Squat Feedback",
        width: int = 960,
        aspect_ratio: float = 16 / 9,
        enabled: bool = True,
        stay_open: bool = True,
        mirror: bool = True,
        show_angle: bool = True,
        visualizer: Optional[PoseVisualizer] = None,
    ):
        """
        初始化窗口管理器

        Args:
            title: 窗口标题
            width: 窗口初始宽度
            aspect_ratio: 视频区域宽高比（占位画面使用）
            enabled: 是否启用 UI（False 为无头模式）
            stay_open: 窗口被关闭时是否自动重建
            mirror: 镜像显示（仅影响显示，不影响推理）
            show_angle: 显示膝关节角度
            visualizer: 自定义可视化器
        """
        self.title = title
        self.width = width
        self.aspect_ratio = aspect_ratio
        self.height = int(width / aspect_ratio)
        self.enabled = enabled
        self.stay_open = stay_open
        self.visualizer = visualizer or PoseVisualizer(mirror=mirror, show_angle=show_angle)

        self._lock = threading.Lock()
        self._canvas: Optional[np.ndarray] = None
        self._dirty = False
        self._status: Optional[str] = None
        self._showing_placeholder = False
        self._imshow_errors = 0
        self.frames_presented = 0

        self.max_imshow_errors = 10

        if self.enabled:
            logger.info(f"UI 模式: 已启用（窗口标题: {self.title}）")
        else:
            logger.info("UI 模式: 已禁用（无头运行）")

    def create(self):
        """创建（或重建）窗口"""
        if not self.enabled:
            return

        cv2.namedWindow(self.title, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(self.title, self.width, self.height + self.visualizer.panel_height)
        logger.info(f"[UI] 窗口已创建/重建: {self.width}x{self.height}")
        self.clear()

    # ------------------------------------------------------------------
    # 显示端接口
    # ------------------------------------------------------------------

    def present(self,
                frame: np.ndarray,
                overlay: LandmarkSet,
                feedback: Optional[FeedbackState] = None,
                knee_angle: Optional[float] = None):
        """先画帧，再画骨架与反馈面板（尽力而为，无背压）"""
        canvas = self.visualizer.draw(frame, overlay, feedback, knee_angle, status=self._status)
        with self._lock:
            self._canvas = canvas
            self._dirty = True
            self.frames_presented += 1
            self._showing_placeholder = False

    def clear(self):
        """清空画面，只保留状态面板"""
        canvas = self.visualizer.draw_placeholder(self.width, self.height, self._status)
        with self._lock:
            self._canvas = canvas
            self._dirty = True
            self._showing_placeholder = True

    def set_status(self, message: str):
        """更新状态提示（无反馈时显示在面板上）"""
        self._status = message
        with self._lock:
            redraw = self._canvas is None or self._showing_placeholder
        if redraw:
            self.clear()

    def latest_canvas(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._canvas

    # ------------------------------------------------------------------
    # GUI 线程
    # ------------------------------------------------------------------

    def render(self):
        """在 GUI 线程显示最新画面（带异常处理）"""
        if not self.enabled:
            return

        with self._lock:
            if not self._dirty or self._canvas is None:
                return
            canvas = self._canvas
            self._dirty = False

        try:
            cv2.imshow(self.title, canvas)
            self._imshow_errors = 0
        except cv2.error as e:
            logger.warning(f"imshow 异常（忽略本帧）：{e}")
            self._imshow_errors += 1

    def poll_keys_and_health(self, wait_ms: int = 1) -> str:
        """
        处理一次按键并检查窗口状态

        返回 "quit" / "toggle" / "screenshot" / "continue"。
        m/f/w（镜像、全屏、窗口）在这里直接处理。
        """
        if not self.enabled:
            return "continue"

        key = cv2.waitKey(max(1, int(wait_ms))) & 0xFF
        action = self.ACTION_KEYS.get(key)
        if action == "quit":
            logger.info("退出原因: 用户按键 (q/ESC)")
            return action
        if action is not None:
            return action

        self._handle_view_key(key)
        return "quit" if self._recover_window() else "continue"

    def _handle_view_key(self, key: int):
        if key == ord('m'):
            self.visualizer.mirror = not self.visualizer.mirror
            logger.info(f"镜像显示: {'开' if self.visualizer.mirror else '关'}")
        elif key == ord('f'):
            self._set_fullscreen(True)
        elif key == ord('w'):
            self._set_fullscreen(False)

    def _set_fullscreen(self, fullscreen: bool):
        mode = cv2.WINDOW_FULLSCREEN if fullscreen else cv2.WINDOW_NORMAL
        cv2.setWindowProperty(self.title, cv2.WND_PROP_FULLSCREEN, mode)
        if not fullscreen:
            cv2.resizeWindow(self.title, self.width, self.height + self.visualizer.panel_height)
        logger.info("[UI] 全屏" if fullscreen else "[UI] 窗口化")

    def _recover_window(self) -> bool:
        """窗口被关闭或 imshow 连续失败时重建；返回 True 表示应退出"""
        if not self._is_visible():
            if not self.stay_open:
                logger.info("退出原因: 窗口被用户关闭")
                return True
            logger.warning("[UI] 窗口已关闭，重新创建")
            self.create()

        if self._imshow_errors > self.max_imshow_errors:
            logger.warning(f"[UI] imshow 连续失败 {self._imshow_errors} 次，重新创建窗口")
            self.create()
            self._imshow_errors = 0
        return False

    def _is_visible(self) -> bool:
        try:
            return cv2.getWindowProperty(self.title, cv2.WND_PROP_VISIBLE) >= 1
        except cv2.error:
            # 部分后端不支持该属性
            return True

    def destroy(self):
        """销毁窗口"""
        if not self.enabled:
            return

        try:
            cv2.destroyWindow(self.title)
            logger.info("[UI] 窗口已销毁")
        except cv2.error as e:
            logger.warning(f"[UI] 销毁窗口异常: {e}")

    def save_screenshot(self, directory: str = ".") -> Optional[str]:
        """保存当前画面，返回文件路径（没有画面或写入失败时返回 None）"""
        canvas = self.latest_canvas()
        if canvas is None:
            return None
        path = Path(directory) / f"posture_coach_{datetime.now():%Y%m%d_%H%M%S}.jpg"
        if not cv2.imwrite(str(path), canvas):
            logger.error(f"[UI] 截图写入失败: {path}")
            return None
        logger.info(f"[UI] 截图: {path}")
        return str(path)

    def __enter__(self):
        self.create()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.destroy()
        return False
