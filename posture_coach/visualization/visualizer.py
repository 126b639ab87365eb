"""
姿态可视化模块
用于关键点骨架、膝关节角度和反馈信息面板的绘制
"""
from typing import Optional

import cv2
import numpy as np

from ..pose.classifier import HIP, KNEE, ANKLE
from ..pose.types import FeedbackState, LandmarkSet

# BGR
LANDMARK_COLOR = (255, 255, 255)
CONNECTION_COLOR = (233, 165, 14)
FEEDBACK_COLOR = (248, 189, 56)
STATUS_COLOR = (200, 200, 200)
PANEL_BG = (55, 65, 81)

STATE_COLORS = {
    FeedbackState.NO_SUBJECT: (128, 128, 128),
    FeedbackState.OCCLUDED: (0, 165, 255),
    FeedbackState.STAND_READY: (255, 255, 255),
    FeedbackState.DESCEND: (0, 255, 255),
    FeedbackState.GOOD_DEPTH: (0, 255, 0),
    FeedbackState.COMPLETE: (0, 200, 0),
}


def _lerp(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """线性映射并截断到输出区间"""
    if in_max == in_min:
        return out_min
    t = (value - in_min) / (in_max - in_min)
    t = max(0.0, min(1.0, t))
    return out_min + t * (out_max - out_min)


class PoseVisualizer:
    """姿态反馈可视化器"""

    def __init__(self, mirror: bool = True, show_angle: bool = True, panel_height: int = 110):
        """
        参数:
            mirror: 水平翻转画面（自拍视角），骨架坐标同步翻转
            show_angle: 在膝关节旁显示角度
            panel_height: 底部反馈面板高度（像素）
        """
        self.mirror = mirror
        self.show_angle = show_angle
        self.panel_height = panel_height

    def _to_pixel(self, x: float, y: float, w: int, h: int):
        if self.mirror:
            x = 1.0 - x
        return int(round(x * w)), int(round(y * h))

    def draw(self,
             frame_rgb: np.ndarray,
             landmarks: Optional[LandmarkSet] = None,
             feedback: Optional[FeedbackState] = None,
             knee_angle: Optional[float] = None,
             status: Optional[str] = None) -> np.ndarray:
        """
        绘制完整画面

        参数:
            frame_rgb: RGB 原始帧（不会被修改）
            landmarks: 关键点（空集或 None 时只画视频）
            feedback: 当前反馈状态
            knee_angle: 膝关节角度（度）
            status: 生命周期提示（无反馈时显示）

        返回:
            BGR 图像（含底部面板）
        """
        image = cv2.cvtColor(frame_rgb, cv2.COLOR_RGB2BGR)
        if self.mirror:
            image = cv2.flip(image, 1)

        if landmarks:
            self.draw_skeleton(image, landmarks)
            if self.show_angle and knee_angle is not None:
                self.draw_knee_angle(image, landmarks, knee_angle)

        return self.draw_feedback_panel(image, feedback, status)

    def draw_skeleton(self, image: np.ndarray, landmarks: LandmarkSet):
        """先画连线，再画关键点（近处的点更大）"""
        h, w = image.shape[:2]
        points = [self._to_pixel(lm.x, lm.y, w, h) for lm in landmarks]

        for start, end in landmarks.topology.connections:
            cv2.line(image, points[start], points[end], CONNECTION_COLOR, 3, cv2.LINE_AA)

        for lm, point in zip(landmarks, points):
            radius = int(round(_lerp(lm.z, -0.15, 0.1, 5, 1)))
            cv2.circle(image, point, max(1, radius), LANDMARK_COLOR, -1, cv2.LINE_AA)

    def draw_knee_angle(self, image: np.ndarray, landmarks: LandmarkSet, knee_angle: float):
        h, w = image.shape[:2]
        hip, knee, ankle = (landmarks.get(name) for name in (HIP, KNEE, ANKLE))
        p_hip = self._to_pixel(hip.x, hip.y, w, h)
        p_knee = self._to_pixel(knee.x, knee.y, w, h)
        p_ankle = self._to_pixel(ankle.x, ankle.y, w, h)

        cv2.line(image, p_hip, p_knee, (0, 255, 255), 4, cv2.LINE_AA)
        cv2.line(image, p_knee, p_ankle, (0, 255, 255), 4, cv2.LINE_AA)
        cv2.circle(image, p_knee, 8, (0, 255, 255), 2, cv2.LINE_AA)
        cv2.putText(image, f"{knee_angle:.0f} deg", (p_knee[0] + 12, p_knee[1] - 12),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 255), 2)

    def draw_feedback_panel(self, image: np.ndarray, feedback: Optional[FeedbackState],
                            status: Optional[str]) -> np.ndarray:
        """在画面下方拼接 "Posture Feedback" 面板"""
        h, w = image.shape[:2]
        panel = np.zeros((self.panel_height, w, 3), dtype=np.uint8)
        panel[:] = PANEL_BG

        cv2.putText(panel, "Posture Feedback", (20, 32),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, STATUS_COLOR, 2)

        if feedback is not None:
            text, color = feedback.message, FEEDBACK_COLOR
            cv2.circle(panel, (w - 30, 28), 10, STATE_COLORS[feedback], -1)
        else:
            text, color = status or "", STATUS_COLOR
        cv2.putText(panel, text, (20, 80),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, color, 2)

        return np.vstack([image, panel])

    def draw_placeholder(self, width: int, height: int, status: Optional[str]) -> np.ndarray:
        """无视频时的黑屏 + 状态面板"""
        blank = np.zeros((height, width, 3), dtype=np.uint8)
        return self.draw_feedback_panel(blank, None, status)
