#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Posture Coach 主程序 - 实时深蹲姿态反馈

集成功能：
- 摄像头 / 视频文件取帧
- MediaPipe PoseLandmarker（或 YOLO Pose）关键点推理
- 膝关节角度计算与深蹲反馈
- OpenCV 窗口显示（可无头运行）
"""

import argparse
import sys
import time
import traceback
from pathlib import Path

from posture_coach import __version__
from posture_coach.camera import FrameAcquisition
from posture_coach.core import logger
from posture_coach.core.logger import apply_logging_config
from posture_coach.core.config_loader import apply_env_overrides, get_config
from posture_coach.core.errors import EngineNotReadyError, PostureCoachError
from posture_coach.core.loop_controller import LoopController
from posture_coach.core.scheduler import PacedScheduler, ThreadedScheduler
from posture_coach.detection.model_asset import is_remote
from posture_coach.engines import PoseEngine
from preflight_check import preflight_check


def print_banner():
    """打印系统信息"""
    print("\n" + "="*70)
    print(f"         Posture Coach v{__version__} - 实时深蹲姿态反馈")
    print("="*70)
    print("\n操作说明：")
    print("  Space / s - 开始/停止摄像头")
    print("  p - 保存截图")
    print("  m - 切换镜像显示")
    print("  f - 全屏模式")
    print("  w - 窗口模式")
    print("  q / ESC - 退出系统")
    print("="*70 + "\n")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Posture Coach - real-time squat feedback")
    parser.add_argument("--config", help="path to system_config.json")
    parser.add_argument("--source", help="camera index or video file path (overrides camera.source)")
    parser.add_argument("--headless", action="store_true", help="run without a window, log feedback only")
    parser.add_argument("--skip-preflight", action="store_true", help="skip dependency/camera checks")
    return parser.parse_args(argv)


def _resolve_model_ref(config) -> str:
    model_ref = str(config.pose.get("model"))
    if is_remote(model_ref):
        return model_ref
    return str(config.resolve_path(model_ref))


def build_controller(config, scheduler, **kwargs) -> LoopController:
    """按配置组装引擎、取帧与循环控制器"""
    engine = PoseEngine.from_config(config)
    acquisition = FrameAcquisition.from_config(config)
    return LoopController.from_config(
        config,
        engine=engine,
        acquisition=acquisition,
        scheduler=scheduler,
        model_ref=_resolve_model_ref(config),
        **kwargs,
    )


class FeedbackLogger:
    """无头模式下记录反馈变化（相同状态不重复打印）"""

    def __init__(self):
        self.last_state = None

    def __call__(self, state):
        if state is not self.last_state:
            logger.info(f"反馈: {state.message}")
            self.last_state = state


def run_gui_mode(config) -> bool:
    """窗口模式：GUI 线程驱动调度器"""
    from posture_coach.ui import WindowManager

    ui_cfg = config.ui
    window = WindowManager(
        title=ui_cfg.get("title", "Posture Coach - Squat Feedback"),
        width=int(ui_cfg.get("width", 960)),
        mirror=bool(ui_cfg.get("mirror", True)),
        show_angle=bool(ui_cfg.get("show_angle", True)),
    )
    scheduler = PacedScheduler(max_fps=config.loop.get("max_fps", 30))
    controller = build_controller(
        config,
        scheduler,
        display_sink=window,
        on_status=window.set_status,
    )

    window.create()
    controller.initialize()

    try:
        while True:
            scheduler.pump()
            window.render()

            action = window.poll_keys_and_health()
            if action == "quit":
                break
            if action == "screenshot":
                window.save_screenshot()
            elif action == "toggle":
                if controller.is_running:
                    controller.stop()
                else:
                    try:
                        controller.start()
                    except EngineNotReadyError:
                        logger.info("模型仍在加载，请稍候")
                    except PostureCoachError as e:
                        logger.warning(f"无法开始: {e}")
    except KeyboardInterrupt:
        logger.info("用户中断")
    finally:
        controller.shutdown()
        window.destroy()

    return controller.load_error is None


def run_headless_mode(config) -> bool:
    """无头模式：后台调度线程驱动，加载完成后自动开始"""
    scheduler = ThreadedScheduler(max_fps=config.loop.get("max_fps", 30))
    controller = build_controller(config, scheduler, on_feedback=FeedbackLogger())

    controller.initialize()
    try:
        if not controller.wait_until_ready():
            return False
        controller.start()
        while controller.is_running:
            time.sleep(0.5)
        # 视频文件播放结束或相机断开
        return True
    except KeyboardInterrupt:
        logger.info("用户中断")
        return True
    except PostureCoachError as e:
        logger.error(f"无头模式错误: {e}")
        return False
    finally:
        stats = controller.get_stats()
        logger.info(f"运行统计: {stats['totals']}")
        controller.shutdown()


def run_main_system(args) -> bool:
    """系统主入口"""
    print_banner()

    if not args.skip_preflight:
        logger.info("Running system preflight checks...")
        if not preflight_check(args.config, check_camera=False):
            logger.error("Preflight check failed.")
            return False

    config = apply_env_overrides(get_config(config_path=args.config))
    apply_logging_config(config)
    if args.source is not None:
        config.camera.source = int(args.source) if args.source.isdigit() else args.source

    headless = args.headless or not config.ui.get("enabled", True)

    logger.info("=" * 60)
    logger.info("运行模式配置:")
    logger.info(f"  - 配置文件: {config.config_path}")
    logger.info(f"  - 姿态后端: {config.pose.get('backend')} ({config.pose.get('delegate')})")
    logger.info(f"  - 视频源: {config.camera.get('source')!r}")
    logger.info(f"  - 显示: {'无头' if headless else '窗口'}")
    logger.info("=" * 60)

    if headless:
        return run_headless_mode(config)
    return run_gui_mode(config)


def main(argv=None):
    """主入口点"""
    args = parse_args(argv)
    if args.config is not None and not Path(args.config).exists():
        logger.error(f"配置文件不存在: {args.config}")
        sys.exit(1)
    try:
        success = run_main_system(args)
        sys.exit(0 if success else 1)
    except Exception as e:
        logger.error(f"主程序异常: {e}")
        logger.error(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
