"""
检测模块 - 姿态检测后端

后端实现按需导入（mediapipe / ultralytics 较重），由 PoseEngine 的工厂函数加载：
- MediaPipePoseDetector: detection.mediapipe_pose_detector
- YoloPoseDetector: detection.yolo_pose_detector
"""
from .base import Delegate, PoseDetector
from .model_asset import resolve_model_asset, is_remote

__all__ = [
    'Delegate',
    'PoseDetector',
    'resolve_model_asset',
    'is_remote',
]
