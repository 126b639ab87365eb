"""
推理引擎模块
===========

封装姿态推理引擎（模型加载 / 单帧推理 / 释放）。
"""
from .pose_engine import PoseEngine, PoseHandle, SUPPORTED_BACKENDS, create_detector

__all__ = [
    'PoseEngine',
    'PoseHandle',
    'SUPPORTED_BACKENDS',
    'create_detector',
]
