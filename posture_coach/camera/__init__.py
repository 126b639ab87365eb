"""
相机模块

核心组件：
- CameraInterface: 取帧设备统一接口
- WebcamManager: OpenCV 摄像头 / 视频文件实现
- CameraWarmupManager: 等待第一帧
- FrameAcquisition / StreamHandle: 两阶段获取与幂等释放
"""
from .camera_interface import CameraInterface
from .webcam_manager import WebcamManager
from .warmup_manager import CameraWarmupManager
from .frame_acquisition import CameraConstraints, FrameAcquisition, StreamHandle

__all__ = [
    'CameraInterface',
    'WebcamManager',
    'CameraWarmupManager',
    'CameraConstraints',
    'FrameAcquisition',
    'StreamHandle',
]
