"""
相机抽象接口
==========

定义所有取帧设备必须实现的统一接口，支持:
- USB / 内置摄像头（OpenCV VideoCapture）
- 视频文件回放
- 模拟相机（用于测试）
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np


class CameraInterface(ABC):
    """
    相机统一接口

    所有相机实现都必须遵守此接口契约
    """

    @abstractmethod
    def initialize(self) -> bool:
        """
        打开相机设备并开始采集

        Returns:
            bool: 成功返回 True

        Raises:
            AcquisitionError: 设备不存在或无访问权限
        """

    @abstractmethod
    def get_latest_frame(self) -> Optional[Tuple[int, np.ndarray]]:
        """
        获取最新帧 (非阻塞)

        Returns:
            (帧序号, RGB 图像) 或 None（尚无可用帧）

        Notes:
            - 只保留最新一帧，推理慢于采集时旧帧被丢弃
            - 帧序号单调递增，可用于判断是否为新帧
        """

    @abstractmethod
    def get_camera_status(self) -> str:
        """
        获取相机当前状态

        Returns:
            状态字符串: "not_initialized", "initializing", "ok", "error", "stopped"
        """

    @abstractmethod
    def get_telemetry(self) -> Dict[str, Any]:
        """
        获取相机遥测数据

        Returns:
            包含状态、统计信息的字典:
            {
                "status": str,
                "frames_read": int,
                "read_failures": int,
                "consecutive_failures": int,
                "fps": float,
                "frame_age_ms": float,
            }
        """

    @abstractmethod
    def cleanup(self) -> None:
        """
        释放相机资源（幂等）

        Notes:
            - 停止采集线程
            - 关闭相机设备
        """

    @abstractmethod
    def is_initialized(self) -> bool:
        """检查相机是否已初始化"""

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False
