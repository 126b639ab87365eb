"""
MediaPipe Pose Landmarker 后端
=============================

使用 MediaPipe Tasks API（VIDEO 运行模式，单人），输出 BlazePose 33 点。
"""
from pathlib import Path
from typing import Union

import numpy as np

from ..core.logger import logger
from ..pose.topology import BLAZEPOSE_33, PoseTopology
from ..pose.types import Landmark, LandmarkSet
from .base import Delegate, PoseDetector


class MediaPipePoseDetector(PoseDetector):
    """
    MediaPipe 姿态关键点检测器

    Notes:
    - 坐标为归一化图像坐标（0..1），与模型输出一致
    - visibility 缺失时按 0.0 处理（视为不可见）
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        delegate: Delegate = Delegate.CPU,
        min_detection_confidence: float = 0.5,
        min_presence_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        """
        Args:
            model_path: .task 模型文件路径
            delegate: 推理设备（CPU / GPU）
            min_detection_confidence: 检测置信度阈值
            min_presence_confidence: 存在置信度阈值
            min_tracking_confidence: 跟踪置信度阈值

        Raises:
            RuntimeError: MediaPipe 不可用或模型创建失败
        """
        try:
            import mediapipe as mp
            from mediapipe.tasks.python.core.base_options import BaseOptions
            from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions, RunningMode
        except ImportError as e:
            raise RuntimeError(
                "MediaPipe Tasks API unavailable. Install with: pip install mediapipe"
            ) from e

        self._mp = mp
        self.model_path = str(model_path)
        self.delegate = delegate

        mp_delegate = BaseOptions.Delegate.GPU if delegate is Delegate.GPU else BaseOptions.Delegate.CPU
        options = PoseLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=self.model_path, delegate=mp_delegate),
            running_mode=RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=float(min_detection_confidence),
            min_pose_presence_confidence=float(min_presence_confidence),
            min_tracking_confidence=float(min_tracking_confidence),
            output_segmentation_masks=False,
        )

        try:
            self._landmarker = PoseLandmarker.create_from_options(options)
        except Exception as e:
            raise RuntimeError(
                f"PoseLandmarker creation failed (model={self.model_path}, delegate={delegate.value}): {e}"
            ) from e

        logger.info(f"MediaPipe PoseLandmarker 已加载: {self.model_path} (delegate={delegate.value})")

    @property
    def name(self) -> str:
        return "mediapipe_pose_landmarker"

    @property
    def topology(self) -> PoseTopology:
        return BLAZEPOSE_33

    def detect(self, rgb_frame, timestamp_ms: int) -> LandmarkSet:
        mp_image = self._mp.Image(
            image_format=self._mp.ImageFormat.SRGB,
            data=np.ascontiguousarray(rgb_frame, dtype=np.uint8),
        )
        result = self._landmarker.detect_for_video(mp_image, int(timestamp_ms))

        if not result or not result.pose_landmarks:
            return LandmarkSet.empty(BLAZEPOSE_33)

        pose = result.pose_landmarks[0]
        return LandmarkSet(
            (
                Landmark(
                    x=float(p.x),
                    y=float(p.y),
                    z=float(p.z or 0.0),
                    visibility=float(p.visibility or 0.0),
                )
                for p in pose
            ),
            BLAZEPOSE_33,
        )

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            logger.info("MediaPipe PoseLandmarker 已释放")
