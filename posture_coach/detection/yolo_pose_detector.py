"""
YOLO Pose 后端（Ultralytics）
============================

输出 COCO 17 关键点，关键点置信度作为 visibility 使用。
支持 .pt / .onnx / .engine 等 Ultralytics 可加载的模型格式。
"""
from pathlib import Path
from typing import Dict, Union

import numpy as np
import torch
from ultralytics import YOLO

from ..core.logger import logger
from ..pose.topology import COCO_17, PoseTopology
from ..pose.types import Landmark, LandmarkSet
from .base import Delegate, PoseDetector


class YoloPoseDetector(PoseDetector):
    """YOLO 姿态关键点检测器（单人：只取置信度最高的一个检测框）"""

    def __init__(
        self,
        model_path: Union[str, Path],
        delegate: Delegate = Delegate.CPU,
        confidence_threshold: float = 0.5,
        input_size: int = 640,
    ):
        """
        Args:
            model_path: YOLO pose 模型路径
            delegate: 推理设备（GPU 需要 CUDA 可用）
            confidence_threshold: 人体检测置信度阈值
            input_size: 推理输入尺寸

        Raises:
            RuntimeError: GPU 不可用或模型加载失败
        """
        if delegate is Delegate.GPU and not torch.cuda.is_available():
            raise RuntimeError("GPU delegate requested but CUDA is not available for YOLO pose")

        self.model_path = str(model_path)
        self.delegate = delegate
        self.device = "cuda:0" if delegate is Delegate.GPU else "cpu"
        self.confidence_threshold = float(max(0.0, min(1.0, confidence_threshold)))
        self.input_size = int(input_size)

        try:
            self.model = YOLO(self.model_path, task="pose")
        except Exception as e:
            raise RuntimeError(f"YOLO pose model load failed: {self.model_path}: {e}") from e

        logger.info(f"YOLO Pose 模型已加载: {self.model_path} (device={self.device})")

    @property
    def name(self) -> str:
        return "yolo_pose"

    @property
    def topology(self) -> PoseTopology:
        return COCO_17

    def detect(self, rgb_frame, timestamp_ms: int) -> LandmarkSet:
        # Ultralytics 以 numpy 输入时按 BGR 处理
        bgr = np.ascontiguousarray(rgb_frame[..., ::-1])
        results = self.model.predict(
            bgr,
            device=self.device,
            conf=self.confidence_threshold,
            imgsz=self.input_size,
            max_det=1,
            verbose=False,
        )

        if not results:
            return LandmarkSet.empty(COCO_17)

        keypoints = results[0].keypoints
        if keypoints is None or keypoints.xyn is None or len(keypoints.xyn) == 0:
            return LandmarkSet.empty(COCO_17)

        xyn = keypoints.xyn[0].cpu().numpy()
        if keypoints.conf is not None:
            conf = keypoints.conf[0].cpu().numpy()
        else:
            conf = np.ones(len(xyn), dtype=np.float32)

        return LandmarkSet(
            (
                Landmark(x=float(x), y=float(y), z=0.0, visibility=float(c))
                for (x, y), c in zip(xyn, conf)
            ),
            COCO_17,
        )

    def get_model_info(self) -> Dict:
        return {
            'model_path': self.model_path,
            'confidence_threshold': self.confidence_threshold,
            'device': self.device,
        }

    def close(self) -> None:
        if self.model is not None:
            self.model = None
            if self.device.startswith("cuda"):
                torch.cuda.empty_cache()
            logger.info("YOLO Pose 模型已释放")
