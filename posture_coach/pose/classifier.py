"""
深蹲姿态分类
===========

将单帧关键点映射为反馈状态（无状态纯函数，不记忆历史帧）：

1. 空关键点集 -> NO_SUBJECT
2. 左侧髋/膝/踝任一可见度 <= 阈值 -> OCCLUDED
3. 计算膝关节角度（退化几何抛出 ComputationError，由调用方处理）
4. 按角度分段（从高到低）：
   > 160 STAND_READY, (100, 160] DESCEND, (80, 100] GOOD_DEPTH, <= 80 COMPLETE
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from ..core.constants import Constants
from .geometry import angle
from .types import FeedbackState, LandmarkSet

# 只评估左侧
HIP = "left_hip"
KNEE = "left_knee"
ANKLE = "left_ankle"


@dataclass(frozen=True)
class ClassifierConfig:
    """分类阈值"""
    visibility_threshold: float = Constants.VISIBILITY_THRESHOLD
    stand_ready_above: float = Constants.STAND_READY_ABOVE
    descend_above: float = Constants.DESCEND_ABOVE
    good_depth_above: float = Constants.GOOD_DEPTH_ABOVE

    def __post_init__(self):
        if not (self.stand_ready_above > self.descend_above > self.good_depth_above):
            raise ValueError(
                "classifier bands must be strictly decreasing: "
                f"{self.stand_ready_above} > {self.descend_above} > {self.good_depth_above}"
            )

    @classmethod
    def from_config(cls, cfg) -> "ClassifierConfig":
        """从 config.classifier 段构建"""
        if cfg is None:
            return cls()
        return cls(
            visibility_threshold=float(cfg.get("visibility_threshold", Constants.VISIBILITY_THRESHOLD)),
            stand_ready_above=float(cfg.get("stand_ready_above", Constants.STAND_READY_ABOVE)),
            descend_above=float(cfg.get("descend_above", Constants.DESCEND_ABOVE)),
            good_depth_above=float(cfg.get("good_depth_above", Constants.GOOD_DEPTH_ABOVE)),
        )


DEFAULT_CLASSIFIER_CONFIG = ClassifierConfig()


def angle_to_state(knee_angle: float, config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG) -> FeedbackState:
    """角度 -> 反馈状态（分段连续且穷尽）"""
    if knee_angle > config.stand_ready_above:
        return FeedbackState.STAND_READY
    if knee_angle > config.descend_above:
        return FeedbackState.DESCEND
    if knee_angle > config.good_depth_above:
        return FeedbackState.GOOD_DEPTH
    return FeedbackState.COMPLETE


def classify_with_angle(
    landmarks: LandmarkSet,
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
) -> Tuple[FeedbackState, Optional[float]]:
    """
    分类并返回膝关节角度（未计算角度时为 None）

    Raises:
        ComputationError: 髋/膝/踝几何退化
    """
    if landmarks.is_empty:
        return FeedbackState.NO_SUBJECT, None

    hip = landmarks.get(HIP)
    knee = landmarks.get(KNEE)
    ankle = landmarks.get(ANKLE)

    threshold = config.visibility_threshold
    if any(p.visibility <= threshold for p in (hip, knee, ankle)):
        return FeedbackState.OCCLUDED, None

    knee_angle = angle(hip, knee, ankle)
    return angle_to_state(knee_angle, config), knee_angle


def classify(landmarks: LandmarkSet, config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG) -> FeedbackState:
    """单帧分类，详见模块说明"""
    state, _ = classify_with_angle(landmarks, config)
    return state
