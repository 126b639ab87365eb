"""
Pose Analysis Module

Features:
- Landmark / LandmarkSet records bound to a pose model topology
- Joint angle calculation (law of cosines, 2D)
- Stateless squat feedback classification
"""
from .topology import PoseTopology, BLAZEPOSE_33, COCO_17, TOPOLOGIES
from .types import Landmark, LandmarkSet, FeedbackState, FEEDBACK_MESSAGES
from .geometry import angle
from .classifier import (
    ClassifierConfig,
    DEFAULT_CLASSIFIER_CONFIG,
    angle_to_state,
    classify,
    classify_with_angle,
)

__all__ = [
    "PoseTopology",
    "BLAZEPOSE_33",
    "COCO_17",
    "TOPOLOGIES",
    "Landmark",
    "LandmarkSet",
    "FeedbackState",
    "FEEDBACK_MESSAGES",
    "angle",
    "ClassifierConfig",
    "DEFAULT_CLASSIFIER_CONFIG",
    "angle_to_state",
    "classify",
    "classify_with_angle",
]
