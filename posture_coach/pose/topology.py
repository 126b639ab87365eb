"""
Pose model topologies
=====================

Each pose model returns landmarks in a fixed order. A PoseTopology names every
index and lists the skeleton connections used for drawing, so downstream code
never hardcodes indices.

- BLAZEPOSE_33: MediaPipe Pose Landmarker (33 landmarks)
  Reference: https://ai.google.dev/edge/mediapipe/solutions/vision/pose_landmarker
- COCO_17: YOLO Pose (17 keypoints)
  Reference: https://docs.ultralytics.com/tasks/pose/
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class PoseTopology:
    """Landmark names (index order) and skeleton edges for one pose model."""

    name: str
    landmark_names: Tuple[str, ...]
    connections: Tuple[Tuple[int, int], ...]
    _index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self, "_index", {n: i for i, n in enumerate(self.landmark_names)}
        )

    @property
    def landmark_count(self) -> int:
        return len(self.landmark_names)

    def index_of(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"{self.name} has no landmark named '{name}'") from None


BLAZEPOSE_33 = PoseTopology(
    name="blazepose_33",
    landmark_names=(
        "nose",
        "left_eye_inner",
        "left_eye",
        "left_eye_outer",
        "right_eye_inner",
        "right_eye",
        "right_eye_outer",
        "left_ear",
        "right_ear",
        "mouth_left",
        "mouth_right",
        "left_shoulder",
        "right_shoulder",
        "left_elbow",
        "right_elbow",
        "left_wrist",
        "right_wrist",
        "left_pinky",
        "right_pinky",
        "left_index",
        "right_index",
        "left_thumb",
        "right_thumb",
        "left_hip",
        "right_hip",
        "left_knee",
        "right_knee",
        "left_ankle",
        "right_ankle",
        "left_heel",
        "right_heel",
        "left_foot_index",
        "right_foot_index",
    ),
    connections=(
        (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8),
        (9, 10), (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21),
        (17, 19), (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
        (11, 23), (12, 24), (23, 24), (23, 25), (24, 26), (25, 27), (26, 28),
        (27, 29), (28, 30), (29, 31), (30, 32), (27, 31), (28, 32),
    ),
)


COCO_17 = PoseTopology(
    name="coco_17",
    landmark_names=(
        "nose",
        "left_eye",
        "right_eye",
        "left_ear",
        "right_ear",
        "left_shoulder",
        "right_shoulder",
        "left_elbow",
        "right_elbow",
        "left_wrist",
        "right_wrist",
        "left_hip",
        "right_hip",
        "left_knee",
        "right_knee",
        "left_ankle",
        "right_ankle",
    ),
    connections=(
        (15, 13), (13, 11), (16, 14), (14, 12), (11, 12), (5, 11), (6, 12),
        (5, 6), (5, 7), (6, 8), (7, 9), (8, 10), (1, 2), (0, 1), (0, 2),
        (1, 3), (2, 4), (3, 5), (4, 6),
    ),
)


TOPOLOGIES = {t.name: t for t in (BLAZEPOSE_33, COCO_17)}
