from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional, Tuple

from .topology import BLAZEPOSE_33, PoseTopology


@dataclass(frozen=True)
class Landmark:
    """
    A single body keypoint.

    x/y are normalised image coordinates, z is the model's relative depth
    (ignored by the 2D geometry), visibility is a confidence in [0, 1].
    """

    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0


class LandmarkSet:
    """
    Landmarks of one detected subject in one frame.

    Either empty (no subject) or exactly `topology.landmark_count` long.
    Immutable; a new set is produced every cycle.
    """

    __slots__ = ("_landmarks", "_topology")

    def __init__(self, landmarks: Iterable[Landmark] = (), topology: PoseTopology = BLAZEPOSE_33):
        items = tuple(landmarks)
        if items and len(items) != topology.landmark_count:
            raise ValueError(
                f"{topology.name} expects {topology.landmark_count} landmarks, got {len(items)}"
            )
        self._landmarks: Tuple[Landmark, ...] = items
        self._topology = topology

    @classmethod
    def empty(cls, topology: PoseTopology = BLAZEPOSE_33) -> "LandmarkSet":
        return cls((), topology)

    @property
    def topology(self) -> PoseTopology:
        return self._topology

    @property
    def is_empty(self) -> bool:
        return not self._landmarks

    def get(self, name: str) -> Optional[Landmark]:
        if not self._landmarks:
            return None
        return self._landmarks[self._topology.index_of(name)]

    def __getitem__(self, index: int) -> Landmark:
        return self._landmarks[index]

    def __len__(self) -> int:
        return len(self._landmarks)

    def __iter__(self) -> Iterator[Landmark]:
        return iter(self._landmarks)

    def __bool__(self) -> bool:
        return bool(self._landmarks)

    def __eq__(self, other) -> bool:
        if not isinstance(other, LandmarkSet):
            return NotImplemented
        return self._topology == other._topology and self._landmarks == other._landmarks

    def __hash__(self) -> int:
        return hash((self._topology.name, self._landmarks))

    def __repr__(self) -> str:
        return f"LandmarkSet(topology={self._topology.name}, size={len(self._landmarks)})"


class FeedbackState(Enum):
    """Discrete posture category surfaced to the user each cycle."""

    NO_SUBJECT = "no_subject"
    OCCLUDED = "occluded"
    STAND_READY = "stand_ready"
    DESCEND = "descend"
    GOOD_DEPTH = "good_depth"
    COMPLETE = "complete"

    @property
    def message(self) -> str:
        return FEEDBACK_MESSAGES[self]


FEEDBACK_MESSAGES = {
    FeedbackState.NO_SUBJECT: "No person detected. Stand in full view.",
    FeedbackState.OCCLUDED: "Make sure your left side is visible to the camera.",
    FeedbackState.STAND_READY: "Stand straight, then begin your squat.",
    FeedbackState.DESCEND: "Squat deeper... Lower your hips.",
    FeedbackState.GOOD_DEPTH: "Good depth! Hold or push up.",
    FeedbackState.COMPLETE: "Great squat! Now stand back up.",
}
