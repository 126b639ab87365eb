"""
会话状态
=======

一次 start() 到 stop() 之间的运行时状态，仅由 LoopController 修改。
stop() 之后整个对象被丢弃并替换为新的空会话。
"""
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..pose.types import FeedbackState, LandmarkSet

_session_ids = itertools.count(1)


@dataclass
class Session:
    """单次运行会话"""
    session_id: int = field(default_factory=lambda: next(_session_ids))
    running: bool = False
    stream: Optional[Any] = None          # StreamHandle
    pending: Optional[Any] = None         # ScheduleHandle
    started_at: Optional[float] = None

    latest_landmarks: LandmarkSet = field(default_factory=LandmarkSet.empty)
    latest_feedback: Optional[FeedbackState] = None
    latest_knee_angle: Optional[float] = None

    # 计数
    cycles: int = 0
    published: int = 0
    no_new_frame: int = 0
    inference_errors: int = 0
    computation_fallbacks: int = 0
    discarded_results: int = 0

    @property
    def uptime(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'running': self.running,
            'uptime_s': self.uptime,
            'latest_feedback': self.latest_feedback.name if self.latest_feedback else None,
            'latest_knee_angle': self.latest_knee_angle,
            'cycles': self.cycles,
            'published': self.published,
            'no_new_frame': self.no_new_frame,
            'inference_errors': self.inference_errors,
            'computation_fallbacks': self.computation_fallbacks,
            'discarded_results': self.discarded_results,
        }
