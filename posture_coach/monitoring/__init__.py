"""
Monitoring module
=================

Loop performance monitoring utilities.
"""
from .frame_rate_monitor import FrameRateMonitor

__all__ = ['FrameRateMonitor']
