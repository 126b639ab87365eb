"""
Core module for common utilities, constants and error types
"""
from .constants import Constants
from .logger import setup_logger, logger
from .errors import (
    PostureCoachError,
    AcquisitionError,
    ModelLoadError,
    EngineNotReadyError,
    ComputationError,
    InferenceError,
    TimestampOrderError,
)

__all__ = [
    'Constants',
    'setup_logger',
    'logger',
    'PostureCoachError',
    'AcquisitionError',
    'ModelLoadError',
    'EngineNotReadyError',
    'ComputationError',
    'InferenceError',
    'TimestampOrderError',
]
