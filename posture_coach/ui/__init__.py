"""
UI 模块
"""
from .window import WindowManager

__all__ = ['WindowManager']
