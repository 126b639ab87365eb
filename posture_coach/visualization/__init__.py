"""
可视化模块
"""
from .visualizer import PoseVisualizer

__all__ = ['PoseVisualizer']
