"""
关节角度计算
===========

三点法（余弦定理）计算顶点处的夹角，仅使用 2D 平面坐标，忽略深度与可见度。
"""
import math
from typing import Tuple

from ..core.errors import ComputationError


def _xy(point) -> Tuple[float, float]:
    """支持 Landmark（x/y 属性）或 (x, y) 序列"""
    if hasattr(point, "x") and hasattr(point, "y"):
        return float(point.x), float(point.y)
    return float(point[0]), float(point[1])


def angle(p1, vertex, p3) -> float:
    """
    计算 p1-vertex-p3 在 vertex 处的夹角

    Args:
        p1: 近端点（如髋）
        vertex: 顶点（如膝）
        p3: 远端点（如踝）

    Returns:
        float: 角度（度），非退化三角形时位于 [0, 180]

    Raises:
        ComputationError: 顶点与任一端点重合
    """
    x1, y1 = _xy(p1)
    xv, yv = _xy(vertex)
    x3, y3 = _xy(p3)

    a = math.hypot(x1 - xv, y1 - yv)
    b = math.hypot(x3 - xv, y3 - yv)
    c = math.hypot(x1 - x3, y1 - y3)

    if a == 0 or b == 0:
        raise ComputationError(
            f"degenerate joint: vertex coincides with an end point (a={a}, b={b})"
        )

    # 余弦定理
    cosine = (a ** 2 + b ** 2 - c ** 2) / (2 * a * b)
    if -1.0 <= cosine <= 1.0:
        return math.degrees(math.acos(cosine))

    # 三点共线时浮点误差可能让余弦略超出 [-1, 1]，改用向量叉积/点积求角（结果为 0 或 180）
    ux, uy = x1 - xv, y1 - yv
    wx, wy = x3 - xv, y3 - yv
    return math.degrees(math.atan2(abs(ux * wy - uy * wx), ux * wx + uy * wy))
