"""
Posture Coach 应用模块包

实时深蹲姿态反馈：相机取帧 -> 姿态估计 -> 膝关节角度 -> 反馈分类。
"""

from pathlib import Path


def _read_version() -> str:
    try:
        vf = Path(__file__).resolve().parents[1] / "VERSION"
        if vf.exists():
            val = vf.read_text(encoding="utf-8").strip()
            if val:
                return val
    except OSError:
        pass
    return "0.1.0"


__version__ = _read_version()
