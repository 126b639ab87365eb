"""
配置加载

system_config.json 与 DEFAULT_CONFIG 深度合并后得到 SystemConfig，
各模块通过 from_config() 读取自己的段。

查找顺序：
- load_config(config_path=...) / main_gui.py --config
- 环境变量 POSTURE_COACH_CONFIG
- 项目根目录 system_config.json，其次 config/system_config.json

    config = get_config()
    config.camera.width
    config["classifier"]["visibility_threshold"]
"""
from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import Constants


DEFAULT_CONFIG: Dict[str, Any] = {
    "system": {
        "name": "PostureCoach",
        "version": "0.1.0",
    },
    "paths": {
        "logs_dir": "logs",
        "model_cache_dir": "models",
    },
    "logging": {
        "level": "INFO",
        "enable_console": True,
        "enable_file": True,
        "file_rotation": "daily",
        "max_size_mb": 20,
    },
    "pose": {
        "backend": Constants.POSE_BACKEND,
        "model": Constants.POSE_MODEL_URL,
        "delegate": Constants.POSE_DELEGATE,
        "min_detection_confidence": 0.5,
        "min_presence_confidence": 0.5,
        "min_tracking_confidence": 0.5,
        "latency_smoothing": Constants.LATENCY_SMOOTHING,
        "warmup_runs": 1,
    },
    "camera": {
        "source": Constants.CAMERA_SOURCE,
        "width": Constants.CAMERA_WIDTH,
        "height": Constants.CAMERA_HEIGHT,
        "warmup_timeout": Constants.WARMUP_TIMEOUT,
        "poll_interval": Constants.WARMUP_POLL_INTERVAL,
        "max_read_failures": 30,
    },
    "classifier": {
        "visibility_threshold": Constants.VISIBILITY_THRESHOLD,
        "stand_ready_above": Constants.STAND_READY_ABOVE,
        "descend_above": Constants.DESCEND_ABOVE,
        "good_depth_above": Constants.GOOD_DEPTH_ABOVE,
    },
    "loop": {
        "max_fps": Constants.MAX_FPS,
        "heartbeat_interval": Constants.HEARTBEAT_INTERVAL,
    },
    "ui": {
        "enabled": True,
        "title": "Posture Coach - Squat Feedback",
        "width": 960,
        "show_angle": True,
        "mirror": True,
    },
}


class ConfigSection:
    """
    配置段：包装一个 dict，支持 config.camera.width 与 config["camera"]["width"] 两种访问方式

    嵌套 dict 在访问时按需包装，赋值直接写回底层 dict。
    """

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        object.__setattr__(self, "_data", data if data is not None else {})

    def _wrap(self, value):
        return ConfigSection(value) if isinstance(value, dict) else value

    def __getattr__(self, key: str):
        if key.startswith("_"):
            raise AttributeError(key)
        try:
            return self._wrap(self._data[key])
        except KeyError:
            raise AttributeError(f"配置项不存在: {key}") from None

    def __setattr__(self, key: str, value) -> None:
        self._data[key] = value.to_dict() if isinstance(value, ConfigSection) else value

    def __getitem__(self, key: str):
        return self._wrap(self._data[key])

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str, default=None):
        if key not in self._data:
            return default
        return self._wrap(self._data[key])

    def keys(self):
        return self._data.keys()

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def __repr__(self):
        return f"{type(self).__name__}({self._data!r})"


class SystemConfig(ConfigSection):
    """
    系统配置（顶层）

    段:
        system / paths / logging
        pose: 姿态推理引擎（backend, model, delegate, 置信度阈值）
        camera: 相机（source, width, height, 预热参数）
        classifier: 反馈分类阈值
        loop: 主循环（帧率上限、心跳间隔）
        ui: 窗口（标题、宽度、镜像显示、角度显示）
    """

    __slots__ = ("config_path",)

    def __init__(self, data: Optional[Dict[str, Any]] = None, config_path: Optional[Path] = None):
        super().__init__(data)
        object.__setattr__(self, "config_path", config_path)

    @property
    def base_dir(self) -> Path:
        return self.config_path.parent if self.config_path else Path.cwd()

    def resolve_path(self, path_str: Optional[str]) -> Optional[Path]:
        """相对路径以配置文件所在目录为基准"""
        if not path_str:
            return None
        path = Path(path_str).expanduser()
        return path if path.is_absolute() else self.base_dir / path


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _repo_root() -> Path:
    # posture_coach/core/config_loader.py -> 项目根目录向上三级
    return Path(__file__).resolve().parent.parent.parent


def find_config_path() -> Path:
    """
    查找顺序：POSTURE_COACH_CONFIG > 根目录 > config/ 子目录

    未找到时返回根目录下的路径（文件可能不存在）。
    """
    from_env = os.getenv("POSTURE_COACH_CONFIG")
    if from_env:
        return Path(from_env)

    candidates = [_repo_root() / "system_config.json", _repo_root() / "config" / "system_config.json"]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def default_config() -> SystemConfig:
    """仅由默认值构成的配置（测试与无配置文件运行时使用）"""
    return SystemConfig(copy.deepcopy(DEFAULT_CONFIG))


def load_config(config_path: Optional[str | Path] = None) -> SystemConfig:
    """
    读取 JSON 配置文件，缺失的段与键用 DEFAULT_CONFIG 补齐

    Raises:
        FileNotFoundError: 配置文件不存在
        ValueError: JSON 解析失败或根节点不是对象
    """
    path = Path(config_path) if config_path is not None else find_config_path()
    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"配置文件 JSON 解析失败 ({path}): {e}") from e

    if not isinstance(raw, dict):
        raise ValueError(f"配置文件根节点必须是对象: {path}")

    return SystemConfig(_deep_merge(DEFAULT_CONFIG, raw), config_path=path)


_cache: Dict[Path, SystemConfig] = {}


def get_config(config_path: Optional[str | Path] = None, reload: bool = False) -> SystemConfig:
    """
    按路径缓存的配置（懒加载）

    不同路径各自缓存；reload=True 时重新读取文件。
    """
    path = Path(config_path) if config_path is not None else find_config_path()
    key = path.resolve()
    if reload or key not in _cache:
        _cache[key] = load_config(path)
    return _cache[key]


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """
    环境变量覆盖（ENV > system_config.json > 默认值）

    - POSTURE_COACH_LOG_LEVEL: 日志级别
    - POSTURE_COACH_DELEGATE: 推理设备（CPU / GPU）
    - POSTURE_COACH_SOURCE: 相机索引或视频文件路径
    """
    if log_level := os.getenv("POSTURE_COACH_LOG_LEVEL"):
        config.logging.level = log_level.upper()

    if delegate := os.getenv("POSTURE_COACH_DELEGATE"):
        config.pose.delegate = delegate.upper()

    if source := os.getenv("POSTURE_COACH_SOURCE"):
        config.camera.source = int(source) if source.isdigit() else source

    return config
