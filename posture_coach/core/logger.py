"""
日志配置模块 - 从 system_config.json 读取配置

优先级：环境变量 > 参数传入 > system_config.json > 默认值

- POSTURE_COACH_LOG_LEVEL: 日志级别
- POSTURE_COACH_LOG_TO_FILE: 0/1，覆盖 logging.enable_file
"""
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass
class LogSettings:
    level: int = logging.INFO
    log_dir: Path = Path('logs')
    enable_console: bool = True
    enable_file: bool = True
    file_rotation: str = 'daily'
    max_size_mb: int = 20


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _parse_level(value, default: int = logging.INFO) -> int:
    if isinstance(value, int):
        return value
    return getattr(logging, str(value).upper(), default)


def _load_settings(config=None) -> LogSettings:
    """从配置对象读取日志参数（config 为 None 时尝试加载默认配置文件）"""
    if config is None:
        try:
            # 延迟导入避免循环依赖
            from .config_loader import find_config_path, get_config

            config_path = find_config_path()
            if config_path.exists():
                config = get_config(config_path=config_path)
        except (OSError, ValueError) as e:
            print(f"Warning: 无法加载 system_config.json，使用默认日志配置: {e}")

    settings = LogSettings()
    if config is None:
        return settings

    log_cfg = config.logging
    settings.level = _parse_level(log_cfg.get('level', 'INFO'))
    settings.enable_console = bool(log_cfg.get('enable_console', True))
    settings.enable_file = bool(log_cfg.get('enable_file', True))
    settings.file_rotation = log_cfg.get('file_rotation', 'daily')
    settings.max_size_mb = int(log_cfg.get('max_size_mb', 20))
    settings.log_dir = config.resolve_path(config.paths.get('logs_dir', 'logs'))
    return settings


def _file_handler(settings: LogSettings, name: str) -> logging.Handler:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / f'{name}.log'
    if settings.file_rotation == 'daily':
        return TimedRotatingFileHandler(log_file, when='midnight', backupCount=14, encoding='utf-8')
    return RotatingFileHandler(
        log_file,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )


def setup_logger(
    name: str = 'PostureCoach',
    level: Optional[int] = None,
    log_dir: Optional[str] = None,
    enable_console: Optional[bool] = None,
    enable_file: Optional[bool] = None,
    config=None,
) -> logging.Logger:
    """
    设置日志配置

    Args:
        name: 日志名称
        level: 日志级别（None 时从配置读取）
        log_dir: 日志目录（None 时从配置读取）
        enable_console: 是否启用控制台（None 时从配置读取）
        enable_file: 是否启用文件（None 时从配置读取）
        config: 已加载的 SystemConfig（None 时自动查找 system_config.json）

    Returns:
        logger: 配置好的日志对象（重复调用不会重复添加 handler）
    """
    settings = _load_settings(config)
    if level is not None:
        settings.level = _parse_level(level)
    if log_dir is not None:
        settings.log_dir = Path(log_dir)
    if enable_console is not None:
        settings.enable_console = enable_console
    if enable_file is not None:
        settings.enable_file = enable_file

    env_level = os.getenv("POSTURE_COACH_LOG_LEVEL")
    if env_level:
        settings.level = _parse_level(env_level, settings.level)
    env_file = _env_flag("POSTURE_COACH_LOG_TO_FILE")
    if env_file is not None:
        settings.enable_file = env_file

    logger = logging.getLogger(name)
    logger.setLevel(settings.level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(settings.level)
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if settings.enable_console:
        handlers.append(logging.StreamHandler())
    if settings.enable_file:
        handlers.append(_file_handler(settings, name))

    for handler in handlers:
        handler.setLevel(settings.level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def apply_logging_config(config, name: str = 'PostureCoach') -> logging.Logger:
    """按指定配置（如 --config 传入的文件）刷新日志级别"""
    return setup_logger(name=name, config=config)


# 创建默认logger（从配置文件读取参数）
logger = setup_logger()
