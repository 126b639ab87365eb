import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler

from posture_coach.core.config_loader import load_config
from posture_coach.core.logger import setup_logger


def _write(tmp_path, text):
    path = tmp_path / "system_config.json"
    path.write_text(text, encoding="utf-8")
    return path


def test_file_handler_follows_rotation_setting(tmp_path, monkeypatch):
    monkeypatch.delenv("POSTURE_COACH_LOG_TO_FILE", raising=False)
    monkeypatch.delenv("POSTURE_COACH_LOG_LEVEL", raising=False)
    config = load_config(_write(tmp_path, '{"logging": {"level": "WARNING", "file_rotation": "size"}}'))

    log = setup_logger(name="PostureCoachTestSize", config=config, enable_console=False)
    try:
        assert log.level == logging.WARNING
        assert len(log.handlers) == 1
        handler = log.handlers[0]
        assert isinstance(handler, RotatingFileHandler)
        assert (tmp_path / "logs" / "PostureCoachTestSize.log").exists()
    finally:
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)


def test_daily_rotation_and_env_level(tmp_path, monkeypatch):
    monkeypatch.setenv("POSTURE_COACH_LOG_LEVEL", "debug")
    monkeypatch.setenv("POSTURE_COACH_LOG_TO_FILE", "1")
    config = load_config(_write(tmp_path, '{"logging": {"level": "ERROR"}}'))

    log = setup_logger(name="PostureCoachTestDaily", config=config, enable_console=False)
    try:
        assert log.level == logging.DEBUG
        assert isinstance(log.handlers[0], TimedRotatingFileHandler)
    finally:
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)


def test_repeated_setup_does_not_duplicate_handlers(monkeypatch):
    monkeypatch.setenv("POSTURE_COACH_LOG_TO_FILE", "0")
    monkeypatch.delenv("POSTURE_COACH_LOG_LEVEL", raising=False)
    first = setup_logger(name="PostureCoachTestRepeat", level=logging.INFO)
    second = setup_logger(name="PostureCoachTestRepeat", level=logging.ERROR)
    try:
        assert first is second
        assert len(second.handlers) == 1
        assert second.handlers[0].level == logging.ERROR
    finally:
        for handler in list(second.handlers):
            second.removeHandler(handler)
