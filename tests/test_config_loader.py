import json

import pytest

from posture_coach.core.config_loader import (
    DEFAULT_CONFIG,
    apply_env_overrides,
    default_config,
    get_config,
    load_config,
)
from posture_coach.pose.classifier import ClassifierConfig


def write_config(tmp_path, data):
    path = tmp_path / "system_config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_fill_missing_sections(tmp_path):
    config = load_config(write_config(tmp_path, {"camera": {"width": 640}}))
    assert config.camera.width == 640
    assert config.camera.height == DEFAULT_CONFIG["camera"]["height"]
    assert config.pose.backend == "mediapipe"
    assert config.ui.mirror is True


def test_attribute_and_item_access():
    config = default_config()
    assert config["loop"]["max_fps"] == config.loop.max_fps
    assert "classifier" in config
    assert config.get("missing", 42) == 42
    assert config.to_dict()["classifier"]["visibility_threshold"] == 0.8


def test_resolve_path_relative_to_config(tmp_path):
    config = load_config(write_config(tmp_path, {}))
    assert config.resolve_path("models/pose.task") == tmp_path / "models" / "pose.task"
    assert config.resolve_path(None) is None


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_root_must_be_object(tmp_path):
    with pytest.raises(ValueError):
        load_config(write_config(tmp_path, [1, 2, 3]))


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("POSTURE_COACH_LOG_LEVEL", "debug")
    monkeypatch.setenv("POSTURE_COACH_DELEGATE", "cpu")
    monkeypatch.setenv("POSTURE_COACH_SOURCE", "2")
    config = apply_env_overrides(default_config())
    assert config.logging.level == "DEBUG"
    assert config.pose.delegate == "CPU"
    assert config.camera.source == 2

    monkeypatch.setenv("POSTURE_COACH_SOURCE", "clips/squat.mp4")
    assert apply_env_overrides(default_config()).camera.source == "clips/squat.mp4"


def test_classifier_config_from_section(tmp_path):
    config = load_config(write_config(tmp_path, {"classifier": {"visibility_threshold": 0.6}}))
    classifier = ClassifierConfig.from_config(config.classifier)
    assert classifier.visibility_threshold == 0.6
    assert classifier.stand_ready_above == 160


def test_section_assignment_writes_through():
    config = default_config()
    camera = config.camera
    camera.width = 800
    assert config.camera.width == 800
    assert config.to_dict()["camera"]["width"] == 800
    with pytest.raises(AttributeError):
        config.camera.nonexistent


def test_get_config_caches_per_path(tmp_path):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    a = get_config(write_config(first, {"loop": {"max_fps": 10}}))
    b = get_config(write_config(second, {"loop": {"max_fps": 20}}))

    assert a.loop.max_fps == 10
    assert b.loop.max_fps == 20
    assert get_config(first / "system_config.json") is a
    assert get_config(first / "system_config.json", reload=True) is not a
