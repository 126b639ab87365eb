import io

import pytest

from posture_coach.detection import model_asset
from posture_coach.detection.model_asset import is_remote, resolve_model_asset

URL = "https://example.com/models/pose_landmarker_lite.task"


def test_is_remote():
    assert is_remote(URL)
    assert not is_remote("models/pose.task")
    assert not is_remote("/abs/pose.task")


def test_local_path(model_file):
    assert resolve_model_asset(str(model_file)) == model_file


def test_missing_local_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_model_asset(tmp_path / "nope.task")


def test_cached_download_is_reused(tmp_path, monkeypatch):
    cached = tmp_path / "pose_landmarker_lite.task"
    cached.write_bytes(b"x" * 2048)

    def fail(*args, **kwargs):
        raise AssertionError("should not download")

    monkeypatch.setattr(model_asset.urllib.request, "urlopen", fail)
    assert resolve_model_asset(URL, cache_dir=tmp_path) == cached


def test_download_into_cache(tmp_path, monkeypatch):
    monkeypatch.setattr(model_asset.urllib.request, "urlopen", lambda url, timeout: io.BytesIO(b"m" * 4096))
    path = resolve_model_asset(URL, cache_dir=tmp_path / "cache")
    assert path.read_bytes() == b"m" * 4096
    assert not path.with_suffix(".task.tmp").exists()


def test_download_failure(tmp_path, monkeypatch):
    def refuse(url, timeout):
        raise OSError("offline")

    monkeypatch.setattr(model_asset.urllib.request, "urlopen", refuse)
    with pytest.raises(RuntimeError):
        resolve_model_asset(URL, cache_dir=tmp_path)
    assert list(tmp_path.iterdir()) == []
