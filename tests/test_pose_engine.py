import threading
import time

import pytest

from conftest import FakeDetector, blank_frame, make_landmarks
from posture_coach.core.errors import (
    EngineNotReadyError,
    InferenceError,
    ModelLoadError,
    TimestampOrderError,
)
from posture_coach.detection.base import Delegate
from posture_coach.engines.pose_engine import PoseEngine
from posture_coach.pose.topology import COCO_17
from posture_coach.pose.types import LandmarkSet


def make_engine(detector, tmp_path, **kwargs):
    calls = []

    def factory(backend, model_path, delegate, options):
        calls.append((backend, model_path, delegate, options))
        return detector

    engine = PoseEngine(cache_dir=tmp_path / "cache", detector_factory=factory, **kwargs)
    return engine, calls


def test_load_and_run(tmp_path, model_file):
    expected = make_landmarks(120)
    detector = FakeDetector([expected])
    engine, calls = make_engine(detector, tmp_path)

    handle = engine.load(str(model_file), "gpu")
    assert handle.delegate is Delegate.GPU
    assert calls[0][1] == model_file

    assert engine.run(handle, blank_frame(), 10) == expected
    assert handle.last_timestamp_ms == 10
    assert engine.get_stats()['inferences'] == 1


def test_empty_result_is_valid(tmp_path, model_file):
    engine, _ = make_engine(FakeDetector(), tmp_path)
    handle = engine.load(model_file)
    result = engine.run(handle, blank_frame(), 1)
    assert result.is_empty
    assert engine.get_stats()['empty_results'] == 1


def test_timestamps_must_increase(tmp_path, model_file):
    engine, _ = make_engine(FakeDetector(), tmp_path)
    handle = engine.load(model_file)
    engine.run(handle, blank_frame(), 100)
    with pytest.raises(TimestampOrderError):
        engine.run(handle, blank_frame(), 100)
    with pytest.raises(TimestampOrderError):
        engine.run(handle, blank_frame(), 50)
    engine.run(handle, blank_frame(), 101)


def test_detector_failure_is_inference_error(tmp_path, model_file):
    detector = FakeDetector([RuntimeError("gpu lost"), make_landmarks(90)])
    engine, _ = make_engine(detector, tmp_path)
    handle = engine.load(model_file)

    with pytest.raises(InferenceError):
        engine.run(handle, blank_frame(), 1)
    assert not engine.run(handle, blank_frame(), 2).is_empty
    assert engine.get_stats()['errors'] == 1


def test_wrong_landmark_count_rejected(tmp_path, model_file):
    detector = FakeDetector([make_landmarks(90, topology=COCO_17)])
    engine, _ = make_engine(detector, tmp_path)
    handle = engine.load(model_file)
    with pytest.raises(InferenceError):
        engine.run(handle, blank_frame(), 1)


def test_non_landmark_result_rejected(tmp_path, model_file):
    detector = FakeDetector([lambda: [(0.1, 0.2)]])
    engine, _ = make_engine(detector, tmp_path)
    handle = engine.load(model_file)
    with pytest.raises(InferenceError):
        engine.run(handle, blank_frame(), 1)


def test_dispose_is_idempotent(tmp_path, model_file):
    detector = FakeDetector()
    engine, _ = make_engine(detector, tmp_path)
    handle = engine.load(model_file)

    engine.dispose(handle)
    engine.dispose(handle)
    engine.dispose(None)
    assert detector.close_calls == 1

    with pytest.raises(EngineNotReadyError):
        engine.run(handle, blank_frame(), 1)


def test_dispose_waits_for_running_inference(tmp_path, model_file):
    started = threading.Event()
    close_calls_seen = []
    detector = FakeDetector()

    def slow_detect():
        started.set()
        time.sleep(0.2)
        close_calls_seen.append(detector.close_calls)
        return make_landmarks(90)

    detector.script = [slow_detect]
    engine, _ = make_engine(detector, tmp_path)
    handle = engine.load(str(model_file), "cpu")

    worker = threading.Thread(target=engine.run, args=(handle, blank_frame(), 1))
    worker.start()
    assert started.wait(timeout=2)
    engine.dispose(handle)
    worker.join(timeout=2)

    assert close_calls_seen == [0]
    assert detector.close_calls == 1
    with pytest.raises(EngineNotReadyError):
        engine.run(handle, blank_frame(), 2)


def test_missing_model_file(tmp_path):
    engine, _ = make_engine(FakeDetector(), tmp_path)
    with pytest.raises(ModelLoadError):
        engine.load(tmp_path / "missing.task")
    assert engine.get_stats()['load_failures'] == 1


def test_unknown_backend(tmp_path, model_file):
    engine = PoseEngine(backend="openpose", cache_dir=tmp_path)
    with pytest.raises(ModelLoadError):
        engine.load(model_file)


def test_bad_delegate(tmp_path, model_file):
    engine, _ = make_engine(FakeDetector(), tmp_path)
    with pytest.raises(ModelLoadError):
        engine.load(model_file, "TPU")


def test_load_async(tmp_path, model_file):
    engine, _ = make_engine(FakeDetector(), tmp_path)
    try:
        handle = engine.load_async(model_file, Delegate.CPU).result(timeout=5)
        assert handle.topology.landmark_count == 33

        failed = engine.load_async(tmp_path / "missing.task")
        with pytest.raises(ModelLoadError):
            failed.result(timeout=5)
    finally:
        engine.shutdown()


def test_warmup_uses_increasing_timestamps(tmp_path, model_file):
    detector = FakeDetector()
    engine, _ = make_engine(detector, tmp_path, warmup_runs=3)
    handle = engine.load(model_file)
    assert detector.timestamps == [0, 1, 2]
    assert handle.last_timestamp_ms == 2


def test_stats_track_latency(tmp_path, model_file):
    engine, _ = make_engine(FakeDetector([LandmarkSet.empty()] * 3), tmp_path)
    handle = engine.load(model_file)
    for ts in range(3):
        engine.run(handle, blank_frame(), ts)
    stats = engine.get_stats()
    assert stats['inferences'] == 3
    assert stats['latency_ms'] >= 0.0
    assert stats['backend'] == "mediapipe"
