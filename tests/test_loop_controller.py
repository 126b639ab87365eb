import itertools
import threading
import time

import pytest

from conftest import FakeCamera, FakeDetector, FakeSink, make_landmarks, wait_for
from posture_coach.camera import FrameAcquisition
from posture_coach.core.config_loader import default_config
from posture_coach.core.errors import AcquisitionError, EngineNotReadyError, ModelLoadError
from posture_coach.core.loop_controller import (
    STATUS_CAMERA_FAILED,
    STATUS_LOAD_FAILED,
    STATUS_READY,
    STATUS_STARTED,
    STATUS_STOPPED,
    ControllerState,
    LoopController,
)
from posture_coach.core.scheduler import PacedScheduler, ThreadedScheduler
from posture_coach.engines.pose_engine import PoseEngine
from posture_coach.pose.types import FeedbackState, LandmarkSet
from posture_coach.ui import WindowManager


class Harness:
    def __init__(self, tmp_path, model_ref, script=None, camera=None, clock_ms=None, heartbeat_interval=0,
                 scheduler=None, sink=None, on_status=None):
        self.detector = FakeDetector(script)
        self.camera = camera or FakeCamera()
        self.cameras = []

        def camera_factory(source, constraints, failures):
            self.cameras.append(self.camera)
            return self.camera

        self.engine = PoseEngine(cache_dir=tmp_path, detector_factory=lambda *a: self.detector)
        self.acquisition = FrameAcquisition(camera_factory=camera_factory, warmup_timeout=0.2, poll_interval=0.01)
        self.scheduler = scheduler or PacedScheduler(max_fps=0)
        self.sink = sink or FakeSink()
        self.feedback = []
        self.statuses = []
        self.errors = []
        self.controller = LoopController(
            self.engine,
            self.acquisition,
            self.scheduler,
            display_sink=self.sink,
            on_feedback=self.feedback.append,
            on_status=on_status or self.statuses.append,
            on_error=self.errors.append,
            model_ref=str(model_ref),
            delegate="CPU",
            clock_ms=clock_ms or itertools.count(1000).__next__,
            heartbeat_interval=heartbeat_interval,
        )

    def ready(self):
        self.controller.initialize()
        assert self.controller.wait_until_ready(timeout=5)
        return self

    def pump(self, n=1):
        for _ in range(n):
            self.scheduler.pump()


@pytest.fixture
def harness(tmp_path, model_file):
    created = []

    def build(**kwargs):
        h = Harness(tmp_path, model_file, **kwargs)
        created.append(h)
        return h

    yield build
    for h in created:
        h.controller.shutdown()


def test_start_before_initialize(harness):
    h = harness()
    with pytest.raises(EngineNotReadyError):
        h.controller.start()
    assert h.controller.state is ControllerState.IDLE


def test_start_after_failed_load(tmp_path):
    h = Harness(tmp_path, tmp_path / "missing.task")
    try:
        h.controller.initialize()
        assert h.controller.wait_until_ready(timeout=5) is False
        assert isinstance(h.controller.load_error, ModelLoadError)
        assert wait_for(lambda: STATUS_LOAD_FAILED in h.statuses)
        with pytest.raises(ModelLoadError):
            h.controller.start()
        assert h.controller.state is ControllerState.IDLE
    finally:
        h.controller.shutdown()


def test_start_publishes_feedback(harness):
    h = harness(script=[make_landmarks(170)]).ready()
    assert STATUS_READY in h.statuses

    h.controller.start()
    assert h.controller.state is ControllerState.RUNNING
    assert h.statuses[-1] == STATUS_STARTED
    assert h.scheduler.has_pending

    h.pump()
    assert h.feedback == [FeedbackState.STAND_READY]
    assert h.controller.latest_feedback is FeedbackState.STAND_READY
    assert h.controller.latest_knee_angle == pytest.approx(170)
    frame, overlay, feedback, knee_angle = h.sink.presented[-1]
    assert overlay == make_landmarks(170)
    assert feedback is FeedbackState.STAND_READY
    assert h.scheduler.has_pending


def test_squat_sequence(harness):
    script = [make_landmarks(a) for a in (170, 130, 90, 50, 165)]
    h = harness(script=script).ready()
    h.controller.start()
    h.pump(5)
    assert h.feedback == [
        FeedbackState.STAND_READY,
        FeedbackState.DESCEND,
        FeedbackState.GOOD_DEPTH,
        FeedbackState.COMPLETE,
        FeedbackState.STAND_READY,
    ]


def test_no_subject_and_occluded_are_published(harness):
    h = harness(script=[LandmarkSet.empty(), make_landmarks(90, visibility=0.2)]).ready()
    h.controller.start()
    h.pump(2)
    assert h.feedback == [FeedbackState.NO_SUBJECT, FeedbackState.OCCLUDED]


def test_timestamps_strictly_increase(harness):
    h = harness(clock_ms=lambda: 5000).ready()
    h.controller.start()
    h.pump(3)
    assert h.detector.timestamps == [5000, 5001, 5002]


def test_timestamps_increase_across_sessions(harness):
    h = harness(clock_ms=lambda: 5000).ready()
    h.controller.start()
    h.pump(2)
    h.controller.stop()
    h.controller.start()
    h.pump()
    assert h.detector.timestamps == [5000, 5001, 5002]


def test_stop_is_idempotent(harness):
    h = harness().ready()
    h.controller.start()
    h.pump()

    h.controller.stop()
    h.controller.stop()
    assert h.controller.state is ControllerState.IDLE
    assert h.camera.cleanup_calls == 1
    assert h.sink.clear_calls == 1
    assert h.statuses.count(STATUS_STOPPED) == 1
    assert not h.scheduler.has_pending
    assert h.controller.latest_feedback is None


def test_stop_before_start_is_noop(harness):
    h = harness().ready()
    h.controller.stop()
    assert h.sink.clear_calls == 0
    assert STATUS_STOPPED not in h.statuses


def test_restart_while_running_keeps_single_cycle(harness):
    h = harness().ready()
    h.controller.start()
    h.controller.start()

    assert h.controller.state is ControllerState.RUNNING
    assert h.camera.cleanup_calls == 1
    assert h.camera.initialize_calls == 2
    assert h.scheduler.get_stats()['replaced'] == 0

    h.pump()
    h.pump()
    assert len(h.detector.timestamps) == 2
    assert h.scheduler.has_pending


def test_result_after_stop_is_discarded(harness):
    h = harness()

    def stop_mid_inference():
        h.controller.stop()
        return make_landmarks(90)

    h.detector.script = [stop_mid_inference]
    h.ready()
    h.controller.start()
    h.pump()

    assert h.feedback == []
    assert h.sink.presented == []
    assert not h.scheduler.has_pending
    assert h.controller.get_stats()['totals']['discarded_results'] == 1


def test_inference_error_skips_cycle(harness):
    h = harness(script=[RuntimeError("delegate crashed"), make_landmarks(90)]).ready()
    h.controller.start()

    h.pump()
    assert h.feedback == []
    assert h.controller.state is ControllerState.RUNNING
    frame, overlay, feedback, _ = h.sink.presented[-1]
    assert overlay.is_empty and feedback is None

    h.pump()
    assert h.feedback == [FeedbackState.GOOD_DEPTH]
    assert h.controller.get_stats()['session']['inference_errors'] == 1


def test_computation_error_falls_back_to_previous_state(harness):
    degenerate = make_landmarks(hip=(0.5, 0.5), knee=(0.5, 0.5), ankle=(0.5, 0.8))
    h = harness(script=[make_landmarks(90), degenerate]).ready()
    h.controller.start()
    h.pump(2)

    assert h.feedback == [FeedbackState.GOOD_DEPTH, FeedbackState.GOOD_DEPTH]
    assert h.controller.get_stats()['session']['computation_fallbacks'] == 1
    assert h.controller.state is ControllerState.RUNNING


def test_computation_error_without_history_publishes_nothing(harness):
    degenerate = make_landmarks(hip=(0.5, 0.5), knee=(0.5, 0.5), ankle=(0.5, 0.8))
    h = harness(script=[degenerate, make_landmarks(50)]).ready()
    h.controller.start()

    h.pump()
    assert h.feedback == []
    assert h.controller.latest_feedback is None

    h.pump()
    assert h.feedback == [FeedbackState.COMPLETE]


def test_no_new_frame_reschedules(harness):
    camera = FakeCamera(auto_advance=False)
    h = harness(camera=camera).ready()
    h.controller.start()

    h.pump()
    h.pump()
    assert len(h.detector.timestamps) == 1
    assert h.controller.get_stats()['session']['no_new_frame'] == 1
    assert h.scheduler.has_pending


def test_camera_loss_returns_to_idle(harness):
    h = harness().ready()
    h.controller.start()
    h.pump()

    h.camera.status = "error"
    h.pump()

    assert h.controller.state is ControllerState.IDLE
    assert isinstance(h.errors[-1], AcquisitionError)
    assert h.statuses[-1] == STATUS_CAMERA_FAILED
    assert h.camera.cleanup_calls == 1
    assert not h.scheduler.has_pending


def test_camera_unavailable_on_start(harness):
    h = harness(camera=FakeCamera(fail_open=True)).ready()
    with pytest.raises(AcquisitionError):
        h.controller.start()
    assert h.controller.state is ControllerState.IDLE
    assert h.statuses[-1] == STATUS_CAMERA_FAILED
    assert isinstance(h.errors[-1], AcquisitionError)


def test_shutdown_disposes_engine(harness):
    h = harness().ready()
    h.controller.start()
    h.controller.shutdown()
    assert h.controller.state is ControllerState.IDLE
    assert h.detector.close_calls == 1
    assert not h.controller.is_ready


def test_heartbeat_and_stats(harness):
    h = harness(script=[make_landmarks(130)] * 4, heartbeat_interval=2).ready()
    h.controller.start()
    h.pump(4)

    stats = h.controller.get_stats()
    assert stats['state'] == "running"
    assert stats['session']['cycles'] == 4
    assert stats['session']['published'] == 4
    assert stats['totals']['sessions'] == 1
    assert stats['engine']['inferences'] == 4
    assert stats['loop']['ticks'] == 4


def test_from_config(tmp_path, model_file):
    config = default_config()
    config.pose.model = str(model_file)
    config.camera.width = 640
    engine = PoseEngine(cache_dir=tmp_path, detector_factory=lambda *a: FakeDetector())
    controller = LoopController.from_config(
        config, engine, FrameAcquisition(camera_factory=lambda *a: FakeCamera()), PacedScheduler(0),
    )
    try:
        assert controller.constraints.width == 640
        assert controller.model_ref == str(model_file)
        assert controller.classifier_config.visibility_threshold == 0.8
    finally:
        controller.shutdown()


def test_shutdown_waits_for_inflight_inference(tmp_path, model_file):
    h = Harness(tmp_path, model_file, scheduler=ThreadedScheduler(max_fps=0))
    started = threading.Event()
    close_calls_seen = []

    def slow_detect():
        started.set()
        time.sleep(0.3)
        close_calls_seen.append(h.detector.close_calls)
        return make_landmarks(90)

    h.detector.script = [slow_detect]
    try:
        h.ready()
        h.controller.start()
        assert started.wait(timeout=2)
        h.controller.shutdown()

        assert close_calls_seen == [0]
        assert h.detector.close_calls == 1
        assert h.feedback == []
    finally:
        h.controller.shutdown()


def _stop(h):
    h.controller.stop()


def _lose_camera(h):
    h.camera.status = "error"
    h.pump()


@pytest.mark.parametrize("end_session, expected", [
    (_stop, STATUS_STOPPED),
    (_lose_camera, STATUS_CAMERA_FAILED),
])
def test_window_shows_status_after_session_ends(tmp_path, model_file, end_session, expected):
    window = WindowManager(width=160, enabled=False, mirror=False)
    h = Harness(tmp_path, model_file, script=[make_landmarks(170)], sink=window, on_status=window.set_status)
    try:
        h.ready()
        h.controller.start()
        h.pump()
        assert window.frames_presented == 1

        end_session(h)

        placeholder = window.visualizer.draw_placeholder(window.width, window.height, expected)
        assert (window.latest_canvas() == placeholder).all()
    finally:
        h.controller.shutdown()
