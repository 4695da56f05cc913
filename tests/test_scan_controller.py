import threading

import pytest

from tests.conftest import FakeCamera, FakeDetector, ManualTask, detection
from upcycle.errors import CameraUnavailable, DetectionTransientError
from upcycle.scan_controller import ScanController, ScanState, find_qualifying_detection
from upcycle.utils.scan_logger import ScanLogger


def make_controller(camera, detector, **kwargs):
    matches = []
    controller = ScanController(
        camera=camera,
        detector=detector,
        task_factory=ManualTask,
        on_match=lambda label, entries: matches.append((label, entries)),
        **kwargs
    )
    return controller, matches


class TestFindQualifyingDetection:
    def test_first_qualifying_in_model_order(self):
        detections = [detection("chair", 0.99), detection("cup", 0.8), detection("bottle", 0.95)]
        assert find_qualifying_detection(detections, ["bottle", "cup"], 0.7).label == "cup"

    def test_threshold_is_exclusive(self):
        assert find_qualifying_detection([detection("bottle", 0.7)], ["bottle"], 0.7) is None

    def test_empty(self):
        assert find_qualifying_detection([], ["bottle"], 0.7) is None


def test_initial_state_is_idle(camera):
    controller, _ = make_controller(camera, FakeDetector())
    assert controller.state == ScanState.IDLE
    assert controller.scanned_item is None
    assert not controller.polling


def test_start_acquires_camera_and_one_task(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector())
    controller.start()

    assert controller.state == ScanState.DETECTING
    assert camera.is_open
    assert len(manual_tasks) == 1
    assert manual_tasks[0].active
    assert manual_tasks[0].interval == 0.5


def test_bottle_above_threshold_matches(camera, manual_tasks):
    controller, matches = make_controller(
        camera, FakeDetector([[detection("bottle", 0.75, (0, 0, 10, 10))]])
    )
    controller.start()
    manual_tasks[0].tick()

    assert controller.state == ScanState.MATCHED
    assert controller.scanned_item == "bottle"
    assert not camera.is_open
    assert manual_tasks[0].cancelled
    assert not controller.polling
    assert len(matches) == 1
    label, entries = matches[0]
    assert label == "bottle"
    assert entries and entries[0].title.endswith("Plastic Bottle Projects")


def test_other_label_keeps_polling(camera, manual_tasks):
    detector = FakeDetector([[detection("chair", 0.95)], [detection("cup", 0.9)]])
    controller, matches = make_controller(camera, detector)
    controller.start()

    assert manual_tasks[0].tick() is None
    assert controller.state == ScanState.DETECTING
    assert [d.label for d in controller.overlay.detections] == ["chair"]
    assert not matches

    manual_tasks[0].tick()
    assert controller.scanned_item == "cup"


@pytest.mark.parametrize("confidence", [0.0, 0.3, 0.5, 0.69, 0.7])
def test_low_confidence_never_matches(camera, manual_tasks, confidence):
    controller, matches = make_controller(
        camera, FakeDetector([[detection("bottle", confidence), detection("cup", confidence)]])
    )
    controller.start()
    manual_tasks[0].tick()

    assert controller.state == ScanState.DETECTING
    assert controller.scanned_item is None
    assert not matches


def test_match_triggers_once_per_session(camera, manual_tasks):
    detector = FakeDetector([[detection("bottle", 0.9)], [detection("cup", 0.95)]])
    controller, matches = make_controller(camera, detector)
    controller.start()

    assert controller.poll().label == "bottle"
    assert controller.poll() is None

    assert len(matches) == 1
    assert controller.scanned_item == "bottle"
    assert detector.calls == 1


def test_simultaneous_matches_use_model_order(camera, manual_tasks):
    controller, _ = make_controller(
        camera, FakeDetector([[detection("cup", 0.8), detection("bottle", 0.99)]])
    )
    controller.start()
    manual_tasks[0].tick()
    assert controller.scanned_item == "cup"


def test_camera_rejected_stays_idle(manual_tasks):
    camera = FakeCamera(fail=True)
    controller, _ = make_controller(camera, FakeDetector())

    with pytest.raises(CameraUnavailable):
        controller.start()

    assert controller.state == ScanState.IDLE
    assert controller.error == "Camera error: Permission denied"
    assert manual_tasks == []


def test_retry_after_camera_error(manual_tasks):
    camera = FakeCamera(fail=True)
    controller, _ = make_controller(camera, FakeDetector())
    with pytest.raises(CameraUnavailable):
        controller.start()

    camera.fail = False
    controller.start()
    assert controller.state == ScanState.DETECTING
    assert controller.error is None


def test_reset_after_match_allows_new_session(camera, manual_tasks):
    detector = FakeDetector([[detection("bottle", 0.9)], [detection("cup", 0.9)]])
    controller, matches = make_controller(camera, detector)
    controller.start()
    manual_tasks[0].tick()
    assert not controller.overlay.is_empty

    controller.reset()
    assert controller.state == ScanState.IDLE
    assert controller.scanned_item is None
    assert controller.overlay.is_empty

    controller.start()
    assert controller.state == ScanState.DETECTING
    assert len(manual_tasks) == 2
    manual_tasks[1].tick()
    assert controller.scanned_item == "cup"
    assert len(matches) == 2


def test_start_while_matched_is_ignored(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector([[detection("bottle", 0.9)]]))
    controller.start()
    manual_tasks[0].tick()

    controller.start()
    assert controller.state == ScanState.MATCHED
    assert len(manual_tasks) == 1
    assert not camera.is_open


def test_restart_cancels_previous_task(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector())
    controller.start()
    controller.start()

    assert len(manual_tasks) == 2
    assert manual_tasks[0].cancelled
    assert [task.active for task in manual_tasks] == [False, True]
    assert camera.release_calls >= 1
    assert camera.is_open


def test_stop_leaves_no_task_and_no_camera(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector())
    controller.start()
    controller.stop()

    assert controller.state == ScanState.IDLE
    assert not camera.is_open
    assert not any(task.active for task in manual_tasks)


def test_detection_error_does_not_stop_loop(camera, manual_tasks):
    detector = FakeDetector([DetectionTransientError("boom"), RuntimeError("gpu"),
                             [detection("bottle", 0.8)]])
    controller, _ = make_controller(camera, detector)
    controller.start()

    manual_tasks[0].tick()
    manual_tasks[0].tick()
    assert controller.state == ScanState.DETECTING
    assert controller.detection_errors == 2

    manual_tasks[0].tick()
    assert controller.state == ScanState.MATCHED


def test_poll_without_ready_model_is_noop(camera, manual_tasks):
    detector = FakeDetector([[detection("bottle", 0.9)]], ready=False)
    controller, _ = make_controller(camera, detector)
    controller.start()
    manual_tasks[0].tick()

    assert detector.calls == 0
    assert camera.read_calls == 0
    assert controller.state == ScanState.DETECTING


def test_poll_without_detector_is_noop(camera, manual_tasks):
    controller, _ = make_controller(camera, None)
    controller.start()
    assert manual_tasks[0].tick() is None
    assert controller.state == ScanState.DETECTING


def test_poll_when_idle_is_noop(camera):
    detector = FakeDetector([[detection("bottle", 0.9)]])
    controller, _ = make_controller(camera, detector)
    assert controller.poll() is None
    assert detector.calls == 0


def test_overlapping_poll_is_skipped(camera, manual_tasks):
    controller = None
    inner_results = []

    class ReentrantDetector(FakeDetector):
        def detect(self, frame):
            inner_results.append(controller.poll())
            return super().detect(frame)

    controller, _ = make_controller(camera, ReentrantDetector([[detection("chair", 0.9)]]))
    controller.start()
    manual_tasks[0].tick()

    assert inner_results == [None]
    assert controller.skipped_polls == 1
    assert controller.poll_count == 1


def test_custom_labels_and_threshold(camera, manual_tasks):
    controller, _ = make_controller(
        camera, FakeDetector([[detection("bottle", 0.95)], [detection("wine glass", 0.55)]]),
        target_labels=["wine glass"], confidence_threshold=0.5
    )
    controller.start()
    manual_tasks[0].tick()
    assert controller.state == ScanState.DETECTING
    manual_tasks[0].tick()
    assert controller.scanned_item == "wine glass"
    assert controller.results == []


def test_match_is_logged(camera, manual_tasks, tmp_path):
    scan_logger = ScanLogger(log_dir=str(tmp_path))
    controller, _ = make_controller(
        camera, FakeDetector([[detection("cup", 0.88, (5, 6, 7, 8))]]), scan_logger=scan_logger
    )
    controller.start()
    manual_tasks[0].tick()

    scans = scan_logger.get_recent_scans()
    assert len(scans) == 1
    assert scans[0]["label"] == "cup"
    assert scans[0]["project_count"] == 1


def test_preview_draws_overlay_while_camera_open(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector([[detection("chair", 0.9, (10, 30, 50, 50))]]))
    assert controller.preview() is None

    controller.start()
    manual_tasks[0].tick()
    frame = controller.preview()
    assert frame.shape == (480, 640, 3)
    assert frame.any()


def test_status_snapshot(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector([[detection("chair", 0.9)]]))
    controller.start()
    manual_tasks[0].tick()

    status = controller.status()
    assert status["state"] == "detecting"
    assert status["polling"] is True
    assert status["polls"] == 1
    assert status["model_ready"] is True
    assert status["last_match"] is None
    assert status["camera"]["open"] is True


def test_context_manager_shuts_down(camera, manual_tasks):
    with make_controller(camera, FakeDetector())[0] as controller:
        controller.start()
    assert not camera.is_open
    assert not manual_tasks[0].active


def test_with_real_repeating_task(camera):
    matched = threading.Event()
    detector = FakeDetector([[detection("chair", 0.9)], [], [detection("bottle", 0.91)]])
    controller = ScanController(
        camera=camera,
        detector=detector,
        poll_interval=0.01,
        on_match=lambda label, entries: matched.set(),
    )
    controller.start()

    assert matched.wait(5.0)
    assert controller.state == ScanState.MATCHED
    assert controller.scanned_item == "bottle"
    assert not controller.polling
    assert not camera.is_open
    controller.shutdown()


def test_status_reports_last_match(camera, manual_tasks):
    controller, _ = make_controller(camera, FakeDetector([[detection("cup", 0.85, (1, 2, 3, 4))]]))
    controller.start()
    manual_tasks[0].tick()

    assert controller.status()["last_match"] == {
        "label": "cup", "confidence": 0.85,
        "bbox": {"x": 1, "y": 2, "width": 3, "height": 4},
    }

    controller.reset()
    assert controller.status()["last_match"] is None


def test_match_releases_camera_before_a_new_session_can_start(manual_tasks):
    controller = None
    resetters = []
    blocked = []

    class RacingCamera(FakeCamera):
        def release(self):
            super().release()
            if not resetters and controller.state == ScanState.MATCHED:
                # another thread tries to reset and restart while the match is released
                def reset_and_restart():
                    controller.reset()
                    controller.start()
                thread = threading.Thread(target=reset_and_restart)
                resetters.append(thread)
                thread.start()
                thread.join(0.1)
                blocked.append(thread.is_alive())

    camera = RacingCamera()
    controller, _ = make_controller(camera, FakeDetector([[detection("bottle", 0.9)]]))
    controller.start()

    assert manual_tasks[0].tick().label == "bottle"
    assert blocked == [True]

    resetters[0].join(5.0)
    assert controller.state == ScanState.DETECTING
    assert camera.is_open
    assert manual_tasks[1].active
