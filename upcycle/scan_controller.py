"""
Detection loop and presenter
Polls the camera through the detector, draws overlays and switches to the
results view once a plastic item is recognized

States: IDLE -> DETECTING -> MATCHED -> IDLE (reset)
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .errors import CameraUnavailable
from .models.detector import Detection
from .overlay import DetectionOverlay, confidence_percent
from .projects import ProjectCatalog, ProjectEntry
from .utils.scheduler import RepeatingTask

DEFAULT_TARGET_LABELS = ("bottle", "cup")
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_POLL_INTERVAL = 0.5


class ScanState(Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    MATCHED = "matched"


def find_qualifying_detection(detections: Iterable[Detection], target_labels: Iterable[str],
                              threshold: float) -> Optional[Detection]:
    """First detection in model order with an allowed label and confidence above threshold"""
    allowed = set(target_labels)
    for detection in detections:
        if detection.label in allowed and detection.confidence > threshold:
            return detection
    return None


class ScanController:
    """
    Owns the scanner lifecycle: camera stream, polling task, overlay and scanned item

    At most one polling task exists at a time. Stopping always cancels the task
    and releases the camera together.
    """

    def __init__(self, camera, detector, catalog: Optional[ProjectCatalog] = None,
                 overlay: Optional[DetectionOverlay] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 target_labels: Iterable[str] = DEFAULT_TARGET_LABELS,
                 confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
                 scan_logger=None,
                 on_match: Optional[Callable[[str, List[ProjectEntry]], None]] = None,
                 task_factory: Callable[..., RepeatingTask] = RepeatingTask):
        """
        Initialize the controller in the IDLE state

        Args:
            camera: Camera with open(), read(), release() and is_open
            detector: Detector with detect(frame) and is_ready
            catalog: Project lookup for matched labels
            overlay: Overlay presenter, a new one by default
            poll_interval: Seconds between polls
            target_labels: Labels that trigger the results view
            confidence_threshold: Confidence a detection must exceed to match
            scan_logger: Optional ScanLogger recording each match
            on_match: Called with (label, entries) after a match
            task_factory: Builds the repeating poll task
        """
        self.camera = camera
        self.detector = detector
        self.catalog = catalog or ProjectCatalog()
        self.overlay = overlay or DetectionOverlay()
        self.poll_interval = poll_interval
        self.target_labels = tuple(target_labels)
        self.confidence_threshold = confidence_threshold
        self.scan_logger = scan_logger
        self.on_match = on_match
        self.task_factory = task_factory

        self.state = ScanState.IDLE
        self.scanned_item: Optional[str] = None
        self.last_match: Optional[Detection] = None
        self.error: Optional[str] = None

        self.poll_count = 0
        self.skipped_polls = 0
        self.detection_errors = 0
        self.session_count = 0

        self._task = None
        self._lock = threading.RLock()
        self._poll_lock = threading.Lock()

        self.setup_logging()

    def setup_logging(self):
        """Setup logging for the controller"""
        self.logger = logging.getLogger(__name__)

    @property
    def polling(self) -> bool:
        with self._lock:
            return self._task is not None and self._task.active

    @property
    def results(self) -> List[ProjectEntry]:
        return self.catalog.lookup(self.scanned_item)

    def start(self):
        """
        Acquire the camera and begin polling

        Raises:
            CameraUnavailable: if the camera stream cannot be acquired
        """
        with self._lock:
            if self.state == ScanState.MATCHED:
                self.logger.warning("Scanner already matched an item; reset before scanning again")
                return

        # a running session is torn down before a new one starts
        self._stop_detection()

        try:
            self.camera.open()
        except CameraUnavailable as e:
            with self._lock:
                self.error = f"Camera error: {e}"
            self.logger.error(self.error)
            raise

        with self._lock:
            self.error = None
            self.overlay.clear()
            self.state = ScanState.DETECTING
            self.session_count += 1
            self._task = self.task_factory(self.poll_interval, self.poll, name="scan-poll")
            self._task.start()

        self.logger.info(f"Detection started (session {self.session_count}, "
                         f"every {self.poll_interval * 1000:.0f}ms)")

    def poll(self) -> Optional[Detection]:
        """
        Run one detection attempt against the current frame

        Returns:
            The qualifying detection when this poll matched, otherwise None
        """
        if not self._poll_lock.acquire(blocking=False):
            with self._lock:
                self.skipped_polls += 1
            self.logger.debug("Previous poll still running, skipping tick")
            return None

        try:
            return self._poll_once()
        finally:
            self._poll_lock.release()

    def _poll_once(self) -> Optional[Detection]:
        with self._lock:
            if self.state != ScanState.DETECTING:
                return None

        if self.detector is None or not self.detector.is_ready:
            return None

        frame = self.camera.read()
        if frame is None:
            self.logger.debug("No frame available")
            return None

        try:
            detections = self.detector.detect(frame)
        except Exception as e:
            with self._lock:
                self.detection_errors += 1
            self.logger.error(f"Detection error: {e}")
            return None

        with self._lock:
            # stop() may have run while the model was busy
            if self.state != ScanState.DETECTING:
                return None

            self.poll_count += 1
            self.overlay.render(detections)

            match = find_qualifying_detection(detections, self.target_labels, self.confidence_threshold)
            if match is None:
                return None

            self.scanned_item = match.label
            self.last_match = match
            self.state = ScanState.MATCHED
            task, self._task = self._task, None

            # released while the state is held so a new session cannot be torn down
            self.camera.release()

        if task is not None:
            task.cancel()

        entries = self.catalog.lookup(match.label)
        self.logger.info(f"Recognized {match.label} ({confidence_percent(match.confidence)}%), "
                         f"{len(entries)} project entries")

        if self.scan_logger is not None:
            self.scan_logger.log_scan(match, len(entries))
        if self.on_match is not None:
            self.on_match(match.label, entries)

        return match

    def _stop_detection(self):
        """Cancel the polling task and release the camera"""
        with self._lock:
            task, self._task = self._task, None
            if self.state == ScanState.DETECTING:
                self.state = ScanState.IDLE

        # joined outside the lock so an in-flight poll can finish
        if task is not None:
            task.cancel()
        self.camera.release()

    def stop(self):
        """Stop a running session without a match"""
        was_detecting = self.state == ScanState.DETECTING
        self._stop_detection()
        if was_detecting:
            self.logger.info("Detection stopped")

    def reset(self):
        """Forget the scanned item and clear the overlay, back to IDLE"""
        self._stop_detection()
        with self._lock:
            self.scanned_item = None
            self.last_match = None
            self.overlay.clear()
            self.state = ScanState.IDLE
        self.logger.info("Scanner reset")

    def shutdown(self):
        """Teardown: stop polling, release the camera and clear the overlay"""
        self._stop_detection()
        self.overlay.clear()

    def preview(self) -> Optional[np.ndarray]:
        """Current camera frame with the overlay drawn on it, None when the camera is closed"""
        if not self.camera.is_open:
            return None
        frame = self.camera.read()
        if frame is None:
            return None
        return self.overlay.compose(frame)

    def status(self) -> Dict:
        """Get current scanner status"""
        with self._lock:
            status = {
                "state": self.state.value,
                "scanned_item": self.scanned_item,
                "polling": self._task is not None and self._task.active,
                "sessions": self.session_count,
                "polls": self.poll_count,
                "skipped_polls": self.skipped_polls,
                "detection_errors": self.detection_errors,
                "error": self.error,
                "model_ready": self.detector is not None and self.detector.is_ready,
                "last_match": self.last_match.to_dict() if self.last_match else None,
            }
        status["camera"] = self.camera.get_camera_info()
        return status

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
