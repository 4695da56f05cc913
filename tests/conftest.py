"""
Shared fakes for the camera, detector and polling task
"""

import numpy as np
import pytest

from upcycle.errors import CameraUnavailable
from upcycle.models.detector import Detection


class FakeCamera:
    def __init__(self, fail=False, shape=(480, 640, 3)):
        self.fail = fail
        self.shape = shape
        self.is_open = False
        self.open_calls = 0
        self.release_calls = 0
        self.read_calls = 0

    def open(self):
        self.open_calls += 1
        if self.fail:
            raise CameraUnavailable("Permission denied")
        self.is_open = True

    def read(self):
        self.read_calls += 1
        if not self.is_open:
            return None
        return np.zeros(self.shape, dtype=np.uint8)

    def release(self):
        self.release_calls += 1
        self.is_open = False

    def get_camera_info(self):
        return {"type": "fake", "open": self.is_open}


class FakeDetector:
    """Returns queued results in order; an Exception in the queue is raised"""

    def __init__(self, results=None, ready=True):
        self.results = list(results or [])
        self.is_ready = ready
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class ManualTask:
    """Stands in for RepeatingTask; ticks only when told to"""

    instances = []

    def __init__(self, interval, callback, name="task"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.started = False
        self.cancelled = False
        ManualTask.instances.append(self)

    @property
    def active(self):
        return self.started and not self.cancelled

    def start(self):
        self.started = True

    def cancel(self, timeout=5.0):
        self.cancelled = True

    def tick(self):
        if self.active:
            return self.callback()
        return None


def detection(label, confidence, bbox=(0, 0, 10, 10)):
    return Detection(label=label, confidence=confidence, bbox=bbox)


@pytest.fixture
def manual_tasks():
    ManualTask.instances = []
    yield ManualTask.instances
    ManualTask.instances = []


@pytest.fixture
def camera():
    return FakeCamera()
