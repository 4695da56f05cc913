"""
Fixed-interval repeating task with a cancellation token
"""

import logging
import threading
from typing import Callable, Optional


class RepeatingTask:
    """
    Calls `callback` every `interval` seconds on a daemon thread until cancelled.
    Each call runs to completion before the next wait starts, so calls never overlap.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "repeating-task"):
        """
        Args:
            interval: Seconds between calls
            callback: Function invoked on every tick
            name: Thread name, shows up in logs
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger(__name__)

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._cancelled.is_set()

    def start(self):
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self.logger.debug(f"Started {self.name} every {self.interval:.3f}s")

    def _run(self):
        while not self._cancelled.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                self.logger.error(f"Error in {self.name}: {e}")

    def cancel(self, timeout: float = 5.0):
        """
        Stop further calls

        Safe to call from inside the callback; the running call finishes
        and the thread exits without being joined.
        """
        self._cancelled.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
        self.logger.debug(f"Cancelled {self.name}")
