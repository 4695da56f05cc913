"""
Detection overlay drawn on top of the live camera frame
"""

import math
import threading
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .models.detector import Detection

BOX_COLOR = (0, 255, 0)  # BGR
BOX_THICKNESS = 4
FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.6
FONT_THICKNESS = 2


def confidence_percent(confidence: float) -> int:
    """Integer percentage, rounded half up"""
    return int(math.floor(confidence * 100 + 0.5))


def format_label(detection: Detection) -> str:
    return f"{detection.label} ({confidence_percent(detection.confidence)}%)"


def label_origin(x: float, y: float) -> Tuple[int, int]:
    """Text sits above the box, or just inside it near the top edge"""
    return int(x), int(y - 5 if y > 20 else y + 25)


class DetectionOverlay:
    """
    Holds the detections of the latest poll and draws them over frames
    The frame itself is never modified
    """

    def __init__(self, display_size: Optional[Tuple[int, int]] = None):
        """
        Args:
            display_size: (width, height) of the display surface, None to use the frame size
        """
        self.display_size = display_size
        self._detections: List[Detection] = []
        self.lock = threading.Lock()

    @property
    def detections(self) -> List[Detection]:
        with self.lock:
            return list(self._detections)

    @property
    def is_empty(self) -> bool:
        with self.lock:
            return not self._detections

    def render(self, detections: Sequence[Detection]):
        """Replace the overlay with the given detections"""
        with self.lock:
            self._detections = list(detections)

    def clear(self):
        with self.lock:
            self._detections = []

    def resize(self, width: int, height: int):
        """Match the overlay to a new display size"""
        self.display_size = (int(width), int(height))

    def compose(self, frame: np.ndarray) -> np.ndarray:
        """
        Draw the current overlay on a copy of the frame

        Args:
            frame: BGR frame the detections were computed on

        Returns:
            Frame at display size with boxes and labels
        """
        frame_h, frame_w = frame.shape[:2]
        if self.display_size and self.display_size != (frame_w, frame_h):
            out_w, out_h = self.display_size
            result_image = cv2.resize(frame, (out_w, out_h))
            scale_x, scale_y = out_w / frame_w, out_h / frame_h
        else:
            result_image = frame.copy()
            scale_x = scale_y = 1.0

        for detection in self.detections:
            x, y, width, height = detection.bbox
            x, y = x * scale_x, y * scale_y
            width, height = width * scale_x, height * scale_y

            cv2.rectangle(result_image, (int(x), int(y)), (int(x + width), int(y + height)),
                          BOX_COLOR, BOX_THICKNESS)
            cv2.putText(result_image, format_label(detection), label_origin(x, y),
                        FONT, FONT_SCALE, BOX_COLOR, FONT_THICKNESS)

        return result_image
