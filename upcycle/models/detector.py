"""
Object detection backed by a pretrained YOLOv8 model (COCO classes)
The scanner only cares about labels, confidences and boxes
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from ultralytics import YOLO

from ..errors import DetectionTransientError, ModelLoadFailure


@dataclass
class Detection:
    """One model output in pixel space of the submitted frame"""
    label: str
    confidence: float
    bbox: Tuple[float, float, float, float]  # (x, y, width, height)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        x, y, width, height = self.bbox
        return {
            "label": self.label,
            "confidence": self.confidence,
            "bbox": {"x": x, "y": y, "width": width, "height": height},
        }


def xyxy_to_xywh(box: List[float]) -> Tuple[float, float, float, float]:
    """Convert [x1, y1, x2, y2] corners to (x, y, width, height)"""
    x1, y1, x2, y2 = box
    return (float(x1), float(y1), float(x2 - x1), float(y2 - y1))


class ObjectDetector:
    """
    Thin wrapper around ultralytics YOLO
    - load() fetches the weights (yolov8n.pt by default)
    - detect(frame) returns every detection above the inference confidence
    """

    def __init__(self, model_path: Optional[str] = None,
                 inference_confidence: float = 0.25,
                 device: Optional[str] = None):
        """
        Initialize the detector without loading weights

        Args:
            model_path: Path to YOLO weights, defaults to yolov8n.pt
            inference_confidence: Minimum confidence the model reports
            device: Torch device string, None lets ultralytics choose
        """
        self.model_path = model_path or "yolov8n.pt"
        self.inference_confidence = inference_confidence
        self.device = device
        self.model = None
        self.class_names: Dict[int, str] = {}
        self.setup_logging()

    def setup_logging(self):
        """Setup logging for the detector"""
        self.logger = logging.getLogger(__name__)

    @property
    def is_ready(self) -> bool:
        return self.model is not None

    def load(self):
        """
        Load the YOLO weights

        Raises:
            ModelLoadFailure: if the weights cannot be loaded
        """
        try:
            weights = Path(self.model_path)
            # bare names such as yolov8n.pt are downloaded by ultralytics
            if weights.parent != Path(".") and not weights.exists():
                raise FileNotFoundError(f"Model weights not found: {self.model_path}")

            model = YOLO(self.model_path)
            self.class_names = dict(getattr(model, "names", None) or {})
            self.model = model
            self.logger.info(f"Loaded YOLO model: {self.model_path} ({len(self.class_names)} classes)")
        except Exception as e:
            self.model = None
            self.logger.error(f"Failed to load YOLO model: {e}")
            raise ModelLoadFailure(str(e)) from e

    def detect(self, image: np.ndarray) -> List[Detection]:
        """
        Run the model on a single frame

        Args:
            image: BGR frame as numpy array

        Returns:
            Detections in the order the model reports them

        Raises:
            DetectionTransientError: if inference fails for this frame
        """
        if self.model is None:
            self.logger.debug("No detection model available - returning empty detections")
            return []

        kwargs = {"conf": self.inference_confidence, "verbose": False}
        if self.device:
            kwargs["device"] = self.device

        try:
            results = self.model(image, **kwargs)
        except Exception as e:
            raise DetectionTransientError(f"Inference failed: {e}") from e

        detections = []
        for result in results:
            boxes = result.boxes
            if boxes is None:
                continue
            for box in boxes:
                class_id = int(box.cls[0])
                confidence = float(box.conf[0])
                bbox = xyxy_to_xywh(box.xyxy[0].tolist())
                label = self.class_names.get(class_id, f"unknown_{class_id}")
                detections.append(Detection(label=label, confidence=confidence, bbox=bbox))

        return detections
