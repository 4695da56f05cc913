"""
Camera Interface for webcams, Raspberry Pi camera, video files and simulation
The stream is only acquired on open() and must be released after use
"""

import cv2
import numpy as np
from typing import Optional, Tuple, Union
import logging
import os
import random
import threading
import time
from pathlib import Path

try:
    from picamera2 import Picamera2
    PICAMERA2_AVAILABLE = True
except ImportError:
    PICAMERA2_AVAILABLE = False

from .errors import CameraUnavailable

VIDEO_EXTENSIONS = ('.mp4', '.avi', '.mov', '.mkv')


class CameraInterface:
    """
    Unified camera interface supporting:
    - USB/Webcam (via OpenCV), by device index or 'usb'
    - Raspberry Pi Camera (via picamera2)
    - Video files, looped
    - Simulated mode with sample images
    """

    def __init__(self, source: Union[str, int] = 'auto', resolution: Tuple[int, int] = (640, 480),
                 fps: int = 30, sample_dir: Optional[str] = None):
        """
        Initialize camera interface without acquiring the device

        Args:
            source: 'auto', 'pi', 'usb', 'simulated', video file path, or device index
            resolution: (width, height) tuple
            fps: Target frames per second
            sample_dir: Directory of .jpg images for simulated mode
        """
        self.source = source
        self.resolution = tuple(resolution)
        self.fps = fps
        self.sample_dir = Path(sample_dir) if sample_dir else Path("data") / "samples"
        self.camera = None
        self.camera_type = None
        self.sample_images = []
        self.lock = threading.Lock()

        self.setup_logging()

    def setup_logging(self):
        """Setup logging for camera interface"""
        self.logger = logging.getLogger(__name__)

    @property
    def is_open(self) -> bool:
        return self.camera_type is not None

    def open(self):
        """
        Acquire the camera stream

        Raises:
            CameraUnavailable: if no stream can be acquired from the source
        """
        with self.lock:
            if self.camera_type is not None:
                return

            source = self.source
            if isinstance(source, str) and source.isdigit():
                source = int(source)

            try:
                if source == 'auto':
                    self._auto_detect_camera()
                elif source == 'pi':
                    self._setup_pi_camera()
                elif source == 'usb' or isinstance(source, int):
                    self._setup_usb_camera(0 if source == 'usb' else source)
                elif source == 'simulated':
                    self._setup_simulated_camera()
                elif isinstance(source, str) and (source.lower().endswith(VIDEO_EXTENSIONS) or os.path.exists(source)):
                    self._setup_video_file(source)
                else:
                    raise CameraUnavailable(f"Unsupported camera source: {source}")
            except CameraUnavailable:
                self._close_device()
                raise
            except Exception as e:
                self._close_device()
                raise CameraUnavailable(str(e)) from e

    def _auto_detect_camera(self):
        """Pick the Pi camera when present, otherwise the first USB camera"""
        if PICAMERA2_AVAILABLE:
            try:
                self._setup_pi_camera()
                return
            except CameraUnavailable as e:
                self.logger.warning(f"Pi Camera not usable, trying USB: {e}")
                self._close_device()
        self._setup_usb_camera(0)

    def _setup_pi_camera(self):
        """Setup Raspberry Pi camera"""
        if not PICAMERA2_AVAILABLE:
            raise CameraUnavailable("picamera2 is not installed")
        try:
            self.camera = Picamera2()
            config = self.camera.create_preview_configuration(
                main={"size": self.resolution, "format": "RGB888"}
            )
            self.camera.configure(config)
            self.camera.start()
        except Exception as e:
            raise CameraUnavailable(f"Pi Camera setup failed: {e}") from e
        self.camera_type = 'pi'
        self.logger.info("Pi Camera initialized successfully")
        time.sleep(2)  # warm up

    def _setup_usb_camera(self, device_id: int):
        """Setup USB/webcam"""
        self.camera = cv2.VideoCapture(device_id)
        if not self.camera.isOpened():
            raise CameraUnavailable(f"Failed to open camera {device_id}")

        self.camera.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        self.camera.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        self.camera.set(cv2.CAP_PROP_FPS, self.fps)
        self.camera_type = 'usb'
        self.logger.info(f"USB Camera {device_id} initialized successfully")

    def _setup_video_file(self, video_path: str):
        """Setup video file as camera source"""
        if not os.path.exists(video_path):
            raise CameraUnavailable(f"Video file not found: {video_path}")

        self.camera = cv2.VideoCapture(video_path)
        if not self.camera.isOpened():
            raise CameraUnavailable(f"Could not open video file: {video_path}")

        self.camera_type = 'video'
        self.video_path = video_path
        self.video_fps = self.camera.get(cv2.CAP_PROP_FPS)
        self.frame_count = int(self.camera.get(cv2.CAP_PROP_FRAME_COUNT))
        self.current_frame = 0

        self.logger.info(f"Video file initialized: {video_path}")
        self.logger.info(f"Video specs: {self.frame_count} frames at {self.video_fps:.1f} FPS")

    def _setup_simulated_camera(self):
        """Setup simulated camera mode from real sample images"""
        self.sample_images = []
        for img_path in sorted(self.sample_dir.glob("*.jpg")):
            img = cv2.imread(str(img_path))
            if img is None:
                self.logger.warning(f"Failed to load sample image {img_path}")
                continue
            self.sample_images.append(cv2.resize(img, self.resolution))
            self.logger.debug(f"Loaded sample image: {img_path.name}")

        if not self.sample_images:
            raise CameraUnavailable(f"No sample images found in {self.sample_dir}")

        self.camera = None
        self.camera_type = 'simulated'
        self.logger.info(f"Simulated camera initialized with {len(self.sample_images)} images")

    def read(self) -> Optional[np.ndarray]:
        """
        Capture a single frame

        Returns:
            BGR image as numpy array or None if no frame is available
        """
        with self.lock:
            try:
                if self.camera_type == 'pi':
                    return cv2.cvtColor(self.camera.capture_array(), cv2.COLOR_RGB2BGR)
                elif self.camera_type == 'usb':
                    ret, frame = self.camera.read()
                    return frame if ret else None
                elif self.camera_type == 'video':
                    return self._capture_video_frame()
                elif self.camera_type == 'simulated':
                    return self._capture_simulated_frame()
                return None
            except Exception as e:
                self.logger.error(f"Frame capture failed: {e}")
                return None

    def _capture_video_frame(self) -> Optional[np.ndarray]:
        """Capture frame from video file, looping at the end"""
        ret, frame = self.camera.read()
        if not ret:
            self.camera.set(cv2.CAP_PROP_POS_FRAMES, 0)
            self.current_frame = 0
            ret, frame = self.camera.read()
        if ret:
            self.current_frame += 1
        return frame if ret else None

    def _capture_simulated_frame(self) -> np.ndarray:
        """Random sample image with slight noise to mimic a live feed"""
        base_img = random.choice(self.sample_images)
        noise = np.random.randint(-5, 5, base_img.shape, dtype=np.int16)
        return np.clip(base_img.astype(np.int16) + noise, 0, 255).astype(np.uint8)

    def get_camera_info(self) -> dict:
        """Get camera information"""
        info = {
            "source": self.source,
            "type": self.camera_type,
            "resolution": self.resolution,
            "fps": self.fps,
            "open": self.is_open,
        }

        if self.camera_type == 'video':
            info.update({
                "video_path": getattr(self, 'video_path', None),
                "video_fps": getattr(self, 'video_fps', None),
                "frame_count": getattr(self, 'frame_count', None),
                "current_frame": getattr(self, 'current_frame', None)
            })

        return info

    def _close_device(self):
        if self.camera_type == 'pi' and self.camera is not None:
            self.camera.stop()
            self.camera.close()
        elif self.camera is not None and hasattr(self.camera, 'release'):
            self.camera.release()
        elif self.camera is not None and hasattr(self.camera, 'close'):
            self.camera.close()
        self.camera = None
        self.camera_type = None
        self.sample_images = []

    def release(self):
        """Release camera resources"""
        with self.lock:
            if self.camera_type is None:
                return
            try:
                self._close_device()
                self.logger.info("Camera resources released")
            except Exception as e:
                self.camera = None
                self.camera_type = None
                self.logger.error(f"Failed to release camera: {e}")

    def __enter__(self):
        """Context manager entry"""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.release()
