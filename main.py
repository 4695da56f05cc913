#!/usr/bin/env python3
"""
Smart Plastic Scanner - Main Application
Point a camera at a plastic bottle or cup and get DIY recycling project ideas

This script wires the components together:
- Camera interface for the live feed
- YOLOv8 object detection (loaded in the background)
- Detection loop polling every 500ms
- Project catalog and results view
- CSV/JSON scan history

Usage:
    python main.py [--config config.json] [--source SRC] [--simulate] [--headless] [--debug]

Window keys: S start, X stop, R scan another item, 1-9 open a project link, Q quit
"""

import argparse
import logging
import signal
import sys
import threading
import webbrowser
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from upcycle.camera_interface import CameraInterface
from upcycle.config import load_config
from upcycle.errors import CameraUnavailable, ModelLoadFailure
from upcycle.models.detector import ObjectDetector
from upcycle.overlay import DetectionOverlay
from upcycle.projects import ProjectCatalog, ProjectEntry
from upcycle.results_view import collect_links, format_results, render_results_panel
from upcycle.scan_controller import ScanController, ScanState
from upcycle.utils.scan_logger import ScanLogger

STATUS_COLOR = (0, 255, 255)
ERROR_COLOR = (0, 0, 255)


class SmartPlasticScanner:
    """
    Main scanner application
    Owns the components and the OpenCV window
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the scanner application

        Args:
            config: Configuration dictionary
        """
        self.config = config
        self.running = False
        self.setup_logging()

        self.camera = None
        self.detector = None
        self.catalog = None
        self.scan_logger = None
        self.controller = None

        self.display_size = None
        self.model_loading = False
        self.model_error: Optional[str] = None
        self.loader_thread = None
        self.matched = threading.Event()

        self.logger.info("Smart Plastic Scanner initialized")

    def setup_logging(self):
        """Setup logging configuration"""
        log_level = getattr(logging, str(self.config.get('log_level', 'INFO')).upper(), logging.INFO)
        log_dir = Path(self.config.get('logging', {}).get('directory', 'logs'))
        log_dir.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(log_dir / 'smart_plastic_scanner.log')
            ]
        )

        self.logger = logging.getLogger(__name__)

    def initialize_components(self):
        """Initialize all scanner components"""
        try:
            self.logger.info("Initializing scanner components...")

            camera_config = self.config.get('camera', {})
            self.camera = CameraInterface(
                source=camera_config.get('source', 'auto'),
                resolution=tuple(camera_config.get('resolution', [640, 480])),
                fps=camera_config.get('fps', 30),
                sample_dir=camera_config.get('sample_dir')
            )

            detector_config = self.config.get('detector', {})
            self.detector = ObjectDetector(
                model_path=detector_config.get('model_path'),
                inference_confidence=detector_config.get('inference_confidence', 0.25),
                device=detector_config.get('device')
            )

            projects_file = self.config.get('projects_file')
            self.catalog = ProjectCatalog.from_file(projects_file) if projects_file else ProjectCatalog()

            logging_config = self.config.get('logging', {})
            self.scan_logger = ScanLogger(
                log_dir=logging_config.get('directory', 'logs'),
                enable_csv=logging_config.get('enable_csv', True),
                enable_json=logging_config.get('enable_json', True),
                max_log_files=logging_config.get('max_log_files', 30)
            )
            self.scan_logger.cleanup_old_logs()

            display_config = self.config.get('display', {})
            display_size = None
            if display_config.get('width') and display_config.get('height'):
                display_size = (int(display_config['width']), int(display_config['height']))

            scanner_config = self.config.get('scanner', {})
            self.controller = ScanController(
                camera=self.camera,
                detector=self.detector,
                catalog=self.catalog,
                overlay=DetectionOverlay(display_size),
                poll_interval=scanner_config.get('poll_interval_ms', 500) / 1000.0,
                target_labels=scanner_config.get('target_labels', ["bottle", "cup"]),
                confidence_threshold=scanner_config.get('confidence_threshold', 0.7),
                scan_logger=self.scan_logger,
                on_match=self._on_match
            )

            self.logger.info("All components initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize components: {e}")
            raise

    def start_model_loading(self):
        """Load the detection model on a background thread"""
        self.model_loading = True
        self.loader_thread = threading.Thread(target=self._load_model, name="model-loader", daemon=True)
        self.loader_thread.start()

    def _load_model(self):
        try:
            self.detector.load()
        except ModelLoadFailure as e:
            self.model_error = f"Failed to load model: {e}"
            self.logger.error(self.model_error)
        finally:
            self.model_loading = False

    def _on_match(self, label: str, entries: List[ProjectEntry]):
        self.matched.set()
        for line in format_results(label, entries):
            self.logger.info(line)

    def start_detection(self) -> bool:
        """Start scanning if the model is usable, returns True when polling began"""
        if self.model_error:
            self.logger.warning("Detection disabled: model failed to load, restart to retry")
            return False
        self.matched.clear()
        try:
            self.controller.start()
        except CameraUnavailable:
            return False
        return self.controller.state == ScanState.DETECTING

    def handle_key(self, key: int) -> bool:
        """
        React to a key press in the window

        Returns:
            False when the application should quit
        """
        if key in (ord('q'), ord('Q'), 27):
            return False

        state = self.controller.state
        if key in (ord('s'), ord('S')) and state == ScanState.IDLE:
            self.start_detection()
        elif key in (ord('x'), ord('X')) and state == ScanState.DETECTING:
            self.controller.stop()
        elif key in (ord('r'), ord('R')):
            self.matched.clear()
            self.controller.reset()
        elif state == ScanState.MATCHED and ord('1') <= key <= ord('9'):
            self.open_link(key - ord('0'))
        return True

    def open_link(self, number: int):
        """Open the numbered project link of the current results in the browser"""
        links = collect_links(self.controller.results)
        if not 1 <= number <= len(links):
            return
        link = links[number - 1]
        self.logger.info(f"Opening {link.title}: {link.url}")
        webbrowser.open(link.url)

    def sync_display_size(self, width: int, height: int):
        """Follow the window size unless the config fixes the display size"""
        display = self.config.get('display', {})
        if display.get('width') and display.get('height'):
            return
        if width <= 0 or height <= 0 or (width, height) == self.display_size:
            return
        self.display_size = (width, height)
        self.controller.overlay.resize(width, height)
        self.logger.debug(f"Display resized to {width}x{height}")

    def _window_size(self):
        if self.display_size:
            return self.display_size
        display = self.config.get('display', {})
        if display.get('width') and display.get('height'):
            return int(display['width']), int(display['height'])
        width, height = self.config.get('camera', {}).get('resolution', [640, 480])
        return int(width), int(height)

    def render(self) -> np.ndarray:
        """Compose the image shown in the window for the current state"""
        width, height = self._window_size()

        if self.controller.state == ScanState.MATCHED:
            return render_results_panel(self.controller.scanned_item, self.controller.results, (width, height))

        canvas = self.controller.preview()
        if canvas is None:
            canvas = np.zeros((height, width, 3), dtype=np.uint8)

        messages = []
        if self.model_loading:
            messages.append(("Loading model, please wait...", STATUS_COLOR))
        if self.model_error:
            messages.append((self.model_error, ERROR_COLOR))
        if self.controller.error:
            messages.append((self.controller.error, ERROR_COLOR))
        if self.controller.state == ScanState.IDLE and not self.model_error:
            messages.append(("Press S to start detection, Q to quit", STATUS_COLOR))
        elif self.controller.state == ScanState.DETECTING:
            messages.append(("Scanning... show a plastic bottle or cup (X to stop)", STATUS_COLOR))

        y = 30
        for text, color in messages:
            cv2.putText(canvas, text, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)
            y += 28
        return canvas

    def run_window(self):
        """Interactive OpenCV window loop"""
        window_name = self.config.get('display', {}).get('window_name', 'Smart Plastic Scanner')
        cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)
        self.running = True

        try:
            while self.running:
                _, _, width, height = cv2.getWindowImageRect(window_name)
                self.sync_display_size(width, height)
                cv2.imshow(window_name, self.render())
                key = cv2.waitKey(30) & 0xFF
                if key != 0xFF and not self.handle_key(key):
                    break
                if cv2.getWindowProperty(window_name, cv2.WND_PROP_VISIBLE) < 1:
                    break
        finally:
            cv2.destroyAllWindows()

    def run_headless(self, timeout: Optional[float] = None) -> bool:
        """
        Scan once without a window and print the project suggestions

        Args:
            timeout: Seconds to wait for a match, None waits forever

        Returns:
            True if an item was recognized
        """
        self.running = True
        if self.loader_thread is not None:
            self.loader_thread.join()

        if not self.start_detection():
            print(self.model_error or self.controller.error or "Detection could not start")
            return False

        if not self.matched.wait(timeout):
            print("No plastic item recognized before timeout")
            return False

        for line in format_results(self.controller.scanned_item, self.controller.results):
            print(line)
        return True

    def stop(self):
        """Stop the scanner and release resources"""
        if self.controller is None:
            return

        self.logger.info("Stopping Smart Plastic Scanner...")
        self.running = False

        status = self.controller.status()
        self.controller.shutdown()
        self.controller = None
        self.logger.info(
            f"Final Stats - Sessions: {status['sessions']}, Polls: {status['polls']}, "
            f"Skipped: {status['skipped_polls']}, Detection errors: {status['detection_errors']}"
        )

        self.logger.info("Smart Plastic Scanner stopped")


system = None


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    print("\nReceived shutdown signal. Stopping scanner...")
    if system:
        system.stop()
    sys.exit(0)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Smart Plastic Scanner")
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--source', help='Camera source: auto, usb, pi, simulated, device index or video file')
    parser.add_argument('--simulate', '-s', action='store_true',
                        help='Use sample images instead of a camera')
    parser.add_argument('--headless', action='store_true',
                        help='Scan once without a window and print the results')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Seconds to wait for a match in headless mode')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    config = load_config(args.config)

    if args.simulate:
        config['camera']['source'] = 'simulated'
    elif args.source:
        config['camera']['source'] = args.source

    if args.debug:
        config['log_level'] = 'DEBUG'

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    global system
    system = SmartPlasticScanner(config)
    exit_code = 0

    try:
        print("Starting Smart Plastic Scanner...")
        print(f"Camera source: {config['camera']['source']}")

        system.initialize_components()
        system.start_model_loading()

        if args.headless:
            exit_code = 0 if system.run_headless(args.timeout) else 1
        else:
            system.run_window()

    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except Exception as e:
        print(f"Scanner error: {e}")
        exit_code = 1
    finally:
        system.stop()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
