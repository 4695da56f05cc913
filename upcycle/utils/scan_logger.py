"""
Scan history logging to CSV/JSON
Every recognized item is appended to local files for later review
"""

import csv
import json
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..models.detector import Detection

CSV_HEADERS = [
    "timestamp", "datetime", "label", "confidence",
    "bbox_x", "bbox_y", "bbox_width", "bbox_height", "project_count"
]


class ScanLogger:
    """
    Records matched scans to CSV and a daily JSON file
    Thread-safe; write failures are logged and never raised
    """

    def __init__(self, log_dir: str = "logs", enable_csv: bool = True,
                 enable_json: bool = True, max_log_files: int = 30):
        """
        Initialize scan logger

        Args:
            log_dir: Directory for log files
            enable_csv: Enable CSV logging
            enable_json: Enable JSON logging
            max_log_files: Maximum number of daily JSON files to keep
        """
        self.log_dir = Path(log_dir)
        self.enable_csv = enable_csv
        self.enable_json = enable_json
        self.max_log_files = max_log_files

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.csv_scan_file = self.log_dir / "scans.csv"

        self.lock = threading.Lock()
        self.setup_logging()
        self._initialize_csv_file()

        self.logger.info(f"Scan logger initialized: {log_dir}")

    def setup_logging(self):
        """Setup logging"""
        self.logger = logging.getLogger(__name__)

    def daily_file(self, date: Optional[str] = None) -> Path:
        """Daily JSON path, date in YYYYMMDD format (default today)"""
        if date is None:
            date = datetime.now().strftime('%Y%m%d')
        return self.log_dir / f"scan_log_{date}.json"

    def _initialize_csv_file(self):
        """Write the CSV header if the file doesn't exist"""
        if not self.enable_csv or self.csv_scan_file.exists():
            return
        with open(self.csv_scan_file, 'w', newline='') as f:
            csv.writer(f).writerow(CSV_HEADERS)

    def log_scan(self, detection: Detection, project_count: int, timestamp: Optional[float] = None):
        """
        Record a matched scan

        Args:
            detection: The qualifying detection
            project_count: Number of catalog entries shown for the label
            timestamp: Match time, defaults to now
        """
        if timestamp is None:
            timestamp = time.time()

        with self.lock:
            try:
                if self.enable_csv:
                    self._log_scan_csv(detection, project_count, timestamp)
                if self.enable_json:
                    self._update_daily_json(detection, project_count, timestamp)
                self.logger.debug(f"Logged scan of {detection.label}")
            except Exception as e:
                self.logger.error(f"Failed to log scan of {detection.label}: {e}")

    def _log_scan_csv(self, detection: Detection, project_count: int, timestamp: float):
        self._initialize_csv_file()
        x, y, width, height = detection.bbox
        row = [
            timestamp,
            datetime.fromtimestamp(timestamp).isoformat(),
            detection.label,
            detection.confidence,
            x, y, width, height,
            project_count
        ]
        with open(self.csv_scan_file, 'a', newline='') as f:
            csv.writer(f).writerow(row)

    def _update_daily_json(self, detection: Detection, project_count: int, timestamp: float):
        daily_file = self.daily_file(datetime.fromtimestamp(timestamp).strftime('%Y%m%d'))

        if daily_file.exists():
            with open(daily_file, 'r') as f:
                daily_data = json.load(f)
        else:
            daily_data = {
                "date": datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d'),
                "scans": [],
                "summary": {"total_scans": 0, "labels": {}}
            }

        entry = detection.to_dict()
        entry.update({
            "timestamp": timestamp,
            "datetime": datetime.fromtimestamp(timestamp).isoformat(),
            "project_count": project_count
        })
        daily_data["scans"].append(entry)

        summary = daily_data["summary"]
        summary["total_scans"] += 1
        summary["labels"][detection.label] = summary["labels"].get(detection.label, 0) + 1
        summary["last_updated"] = datetime.now().isoformat()

        with open(daily_file, 'w') as f:
            json.dump(daily_data, f, indent=2)

    def get_recent_scans(self, count: int = 10, date: Optional[str] = None) -> List[Dict]:
        """
        Get the most recent scans of a day

        Args:
            count: Number of scans to return
            date: Date string in YYYYMMDD format, defaults to today
        """
        daily_file = self.daily_file(date)
        if not daily_file.exists():
            return []

        with open(daily_file, 'r') as f:
            data = json.load(f)

        scans = data.get("scans", [])
        return scans[-count:] if scans else []

    def cleanup_old_logs(self):
        """Remove old daily files beyond max_log_files limit"""
        log_files = sorted(self.log_dir.glob("scan_log_*.json"))

        if len(log_files) > self.max_log_files:
            for file_path in log_files[:-self.max_log_files]:
                try:
                    file_path.unlink()
                    self.logger.info(f"Removed old log file: {file_path}")
                except OSError as e:
                    self.logger.warning(f"Failed to remove {file_path}: {e}")
