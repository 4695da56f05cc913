"""
Configuration defaults and JSON file loading
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CONFIG = {
    "camera": {
        "source": "auto",
        "resolution": [640, 480],
        "fps": 30,
        "sample_dir": "data/samples"
    },
    "detector": {
        "model_path": "yolov8n.pt",
        "inference_confidence": 0.25,
        "device": None
    },
    "scanner": {
        "poll_interval_ms": 500,
        "target_labels": ["bottle", "cup"],
        "confidence_threshold": 0.7
    },
    "display": {
        "window_name": "Smart Plastic Scanner",
        "width": None,
        "height": None
    },
    "logging": {
        "directory": "logs",
        "enable_csv": True,
        "enable_json": True,
        "max_log_files": 30
    },
    "projects_file": None,
    "log_level": "INFO"
}

logger = logging.getLogger(__name__)


def merge_dicts(default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay user values on defaults"""
    result = copy.deepcopy(default)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file or use defaults"""
    if config_path and Path(config_path).exists():
        try:
            with open(config_path, 'r') as f:
                user_config = json.load(f)
            if not isinstance(user_config, dict):
                raise ValueError("top-level JSON value must be an object")
            return merge_dicts(DEFAULT_CONFIG, user_config)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config {config_path}: {e}")
            logger.warning("Using default configuration")
    elif config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")

    return copy.deepcopy(DEFAULT_CONFIG)
