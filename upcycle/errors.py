"""
Error taxonomy for the scanner
"""


class ScannerError(Exception):
    """Base class for scanner errors"""


class ModelLoadFailure(ScannerError):
    """The detection model could not be loaded; detection stays disabled"""


class CameraUnavailable(ScannerError):
    """The camera stream could not be acquired; start() may be retried"""


class DetectionTransientError(ScannerError):
    """A single detection attempt failed; the next poll tries again"""
