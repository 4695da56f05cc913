"""
Utilities package initialization
"""

from .scan_logger import ScanLogger
from .scheduler import RepeatingTask

__all__ = ['ScanLogger', 'RepeatingTask']
