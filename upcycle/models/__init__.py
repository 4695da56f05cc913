"""
Models package initialization
"""

from .detector import Detection, ObjectDetector

__all__ = ['Detection', 'ObjectDetector']
