"""
Smart Plastic Scanner

Watches a camera feed with a pretrained object detector, recognizes plastic
bottles and cups, and suggests DIY recycling projects for them.
"""

__version__ = "1.0.0"
__author__ = "Smart Plastic Scanner Project"
