"""Gaze-to-screen mapping and calibration for webcam iris landmarks."""

__version__ = "0.1.0"
