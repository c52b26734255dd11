#!/usr/bin/env python3

from __future__ import annotations


class GazeError(Exception):
    """Base class for gaze pipeline errors."""


class FrameSkipped(GazeError):
    """A single frame could not be used. The loop skips it and carries on."""

    reason = "frame_skipped"


class NoFaceDetected(FrameSkipped):
    reason = "no_face"


class IncompleteLandmarks(FrameSkipped):
    reason = "incomplete_landmarks"


class DegenerateFaceScale(FrameSkipped):
    reason = "degenerate_face_scale"


class DegenerateCalibration(GazeError):
    """Calibration samples do not spread far enough to solve a mapping."""


class MappingFormatError(GazeError, ValueError):
    """Exported mapping data or a CLI mapping string could not be parsed."""
