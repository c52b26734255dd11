#!/usr/bin/env python3

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from gazecursor.errors import DegenerateFaceScale, IncompleteLandmarks, NoFaceDetected


LEFT_IRIS_INDEX = 468
RIGHT_IRIS_INDEX = 473

LEFT_EYE_OUTER_INDEX = 33
LEFT_EYE_INNER_INDEX = 133
RIGHT_EYE_OUTER_INDEX = 263
RIGHT_EYE_INNER_INDEX = 362

LEFT_EYE_UPPER_INDEX = 159
LEFT_EYE_LOWER_INDEX = 145
RIGHT_EYE_UPPER_INDEX = 386
RIGHT_EYE_LOWER_INDEX = 374

EYE_MODES = ("left", "right", "both")
FACE_SCALE_EPS = 1e-6


@dataclass(frozen=True)
class EyeAnchors:
    outer: int
    inner: int
    upper: int
    lower: int
    iris: int


LEFT_EYE = EyeAnchors(
    outer=LEFT_EYE_OUTER_INDEX,
    inner=LEFT_EYE_INNER_INDEX,
    upper=LEFT_EYE_UPPER_INDEX,
    lower=LEFT_EYE_LOWER_INDEX,
    iris=LEFT_IRIS_INDEX,
)
RIGHT_EYE = EyeAnchors(
    outer=RIGHT_EYE_OUTER_INDEX,
    inner=RIGHT_EYE_INNER_INDEX,
    upper=RIGHT_EYE_UPPER_INDEX,
    lower=RIGHT_EYE_LOWER_INDEX,
    iris=RIGHT_IRIS_INDEX,
)


@dataclass(frozen=True)
class EyeMetrics:
    """Iris displacement from the socket center, in socket half-widths/half-heights."""

    norm_x: float
    norm_y: float
    width: float
    height: float

    def blend(self, other: "EyeMetrics") -> "EyeMetrics":
        return EyeMetrics(
            norm_x=(self.norm_x + other.norm_x) * 0.5,
            norm_y=(self.norm_y + other.norm_y) * 0.5,
            width=(self.width + other.width) * 0.5,
            height=(self.height + other.height) * 0.5,
        )


@dataclass(frozen=True)
class FrameMetrics:
    left: EyeMetrics
    right: EyeMetrics
    selected: EyeMetrics
    face_scale: float


def _point(face_landmarks: Any, index: int) -> np.ndarray:
    try:
        pt = face_landmarks[index]
        xy = np.array([float(pt.x), float(pt.y)], dtype=float)
    except (IndexError, KeyError, AttributeError, TypeError, ValueError) as exc:
        raise IncompleteLandmarks(f"landmark {index} unavailable") from exc
    if not np.all(np.isfinite(xy)):
        raise IncompleteLandmarks(f"landmark {index} is not finite")
    return xy


def compute_eye_metrics(face_landmarks: Any, anchors: EyeAnchors) -> EyeMetrics:
    outer = _point(face_landmarks, anchors.outer)
    inner = _point(face_landmarks, anchors.inner)
    upper = _point(face_landmarks, anchors.upper)
    lower = _point(face_landmarks, anchors.lower)
    iris = _point(face_landmarks, anchors.iris)

    width = float(np.linalg.norm(outer - inner))
    height = float(np.linalg.norm(upper - lower))
    if width <= 0.0 or height <= 0.0:
        raise IncompleteLandmarks(f"eye socket collapsed (width={width:.6f}, height={height:.6f})")

    center_x = (outer[0] + inner[0]) * 0.5
    center_y = (upper[1] + lower[1]) * 0.5
    return EyeMetrics(
        norm_x=float((iris[0] - center_x) / (width * 0.5)),
        norm_y=float((iris[1] - center_y) / (height * 0.5)),
        width=width,
        height=height,
    )


def select_eye(left: EyeMetrics, right: EyeMetrics, eye_mode: str) -> EyeMetrics:
    if eye_mode == "left":
        return left
    if eye_mode == "right":
        return right
    if eye_mode == "both":
        return left.blend(right)
    raise ValueError(f"eye_mode must be one of {EYE_MODES}, got {eye_mode!r}")


def extract_frame_metrics(face_landmarks: Any, eye_mode: str = "both") -> FrameMetrics:
    """Derive per-eye offsets, the eye-mode selection and the face scale for one frame.

    Raises a ``FrameSkipped`` subclass when the frame cannot be used.
    """
    if face_landmarks is None:
        raise NoFaceDetected("no face in frame")

    left = compute_eye_metrics(face_landmarks, LEFT_EYE)
    right = compute_eye_metrics(face_landmarks, RIGHT_EYE)

    face_scale = (left.width + right.width) * 0.5
    if not np.isfinite(face_scale) or face_scale <= FACE_SCALE_EPS:
        raise DegenerateFaceScale(f"face scale {face_scale!r} too small")

    return FrameMetrics(
        left=left,
        right=right,
        selected=select_eye(left, right, eye_mode),
        face_scale=float(face_scale),
    )
