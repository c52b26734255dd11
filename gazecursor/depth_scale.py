#!/usr/bin/env python3

from __future__ import annotations

import math

import numpy as np


DEFAULT_MIN_RATIO = 0.6
DEFAULT_MAX_RATIO = 4.0
DEPTH_EPS = 1e-6


def compute_depth_scale(
    reference_face_size: float,
    measured_face_size: float,
    min_ratio: float = DEFAULT_MIN_RATIO,
    max_ratio: float = DEFAULT_MAX_RATIO,
    eps: float = DEPTH_EPS,
) -> float:
    """Offset multiplier compensating for camera distance.

    A face farther away has a smaller eye span, so ``reference / measured`` grows
    and amplifies the offsets. Always within ``[min_ratio, max_ratio]``.
    """
    measured = float(measured_face_size)
    if not math.isfinite(measured):
        measured = eps
    reference = float(reference_face_size)
    if not math.isfinite(reference):
        reference = eps
    ratio = max(reference, eps) / max(measured, eps)
    return float(np.clip(ratio, min_ratio, max_ratio))


class DepthNormalizer:
    """Keeps the last usable depth scale when the measured face size degenerates."""

    def __init__(
        self,
        min_ratio: float = DEFAULT_MIN_RATIO,
        max_ratio: float = DEFAULT_MAX_RATIO,
        eps: float = DEPTH_EPS,
    ) -> None:
        if min_ratio <= 0.0 or max_ratio < min_ratio:
            raise ValueError(f"invalid depth ratio bounds [{min_ratio}, {max_ratio}]")
        self.min_ratio = float(min_ratio)
        self.max_ratio = float(max_ratio)
        self.eps = float(eps)
        self.last_scale = float(np.clip(1.0, self.min_ratio, self.max_ratio))

    def update(self, reference_face_size: float, measured_face_size: float) -> float:
        measured = float(measured_face_size)
        if not math.isfinite(measured) or measured <= self.eps:
            return self.last_scale
        self.last_scale = compute_depth_scale(
            reference_face_size,
            measured,
            min_ratio=self.min_ratio,
            max_ratio=self.max_ratio,
            eps=self.eps,
        )
        return self.last_scale

    def reset(self) -> None:
        self.last_scale = float(np.clip(1.0, self.min_ratio, self.max_ratio))
