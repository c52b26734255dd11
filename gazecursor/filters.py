#!/usr/bin/env python3

from __future__ import annotations

import time

import numpy as np


def now_ms() -> int:
    return int(time.perf_counter_ns() // 1_000_000)


def clamp_alpha(alpha: float) -> float:
    alpha = float(alpha)
    if not np.isfinite(alpha):
        return 1.0
    return float(max(1e-5, min(1.0, alpha)))


class TemporalSmoother:
    """Per-axis exponential smoother for the pointer position.

    ``smoothed = smoothed * (1 - alpha) + target * alpha``. No clamping happens
    here; targets are expected to be clamped to the viewport already.
    """

    def __init__(self, alpha: float = 0.04, x: float = 0.0, y: float = 0.0) -> None:
        self.alpha = clamp_alpha(alpha)
        self._last = np.array([x, y], dtype=float)

    def update_alpha(self, alpha: float) -> None:
        self.alpha = clamp_alpha(alpha)

    def reseed(self, x: float, y: float) -> None:
        self._last = np.array([x, y], dtype=float)

    @property
    def value(self) -> tuple[float, float]:
        return float(self._last[0]), float(self._last[1])

    def __call__(self, target_x: float, target_y: float) -> tuple[float, float]:
        target = np.array([target_x, target_y], dtype=float)
        self._last = self._last * (1.0 - self.alpha) + target * self.alpha
        return self.value
