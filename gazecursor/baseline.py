#!/usr/bin/env python3

from __future__ import annotations

from typing import Optional


class BaselineManager:
    """Neutral eye offset treated as "looking at the screen center".

    With ``auto_populate`` on, the first valid frame seeds the baseline so the
    pointer is usable without any setup, at the cost of starting off-center if
    the user was not looking at the middle of the screen at that moment.
    """

    def __init__(self, auto_populate: bool = True) -> None:
        self.auto_populate = bool(auto_populate)
        self._baseline: Optional[tuple[float, float]] = None
        self._locked = False

    @property
    def is_set(self) -> bool:
        return self._baseline is not None

    @property
    def value(self) -> tuple[float, float]:
        return self._baseline if self._baseline is not None else (0.0, 0.0)

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def recenter(self, norm_x: float, norm_y: float) -> bool:
        if self._locked:
            return False
        self._baseline = (float(norm_x), float(norm_y))
        return True

    def observe(self, norm_x: float, norm_y: float) -> bool:
        """Seed the baseline from a valid frame when none exists yet.

        Seeding an unset baseline is allowed while locked: the lock only guards
        an existing value against replacement.
        """
        if self._baseline is not None or not self.auto_populate:
            return False
        self._baseline = (float(norm_x), float(norm_y))
        return True

    def apply(self, norm_x: float, norm_y: float) -> tuple[float, float]:
        bx, by = self.value
        return float(norm_x) - bx, float(norm_y) - by

    def clear(self) -> None:
        self._baseline = None
        self._locked = False
