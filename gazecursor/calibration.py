#!/usr/bin/env python3

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from gazecursor.errors import DegenerateCalibration
from gazecursor.mapping import (
    DEFAULT_FALLBACK_HALF_RANGE_X,
    DEFAULT_FALLBACK_HALF_RANGE_Y,
    AffineMapping,
    BoundsMapping,
    Mapping,
)


DIRECTIONAL_WARMUP_S = 0.45
DIRECTIONAL_COLLECT_S = 1.6
GRID_WARMUP_S = 0.8
GRID_SAMPLES_PER_TARGET = 30

BOUNDS_FLOOR_X = 0.1
BOUNDS_FLOOR_Y = 0.08
MIN_RAW_SPREAD = 1e-3

DEFAULT_BOUNDS = BoundsMapping(
    min_x=-DEFAULT_FALLBACK_HALF_RANGE_X,
    max_x=DEFAULT_FALLBACK_HALF_RANGE_X,
    min_y=-DEFAULT_FALLBACK_HALF_RANGE_Y,
    max_y=DEFAULT_FALLBACK_HALF_RANGE_Y,
)


class CalibrationPhase(str, Enum):
    IDLE = "idle"
    WARMUP = "warmup"
    COLLECTING = "collecting"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class CalibrationTarget:
    key: str
    message: str
    screen_x: float
    screen_y: float


@dataclass(frozen=True)
class CalibrationPlan:
    """Ordered targets plus how long to settle and how much to sample at each.

    ``kind`` is ``"directional"`` (four extremes, bounds mapping, time-boxed
    collection) or ``"grid"`` (screen positions, affine fit, count-boxed).
    """

    kind: str
    targets: tuple[CalibrationTarget, ...]
    warmup_s: float
    collect_s: Optional[float] = None
    collect_samples: Optional[int] = None

    def __post_init__(self) -> None:
        if self.kind not in ("directional", "grid"):
            raise ValueError(f"unknown calibration kind {self.kind!r}")
        if not self.targets:
            raise ValueError("calibration plan needs at least one target")
        if (self.collect_s is None) == (self.collect_samples is None):
            raise ValueError("set exactly one of collect_s or collect_samples")
        if self.collect_samples is not None and self.collect_samples < 1:
            raise ValueError("collect_samples must be >= 1")


def directional_plan(
    warmup_s: float = DIRECTIONAL_WARMUP_S,
    collect_s: float = DIRECTIONAL_COLLECT_S,
) -> CalibrationPlan:
    return CalibrationPlan(
        kind="directional",
        targets=(
            CalibrationTarget("left", "Look to the far LEFT edge", 0.0, 0.5),
            CalibrationTarget("right", "Look to the far RIGHT edge", 1.0, 0.5),
            CalibrationTarget("up", "Look at the TOP edge", 0.5, 0.0),
            CalibrationTarget("down", "Look at the BOTTOM edge", 0.5, 1.0),
        ),
        warmup_s=float(warmup_s),
        collect_s=float(collect_s),
    )


def _grid_axis(count: int, margin: float) -> list[float]:
    if count == 1:
        return [0.5]
    span = 1.0 - 2.0 * margin
    return [margin + span * i / (count - 1) for i in range(count)]


def grid_plan(
    rows: int = 3,
    cols: int = 3,
    margin: float = 0.1,
    warmup_s: float = GRID_WARMUP_S,
    samples_per_target: int = GRID_SAMPLES_PER_TARGET,
) -> CalibrationPlan:
    if rows < 1 or cols < 1 or rows * cols < 2:
        raise ValueError(f"grid needs at least two targets, got {rows}x{cols}")
    if not 0.0 <= margin < 0.5:
        raise ValueError(f"margin must be in [0, 0.5), got {margin}")
    targets = []
    for r, sy in enumerate(_grid_axis(rows, margin)):
        for c, sx in enumerate(_grid_axis(cols, margin)):
            targets.append(
                CalibrationTarget(
                    key=f"r{r}c{c}",
                    message=f"Look at the dot (row {r + 1}, column {c + 1})",
                    screen_x=sx,
                    screen_y=sy,
                )
            )
    return CalibrationPlan(
        kind="grid",
        targets=tuple(targets),
        warmup_s=float(warmup_s),
        collect_samples=int(samples_per_target),
    )


@dataclass
class CalibrationSession:
    plan: CalibrationPlan
    step_index: int = 0
    phase_started: float = 0.0
    samples_by_target: dict[str, list[tuple[float, float]]] = field(default_factory=dict)
    averages: dict[str, tuple[float, float]] = field(default_factory=dict)

    @property
    def target(self) -> CalibrationTarget:
        return self.plan.targets[self.step_index]

    @property
    def current_samples(self) -> list[tuple[float, float]]:
        return self.samples_by_target.setdefault(self.target.key, [])


@dataclass(frozen=True)
class CalibrationProgress:
    phase: CalibrationPhase
    step: int
    total: int
    target: CalibrationTarget
    samples: int


@dataclass(frozen=True)
class CalibrationResult:
    success: bool
    message: str
    mapping: Optional[Mapping] = None


def fit_axis(raw: Sequence[float], screen: Sequence[float], min_spread: float = MIN_RAW_SPREAD) -> tuple[float, float]:
    """Least-squares ``screen = a * raw + b``; exact for two points."""
    raw_arr = np.asarray(raw, dtype=float).reshape(-1)
    screen_arr = np.asarray(screen, dtype=float).reshape(-1)
    if raw_arr.size != screen_arr.size:
        raise ValueError("raw and screen sample counts differ")
    if raw_arr.size < 2:
        raise DegenerateCalibration(f"need at least two targets, got {raw_arr.size}")
    spread = float(np.ptp(raw_arr))
    if not np.isfinite(spread) or spread < min_spread:
        raise DegenerateCalibration(f"raw offset spread {spread:.5f} below {min_spread:.5f}")
    a, b = np.polyfit(raw_arr, screen_arr, 1)
    if not (np.isfinite(a) and np.isfinite(b)):
        raise DegenerateCalibration("linear fit did not converge")
    return float(a), float(b)


def fit_affine_mapping(
    targets: Sequence[CalibrationTarget],
    averages: dict[str, tuple[float, float]],
    min_spread: float = MIN_RAW_SPREAD,
) -> AffineMapping:
    used = [t for t in targets if t.key in averages]
    a_x, b_x = fit_axis(
        [averages[t.key][0] for t in used],
        [t.screen_x for t in used],
        min_spread=min_spread,
    )
    a_y, b_y = fit_axis(
        [averages[t.key][1] for t in used],
        [t.screen_y for t in used],
        min_spread=min_spread,
    )
    return AffineMapping(a_x=a_x, b_x=b_x, a_y=a_y, b_y=b_y)


def bounds_from_averages(
    averages: dict[str, tuple[float, float]],
    previous: BoundsMapping = DEFAULT_BOUNDS,
    floor_x: float = BOUNDS_FLOOR_X,
    floor_y: float = BOUNDS_FLOOR_Y,
) -> BoundsMapping:
    """Directional extremes to bounds; the floors keep every denominator non-zero."""
    left = averages["left"][0] if "left" in averages else previous.min_x
    right = averages["right"][0] if "right" in averages else previous.max_x
    up = averages["up"][1] if "up" in averages else previous.min_y
    down = averages["down"][1] if "down" in averages else previous.max_y
    return BoundsMapping(
        min_x=min(left, -floor_x),
        max_x=max(right, floor_x),
        min_y=min(up, -floor_y),
        max_y=max(down, floor_y),
    )


class CalibrationController:
    """Runs one calibration session at a time: IDLE -> (WARMUP -> COLLECTING)* -> FINALIZING -> IDLE."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        floor_x: float = BOUNDS_FLOOR_X,
        floor_y: float = BOUNDS_FLOOR_Y,
        min_spread: float = MIN_RAW_SPREAD,
    ) -> None:
        self.clock = clock
        self.floor_x = float(floor_x)
        self.floor_y = float(floor_y)
        self.min_spread = float(min_spread)
        self.phase = CalibrationPhase.IDLE
        self.session: Optional[CalibrationSession] = None
        self.last_result: Optional[CalibrationResult] = None
        self._previous_bounds = DEFAULT_BOUNDS

    @property
    def active(self) -> bool:
        return self.session is not None

    def _now(self, now: Optional[float]) -> float:
        return float(self.clock() if now is None else now)

    def start(self, plan: CalibrationPlan, now: Optional[float] = None, previous: Optional[Mapping] = None) -> bool:
        if self.active:
            return False
        self._previous_bounds = previous if isinstance(previous, BoundsMapping) else DEFAULT_BOUNDS
        self.session = CalibrationSession(plan=plan, phase_started=self._now(now))
        self.phase = CalibrationPhase.WARMUP
        print(f"[Calibration] started {plan.kind} calibration with {len(plan.targets)} targets")
        return True

    def cancel(self) -> bool:
        if not self.active:
            return False
        self.session = None
        self.phase = CalibrationPhase.IDLE
        print("[Calibration] cancelled")
        return True

    def progress(self) -> Optional[CalibrationProgress]:
        session = self.session
        if session is None:
            return None
        return CalibrationProgress(
            phase=self.phase,
            step=session.step_index,
            total=len(session.plan.targets),
            target=session.target,
            samples=len(session.samples_by_target.get(session.target.key, ())),
        )

    def update(self, sample: Optional[tuple[float, float]], now: Optional[float] = None) -> Optional[CalibrationResult]:
        """Advance timing and record ``sample`` (None when the frame was skipped).

        Returns a result only on the frame that finishes the session.
        """
        session = self.session
        if session is None:
            return None
        now = self._now(now)
        plan = session.plan

        if self.phase == CalibrationPhase.WARMUP:
            if now - session.phase_started < plan.warmup_s:
                return None
            self.phase = CalibrationPhase.COLLECTING
            session.phase_started = now

        if plan.collect_s is not None:
            if now - session.phase_started < plan.collect_s:
                if sample is not None:
                    session.current_samples.append((float(sample[0]), float(sample[1])))
                return None
        else:
            if sample is not None:
                session.current_samples.append((float(sample[0]), float(sample[1])))
            if len(session.current_samples) < int(plan.collect_samples or 0):
                return None

        return self._finish_target(now)

    def _finish_target(self, now: float) -> Optional[CalibrationResult]:
        session = self.session
        assert session is not None
        samples = session.samples_by_target.get(session.target.key, [])
        if samples:
            mean = np.mean(np.asarray(samples, dtype=float), axis=0)
            session.averages[session.target.key] = (float(mean[0]), float(mean[1]))
        else:
            print(f"[Calibration] no samples for target '{session.target.key}'")

        if session.step_index + 1 < len(session.plan.targets):
            session.step_index += 1
            session.phase_started = now
            self.phase = CalibrationPhase.WARMUP
            return None

        self.phase = CalibrationPhase.FINALIZING
        result = self._finalize(session)
        self.session = None
        self.phase = CalibrationPhase.IDLE
        self.last_result = result
        return result

    def _finalize(self, session: CalibrationSession) -> CalibrationResult:
        plan = session.plan
        if plan.kind == "directional":
            mapping: Mapping = bounds_from_averages(
                session.averages,
                previous=self._previous_bounds,
                floor_x=self.floor_x,
                floor_y=self.floor_y,
            )
        else:
            try:
                mapping = fit_affine_mapping(plan.targets, session.averages, min_spread=self.min_spread)
            except DegenerateCalibration as exc:
                print(f"[Calibration] failed: {exc}")
                return CalibrationResult(
                    success=False,
                    message=f"Calibration failed: {exc}. Keeping the previous mapping.",
                )
        print(f"[Calibration] complete: {mapping}")
        return CalibrationResult(
            success=True,
            message="Calibration complete. Sample again if needed.",
            mapping=mapping,
        )
