#!/usr/bin/env python3

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from gazecursor.baseline import BaselineManager
from gazecursor.calibration import (
    CalibrationController,
    CalibrationPhase,
    CalibrationPlan,
    CalibrationResult,
    directional_plan,
)
from gazecursor.config import EngineConfig, FrameConfig
from gazecursor.depth_scale import DepthNormalizer
from gazecursor.errors import FrameSkipped
from gazecursor.event_bus import EventEmitter, EventSink
from gazecursor.eye_metrics import FrameMetrics, extract_frame_metrics
from gazecursor.filters import TemporalSmoother
from gazecursor.mapping import Mapping, ScreenMapper, mapping_from_dict


@dataclass
class EngineState:
    """Everything the per-frame step reads and mutates."""

    viewport_width: int
    viewport_height: int
    baseline: BaselineManager
    mapper: ScreenMapper
    calibration: CalibrationController
    depth: DepthNormalizer
    smoother: TemporalSmoother
    latest_offset: Optional[tuple[float, float]] = None
    skip_reasons: deque = field(default_factory=lambda: deque(maxlen=5))

    @classmethod
    def create(
        cls,
        width: int,
        height: int,
        clock: Callable[[], float] = time.monotonic,
        auto_baseline: bool = True,
        fallback: Optional[Mapping] = None,
        smoothing: float = 0.04,
    ) -> "EngineState":
        width, height = _sanitize_viewport(width, height)
        return cls(
            viewport_width=width,
            viewport_height=height,
            baseline=BaselineManager(auto_populate=auto_baseline),
            mapper=ScreenMapper(fallback=fallback),
            calibration=CalibrationController(clock=clock),
            depth=DepthNormalizer(),
            smoother=TemporalSmoother(alpha=smoothing, x=width / 2.0, y=height / 2.0),
        )

    @property
    def center(self) -> tuple[float, float]:
        return self.viewport_width / 2.0, self.viewport_height / 2.0

    @property
    def pointer(self) -> tuple[float, float]:
        return self.smoother.value


@dataclass(frozen=True)
class FrameResult:
    processed: bool
    pointer: tuple[float, float]
    depth_scale: float
    reason: Optional[str] = None
    metrics: Optional[FrameMetrics] = None
    offset: Optional[tuple[float, float]] = None
    normalized: Optional[tuple[float, float]] = None
    target: Optional[tuple[float, float]] = None
    calibration: Optional[CalibrationResult] = None


def _sanitize_viewport(width: Any, height: Any) -> tuple[int, int]:
    return max(1, int(width)), max(1, int(height))


def _apply_calibration_result(state: EngineState, result: Optional[CalibrationResult]) -> None:
    if result is None:
        return
    state.baseline.unlock()
    if result.success and result.mapping is not None:
        state.mapper.set_mapping(result.mapping)


def step_frame(
    state: EngineState,
    config: EngineConfig,
    face_landmarks: Any,
    now: Optional[float] = None,
) -> FrameResult:
    """Run one frame through metrics, baseline, depth, calibration, mapping and smoothing."""
    cfg = FrameConfig.snapshot(config)
    state.smoother.update_alpha(cfg.smoothing)

    try:
        metrics = extract_frame_metrics(face_landmarks, cfg.eye_mode)
    except FrameSkipped as exc:
        state.skip_reasons.append(exc.reason)
        calibration = state.calibration.update(None, now)
        _apply_calibration_result(state, calibration)
        return FrameResult(
            processed=False,
            pointer=state.pointer,
            depth_scale=state.depth.last_scale,
            reason=exc.reason,
            calibration=calibration,
        )

    norm_x = -metrics.selected.norm_x if cfg.mirror else metrics.selected.norm_x
    norm_y = -metrics.selected.norm_y if cfg.invert_y else metrics.selected.norm_y
    state.latest_offset = (norm_x, norm_y)
    if state.baseline.observe(norm_x, norm_y):
        print(f"[Baseline] seeded from first valid frame: ({norm_x:.4f}, {norm_y:.4f})")

    rel_x, rel_y = state.baseline.apply(norm_x, norm_y)
    depth_scale = state.depth.update(cfg.reference_face_size, metrics.face_scale)
    dx = rel_x * depth_scale
    dy = rel_y * depth_scale

    calibration = state.calibration.update((dx, dy), now)
    _apply_calibration_result(state, calibration)

    sx, sy = state.mapper.to_normalized(dx, dy)
    px, py = ScreenMapper.to_pixels(sx, sy, state.viewport_width, state.viewport_height)
    pointer = state.smoother(px, py)
    return FrameResult(
        processed=True,
        pointer=pointer,
        depth_scale=depth_scale,
        metrics=metrics,
        offset=(dx, dy),
        normalized=(sx, sy),
        target=(px, py),
        calibration=calibration,
    )


class GazeEngine:
    """Owns the engine state, the live config and the event emitter."""

    def __init__(
        self,
        width: int,
        height: int,
        config: Optional[EngineConfig] = None,
        sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
        emit_interval_ms: int = 16,
        auto_baseline: bool = True,
        fallback: Optional[Mapping] = None,
    ) -> None:
        self.config = config if config is not None else EngineConfig()
        self.clock = clock
        self.state = EngineState.create(
            width,
            height,
            clock=clock,
            auto_baseline=auto_baseline,
            fallback=fallback,
            smoothing=self.config.effective_smoothing(),
        )
        self.events = EventEmitter(sink, emit_interval_ms=emit_interval_ms)
        self._last_progress: Optional[tuple] = None

    @property
    def pointer(self) -> tuple[float, float]:
        return self.state.pointer

    @property
    def calibrated(self) -> bool:
        return self.state.mapper.calibrated

    @property
    def mapping(self) -> Mapping:
        return self.state.mapper.mapping

    @property
    def calibration_phase(self) -> CalibrationPhase:
        return self.state.calibration.phase

    def process_frame(self, face_landmarks: Any, now: Optional[float] = None) -> FrameResult:
        result = step_frame(self.state, self.config, face_landmarks, now)
        if result.processed:
            x, y = result.pointer
            self.events.pointer(x, y, self.state.viewport_width, self.state.viewport_height, self.calibrated)
        else:
            self.events.noop(result.reason or "frame_skipped")
        self._report_calibration(result.calibration)
        return result

    def _report_calibration(self, result: Optional[CalibrationResult]) -> None:
        progress = self.state.calibration.progress()
        if progress is not None:
            key = (progress.phase, progress.step, progress.samples)
            if key != self._last_progress:
                self._last_progress = key
                self.events.calibration_progress(
                    phase=progress.phase.value,
                    step=progress.step,
                    total=progress.total,
                    target=progress.target.key,
                    message=progress.target.message,
                    samples=progress.samples,
                )
        else:
            self._last_progress = None
        if result is not None:
            self.events.calibration_complete(
                result.success,
                result.message,
                result.mapping.to_dict() if result.mapping is not None else None,
            )

    def recenter(self) -> bool:
        """Treat the latest valid offset as the screen center."""
        state = self.state
        if state.calibration.active:
            print("[Baseline] recenter ignored while calibration is running")
            return False
        if state.latest_offset is None:
            state.baseline.clear()
            state.smoother.reseed(*state.center)
            print("[Baseline] no valid frame yet; baseline cleared")
            return True
        state.baseline.recenter(*state.latest_offset)
        state.smoother.reseed(*state.center)
        print(f"[Baseline] recentered to ({state.latest_offset[0]:.4f}, {state.latest_offset[1]:.4f})")
        return True

    def start_calibration(self, plan: Optional[CalibrationPlan] = None, now: Optional[float] = None) -> bool:
        state = self.state
        if state.calibration.active:
            return False
        plan = plan if plan is not None else directional_plan()
        if state.latest_offset is not None:
            state.baseline.recenter(*state.latest_offset)
            state.smoother.reseed(*state.center)
        started = state.calibration.start(plan, now=now, previous=state.mapper.mapping)
        if started:
            state.baseline.lock()
            self._report_calibration(None)
        return started

    def cancel_calibration(self) -> bool:
        cancelled = self.state.calibration.cancel()
        if cancelled:
            self.state.baseline.unlock()
            self._last_progress = None
            self.events.calibration_complete(False, "Calibration cancelled.", None)
        return cancelled

    def resize(self, width: int, height: int) -> None:
        state = self.state
        state.viewport_width, state.viewport_height = _sanitize_viewport(width, height)
        state.smoother.reseed(*state.center)

    def export_mapping(self) -> Optional[Dict[str, Any]]:
        mapping = self.state.mapper.mapping
        if not mapping.calibrated:
            return None
        return mapping.to_dict()

    def import_mapping(self, data: Dict[str, Any]) -> Mapping:
        mapping = mapping_from_dict(data)
        if not mapping.calibrated:
            self.state.mapper.fallback = mapping
            self.state.mapper.reset()
        else:
            self.state.mapper.set_mapping(mapping)
        print(f"[Mapping] imported {mapping.kind} mapping")
        return self.state.mapper.mapping

    def set_mapping(self, mapping: Mapping) -> None:
        self.state.mapper.set_mapping(mapping)
