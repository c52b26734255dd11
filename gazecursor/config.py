#!/usr/bin/env python3

from __future__ import annotations

import argparse
from dataclasses import dataclass

from gazecursor.depth_scale import DEPTH_EPS
from gazecursor.eye_metrics import EYE_MODES
from gazecursor.filters import clamp_alpha


DEFAULT_SMOOTHING = 0.04
DEFAULT_REFERENCE_FACE_SIZE = 0.13


@dataclass
class EngineConfig:
    """Live tuning values. Hotkeys may change these between frames."""

    eye_mode: str = "both"
    mirror: bool = True
    invert_y: bool = False
    smoothing: float = DEFAULT_SMOOTHING
    reference_face_size: float = DEFAULT_REFERENCE_FACE_SIZE

    def __post_init__(self) -> None:
        self.set_eye_mode(self.eye_mode)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "EngineConfig":
        return cls(
            eye_mode=args.eye_mode,
            mirror=bool(args.mirror),
            invert_y=bool(args.invert_y),
            smoothing=float(args.smoothing),
            reference_face_size=float(args.reference_face_size),
        )

    def set_eye_mode(self, eye_mode: str) -> None:
        if eye_mode not in EYE_MODES:
            raise ValueError(f"eye_mode must be one of {EYE_MODES}, got {eye_mode!r}")
        self.eye_mode = eye_mode

    def effective_smoothing(self) -> float:
        return clamp_alpha(self.smoothing)

    def effective_reference_face_size(self) -> float:
        return max(DEPTH_EPS, float(self.reference_face_size))

    def nudge_smoothing(self, delta: float) -> float:
        self.smoothing = round(clamp_alpha(self.smoothing + delta), 3)
        return self.smoothing


@dataclass(frozen=True)
class FrameConfig:
    """Values read once at the start of a frame and used for the whole frame."""

    eye_mode: str
    mirror: bool
    invert_y: bool
    smoothing: float
    reference_face_size: float

    @classmethod
    def snapshot(cls, config: EngineConfig) -> "FrameConfig":
        return cls(
            eye_mode=config.eye_mode,
            mirror=bool(config.mirror),
            invert_y=bool(config.invert_y),
            smoothing=config.effective_smoothing(),
            reference_face_size=config.effective_reference_face_size(),
        )
