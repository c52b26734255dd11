#!/usr/bin/env python3

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Optional

from gazecursor.errors import MappingFormatError


DEFAULT_FALLBACK_HALF_RANGE_X = 0.28
DEFAULT_FALLBACK_HALF_RANGE_Y = 0.22


def _clamp(v: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return float(max(lo, min(hi, v)))


def map_axis_bounds(delta: float, min_bound: float, max_bound: float) -> float:
    """Piecewise-linear signed ratio: 0.5 at rest, 0/1 at the calibrated extremes."""
    delta = float(delta)
    if delta >= 0.0:
        ratio = _clamp(delta / max_bound, -1.0, 1.0) if max_bound != 0.0 else 0.0
    else:
        ratio = _clamp(delta / abs(min_bound), -1.0, 1.0) if min_bound != 0.0 else 0.0
    return _clamp(0.5 + ratio * 0.5)


class Mapping:
    """Offset space (baseline-relative, depth-scaled) to normalized screen space."""

    kind: ClassVar[str] = "mapping"
    calibrated: ClassVar[bool] = True

    def apply(self, dx: float, dy: float) -> tuple[float, float]:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        data.update(asdict(self))  # type: ignore[call-overload]
        return data


@dataclass(frozen=True)
class BoundsMapping(Mapping):
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    kind: ClassVar[str] = "bounds"

    def apply(self, dx: float, dy: float) -> tuple[float, float]:
        return (
            map_axis_bounds(dx, self.min_x, self.max_x),
            map_axis_bounds(dy, self.min_y, self.max_y),
        )


@dataclass(frozen=True)
class AffineMapping(Mapping):
    a_x: float
    b_x: float
    a_y: float
    b_y: float

    kind: ClassVar[str] = "affine"

    def apply(self, dx: float, dy: float) -> tuple[float, float]:
        return (
            _clamp(self.a_x * float(dx) + self.b_x),
            _clamp(self.a_y * float(dy) + self.b_y),
        )


@dataclass(frozen=True)
class FallbackMapping(Mapping):
    """Fixed linear gain around the center, used until a calibration succeeds."""

    half_range_x: float = DEFAULT_FALLBACK_HALF_RANGE_X
    half_range_y: float = DEFAULT_FALLBACK_HALF_RANGE_Y

    kind: ClassVar[str] = "fallback"
    calibrated: ClassVar[bool] = False

    def apply(self, dx: float, dy: float) -> tuple[float, float]:
        fx = max(1e-3, float(self.half_range_x))
        fy = max(1e-3, float(self.half_range_y))
        return (
            _clamp(0.5 + float(dx) * 0.5 / fx),
            _clamp(0.5 + float(dy) * 0.5 / fy),
        )


_FIELDS = {
    BoundsMapping.kind: ("min_x", "max_x", "min_y", "max_y"),
    AffineMapping.kind: ("a_x", "b_x", "a_y", "b_y"),
    FallbackMapping.kind: ("half_range_x", "half_range_y"),
}


def _finite_values(values: list[Any], names: tuple[str, ...]) -> list[float]:
    out = []
    for name, value in zip(names, values):
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise MappingFormatError(f"{name} must be a number, got {value!r}") from exc
        if not math.isfinite(number):
            raise MappingFormatError(f"{name} must be finite, got {value!r}")
        out.append(number)
    return out


def _build(kind: str, values: list[float]) -> Mapping:
    if kind == BoundsMapping.kind:
        mapping = BoundsMapping(*values)
        if not (mapping.min_x < 0.0 < mapping.max_x and mapping.min_y < 0.0 < mapping.max_y):
            raise MappingFormatError(f"bounds must straddle zero on both axes: {mapping}")
        return mapping
    if kind == AffineMapping.kind:
        return AffineMapping(*values)
    return FallbackMapping(*values)


def mapping_from_dict(data: Any) -> Mapping:
    if not isinstance(data, dict):
        raise MappingFormatError(f"mapping data must be a dict, got {type(data).__name__}")
    kind = data.get("kind")
    names = _FIELDS.get(kind) if isinstance(kind, str) else None
    if kind is None or names is None:
        raise MappingFormatError(f"unknown mapping kind {kind!r}")
    missing = [name for name in names if name not in data]
    if missing:
        raise MappingFormatError(f"{kind} mapping is missing {', '.join(missing)}")
    return _build(kind, _finite_values([data[name] for name in names], names))


def _parse_csv(text: str, kind: str) -> Optional[Mapping]:
    if not text:
        return None
    names = _FIELDS[kind]
    parts = [p.strip() for p in text.split(",") if p.strip()]
    if len(parts) != len(names):
        raise MappingFormatError(
            f"Expected {len(names)} comma-separated values: {','.join(names)}"
        )
    return _build(kind, _finite_values(parts, names))


def parse_bounds_mapping(text: str) -> Optional[BoundsMapping]:
    return _parse_csv(text, BoundsMapping.kind)  # type: ignore[return-value]


def parse_affine_mapping(text: str) -> Optional[AffineMapping]:
    return _parse_csv(text, AffineMapping.kind)  # type: ignore[return-value]


class ScreenMapper:
    """Applies the current mapping and converts the result to pixels."""

    def __init__(self, mapping: Optional[Mapping] = None, fallback: Optional[Mapping] = None) -> None:
        self.fallback = fallback if fallback is not None else FallbackMapping()
        self.mapping = mapping if mapping is not None else self.fallback

    @property
    def calibrated(self) -> bool:
        return self.mapping.calibrated

    def set_mapping(self, mapping: Mapping) -> None:
        self.mapping = mapping

    def reset(self) -> None:
        self.mapping = self.fallback

    def to_normalized(self, dx: float, dy: float) -> tuple[float, float]:
        sx, sy = self.mapping.apply(dx, dy)
        return _clamp(sx), _clamp(sy)

    @staticmethod
    def to_pixels(sx: float, sy: float, width: float, height: float) -> tuple[float, float]:
        width = max(0.0, float(width))
        height = max(0.0, float(height))
        return (
            _clamp(sx * width, 0.0, width),
            _clamp(sy * height, 0.0, height),
        )
