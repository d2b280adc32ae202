"""Heatmap color and opacity mapping."""
from __future__ import annotations

from typing import Tuple

Rgb = Tuple[int, int, int]

COLOR_LOW: Rgb = (0xFF, 0xFF, 0xE0)   # light yellow
COLOR_MID: Rgb = (0xFF, 0x8C, 0x00)   # dark orange
COLOR_HIGH: Rgb = (0x8B, 0x00, 0x00)  # dark red

OPACITY_FLOOR = 0.2
STROKE_OPACITY_BOOST = 0.15


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def interpolate(start: Rgb, end: Rgb, t: float) -> Rgb:
    t = _clamp(t, 0.0, 1.0)
    return tuple(
        int(_clamp(a + (b - a) * t, 0, 255)) for a, b in zip(start, end)
    )  # type: ignore[return-value]


def heat_color(count: int, running_max: int) -> Rgb:
    if running_max <= 1:
        return COLOR_MID
    t = _clamp(count / float(running_max), 0.0, 1.0)
    if t < 0.5:
        return interpolate(COLOR_LOW, COLOR_MID, t * 2)
    return interpolate(COLOR_MID, COLOR_HIGH, (t - 0.5) * 2)


def density_factor(count: int, running_max: int) -> float:
    return _clamp(count / float(max(1, running_max)), 0.0, 1.0)


def fill_opacity(count: int, running_max: int, max_opacity: float) -> float:
    """Dense chunks approach ``max_opacity``; sparse ones stay visible but dim."""

    ceiling = _clamp(float(max_opacity), 0.0, 1.0)
    floor = min(OPACITY_FLOOR, ceiling)
    return floor + density_factor(count, running_max) * (ceiling - floor)


def stroke_opacity(fill: float) -> float:
    return min(1.0, fill + STROKE_OPACITY_BOOST)


def to_hex(rgb: Rgb) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)
