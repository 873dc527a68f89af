"""
Geometry Utilities
==================

Leaf helpers shared by every layout component.

GUARANTEES:
- Size formulas are monotonic in amount and bounded by [minimum, maximum]
- Every curve starts and ends exactly on its anchors
- No helper returns a non-finite number for finite input
"""

from __future__ import annotations
from typing import List, Optional, Sequence, Tuple
import math

import numpy as np

from ..contracts.base import Point
from ..contracts.graph import CurvePath


# =============================================================================
# NUMERIC GUARDS
# =============================================================================

def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def finite_or(value: float, fallback: float) -> float:
    """Return value when finite, fallback otherwise."""
    return value if math.isfinite(value) else fallback


# =============================================================================
# NODE SIZING
# =============================================================================

def log_scaled_size(
    amount: float,
    minimum: float,
    maximum: float,
    base: Optional[float] = None,
    scale: float = 15.0
) -> float:
    """
    Log-scaled dimension for a monetary amount.

    size = clamp(minimum, maximum, base + log10(1 + amount) * scale)
    base defaults to minimum. Zero, negative or non-finite amounts map to
    the base, so the result is never zero and never unbounded.
    """
    if base is None:
        base = minimum
    if not math.isfinite(amount) or amount <= 0:
        amount = 0.0
    return clamp(base + math.log10(1.0 + amount) * scale, minimum, maximum)


# =============================================================================
# CURVES
# =============================================================================

def quadratic_curve(start: Point, control: Point, end: Point) -> CurvePath:
    return CurvePath(start=start, controls=(control,), end=end)


def cubic_curve(start: Point, control1: Point, control2: Point, end: Point) -> CurvePath:
    return CurvePath(start=start, controls=(control1, control2), end=end)


def bowed_curve(
    start: Point,
    end: Point,
    curvature: float = 0.15,
    toward: Optional[Point] = None
) -> CurvePath:
    """
    Quadratic curve bowed away from the straight segment.

    With `toward`, the control point moves from the midpoint toward that
    point by `curvature` of the way (radial layouts). Otherwise it is
    offset perpendicular to the segment by `curvature * length`.
    """
    mid = Point((start.x + end.x) / 2, (start.y + end.y) / 2)
    if toward is not None:
        control = Point(
            mid.x + (toward.x - mid.x) * curvature,
            mid.y + (toward.y - mid.y) * curvature
        )
        return quadratic_curve(start, control, end)

    dx = end.x - start.x
    dy = end.y - start.y
    length = math.hypot(dx, dy)
    if length < 1e-9:
        return quadratic_curve(start, mid, end)
    # Unit normal, rotated counter-clockwise
    nx, ny = -dy / length, dx / length
    offset = curvature * length
    return quadratic_curve(start, Point(mid.x + nx * offset, mid.y + ny * offset), end)


def flow_curve(start: Point, end: Point) -> CurvePath:
    """
    Horizontal S-curve between two column anchors.

    Control points sit a third of the horizontal span in from each anchor,
    widening toward half the span as the vertical offset grows, so steep
    links bend smoothly and near-horizontal links stay almost straight.
    """
    dx = end.x - start.x
    dy = end.y - start.y
    span = abs(dx)
    if span < 1e-9:
        tightness = 1.0 if abs(dy) > 0 else 0.0
    else:
        tightness = min(1.0, abs(dy) / span)
    offset = dx * (1.0 / 3.0 + tightness / 6.0)
    return cubic_curve(
        start,
        Point(start.x + offset, start.y),
        Point(end.x - offset, end.y),
        end
    )


def arched_curve(
    start: Point,
    end: Point,
    max_height: float = 200.0,
    factor: float = 0.3
) -> CurvePath:
    """Cubic arch rising above both anchors; height grows with horizontal span."""
    dx = end.x - start.x
    height = min(max_height, abs(dx) * factor)
    return cubic_curve(
        start,
        Point(start.x + dx / 3, start.y - height),
        Point(start.x + dx * 2 / 3, end.y - height),
        end
    )


# =============================================================================
# CENTERING
# =============================================================================

def bounding_box(points: Sequence[Point]) -> Optional[Tuple[float, float, float, float]]:
    """(min_x, min_y, max_x, max_y) of the finite points, or None."""
    finite = [p for p in points if p.is_finite]
    if not finite:
        return None
    coords = np.array([(p.x, p.y) for p in finite], dtype=float)
    min_x, min_y = coords.min(axis=0)
    max_x, max_y = coords.max(axis=0)
    return float(min_x), float(min_y), float(max_x), float(max_y)


def centering_offset(points: Sequence[Point], target: Point = Point(0.0, 0.0)) -> Tuple[float, float]:
    box = bounding_box(points)
    if box is None:
        return 0.0, 0.0
    min_x, min_y, max_x, max_y = box
    return target.x - (min_x + max_x) / 2, target.y - (min_y + max_y) / 2


def center_points(points: Sequence[Point], target: Point = Point(0.0, 0.0)) -> List[Point]:
    """
    Translate points so their bounding box is centered on target.

    Idempotent: a second call finds the box already centered and moves
    nothing (up to floating-point rounding).
    """
    dx, dy = centering_offset(points, target)
    return [p.translated(dx, dy) for p in points]


def center_array(positions: np.ndarray, target: Point = Point(0.0, 0.0)) -> np.ndarray:
    """Array form of center_points for (n, 2) position buffers."""
    if positions.size == 0:
        return positions.copy()
    low = positions.min(axis=0)
    high = positions.max(axis=0)
    shift = np.array([target.x, target.y]) - (low + high) / 2.0
    return positions + shift


__all__ = [
    'clamp', 'finite_or', 'log_scaled_size',
    'quadratic_curve', 'cubic_curve', 'bowed_curve', 'flow_curve', 'arched_curve',
    'bounding_box', 'centering_offset', 'center_points', 'center_array',
]
