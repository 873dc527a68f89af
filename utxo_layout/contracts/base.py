"""
Base Contracts and Shared Types

These are the foundational types used by every layout component.
All types here are IMMUTABLE and represent pure data.
No behavior beyond small geometric accessors, no side effects.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Components may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple
from enum import Enum, auto
import math


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for layout degradation.
    Nothing here is fatal - every code describes a recoverable condition.
    """
    # Input errors
    DANGLING_LINK = auto()
    LINK_OUTSIDE_COLUMNS = auto()
    UNPARSEABLE_DATE = auto()
    ZERO_TOTAL_WEIGHT = auto()
    DEGENERATE_BOUNDS = auto()

    # Numeric guards
    NON_FINITE_POSITION = auto()

    # Resource bounds
    NODES_TRUNCATED = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def now(code: ErrorCode, message: str, **context: object) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((key, str(value)) for key, value in sorted(context.items()))
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# CLASSIFICATIONS (Explicit enums, no free-form strings)
# =============================================================================

class RiskLevel(Enum):
    """
    Privacy exposure classification of a UTXO.
    Computed outside this package; only ordered and propagated here.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @staticmethod
    def parse(value: object) -> Optional[RiskLevel]:
        """Accept a RiskLevel, its string value, or None."""
        if value is None or isinstance(value, RiskLevel):
            return value
        try:
            return RiskLevel(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown risk level: {value!r}")

    @staticmethod
    def highest(levels: Iterable[Optional[RiskLevel]]) -> Optional[RiskLevel]:
        """Maximum risk of the given levels; None when none is known."""
        known = [level for level in levels if level is not None]
        if not known:
            return None
        return max(known, key=lambda level: level.rank)


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class NodeKind(Enum):
    """Kind of financial entity a node stands for."""
    TRANSACTION = "transaction"
    ADDRESS = "address"
    UTXO = "utxo"
    INPUT_ADDRESS = "input-address"
    OUTPUT_ADDRESS = "output-address"

    @property
    def is_address(self) -> bool:
        return self in (NodeKind.ADDRESS, NodeKind.INPUT_ADDRESS, NodeKind.OUTPUT_ADDRESS)


# =============================================================================
# GEOMETRIC VALUE TYPES (Immutable)
# =============================================================================

@dataclass(frozen=True)
class Point:
    """Immutable 2D point."""
    x: float
    y: float

    def translated(self, dx: float, dy: float) -> Point:
        return Point(self.x + dx, self.y + dy)

    def distance_to(self, other: Point) -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)


@dataclass(frozen=True)
class Rect:
    """Immutable axis-aligned rectangle anchored at its top-left corner."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError("Rect dimensions must be non-negative")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def shorter_side(self) -> float:
        return min(self.width, self.height)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_degenerate(self) -> bool:
        values = (self.x, self.y, self.width, self.height)
        return not all(math.isfinite(v) for v in values) or self.width <= 0 or self.height <= 0

    def interior_overlaps(self, other: Rect, tolerance: float = 1e-9) -> bool:
        """True when interiors intersect. Shared edges do not count."""
        overlap_x = min(self.right, other.right) - max(self.x, other.x)
        overlap_y = min(self.bottom, other.bottom) - max(self.y, other.y)
        return overlap_x > tolerance and overlap_y > tolerance


@dataclass(frozen=True)
class NodeSize:
    """Immutable node footprint. Circles use width == height == diameter."""
    width: float
    height: float

    @staticmethod
    def circle(radius: float) -> NodeSize:
        return NodeSize(width=radius * 2, height=radius * 2)

    @property
    def radius(self) -> float:
        return max(self.width, self.height) / 2
