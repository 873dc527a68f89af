"""
Graph Layout Contracts

Responsibility:
Immutable node/link/tile records flowing into and out of the layout components.
Input: entity records (no geometry) -> Output: the same records with
position, size and path filled in.

PRINCIPLES:
1. Immutable (Frozen) - a layout pass returns new records, never mutates input
2. Identity belongs to the aggregator, geometry belongs to the layout
3. Link endpoints are always plain node ids
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Optional, Tuple, Union
import math

from .base import NodeKind, NodeSize, Point, Rect, RiskLevel


def _require_amount(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValueError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


# =============================================================================
# CURVES
# =============================================================================

@dataclass(frozen=True)
class CurvePath:
    """
    Bezier curve between two anchors.

    One control point = quadratic, two = cubic.
    start/end are exactly the anchors the curve was built from.
    """
    start: Point
    controls: Tuple[Point, ...]
    end: Point

    def __post_init__(self):
        if len(self.controls) not in (1, 2):
            raise ValueError("CurvePath needs one (quadratic) or two (cubic) control points")

    @property
    def is_cubic(self) -> bool:
        return len(self.controls) == 2

    def point_at(self, t: float) -> Point:
        """Evaluate the curve at parameter t in [0, 1]."""
        if t <= 0.0:
            return self.start
        if t >= 1.0:
            return self.end
        u = 1.0 - t
        if self.is_cubic:
            c1, c2 = self.controls
            x = u ** 3 * self.start.x + 3 * u * u * t * c1.x + 3 * u * t * t * c2.x + t ** 3 * self.end.x
            y = u ** 3 * self.start.y + 3 * u * u * t * c1.y + 3 * u * t * t * c2.y + t ** 3 * self.end.y
        else:
            (c,) = self.controls
            x = u * u * self.start.x + 2 * u * t * c.x + t * t * self.end.x
            y = u * u * self.start.y + 2 * u * t * c.y + t * t * self.end.y
        return Point(x, y)

    def to_svg(self) -> str:
        """SVG path data for the rendering layer."""
        command = "C" if self.is_cubic else "Q"
        controls = ", ".join(f"{c.x:g} {c.y:g}" for c in self.controls)
        return (
            f"M {self.start.x:g} {self.start.y:g} "
            f"{command} {controls}, {self.end.x:g} {self.end.y:g}"
        )


# =============================================================================
# NODES AND LINKS
# =============================================================================

@dataclass(frozen=True)
class LayoutNode:
    """
    Positioned visual entity.

    position is the node CENTER and stays None until a layout runs.
    """
    node_id: str
    kind: NodeKind
    amount: float = 0.0
    risk_level: Optional[RiskLevel] = None
    group_key: Optional[str] = None
    label: Optional[str] = None
    position: Optional[Point] = None
    size: Optional[NodeSize] = None

    def __post_init__(self):
        if not self.node_id or not isinstance(self.node_id, str):
            raise ValueError("node_id must be a non-empty string")
        if not isinstance(self.kind, NodeKind):
            object.__setattr__(self, 'kind', NodeKind(self.kind))
        _require_amount("amount", self.amount)
        object.__setattr__(self, 'risk_level', RiskLevel.parse(self.risk_level))

    def placed(self, position: Point, size: Optional[NodeSize] = None) -> LayoutNode:
        """Return a copy with geometry assigned."""
        return replace(self, position=position, size=size if size is not None else self.size)

    def left_anchor(self) -> Point:
        """Vertical midpoint of the left edge."""
        self._require_geometry()
        return Point(self.position.x - self.size.width / 2, self.position.y)

    def right_anchor(self) -> Point:
        """Vertical midpoint of the right edge."""
        self._require_geometry()
        return Point(self.position.x + self.size.width / 2, self.position.y)

    def _require_geometry(self):
        if self.position is None or self.size is None:
            raise ValueError(f"Node {self.node_id} has not been laid out")


NodeRef = Union[str, LayoutNode]


def _endpoint_id(endpoint: NodeRef) -> str:
    if isinstance(endpoint, LayoutNode):
        return endpoint.node_id
    if isinstance(endpoint, str) and endpoint:
        return endpoint
    raise ValueError(f"Link endpoint must be a node or a non-empty id, got {endpoint!r}")


@dataclass(frozen=True)
class LayoutLink:
    """Directed relationship between two nodes, referenced by id."""
    source_id: str
    target_id: str
    value: float = 0.0
    risk_level: Optional[RiskLevel] = None
    is_change_output: bool = False
    path: Optional[CurvePath] = None

    def __post_init__(self):
        _endpoint_id(self.source_id)
        _endpoint_id(self.target_id)
        _require_amount("value", self.value)
        object.__setattr__(self, 'risk_level', RiskLevel.parse(self.risk_level))

    @staticmethod
    def between(
        source: NodeRef,
        target: NodeRef,
        value: float = 0.0,
        risk_level: Optional[RiskLevel] = None,
        is_change_output: bool = False
    ) -> LayoutLink:
        """Build a link from nodes or ids; endpoints are resolved to ids here, once."""
        return LayoutLink(
            source_id=_endpoint_id(source),
            target_id=_endpoint_id(target),
            value=value,
            risk_level=risk_level,
            is_change_output=is_change_output
        )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_id, self.target_id)

    def with_path(self, path: CurvePath) -> LayoutLink:
        return replace(self, path=path)


@dataclass(frozen=True)
class LayoutGraph:
    """Node/link collection produced by one aggregation pass."""
    nodes: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'nodes', tuple(self.nodes))
        object.__setattr__(self, 'links', tuple(self.links))
        ids = [node.node_id for node in self.nodes]
        if len(ids) != len(set(ids)):
            raise ValueError("LayoutGraph node ids must be unique")

    def node_index(self) -> Dict[str, LayoutNode]:
        return {node.node_id: node for node in self.nodes}

    @property
    def is_empty(self) -> bool:
        return not self.nodes


# =============================================================================
# PACKER TYPES
# =============================================================================

@dataclass(frozen=True)
class WeightedItem:
    """An item to tile; weight is usually a BTC amount."""
    item_id: str
    weight: float
    risk_level: Optional[RiskLevel] = None
    group_key: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        if not self.item_id:
            raise ValueError("item_id must be a non-empty string")
        _require_amount("weight", self.weight)
        object.__setattr__(self, 'risk_level', RiskLevel.parse(self.risk_level))


@dataclass(frozen=True)
class Tile:
    """One packed rectangle."""
    item_id: str
    rect: Rect
    weight: float
    risk_level: Optional[RiskLevel] = None
    label: Optional[str] = None

    @property
    def area(self) -> float:
        return self.rect.area


@dataclass(frozen=True)
class TileSection:
    """A horizontal band of tiles belonging to one group (risk tier, wallet, tag)."""
    group_key: str
    rect: Rect
    tiles: Tuple[Tile, ...]
    total_weight: float

    @property
    def count(self) -> int:
        return len(self.tiles)


# =============================================================================
# TIMELINE TYPES
# =============================================================================

DateLike = Union[datetime, date, str, None]


@dataclass(frozen=True)
class TimedEntity:
    """A node plus its raw (possibly unparseable) date."""
    node: LayoutNode
    date: DateLike = None


@dataclass(frozen=True)
class TimeBucket:
    """A contiguous slice of the timeline axis."""
    start: datetime
    end: datetime
    label: str
    x: float
    width: float

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end
