"""
Chronological Bin Placer
========================

Places dated entities along a time axis split into day or month buckets,
stacking entities of the same bucket vertically without overlap.

GUARANTEES:
- d1 < d2 => x1 <= x2 (buckets are contiguous and ordered)
- Unknown dates never raise; they land at the start of the timeline
- Collision search is bounded by max_attempts; crowding is allowed,
  looping is not
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import math
from typing import Dict, List, Optional, Sequence, Tuple

from ..contracts.base import Error, ErrorCode, NodeSize, Point
from ..contracts.config import BucketUnit, TimelineConfig
from ..contracts.events import AuditEventType
from ..contracts.graph import DateLike, LayoutLink, LayoutNode, TimeBucket, TimedEntity
from ..geometry import arched_curve, log_scaled_size
from ..observability import LayoutObserver
from .topology import GraphTopology


@dataclass(frozen=True)
class TimelineLayout:
    """Placed nodes, arched links and the buckets that make up the axis."""
    nodes: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)
    buckets: Tuple[TimeBucket, ...] = field(default_factory=tuple)
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    def bucket_of(self, node: LayoutNode) -> Optional[TimeBucket]:
        """Bucket whose x-span holds the node center."""
        if node.position is None:
            return None
        for bucket in self.buckets:
            if bucket.x <= node.position.x < bucket.x + bucket.width:
                return bucket
        return self.buckets[-1] if self.buckets else None


# =============================================================================
# DATE HANDLING
# =============================================================================

def parse_date(value: DateLike) -> Optional[datetime]:
    """
    Normalize a date-like value to a naive UTC datetime.

    Accepts datetime, date and ISO-8601 strings (a trailing 'Z' is
    understood). Anything else yields None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def bucket_floor(moment: datetime, unit: BucketUnit) -> datetime:
    if unit == BucketUnit.MONTH:
        return datetime(moment.year, moment.month, 1)
    return datetime(moment.year, moment.month, moment.day)


def bucket_shift(start: datetime, unit: BucketUnit, steps: int) -> datetime:
    """Move a bucket start by whole units (negative steps go back)."""
    if unit == BucketUnit.DAY:
        return start + timedelta(days=steps)
    months = start.year * 12 + (start.month - 1) + steps
    return datetime(months // 12, months % 12 + 1, 1)


def bucket_label(start: datetime, unit: BucketUnit) -> str:
    return start.strftime("%b %Y") if unit == BucketUnit.MONTH else start.strftime("%Y-%m-%d")


# =============================================================================
# PLACER
# =============================================================================

class ChronologicalPlacer:
    """
    Bucketed timeline layout.

    x comes from the date (bucket start + fraction of the bucket).
    y starts at the baseline and alternates away from it on collision.
    """

    def __init__(
        self,
        config: Optional[TimelineConfig] = None,
        observer: Optional[LayoutObserver] = None
    ):
        self._config = config or TimelineConfig()
        self._observer = observer or LayoutObserver()

    @property
    def config(self) -> TimelineConfig:
        return self._config

    def node_size(self, node: LayoutNode) -> NodeSize:
        return NodeSize(
            width=log_scaled_size(
                node.amount, self._config.min_node_width, self._config.max_node_width,
                base=80.0, scale=40.0
            ),
            height=log_scaled_size(
                node.amount, self._config.min_node_height, self._config.max_node_height,
                base=50.0, scale=25.0
            ),
        )

    def build_buckets(self, moments: Sequence[datetime], unit: BucketUnit) -> Tuple[TimeBucket, ...]:
        """
        Contiguous buckets covering [min, max] padded by one unit on each side.

        Every bucket gets the same share of timeline_width.
        """
        known = list(moments) or [self._config.fallback_date]
        first = bucket_shift(bucket_floor(min(known), unit), unit, -1)
        last = bucket_shift(bucket_floor(max(known), unit), unit, 1)

        starts = [first]
        while starts[-1] < last:
            starts.append(bucket_shift(starts[-1], unit, 1))

        width = self._config.timeline_width / len(starts)
        return tuple(
            TimeBucket(
                start=start,
                end=bucket_shift(start, unit, 1),
                label=bucket_label(start, unit),
                x=i * width,
                width=width
            )
            for i, start in enumerate(starts)
        )

    def place(
        self,
        entities: Sequence[TimedEntity],
        bucket_unit: Optional[BucketUnit] = None,
        links: Sequence[LayoutLink] = ()
    ) -> TimelineLayout:
        with self._observer.timed("timeline"):
            layout = self._place(list(entities), bucket_unit or self._config.bucket_unit, list(links))
        self._observer.collect_metric("nodes_placed", len(layout.nodes), {"component": "timeline"})
        return layout

    def _place(
        self,
        entities: List[TimedEntity],
        unit: BucketUnit,
        links: List[LayoutLink]
    ) -> TimelineLayout:
        if not entities:
            return TimelineLayout()

        warnings: List[Error] = []
        moments: Dict[str, Optional[datetime]] = {}
        for entity in entities:
            moment = parse_date(entity.date)
            moments[entity.node.node_id] = moment
            if moment is None:
                error = Error.now(
                    ErrorCode.UNPARSEABLE_DATE,
                    "Missing or unparseable date; placed at timeline start",
                    raw=entity.date
                )
                self._observer.log_error(
                    "timeline", AuditEventType.DATA_QUALITY, error, entity_id=entity.node.node_id
                )
                warnings.append(error)

        unknown = len(warnings)
        if unknown:
            self._observer.collect_metric("dates_unparseable_total", unknown)

        buckets = self.build_buckets([m for m in moments.values() if m is not None], unit)

        # Chronological order, unknown dates first, ties by id
        ordered = sorted(
            entities,
            key=lambda e: (
                moments[e.node.node_id] is not None,
                moments[e.node.node_id] or buckets[0].start,
                e.node.node_id
            )
        )

        occupied: Dict[int, List[Point]] = {}
        placed: Dict[str, LayoutNode] = {}
        for entity in ordered:
            moment = moments[entity.node.node_id]
            index, x = self._x_position(moment, buckets)
            y = self._free_slot(x, occupied.setdefault(index, []))
            occupied[index].append(Point(x, y))
            placed[entity.node.node_id] = entity.node.placed(Point(x, y), self.node_size(entity.node))

        nodes = tuple(placed[entity.node.node_id] for entity in entities)

        topology = GraphTopology(nodes, links)
        for link in topology.dropped_links:
            error = Error.now(
                ErrorCode.DANGLING_LINK,
                "Link endpoint missing from timeline",
                source=link.source_id,
                target=link.target_id
            )
            self._observer.log_error("timeline", AuditEventType.INPUT_DROPPED, error)
            warnings.append(error)
        if topology.dropped_links:
            self._observer.collect_metric(
                "links_dropped_total", len(topology.dropped_links), {"component": "timeline"}
            )

        routed = tuple(
            link.with_path(arched_curve(
                placed[link.source_id].right_anchor(),
                placed[link.target_id].left_anchor(),
                self._config.max_arch_height,
                self._config.arch_factor
            ))
            for link in topology.links
        )

        return TimelineLayout(nodes=nodes, links=routed, buckets=buckets, warnings=tuple(warnings))

    @staticmethod
    def _x_position(moment: Optional[datetime], buckets: Tuple[TimeBucket, ...]) -> Tuple[int, float]:
        """(bucket index, x). Unknown dates map to the first bucket at fraction 0."""
        if moment is None:
            return 0, buckets[0].x
        for index, bucket in enumerate(buckets):
            if bucket.contains(moment):
                span = (bucket.end - bucket.start).total_seconds()
                fraction = (moment - bucket.start).total_seconds() / span
                x = bucket.x + fraction * bucket.width
                if index + 1 < len(buckets):
                    x = min(x, buckets[index + 1].x)
                return index, x
        last = len(buckets) - 1
        return last, buckets[last].x + buckets[last].width

    def _free_slot(self, x: float, taken: List[Point]) -> float:
        """
        First y whose point (x, y) is at least min_distance away from every
        point already placed in the bucket.

        Tries baseline, +step, -step, +2step, -2step, ... for max_attempts
        candidates, then accepts the last one tried.
        """
        baseline = self._config.baseline_y
        step = self._config.offset_step
        candidate = baseline
        for attempt in range(self._config.max_attempts + 1):
            magnitude = (attempt + 1) // 2
            sign = 1 if attempt % 2 else -1
            candidate = baseline + sign * magnitude * step
            if all(math.hypot(x - p.x, candidate - p.y) >= self._config.min_distance for p in taken):
                return candidate
        return candidate
