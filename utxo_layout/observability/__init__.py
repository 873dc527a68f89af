"""
Observability & Audit Layer

RESPONSIBILITY: Recording what each layout pass dropped, clamped or truncated
ALLOWED INPUTS: Audit entries and metric points from any layout component
OUTPUTS: AuditLogEntry lists, metric series, audit reports

WHAT THIS LAYER MUST NOT DO:
============================
- Modify layout behavior
- Filter or interpret events (only record them)
- Raise into the layout pass that reported an event

BOUNDARY ENFORCEMENT:
=====================
- Collectors are append-only
- Readers receive copies, never the internal lists
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
import hashlib
import itertools
import time

from ..contracts.base import Error
from ..contracts.events import AuditEventType, AuditLogEntry, MetricPoint


LAYERS = ('aggregation', 'packer', 'force', 'timeline', 'flow', 'engine')


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only audit collector for a single layout component.
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []

    def collect(self, entry: AuditLogEntry):
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)

    def get_entries(self, event_type: Optional[AuditEventType] = None) -> List[AuditLogEntry]:
        """Get entries, optionally filtered by event type."""
        if event_type is None:
            return list(self._entries)
        return [e for e in self._entries if e.event_type == event_type]

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Append-only time series for layout passes.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="layout_duration_ms",
                metric_type=MetricType.TIMING,
                description="Wall time of one layout pass in milliseconds",
                labels=("component",)
            ),
            MetricDefinition(
                name="nodes_placed",
                metric_type=MetricType.GAUGE,
                description="Number of nodes or tiles positioned by the last pass",
                labels=("component",)
            ),
            MetricDefinition(
                name="links_dropped_total",
                metric_type=MetricType.COUNTER,
                description="Links dropped because an endpoint was missing or misplaced",
                labels=("component",)
            ),
            MetricDefinition(
                name="dates_unparseable_total",
                metric_type=MetricType.COUNTER,
                description="Entities bucketed at the timeline start for lack of a date"
            ),
            MetricDefinition(
                name="non_finite_clamps_total",
                metric_type=MetricType.COUNTER,
                description="Coordinates reverted to their last finite value"
            ),
            MetricDefinition(
                name="nodes_truncated_total",
                metric_type=MetricType.COUNTER,
                description="Nodes removed to respect the max_nodes bound"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = []

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        return list(self._metrics.get(metric_name, []))

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def total(self, metric_name: str) -> float:
        return sum(p.value for p in self._metrics.get(metric_name, []))

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        values = [p.value for p in self._metrics.get(metric_name, [])]

        if not values:
            return {}

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# LAYOUT OBSERVER (Orchestrates all observability)
# =============================================================================

class LayoutObserver:
    """
    Central observability sink for layout passes.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Every component accepts one; a private observer is created when omitted
    """

    def __init__(self):
        self._collectors: Dict[str, LogCollector] = {
            layer: LogCollector(layer) for layer in LAYERS
        }
        self._metrics = MetricsCollector()
        self._sequence = itertools.count()

    def collect_audit(self, entry: AuditLogEntry):
        """Collect an audit log entry from any layer."""
        collector = self._collectors.get(entry.layer)
        if collector is None:
            collector = self._collectors[entry.layer] = LogCollector(entry.layer)
        collector.collect(entry)

    def log_event(
        self,
        layer: str,
        event_type: AuditEventType,
        action: str,
        entity_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        **metadata: object
    ) -> AuditLogEntry:
        """Helper to build and collect an audit entry."""
        sequence = next(self._sequence)
        entry_hash = hashlib.sha256(
            f"{layer}|{action}|{entity_id}|{sequence}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_{entry_hash}",
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            layer=layer,
            action=action,
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=tuple((k, str(v)) for k, v in sorted(metadata.items()))
        )
        self.collect_audit(entry)
        return entry

    def log_error(self, layer: str, event_type: AuditEventType, error: Error,
                  entity_id: Optional[str] = None) -> AuditLogEntry:
        """Record a degradation Error as an audit entry."""
        return self.log_event(
            layer,
            event_type,
            action=error.code.name.lower(),
            entity_id=entity_id,
            message=error.message,
            **dict(error.context)
        )

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        self._metrics.record(metric_name, value, labels)

    @contextmanager
    def timed(self, component: str) -> Iterator[None]:
        """Record layout_duration_ms for the enclosed block."""
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            self._metrics.record("layout_duration_ms", elapsed_ms, {"component": component})

    def get_unified_log(self, layers: Optional[List[str]] = None) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers, oldest first."""
        target_layers = layers or list(self._collectors.keys())

        all_entries: List[AuditLogEntry] = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries())

        all_entries.sort(key=lambda e: e.timestamp)
        return all_entries

    def get_layer_log(
        self,
        layer_name: str,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries(event_type=event_type)

    def get_metrics(self) -> MetricsCollector:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_audit_report(self) -> Dict:
        """Summarize collected entries by layer and event type."""
        entries = self.get_unified_log()

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}

        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        return {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'generated_at': datetime.now(timezone.utc).isoformat()
        }


__all__ = [
    'LogCollector', 'MetricType', 'MetricDefinition', 'MetricsCollector', 'LayoutObserver',
]
