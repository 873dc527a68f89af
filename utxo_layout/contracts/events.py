"""
Audit Event Contracts

Immutable records emitted by layout passes for the observability layer.
Events describe what a pass DID (dropped, clamped, truncated); they never
feed back into layout decisions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class AuditEventType(Enum):
    """Explicit audit event types."""
    LAYOUT = "layout"
    DATA_QUALITY = "data_quality"
    NUMERIC_GUARD = "numeric_guard"
    INPUT_DROPPED = "input_dropped"
    TRUNCATION = "truncation"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which component generated this
    action: str
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
