"""
Layout Contracts

Immutable data shared by all layout components.

PRINCIPLES:
1. Immutable (Frozen)
2. Validation at construction, nowhere else
3. No rendering logic
"""

from .base import (
    ErrorCode, Error, Result, RiskLevel, NodeKind, Point, Rect, NodeSize
)
from .graph import (
    CurvePath, LayoutNode, LayoutLink, LayoutGraph,
    WeightedItem, Tile, TileSection, TimedEntity, TimeBucket
)
from .events import AuditEventType, AuditLogEntry, MetricPoint
from .config import (
    BucketUnit, PackerConfig, ForceConfig, TimelineConfig, FlowConfig, LayoutConfig
)

__all__ = [
    'ErrorCode', 'Error', 'Result', 'RiskLevel', 'NodeKind', 'Point', 'Rect', 'NodeSize',
    'CurvePath', 'LayoutNode', 'LayoutLink', 'LayoutGraph',
    'WeightedItem', 'Tile', 'TileSection', 'TimedEntity', 'TimeBucket',
    'AuditEventType', 'AuditLogEntry', 'MetricPoint',
    'BucketUnit', 'PackerConfig', 'ForceConfig', 'TimelineConfig', 'FlowConfig', 'LayoutConfig',
]
