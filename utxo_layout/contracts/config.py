"""
Layout Configuration

Every tunable is passed explicitly per invocation; nothing is read from
globals or the environment. Defaults reproduce the wallet views' constants.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .base import Point, RiskLevel


class BucketUnit(Enum):
    """Granularity of timeline buckets."""
    DAY = "day"
    MONTH = "month"


@dataclass(frozen=True)
class PackerConfig:
    """Configuration for the proportional area packer."""
    min_tile_size: float = 8.0          # Side of the smallest clickable tile
    min_section_height: float = 60.0    # Floor for a grouped section's band
    tier_order: Tuple[RiskLevel, ...] = (RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW)

    def __post_init__(self):
        if self.min_tile_size <= 0:
            raise ValueError("min_tile_size must be positive")
        if self.min_section_height < 0:
            raise ValueError("min_section_height must be non-negative")


@dataclass(frozen=True)
class ForceConfig:
    """Configuration for the force-directed placer."""
    iterations: int = 100
    repulsion_constant: float = 800.0
    attraction_constant: float = 0.2
    min_node_size: float = 30.0
    max_node_size: float = 100.0
    size_scale: float = 15.0

    # Repulsion shaping
    same_kind_factor: float = 1.5
    crowding_factor: float = 3.0
    min_separation: float = 40.0

    # Link rest lengths (before adding both radii)
    address_link_distance: float = 150.0
    transaction_link_distance: float = 300.0
    transaction_mass: float = 2.0

    # Drift control
    centering_strength: float = 0.002
    center: Point = Point(0.0, 0.0)

    # Grid-plus-jitter seeding
    grid_columns: int = 5
    grid_spacing_x: float = 300.0
    grid_spacing_y: float = 200.0
    jitter: float = 100.0

    # Numeric guards
    max_step: float = 50.0
    position_limit: float = 1e6

    link_curvature: float = 0.15

    def __post_init__(self):
        if self.iterations < 0:
            raise ValueError("iterations must be non-negative")
        if self.min_node_size <= 0 or self.max_node_size < self.min_node_size:
            raise ValueError("node size bounds must satisfy 0 < min <= max")
        if self.grid_columns < 1:
            raise ValueError("grid_columns must be at least 1")


@dataclass(frozen=True)
class TimelineConfig:
    """Configuration for the chronological bin placer."""
    bucket_unit: BucketUnit = BucketUnit.MONTH
    timeline_width: float = 1200.0
    baseline_y: float = 250.0
    min_distance: float = 60.0
    offset_step: float = 40.0
    max_attempts: int = 20

    min_node_width: float = 100.0
    max_node_width: float = 180.0
    min_node_height: float = 60.0
    max_node_height: float = 100.0

    max_arch_height: float = 200.0
    arch_factor: float = 0.3

    # Anchor used when no entity carries a parseable date
    fallback_date: datetime = datetime(1970, 1, 1)

    def __post_init__(self):
        if not isinstance(self.bucket_unit, BucketUnit):
            object.__setattr__(self, 'bucket_unit', BucketUnit(self.bucket_unit))
        if self.timeline_width <= 0:
            raise ValueError("timeline_width must be positive")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")


@dataclass(frozen=True)
class FlowConfig:
    """Configuration for the three-column flow layout."""
    margin: float = 20.0
    node_width: float = 180.0
    column_spacing: float = 240.0
    padding_y: float = 20.0
    min_height: float = 60.0
    max_height: float = 100.0
    processor_max_height: float = 120.0
    base_height: float = 40.0
    log_scale: float = 20.0

    def __post_init__(self):
        if self.min_height <= 0 or self.max_height < self.min_height:
            raise ValueError("flow height bounds must satisfy 0 < min <= max")

    def column_x(self, column: int) -> float:
        """Center x of the given column (0, 1, 2)."""
        return self.margin + column * (self.node_width + self.column_spacing) + self.node_width / 2


# Flat tunables accepted by LayoutConfig.from_mapping -> (component, field)
_FLAT_KEYS: Dict[str, Tuple[Optional[str], str]] = {
    'iterations': ('force', 'iterations'),
    'repulsion_constant': ('force', 'repulsion_constant'),
    'repulsionConstant': ('force', 'repulsion_constant'),
    'attraction_constant': ('force', 'attraction_constant'),
    'attractionConstant': ('force', 'attraction_constant'),
    'min_node_size': ('force', 'min_node_size'),
    'minNodeSize': ('force', 'min_node_size'),
    'max_node_size': ('force', 'max_node_size'),
    'maxNodeSize': ('force', 'max_node_size'),
    'bucket_unit': ('timeline', 'bucket_unit'),
    'bucketUnit': ('timeline', 'bucket_unit'),
    'max_nodes': (None, 'max_nodes'),
    'maxNodes': (None, 'max_nodes'),
    'seed': (None, 'seed'),
}


@dataclass(frozen=True)
class LayoutConfig:
    """Per-invocation configuration bundle for the layout engine."""
    max_nodes: int = 300
    seed: Optional[int] = None
    packer: PackerConfig = field(default_factory=PackerConfig)
    force: ForceConfig = field(default_factory=ForceConfig)
    timeline: TimelineConfig = field(default_factory=TimelineConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)

    def __post_init__(self):
        if self.max_nodes < 1:
            raise ValueError("max_nodes must be at least 1")

    @staticmethod
    def from_mapping(values: Mapping[str, Any]) -> LayoutConfig:
        """
        Build a config from flat tunables.

        Accepts camelCase or snake_case keys. Unknown keys are rejected.
        """
        top: Dict[str, Any] = {}
        nested: Dict[str, Dict[str, Any]] = {}

        for key, value in values.items():
            if key not in _FLAT_KEYS:
                raise ValueError(f"Unknown layout tunable: {key}")
            component, name = _FLAT_KEYS[key]
            if component is None:
                top[name] = value
            else:
                nested.setdefault(component, {})[name] = value

        config = LayoutConfig(**top)
        for component, overrides in nested.items():
            config = replace(config, **{component: replace(getattr(config, component), **overrides)})
        return config

    def to_mapping(self) -> Dict[str, Any]:
        """Flat snake_case view of the documented tunables."""
        return {
            'iterations': self.force.iterations,
            'repulsion_constant': self.force.repulsion_constant,
            'attraction_constant': self.force.attraction_constant,
            'min_node_size': self.force.min_node_size,
            'max_node_size': self.force.max_node_size,
            'bucket_unit': self.timeline.bucket_unit.value,
            'max_nodes': self.max_nodes,
            'seed': self.seed,
        }


__all__ = [
    'BucketUnit', 'PackerConfig', 'ForceConfig', 'TimelineConfig',
    'FlowConfig', 'LayoutConfig',
]
