"""
Layout Core

The four layout components plus the shared topology helper. Each component
is a synchronous pure function of (input, config, seed) and never mutates
its input records.
"""

from .topology import GraphTopology, LinkNormalization
from .treemap import AreaPacker, TreemapLayout, UNCLASSIFIED, worst_ratio
from .force import ForceDirectedPlacer, ForceLayout, center_layout
from .timeline import ChronologicalPlacer, TimelineLayout, parse_date
from .flow import FlowColumnLayout, FlowLayout

__all__ = [
    'GraphTopology', 'LinkNormalization',
    'AreaPacker', 'TreemapLayout', 'UNCLASSIFIED', 'worst_ratio',
    'ForceDirectedPlacer', 'ForceLayout', 'center_layout',
    'ChronologicalPlacer', 'TimelineLayout', 'parse_date',
    'FlowColumnLayout', 'FlowLayout',
]
