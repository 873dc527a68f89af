"""
UTXO Layout Engine

Geometric layout for Bitcoin UTXO visual analytics: a squarified treemap
packer, a force-directed placer, a chronological bin placer and a
three-column flow layout, fed by an entity aggregator over UTXO records.
"""

from .contracts import *  # noqa: F401,F403
from .contracts import __all__ as _contracts_all
from .aggregation import EntityAggregator, FlowColumns, TreemapGrouping, Truncation, UtxoRecord
from .core import (
    AreaPacker, ChronologicalPlacer, FlowColumnLayout, FlowLayout, ForceDirectedPlacer,
    ForceLayout, GraphTopology, TimelineLayout, TreemapLayout
)
from .engine import LayoutEngine, LayoutResult, VisualizationMode
from .observability import LayoutObserver

__version__ = "0.1.0"

__all__ = list(_contracts_all) + [
    'EntityAggregator', 'FlowColumns', 'TreemapGrouping', 'Truncation', 'UtxoRecord',
    'AreaPacker', 'ChronologicalPlacer', 'FlowColumnLayout', 'FlowLayout', 'ForceDirectedPlacer',
    'ForceLayout', 'GraphTopology', 'TimelineLayout', 'TreemapLayout',
    'LayoutEngine', 'LayoutResult', 'VisualizationMode', 'LayoutObserver',
]
