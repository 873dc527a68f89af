"""
Layout Engine
=============

Facade over aggregation, truncation and the four layout components.

One call = one pass: UTXO records in, a LayoutResult out. No state is
carried between calls except an optional prior result used to seed
force positions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

from .aggregation import EntityAggregator, TreemapGrouping, UtxoRecord
from .contracts.base import Error, ErrorCode, NodeKind, Point, Rect
from .contracts.config import LayoutConfig
from .contracts.events import AuditEventType
from .contracts.graph import (
    LayoutGraph, LayoutLink, LayoutNode, TimeBucket, Tile, TileSection, TimedEntity, WeightedItem
)
from .core.flow import FlowColumnLayout, INPUTS, OUTPUTS, PROCESSORS
from .core.force import ForceDirectedPlacer
from .core.timeline import ChronologicalPlacer
from .core.treemap import AreaPacker
from .observability import LayoutObserver


class VisualizationMode(Enum):
    GRAPH = "graph"
    TREEMAP = "treemap"
    TIMELINE = "timeline"
    FLOW = "flow"


DEFAULT_VIEWPORT = Rect(0.0, 0.0, 1200.0, 800.0)


@dataclass(frozen=True)
class LayoutResult:
    """
    Everything the renderer needs for one view.

    Fields that do not apply to the mode stay empty.
    """
    mode: VisualizationMode
    nodes: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)
    tiles: Tuple[Tile, ...] = field(default_factory=tuple)
    sections: Tuple[TileSection, ...] = field(default_factory=tuple)
    buckets: Tuple[TimeBucket, ...] = field(default_factory=tuple)
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    def positions(self) -> Dict[str, Point]:
        return {node.node_id: node.position for node in self.nodes if node.position is not None}

    @property
    def is_empty(self) -> bool:
        return not (self.nodes or self.tiles)


class LayoutEngine:
    """
    Runs one layout pass per call.

    All components share this engine's observer, so a single audit trail
    covers aggregation through placement.
    """

    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        observer: Optional[LayoutObserver] = None
    ):
        self._config = config or LayoutConfig()
        self._observer = observer or LayoutObserver()
        self._aggregator = EntityAggregator(self._observer)

    @property
    def config(self) -> LayoutConfig:
        return self._config

    @property
    def observer(self) -> LayoutObserver:
        return self._observer

    def layout_utxos(
        self,
        utxos: Sequence[UtxoRecord],
        mode: Union[VisualizationMode, str] = VisualizationMode.GRAPH,
        grouping: Union[TreemapGrouping, str] = TreemapGrouping.RISK,
        prior: Optional[LayoutResult] = None,
        viewport: Rect = DEFAULT_VIEWPORT
    ) -> LayoutResult:
        """Aggregate, truncate to max_nodes, then run the component for `mode`."""
        mode = VisualizationMode(mode)
        with self._observer.timed("engine"):
            if not utxos:
                self._observer.log_event("engine", AuditEventType.LAYOUT, "empty_input", mode=mode.value)
                return LayoutResult(mode=mode)

            if mode == VisualizationMode.GRAPH:
                result = self.layout_graph(self._aggregator.traceability_graph(utxos), prior)
            elif mode == VisualizationMode.TREEMAP:
                result = self.layout_treemap(utxos, TreemapGrouping(grouping), viewport)
            elif mode == VisualizationMode.TIMELINE:
                entities, links = self._aggregator.timeline_entities(utxos)
                result = self.layout_timeline(entities, links)
            else:
                result = self.layout_flow(self._aggregator.flow_columns(utxos).as_graph())

        self._observer.log_event(
            "engine", AuditEventType.LAYOUT, "layout_utxos",
            mode=mode.value, nodes=len(result.nodes), tiles=len(result.tiles),
            warnings=len(result.warnings)
        )
        return result

    # =========================================================================
    # PER-MODE PASSES
    # =========================================================================

    def layout_graph(self, graph: LayoutGraph, prior: Optional[LayoutResult] = None) -> LayoutResult:
        truncation = self._aggregator.truncate(graph, self._config.max_nodes)
        placer = ForceDirectedPlacer(
            self._config.force,
            self._observer,
            rng=np.random.default_rng(self._config.seed)
        )
        layout = placer.simulate(
            truncation.graph.nodes,
            truncation.graph.links,
            prior=prior.positions() if prior is not None else None
        )
        return LayoutResult(
            mode=VisualizationMode.GRAPH,
            nodes=layout.nodes,
            links=layout.links,
            warnings=truncation.warnings + layout.warnings
        )

    def layout_treemap(
        self,
        utxos: Sequence[UtxoRecord],
        grouping: TreemapGrouping = TreemapGrouping.RISK,
        viewport: Rect = DEFAULT_VIEWPORT
    ) -> LayoutResult:
        items, warnings = self._cap_items(self._aggregator.treemap_items(utxos))
        kept = {item.item_id for item in items}
        capped = [u for u in utxos if u.outpoint in kept]

        packer = AreaPacker(self._config.packer, self._observer)
        if grouping == TreemapGrouping.NONE:
            layout = packer.pack_layout(items, viewport)
        elif grouping == TreemapGrouping.RISK:
            layout = packer.pack_by_risk(items, viewport)
        else:
            layout = packer.pack_groups(self._aggregator.grouped_items(capped, grouping), viewport)

        return LayoutResult(
            mode=VisualizationMode.TREEMAP,
            tiles=layout.tiles,
            sections=layout.sections,
            warnings=warnings + layout.warnings
        )

    def layout_timeline(
        self,
        entities: Sequence[TimedEntity],
        links: Sequence[LayoutLink] = ()
    ) -> LayoutResult:
        graph = LayoutGraph(nodes=tuple(e.node for e in entities), links=tuple(links))
        truncation = self._aggregator.truncate(graph, self._config.max_nodes)
        kept = {node.node_id for node in truncation.graph.nodes}

        placer = ChronologicalPlacer(self._config.timeline, self._observer)
        layout = placer.place(
            [e for e in entities if e.node.node_id in kept],
            self._config.timeline.bucket_unit,
            truncation.graph.links
        )
        return LayoutResult(
            mode=VisualizationMode.TIMELINE,
            nodes=layout.nodes,
            links=layout.links,
            buckets=layout.buckets,
            warnings=truncation.warnings + layout.warnings
        )

    def layout_flow(self, graph: LayoutGraph) -> LayoutResult:
        """Nodes are assigned to columns by kind: input addresses, transactions, the rest."""
        truncation = self._aggregator.truncate(graph, self._config.max_nodes)
        columns = ([], [], [])
        for node in truncation.graph.nodes:
            if node.kind == NodeKind.INPUT_ADDRESS:
                columns[INPUTS].append(node)
            elif node.kind == NodeKind.TRANSACTION:
                columns[PROCESSORS].append(node)
            else:
                columns[OUTPUTS].append(node)

        layout = FlowColumnLayout(self._config.flow, self._observer).layout(
            columns[INPUTS], columns[PROCESSORS], columns[OUTPUTS], truncation.graph.links
        )
        return LayoutResult(
            mode=VisualizationMode.FLOW,
            nodes=layout.nodes,
            links=layout.links,
            warnings=truncation.warnings + layout.warnings
        )

    def _cap_items(self, items: Sequence[WeightedItem]) -> Tuple[Tuple[WeightedItem, ...], Tuple[Error, ...]]:
        limit = self._config.max_nodes
        if len(items) <= limit:
            return tuple(items), ()
        ranked = sorted(items, key=lambda i: (-i.weight, i.item_id))
        keep = {item.item_id for item in ranked[:limit]}
        removed = len(items) - limit
        error = Error.now(
            ErrorCode.NODES_TRUNCATED,
            "Tile count above max_nodes; smallest tiles removed",
            max_nodes=limit,
            removed_nodes=removed
        )
        self._observer.log_error("engine", AuditEventType.TRUNCATION, error)
        self._observer.collect_metric("nodes_truncated_total", removed)
        return tuple(item for item in items if item.item_id in keep), (error,)
