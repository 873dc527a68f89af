"""
Graph Topology
==============

Structural view of a node/link collection, backed by NetworkX.

Used to:
- normalize links against the node set (dangling links are dropped)
- group nodes by connected component so the force placer can seed
  connected nodes next to each other

This module computes TOPOLOGY only. Positions are never read or written here.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

import networkx as nx

from ..contracts.graph import LayoutLink, LayoutNode


@dataclass(frozen=True)
class LinkNormalization:
    """Links split into kept and dropped, input order preserved."""
    kept: Tuple[LayoutLink, ...]
    dropped: Tuple[LayoutLink, ...]


class GraphTopology:
    """
    Directed multigraph over one layout pass's nodes and links.
    """

    def __init__(self, nodes: Iterable[LayoutNode], links: Iterable[LayoutLink] = ()):
        self._graph = nx.MultiDiGraph()
        self._order: List[str] = []

        for node in nodes:
            if node.node_id not in self._graph:
                self._order.append(node.node_id)
            self._graph.add_node(node.node_id, kind=node.kind.value)

        normalization = self.normalize_links(links)
        self._links = normalization.kept
        self._dropped = normalization.dropped

        for link in self._links:
            self._graph.add_edge(link.source_id, link.target_id, value=link.value)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._graph

    def connects(self, link: LayoutLink) -> bool:
        """Both endpoints present in this pass."""
        return self.has_node(link.source_id) and self.has_node(link.target_id)

    def normalize_links(self, links: Iterable[LayoutLink]) -> LinkNormalization:
        kept: List[LayoutLink] = []
        dropped: List[LayoutLink] = []
        for link in links:
            (kept if self.connects(link) else dropped).append(link)
        return LinkNormalization(kept=tuple(kept), dropped=tuple(dropped))

    @property
    def links(self) -> Tuple[LayoutLink, ...]:
        return self._links

    @property
    def dropped_links(self) -> Tuple[LayoutLink, ...]:
        return self._dropped

    def get_connected_components(self) -> List[Set[str]]:
        """
        Weakly connected components, largest first.

        Ties are broken by the position of each component's first node in
        the input, so the ordering is deterministic.
        """
        if not self._graph:
            return []

        position = {node_id: i for i, node_id in enumerate(self._order)}
        components = [set(c) for c in nx.weakly_connected_components(self._graph)]
        components.sort(key=lambda c: (-len(c), min(position[n] for n in c)))
        return components

    def component_order(self) -> List[str]:
        """Node ids grouped by component, input order inside each component."""
        position = {node_id: i for i, node_id in enumerate(self._order)}
        ordered: List[str] = []
        for component in self.get_connected_components():
            ordered.extend(sorted(component, key=position.__getitem__))
        return ordered

    def degree(self, node_id: str) -> int:
        return self._graph.degree(node_id) if node_id in self._graph else 0

    def get_shortest_path(self, start_id: str, end_id: str) -> Optional[List[str]]:
        """Undirected shortest path between two nodes, or None."""
        try:
            return nx.shortest_path(self._graph.to_undirected(as_view=True), source=start_id, target=end_id)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None
