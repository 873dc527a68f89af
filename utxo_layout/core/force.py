"""
Force-Directed Placer
=====================

Positions an arbitrary node/link graph by a fixed number of physics
iterations: pairwise repulsion, spring attraction along links and a weak
pull toward the center.

DETERMINISM:
============
- Fixed iteration count, no dynamic stop condition
- Initial positions come from a grid plus jitter drawn from an injectable
  numpy Generator; same input + same seed => same output
- Positions live in an owned (n, 2) buffer indexed by node order; input
  nodes are never mutated, new LayoutNode records are returned

NUMERIC GUARDS:
===============
- Coincident pairs (distance < 1) contribute no force
- A non-finite coordinate reverts to its value from the previous iteration
- Coordinates are clipped to ±position_limit
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
import math

import numpy as np

from ..contracts.base import Error, ErrorCode, NodeKind, NodeSize, Point
from ..contracts.config import ForceConfig
from ..contracts.events import AuditEventType
from ..contracts.graph import LayoutLink, LayoutNode
from ..geometry import bowed_curve, center_array, log_scaled_size
from ..observability import LayoutObserver
from .topology import GraphTopology


@dataclass(frozen=True)
class ForceLayout:
    """Result of one simulation run."""
    nodes: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)
    iterations: int = 0
    final_displacement: float = 0.0  # Largest node move during the last iteration
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    def positions(self) -> Dict[str, Point]:
        return {node.node_id: node.position for node in self.nodes if node.position is not None}


class ForceDirectedPlacer:
    """
    O(n²) per-iteration force simulation.

    Callers cap the node count upstream (see EntityAggregator.truncate).
    """

    def __init__(
        self,
        config: Optional[ForceConfig] = None,
        observer: Optional[LayoutObserver] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ):
        self._config = config or ForceConfig()
        self._observer = observer or LayoutObserver()
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    @property
    def config(self) -> ForceConfig:
        return self._config

    # =========================================================================
    # SIZING AND REST LENGTHS
    # =========================================================================

    def node_size(self, node: LayoutNode) -> NodeSize:
        """Circle whose diameter is log-scaled from the amount, within [min, max]."""
        diameter = log_scaled_size(
            node.amount,
            self._config.min_node_size,
            self._config.max_node_size,
            scale=self._config.size_scale
        )
        return NodeSize(width=diameter, height=diameter)

    def ideal_distance(self, source: LayoutNode, target: LayoutNode) -> float:
        """
        Spring rest length.

        Transaction <-> non-transaction links rest at the shorter address
        distance; everything else at the transaction distance. Both radii are
        added so large nodes do not touch.
        """
        is_tx = (source.kind == NodeKind.TRANSACTION, target.kind == NodeKind.TRANSACTION)
        base = (
            self._config.address_link_distance
            if is_tx[0] != is_tx[1]
            else self._config.transaction_link_distance
        )
        return base + self.node_size(source).radius + self.node_size(target).radius

    def _mass(self, node: LayoutNode) -> float:
        return self._config.transaction_mass if node.kind == NodeKind.TRANSACTION else 1.0

    # =========================================================================
    # SEEDING
    # =========================================================================

    def seed_positions(
        self,
        nodes: Sequence[LayoutNode],
        topology: GraphTopology,
        prior: Optional[Mapping[str, Point]] = None
    ) -> np.ndarray:
        """
        Grid-plus-jitter seeding centered on config.center.

        Nodes are visited component by component so connected nodes start in
        neighbouring cells. A prior position, when finite, replaces the seed.
        """
        count = len(nodes)
        index = {node.node_id: i for i, node in enumerate(nodes)}
        columns = min(self._config.grid_columns, count)
        rows = math.ceil(count / columns)
        center = self._config.center

        jitter = (self._rng.random((count, 2)) - 0.5) * self._config.jitter
        positions = np.zeros((count, 2), dtype=float)

        for cell, node_id in enumerate(topology.component_order()):
            col, row = cell % columns, cell // columns
            positions[index[node_id]] = (
                center.x + (col - (columns - 1) / 2.0) * self._config.grid_spacing_x,
                center.y + (row - (rows - 1) / 2.0) * self._config.grid_spacing_y,
            )
        positions += jitter

        if prior:
            for node_id, point in prior.items():
                i = index.get(node_id)
                if i is not None and point is not None and point.is_finite:
                    positions[i] = (point.x, point.y)

        return positions

    # =========================================================================
    # SIMULATION
    # =========================================================================

    def simulate(
        self,
        nodes: Sequence[LayoutNode],
        links: Sequence[LayoutLink],
        iterations: Optional[int] = None,
        prior: Optional[Mapping[str, Point]] = None
    ) -> ForceLayout:
        """
        Run the fixed iteration budget and return positioned nodes and links.

        The post-pass translates the bounding box of all nodes onto
        config.center.
        """
        with self._observer.timed("force"):
            layout = self._simulate(list(nodes), list(links), iterations, prior)
        self._observer.collect_metric("nodes_placed", len(layout.nodes), {"component": "force"})
        return layout

    def _simulate(
        self,
        nodes: List[LayoutNode],
        links: List[LayoutLink],
        iterations: Optional[int],
        prior: Optional[Mapping[str, Point]]
    ) -> ForceLayout:
        budget = self._config.iterations if iterations is None else iterations
        if budget < 0:
            raise ValueError("iterations must be non-negative")
        if not nodes:
            return ForceLayout()

        topology = GraphTopology(nodes, links)
        warnings = self._report_dropped(topology.dropped_links)

        index = {node.node_id: i for i, node in enumerate(nodes)}
        sizes = [self.node_size(node) for node in nodes]
        radii = np.array([size.radius for size in sizes], dtype=float)
        kinds = np.array([list(NodeKind).index(node.kind) for node in nodes])

        same_kind = np.where(kinds[:, None] == kinds[None, :], self._config.same_kind_factor, 1.0)
        crowd_distance = radii[:, None] + radii[None, :] + self._config.min_separation

        springs = []
        for link in topology.links:
            s, t = index[link.source_id], index[link.target_id]
            if s == t:
                continue
            source, target = nodes[s], nodes[t]
            inverse_s, inverse_t = 1.0 / self._mass(source), 1.0 / self._mass(target)
            springs.append((
                s, t,
                self.ideal_distance(source, target),
                inverse_s / (inverse_s + inverse_t),
                inverse_t / (inverse_s + inverse_t),
            ))

        positions = self.seed_positions(nodes, topology, prior)
        center = np.array([self._config.center.x, self._config.center.y])
        final_displacement = 0.0
        clamps = 0

        for _ in range(budget):
            previous = positions.copy()

            displacement = self._repulsion(positions, same_kind, crowd_distance)
            displacement += self._config.centering_strength * (center - positions)
            positions = positions + self._limit_steps(displacement)

            self._attract(positions, springs)

            clamps += self._guard(positions, previous)
            moves = np.hypot(*(positions - previous).T)
            final_displacement = float(moves.max()) if moves.size else 0.0

        if clamps:
            error = Error.now(
                ErrorCode.NON_FINITE_POSITION,
                "Non-finite coordinates reverted to last finite value",
                clamps=clamps
            )
            self._observer.log_error("force", AuditEventType.NUMERIC_GUARD, error)
            self._observer.collect_metric("non_finite_clamps_total", clamps)
            warnings.append(error)

        positions = center_array(positions, self._config.center)

        placed = tuple(
            node.placed(Point(float(positions[i, 0]), float(positions[i, 1])), sizes[i])
            for i, node in enumerate(nodes)
        )
        by_id = {node.node_id: node for node in placed}
        routed = tuple(
            link.with_path(bowed_curve(
                by_id[link.source_id].position,
                by_id[link.target_id].position,
                self._config.link_curvature
            ))
            for link in topology.links
        )

        return ForceLayout(
            nodes=placed,
            links=routed,
            iterations=budget,
            final_displacement=final_displacement,
            warnings=tuple(warnings)
        )

    def _repulsion(
        self,
        positions: np.ndarray,
        same_kind: np.ndarray,
        crowd_distance: np.ndarray
    ) -> np.ndarray:
        """
        All-pairs repulsion: repulsion_constant / distance², scaled by the
        same-kind factor and by the crowding factor inside sumOfRadii + minSeparation.
        """
        delta = positions[:, None, :] - positions[None, :, :]
        distance = np.hypot(delta[..., 0], delta[..., 1])
        active = distance >= 1.0
        safe = np.where(active, distance, 1.0)

        magnitude = np.where(active, self._config.repulsion_constant / (safe * safe), 0.0)
        magnitude = magnitude * same_kind
        magnitude = magnitude * np.where(distance < crowd_distance, self._config.crowding_factor, 1.0)

        unit = delta / safe[..., None]
        return (unit * magnitude[..., None]).sum(axis=1)

    def _limit_steps(self, displacement: np.ndarray) -> np.ndarray:
        length = np.hypot(displacement[:, 0], displacement[:, 1])
        limit = self._config.max_step
        scale = np.where(length > limit, limit / np.where(length > 0, length, 1.0), 1.0)
        return displacement * scale[:, None]

    def _attract(self, positions: np.ndarray, springs: List[Tuple[int, int, float, float, float]]):
        """
        Spring relaxation, one link at a time, in place.

        (actual − ideal) × attraction_constant, split between the endpoints
        by inverse mass so transactions move less than addresses.
        """
        k = self._config.attraction_constant
        for s, t, ideal, share_s, share_t in springs:
            dx = positions[t, 0] - positions[s, 0]
            dy = positions[t, 1] - positions[s, 1]
            distance = math.hypot(dx, dy)
            if distance < 1.0:
                continue
            pull = (distance - ideal) * k / distance
            positions[s, 0] += dx * pull * share_s
            positions[s, 1] += dy * pull * share_s
            positions[t, 0] -= dx * pull * share_t
            positions[t, 1] -= dy * pull * share_t

    def _guard(self, positions: np.ndarray, previous: np.ndarray) -> int:
        """Revert non-finite coordinates and clip the rest; returns revert count."""
        bad = ~np.isfinite(positions)
        count = int(bad.sum())
        if count:
            positions[bad] = previous[bad]
        limit = self._config.position_limit
        np.clip(positions, -limit, limit, out=positions)
        return count

    def _report_dropped(self, dropped: Sequence[LayoutLink]) -> List[Error]:
        warnings: List[Error] = []
        for link in dropped:
            error = Error.now(
                ErrorCode.DANGLING_LINK,
                "Link endpoint missing from this layout pass",
                source=link.source_id,
                target=link.target_id
            )
            self._observer.log_error("force", AuditEventType.INPUT_DROPPED, error)
            warnings.append(error)
        if dropped:
            self._observer.collect_metric("links_dropped_total", len(dropped), {"component": "force"})
        return warnings


def center_layout(nodes: Sequence[LayoutNode], target: Point = Point(0.0, 0.0)) -> Tuple[LayoutNode, ...]:
    """
    Post-pass centering for already-positioned nodes.

    Idempotent: running it on its own output changes nothing.
    """
    placed = [node for node in nodes if node.position is not None]
    if not placed:
        return tuple(nodes)
    positions = np.array([(n.position.x, n.position.y) for n in placed], dtype=float)
    shifted = center_array(positions, target)
    moved = {n.node_id: Point(float(x), float(y)) for n, (x, y) in zip(placed, shifted)}
    return tuple(
        node.placed(moved[node.node_id]) if node.node_id in moved else node
        for node in nodes
    )
