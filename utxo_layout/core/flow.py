"""
Flow Column Layout
==================

Three fixed columns (inputs, processors, outputs) with S-curved links
between adjacent columns only.

GUARANTEES:
- Every node sits on one of exactly three x-coordinates
- Within a column, nodes are stacked by descending amount, ties by id
- Links that skip a column or point backwards are dropped and reported
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..contracts.base import Error, ErrorCode, NodeSize, Point
from ..contracts.config import FlowConfig
from ..contracts.events import AuditEventType
from ..contracts.graph import LayoutLink, LayoutNode
from ..geometry import flow_curve, log_scaled_size
from ..observability import LayoutObserver


INPUTS, PROCESSORS, OUTPUTS = 0, 1, 2


@dataclass(frozen=True)
class FlowLayout:
    """Placed columns and the links kept between them."""
    columns: Tuple[Tuple[LayoutNode, ...], ...] = ((), (), ())
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    @property
    def nodes(self) -> Tuple[LayoutNode, ...]:
        return tuple(node for column in self.columns for node in column)

    @property
    def height(self) -> float:
        """Lowest node edge across all columns."""
        bottoms = [
            node.position.y + node.size.height / 2
            for node in self.nodes
            if node.position is not None and node.size is not None
        ]
        return max(bottoms) if bottoms else 0.0


class FlowColumnLayout:
    """
    Sankey-style column layout.

    Column k holds at x = margin + k * (node_width + column_spacing), measured
    to the left edge; node positions are centers.
    """

    def __init__(
        self,
        config: Optional[FlowConfig] = None,
        observer: Optional[LayoutObserver] = None
    ):
        self._config = config or FlowConfig()
        self._observer = observer or LayoutObserver()

    @property
    def config(self) -> FlowConfig:
        return self._config

    def node_height(self, node: LayoutNode, column: int) -> float:
        """Processors are allowed to grow taller than the side columns."""
        maximum = self._config.processor_max_height if column == PROCESSORS else self._config.max_height
        return log_scaled_size(
            node.amount,
            self._config.min_height,
            maximum,
            base=self._config.base_height,
            scale=self._config.log_scale
        )

    def layout(
        self,
        inputs: Sequence[LayoutNode],
        processors: Sequence[LayoutNode],
        outputs: Sequence[LayoutNode],
        links: Sequence[LayoutLink] = ()
    ) -> FlowLayout:
        with self._observer.timed("flow"):
            result = self._layout((inputs, processors, outputs), list(links))
        self._observer.collect_metric("nodes_placed", len(result.nodes), {"component": "flow"})
        return result

    def _layout(
        self,
        columns: Tuple[Sequence[LayoutNode], ...],
        links: List[LayoutLink]
    ) -> FlowLayout:
        placed_columns = tuple(
            self._stack(column, index) for index, column in enumerate(columns)
        )
        by_column: List[Dict[str, LayoutNode]] = [
            {node.node_id: node for node in column} for column in placed_columns
        ]

        kept: List[LayoutLink] = []
        warnings: List[Error] = []
        for link in links:
            route = self._route(link, by_column)
            if route is None:
                error = Error.now(
                    ErrorCode.LINK_OUTSIDE_COLUMNS,
                    "Link does not join adjacent columns",
                    source=link.source_id,
                    target=link.target_id
                )
                self._observer.log_error("flow", AuditEventType.INPUT_DROPPED, error)
                warnings.append(error)
                continue
            source, target = route
            kept.append(link.with_path(flow_curve(source.right_anchor(), target.left_anchor())))

        if warnings:
            self._observer.collect_metric("links_dropped_total", len(warnings), {"component": "flow"})

        return FlowLayout(columns=placed_columns, links=tuple(kept), warnings=tuple(warnings))

    def _stack(self, column: Sequence[LayoutNode], index: int) -> Tuple[LayoutNode, ...]:
        """Sort by descending amount and stack top-down with fixed padding."""
        x = self._config.column_x(index)
        cursor = self._config.padding_y
        placed: List[LayoutNode] = []
        for node in sorted(column, key=lambda n: (-n.amount, n.node_id)):
            height = self.node_height(node, index)
            placed.append(node.placed(
                Point(x, cursor + height / 2),
                NodeSize(width=self._config.node_width, height=height)
            ))
            cursor += height + self._config.padding_y
        return tuple(placed)

    @staticmethod
    def _route(
        link: LayoutLink,
        by_column: List[Dict[str, LayoutNode]]
    ) -> Optional[Tuple[LayoutNode, LayoutNode]]:
        """Source in column k and target in column k + 1, or None."""
        for k in (INPUTS, PROCESSORS):
            source = by_column[k].get(link.source_id)
            target = by_column[k + 1].get(link.target_id)
            if source is not None and target is not None:
                return source, target
        return None
