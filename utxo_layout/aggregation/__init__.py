"""
Entity Aggregation Layer

RESPONSIBILITY: Turning raw UTXO records into layout input
ALLOWED INPUTS: UtxoRecord sequences
OUTPUTS: LayoutGraph, flow columns, timed entities, weighted items

WHAT THIS LAYER MUST NOT DO:
============================
- Assign positions or sizes (that is the layout components' job)
- Classify privacy risk (risk arrives on the record, it is only propagated)

BOUNDARY ENFORCEMENT:
=====================
- Every output id is derived from txid / address, so the same records
  always produce the same ids
- Iteration follows first-seen order of the input, never set order
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import math

from ..contracts.base import Error, ErrorCode, NodeKind, RiskLevel
from ..contracts.events import AuditEventType
from ..contracts.graph import DateLike, LayoutGraph, LayoutLink, LayoutNode, TimedEntity, WeightedItem
from ..core.timeline import parse_date
from ..observability import LayoutObserver


CHANGE_TAG = "Change"
UNTAGGED = "Untagged"
UNKNOWN_WALLET = "Unknown"


# =============================================================================
# INPUT RECORD
# =============================================================================

@dataclass(frozen=True)
class UtxoRecord:
    """
    One unspent output as the wallet views know it.

    Validated at construction; nothing downstream re-checks these fields.
    """
    txid: str
    vout: int
    address: Optional[str]
    amount: float
    privacy_risk: Optional[RiskLevel] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    acquisition_date: DateLike = None
    sender_address: Optional[str] = None
    wallet_name: Optional[str] = None

    def __post_init__(self):
        if not self.txid or not isinstance(self.txid, str):
            raise ValueError("txid must be a non-empty string")
        if isinstance(self.vout, bool) or not isinstance(self.vout, int) or self.vout < 0:
            raise ValueError("vout must be a non-negative integer")
        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, float)):
            raise ValueError("amount must be a number")
        if not math.isfinite(self.amount) or self.amount < 0:
            raise ValueError("amount must be finite and non-negative")
        object.__setattr__(self, 'privacy_risk', RiskLevel.parse(self.privacy_risk))
        object.__setattr__(self, 'tags', tuple(self.tags))

    @property
    def outpoint(self) -> str:
        return f"{self.txid}-{self.vout}"

    @property
    def is_change(self) -> bool:
        return CHANGE_TAG in self.tags


def tx_node_id(txid: str) -> str:
    return f"tx-{txid}"


def address_node_id(address: str) -> str:
    return f"addr-{address}"


def _short(text: str, length: int = 8) -> str:
    return f"{text[:length]}..."


def _total(utxos: Sequence[UtxoRecord]) -> float:
    return sum(u.amount for u in utxos)


def _group_by_txid(utxos: Sequence[UtxoRecord]) -> Dict[str, List[UtxoRecord]]:
    groups: Dict[str, List[UtxoRecord]] = {}
    for utxo in utxos:
        groups.setdefault(utxo.txid, []).append(utxo)
    return groups


# =============================================================================
# OUTPUT SHAPES
# =============================================================================

class TreemapGrouping(Enum):
    """How treemap tiles are split into sections."""
    RISK = "risk"
    WALLET = "wallet"
    TAG = "tag"
    NONE = "none"


@dataclass(frozen=True)
class FlowColumns:
    """Input addresses -> transactions -> output addresses."""
    inputs: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    processors: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    outputs: Tuple[LayoutNode, ...] = field(default_factory=tuple)
    links: Tuple[LayoutLink, ...] = field(default_factory=tuple)

    def as_graph(self) -> LayoutGraph:
        return LayoutGraph(nodes=self.inputs + self.processors + self.outputs, links=self.links)


@dataclass(frozen=True)
class Truncation:
    """Result of capping a graph at max_nodes."""
    graph: LayoutGraph
    removed_nodes: int = 0
    removed_links: int = 0
    warnings: Tuple[Error, ...] = field(default_factory=tuple)


# =============================================================================
# AGGREGATOR
# =============================================================================

class EntityAggregator:
    """
    Groups UTXO records by transaction and address.
    """

    def __init__(self, observer: Optional[LayoutObserver] = None):
        self._observer = observer or LayoutObserver()

    # -------------------------------------------------------------------------
    # Traceability graph
    # -------------------------------------------------------------------------

    def traceability_graph(self, utxos: Sequence[UtxoRecord]) -> LayoutGraph:
        """
        Transaction and address nodes with money-flow links.

        - tx -> receiving address, one link per UTXO
        - sender address -> tx, one link per UTXO with a sender
        - tx <-> tx when both pay to a shared address, or a change output of
          one is spent by the other
        """
        tx_groups = _group_by_txid(utxos)
        nodes: List[LayoutNode] = []
        address_amounts: Dict[str, float] = {}
        address_order: List[str] = []
        links: List[LayoutLink] = []

        def touch(address: str):
            if address not in address_amounts:
                address_amounts[address] = 0.0
                address_order.append(address)

        for txid, group in tx_groups.items():
            tx_id = tx_node_id(txid)
            nodes.append(LayoutNode(
                node_id=tx_id,
                kind=NodeKind.TRANSACTION,
                amount=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group),
                label=f"TX {_short(txid)}"
            ))
            for utxo in group:
                if utxo.address:
                    touch(utxo.address)
                    address_amounts[utxo.address] += utxo.amount
                    links.append(LayoutLink(
                        source_id=tx_id,
                        target_id=address_node_id(utxo.address),
                        value=utxo.amount,
                        risk_level=utxo.privacy_risk,
                        is_change_output=utxo.is_change
                    ))
                if utxo.sender_address:
                    touch(utxo.sender_address)
                    links.append(LayoutLink(
                        source_id=address_node_id(utxo.sender_address),
                        target_id=tx_id,
                        value=utxo.amount,
                        risk_level=utxo.privacy_risk
                    ))

        nodes.extend(
            LayoutNode(
                node_id=address_node_id(address),
                kind=NodeKind.ADDRESS,
                amount=address_amounts[address],
                label=_short(address)
            )
            for address in address_order
        )
        links.extend(self._transaction_links(tx_groups))

        graph = LayoutGraph(nodes=tuple(nodes), links=tuple(links))
        self._observer.log_event(
            "aggregation", AuditEventType.LAYOUT, "traceability_graph",
            nodes=len(graph.nodes), links=len(graph.links)
        )
        return graph

    @staticmethod
    def _transaction_links(tx_groups: Dict[str, List[UtxoRecord]]) -> List[LayoutLink]:
        links: List[LayoutLink] = []
        processed = set()

        for source_txid, source in tx_groups.items():
            for target_txid, target in tx_groups.items():
                if source_txid == target_txid:
                    continue
                if (source_txid, target_txid) in processed or (target_txid, source_txid) in processed:
                    continue

                target_addresses = {u.address for u in target if u.address}
                shared = any(u.address in target_addresses for u in source if u.address)
                change = any(
                    u.is_change and u.address and any(t.sender_address == u.address for t in target)
                    for u in source
                )
                if not (shared or change):
                    continue

                links.append(LayoutLink(
                    source_id=tx_node_id(source_txid),
                    target_id=tx_node_id(target_txid),
                    value=min(_total(source), _total(target)),
                    risk_level=RiskLevel.highest(u.privacy_risk for u in source + target),
                    is_change_output=change
                ))
                processed.add((source_txid, target_txid))

        return links

    # -------------------------------------------------------------------------
    # Flow columns
    # -------------------------------------------------------------------------

    def flow_columns(self, utxos: Sequence[UtxoRecord]) -> FlowColumns:
        """
        Sender addresses, transactions and receiving addresses as three columns.

        Links are merged per (address, tx) pair: value is the summed amount,
        risk the highest of the merged UTXOs.
        """
        tx_groups = _group_by_txid(utxos)
        inputs: Dict[str, List[UtxoRecord]] = {}
        outputs: Dict[str, List[UtxoRecord]] = {}
        for utxo in utxos:
            if utxo.sender_address:
                inputs.setdefault(utxo.sender_address, []).append(utxo)
            if utxo.address:
                outputs.setdefault(utxo.address, []).append(utxo)

        input_nodes = tuple(
            LayoutNode(
                node_id=f"input-{address}",
                kind=NodeKind.INPUT_ADDRESS,
                amount=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group),
                label=_short(address)
            )
            for address, group in inputs.items()
        )
        tx_nodes = tuple(
            LayoutNode(
                node_id=tx_node_id(txid),
                kind=NodeKind.TRANSACTION,
                amount=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group),
                label=f"TX {_short(txid)}"
            )
            for txid, group in tx_groups.items()
        )
        output_nodes = tuple(
            LayoutNode(
                node_id=f"output-{address}",
                kind=NodeKind.OUTPUT_ADDRESS,
                amount=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group),
                label=_short(address)
            )
            for address, group in outputs.items()
        )

        merged: Dict[Tuple[str, str], List[UtxoRecord]] = {}
        for address, group in inputs.items():
            for utxo in group:
                merged.setdefault((f"input-{address}", tx_node_id(utxo.txid)), []).append(utxo)
        for txid, group in tx_groups.items():
            for utxo in group:
                if utxo.address:
                    merged.setdefault((tx_node_id(txid), f"output-{utxo.address}"), []).append(utxo)

        links = tuple(
            LayoutLink(
                source_id=source,
                target_id=target,
                value=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group)
            )
            for (source, target), group in merged.items()
        )
        return FlowColumns(inputs=input_nodes, processors=tx_nodes, outputs=output_nodes, links=links)

    # -------------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------------

    def timeline_entities(
        self,
        utxos: Sequence[UtxoRecord]
    ) -> Tuple[Tuple[TimedEntity, ...], Tuple[LayoutLink, ...]]:
        """
        One dated transaction entity per txid plus earlier -> later links.

        A transaction is linked from an earlier one when it spends from an
        address that the earlier one paid to. The entity date is the first
        acquisition date found among its UTXOs.
        """
        tx_groups = _group_by_txid(utxos)
        entities: List[TimedEntity] = []
        dates: Dict[str, Optional[datetime]] = {}

        for txid, group in tx_groups.items():
            raw = next((u.acquisition_date for u in group if u.acquisition_date), None)
            dates[txid] = parse_date(raw)
            entities.append(TimedEntity(
                node=LayoutNode(
                    node_id=tx_node_id(txid),
                    kind=NodeKind.TRANSACTION,
                    amount=_total(group),
                    risk_level=RiskLevel.highest(u.privacy_risk for u in group),
                    label=f"TX {_short(txid)}"
                ),
                date=raw
            ))

        merged: Dict[Tuple[str, str], List[UtxoRecord]] = {}
        for txid, group in tx_groups.items():
            spent_at = dates[txid]
            if spent_at is None:
                continue
            for utxo in group:
                if not utxo.sender_address:
                    continue
                for earlier_txid, earlier in tx_groups.items():
                    if earlier_txid == txid:
                        continue
                    funded = any(
                        u.address == utxo.sender_address
                        and parse_date(u.acquisition_date) is not None
                        and parse_date(u.acquisition_date) < spent_at
                        for u in earlier
                    )
                    if funded:
                        merged.setdefault((tx_node_id(earlier_txid), tx_node_id(txid)), []).append(utxo)

        links = tuple(
            LayoutLink(
                source_id=source,
                target_id=target,
                value=_total(group),
                risk_level=RiskLevel.highest(u.privacy_risk for u in group)
            )
            for (source, target), group in merged.items()
        )
        return tuple(entities), links

    # -------------------------------------------------------------------------
    # Treemap
    # -------------------------------------------------------------------------

    @staticmethod
    def treemap_items(utxos: Sequence[UtxoRecord]) -> Tuple[WeightedItem, ...]:
        """One weighted item per UTXO, keyed by outpoint."""
        return tuple(
            WeightedItem(
                item_id=utxo.outpoint,
                weight=utxo.amount,
                risk_level=utxo.privacy_risk,
                group_key=utxo.wallet_name or UNKNOWN_WALLET,
                label=f"{_short(utxo.txid)}{utxo.vout}"
            )
            for utxo in utxos
        )

    def grouped_items(
        self,
        utxos: Sequence[UtxoRecord],
        grouping: TreemapGrouping
    ) -> List[Tuple[str, List[WeightedItem]]]:
        """
        (group key, items) in display order.

        RISK: high, medium, low, then unclassified.
        WALLET: first-seen wallet order; missing wallet is 'Unknown'.
        TAG: 'Untagged' first, then first-seen tags. A UTXO with several
        tags appears in each of its tag groups.
        NONE: a single group.
        """
        grouping = TreemapGrouping(grouping)
        items = self.treemap_items(utxos)

        if grouping == TreemapGrouping.NONE:
            return [("all", list(items))]

        groups: Dict[str, List[WeightedItem]] = {}
        if grouping == TreemapGrouping.RISK:
            for level in (RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW):
                groups[level.value] = []
            for item in items:
                key = item.risk_level.value if item.risk_level else "unclassified"
                groups.setdefault(key, []).append(item)
        elif grouping == TreemapGrouping.WALLET:
            for item in items:
                groups.setdefault(item.group_key, []).append(item)
        else:
            groups[UNTAGGED] = []
            for utxo, item in zip(utxos, items):
                for tag in utxo.tags or (UNTAGGED,):
                    groups.setdefault(tag, []).append(item)

        return list(groups.items())

    # -------------------------------------------------------------------------
    # Resource bound
    # -------------------------------------------------------------------------

    def truncate(self, graph: LayoutGraph, max_nodes: int) -> Truncation:
        """
        Keep the max_nodes largest nodes (ties by id) in their input order
        and drop links that lose an endpoint.
        """
        if max_nodes < 0:
            raise ValueError("max_nodes must be non-negative")
        if len(graph.nodes) <= max_nodes:
            return Truncation(graph=graph)

        ranked = sorted(graph.nodes, key=lambda n: (-n.amount, n.node_id))
        keep = {node.node_id for node in ranked[:max_nodes]}
        nodes = tuple(node for node in graph.nodes if node.node_id in keep)
        links = tuple(
            link for link in graph.links
            if link.source_id in keep and link.target_id in keep
        )

        removed_nodes = len(graph.nodes) - len(nodes)
        removed_links = len(graph.links) - len(links)
        error = Error.now(
            ErrorCode.NODES_TRUNCATED,
            "Node count above max_nodes; smallest nodes removed",
            max_nodes=max_nodes,
            removed_nodes=removed_nodes,
            removed_links=removed_links
        )
        self._observer.log_error("aggregation", AuditEventType.TRUNCATION, error)
        self._observer.collect_metric("nodes_truncated_total", removed_nodes)

        return Truncation(
            graph=LayoutGraph(nodes=nodes, links=links),
            removed_nodes=removed_nodes,
            removed_links=removed_links,
            warnings=(error,)
        )


__all__ = [
    'UtxoRecord', 'TreemapGrouping', 'FlowColumns', 'Truncation', 'EntityAggregator',
    'tx_node_id', 'address_node_id', 'CHANGE_TAG', 'UNTAGGED', 'UNKNOWN_WALLET',
]
