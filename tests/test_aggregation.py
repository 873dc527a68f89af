"""
Entity Aggregator Tests
=======================

UTXO records -> traceability graph, flow columns, timeline entities,
treemap groups, and truncation.
"""

import math

import pytest

from utxo_layout.aggregation import (
    EntityAggregator, TreemapGrouping, UtxoRecord, address_node_id, tx_node_id
)
from utxo_layout.contracts import ErrorCode, LayoutGraph, NodeKind, RiskLevel
from utxo_layout.observability import LayoutObserver

from tests.fixtures import SAMPLE_UTXOS, UTXO_CHANGE, UTXO_PLAIN, UTXO_SPEND

TX_A = tx_node_id(UTXO_CHANGE.txid)
TX_B = tx_node_id(UTXO_SPEND.txid)


@pytest.fixture
def aggregator():
    return EntityAggregator()


class TestUtxoRecord:

    @pytest.mark.parametrize("amount", [-1.0, math.nan, math.inf])
    def test_rejects_bad_amount(self, amount):
        with pytest.raises(ValueError):
            UtxoRecord(txid="t", vout=0, address="a", amount=amount)

    def test_rejects_negative_vout(self):
        with pytest.raises(ValueError):
            UtxoRecord(txid="t", vout=-1, address="a", amount=1.0)

    def test_rejects_empty_txid(self):
        with pytest.raises(ValueError):
            UtxoRecord(txid="", vout=0, address="a", amount=1.0)

    def test_rejects_unknown_risk(self):
        with pytest.raises(ValueError):
            UtxoRecord(txid="t", vout=0, address="a", amount=1.0, privacy_risk="extreme")

    def test_normalizes_fields(self):
        record = UtxoRecord(txid="t", vout=2, address="a", amount=1, privacy_risk="Low", tags=["x"])
        assert record.privacy_risk == RiskLevel.LOW
        assert record.tags == ("x",)
        assert record.outpoint == "t-2"


class TestTraceabilityGraph:

    def test_nodes(self, aggregator):
        graph = aggregator.traceability_graph(SAMPLE_UTXOS)
        index = graph.node_index()

        assert [n.node_id for n in graph.nodes] == [
            TX_A, TX_B,
            address_node_id("addr1"), address_node_id("s1"),
            address_node_id("addr2"), address_node_id("addr3"),
        ]
        assert index[TX_A].amount == pytest.approx(3.0)
        assert index[TX_A].risk_level == RiskLevel.HIGH
        assert index[TX_A].kind == NodeKind.TRANSACTION
        assert index[address_node_id("addr1")].amount == pytest.approx(1.0)
        assert index[address_node_id("s1")].amount == 0.0

    def test_links(self, aggregator):
        graph = aggregator.traceability_graph(SAMPLE_UTXOS)
        keys = [link.key for link in graph.links]

        assert keys == [
            (TX_A, "addr-addr1"),
            ("addr-s1", TX_A),
            (TX_A, "addr-addr2"),
            (TX_B, "addr-addr3"),
            ("addr-addr1", TX_B),
            (TX_A, TX_B),
        ]
        assert graph.links[0].is_change_output
        assert not graph.links[2].is_change_output

    def test_change_connection_between_transactions(self, aggregator):
        graph = aggregator.traceability_graph(SAMPLE_UTXOS)
        link = graph.links[-1]
        assert link.value == pytest.approx(0.5)
        assert link.risk_level == RiskLevel.HIGH
        assert link.is_change_output

    def test_shared_address_connects_once(self, aggregator):
        utxos = [
            UtxoRecord(txid="t1", vout=0, address="shared", amount=1.0),
            UtxoRecord(txid="t2", vout=0, address="shared", amount=4.0),
        ]
        graph = aggregator.traceability_graph(utxos)
        tx_links = [l for l in graph.links if l.source_id.startswith("tx-") and l.target_id.startswith("tx-")]
        assert [l.key for l in tx_links] == [("tx-t1", "tx-t2")]
        assert tx_links[0].value == 1.0
        assert not tx_links[0].is_change_output

    def test_empty(self, aggregator):
        assert aggregator.traceability_graph([]).is_empty


class TestFlowColumns:

    def test_columns(self, aggregator):
        columns = aggregator.flow_columns(SAMPLE_UTXOS)
        assert [n.node_id for n in columns.inputs] == ["input-s1", "input-addr1"]
        assert [n.node_id for n in columns.processors] == [TX_A, TX_B]
        assert [n.node_id for n in columns.outputs] == ["output-addr1", "output-addr2", "output-addr3"]
        assert all(n.kind == NodeKind.OUTPUT_ADDRESS for n in columns.outputs)

    def test_links_merge_per_pair(self, aggregator):
        columns = aggregator.flow_columns(SAMPLE_UTXOS)
        values = {link.key: link.value for link in columns.links}
        assert values == {
            ("input-s1", TX_A): 1.0,
            ("input-addr1", TX_B): 0.5,
            (TX_A, "output-addr1"): 1.0,
            (TX_A, "output-addr2"): 2.0,
            (TX_B, "output-addr3"): 0.5,
        }

    def test_as_graph(self, aggregator):
        graph = aggregator.flow_columns(SAMPLE_UTXOS).as_graph()
        assert isinstance(graph, LayoutGraph)
        assert len(graph.nodes) == 7


class TestTimelineEntities:

    def test_one_entity_per_transaction(self, aggregator):
        entities, _ = aggregator.timeline_entities(SAMPLE_UTXOS)
        assert [e.node.node_id for e in entities] == [TX_A, TX_B]
        assert entities[0].date == "2024-01-01"
        assert entities[0].node.risk_level == RiskLevel.HIGH

    def test_earlier_funding_transaction_links_forward(self, aggregator):
        _, links = aggregator.timeline_entities(SAMPLE_UTXOS)
        assert [link.key for link in links] == [(TX_A, TX_B)]
        assert links[0].value == pytest.approx(0.5)
        assert links[0].risk_level == RiskLevel.MEDIUM

    def test_undated_transactions_have_no_links(self, aggregator):
        _, links = aggregator.timeline_entities([UTXO_PLAIN])
        assert links == ()


class TestTreemapGroups:

    def test_items(self, aggregator):
        items = aggregator.treemap_items(SAMPLE_UTXOS)
        assert [i.item_id for i in items] == [u.outpoint for u in SAMPLE_UTXOS]
        assert items[0].group_key == "W1"

    def test_group_by_risk(self, aggregator):
        groups = aggregator.grouped_items(SAMPLE_UTXOS, TreemapGrouping.RISK)
        assert [(key, [i.item_id for i in items]) for key, items in groups] == [
            ("high", [UTXO_PLAIN.outpoint]),
            ("medium", [UTXO_SPEND.outpoint]),
            ("low", [UTXO_CHANGE.outpoint]),
        ]

    def test_group_by_wallet(self, aggregator):
        groups = dict(aggregator.grouped_items(SAMPLE_UTXOS, "wallet"))
        assert list(groups) == ["W1", "W2"]
        assert len(groups["W1"]) == 2

    def test_group_by_tag(self, aggregator):
        groups = dict(aggregator.grouped_items(SAMPLE_UTXOS, TreemapGrouping.TAG))
        assert list(groups) == ["Untagged", "Change", "Exchange"]
        assert [i.item_id for i in groups["Untagged"]] == [UTXO_PLAIN.outpoint]

    def test_multi_tag_item_in_each_group(self, aggregator):
        record = UtxoRecord(txid="t", vout=0, address="a", amount=1.0, tags=("x", "y"))
        groups = dict(aggregator.grouped_items([record], TreemapGrouping.TAG))
        assert len(groups["x"]) == len(groups["y"]) == 1

    def test_no_grouping(self, aggregator):
        groups = aggregator.grouped_items(SAMPLE_UTXOS, TreemapGrouping.NONE)
        assert len(groups) == 1 and len(groups[0][1]) == 3


class TestTruncation:

    def test_keeps_largest_nodes(self):
        observer = LayoutObserver()
        aggregator = EntityAggregator(observer)
        graph = aggregator.traceability_graph(SAMPLE_UTXOS)

        truncation = aggregator.truncate(graph, 3)

        assert [n.node_id for n in truncation.graph.nodes] == [TX_A, "addr-addr1", "addr-addr2"]
        assert [l.key for l in truncation.graph.links] == [(TX_A, "addr-addr1"), (TX_A, "addr-addr2")]
        assert truncation.removed_nodes == 3
        assert [w.code for w in truncation.warnings] == [ErrorCode.NODES_TRUNCATED]
        assert observer.get_metrics().total("nodes_truncated_total") == 3

    def test_under_limit_is_identity(self, aggregator):
        graph = aggregator.traceability_graph(SAMPLE_UTXOS)
        truncation = aggregator.truncate(graph, 100)
        assert truncation.graph is graph
        assert truncation.warnings == ()
