"""
Flow Column Layout Tests
========================

Three fixed columns, descending stacks and adjacent-only links.
"""

import pytest

from utxo_layout.contracts import ErrorCode, FlowConfig, LayoutLink, LayoutNode, NodeKind
from utxo_layout.core.flow import FlowColumnLayout
from utxo_layout.observability import LayoutObserver


def node(node_id, kind, amount):
    return LayoutNode(node_id=node_id, kind=kind, amount=amount)


@pytest.fixture
def columns():
    inputs = [node("in-a", NodeKind.INPUT_ADDRESS, 1.0), node("in-b", NodeKind.INPUT_ADDRESS, 5.0)]
    processors = [node("tx", NodeKind.TRANSACTION, 6.0)]
    outputs = [node("out", NodeKind.OUTPUT_ADDRESS, 6.0)]
    return inputs, processors, outputs


@pytest.fixture
def links():
    return [
        LayoutLink("in-a", "tx", 1.0),
        LayoutLink("in-b", "tx", 5.0),
        LayoutLink("tx", "out", 6.0),
        LayoutLink("in-a", "out", 1.0),  # skips a column
        LayoutLink("out", "tx", 1.0),    # backwards
    ]


class TestColumns:

    def test_three_fixed_x_positions(self, columns, links):
        layout = FlowColumnLayout().layout(*columns, links)
        xs = [{n.position.x for n in column} for column in layout.columns]
        assert xs == [{110.0}, {530.0}, {950.0}]

    def test_descending_amount_order(self, columns):
        layout = FlowColumnLayout().layout(*columns)
        assert [n.node_id for n in layout.columns[0]] == ["in-b", "in-a"]

    def test_ties_broken_by_id(self):
        inputs = [node("b", NodeKind.INPUT_ADDRESS, 1.0), node("a", NodeKind.INPUT_ADDRESS, 1.0)]
        layout = FlowColumnLayout().layout(inputs, [], [])
        assert [n.node_id for n in layout.columns[0]] == ["a", "b"]

    def test_stacking_with_padding(self, columns):
        layout = FlowColumnLayout().layout(*columns)
        top, below = layout.columns[0]
        assert top.position.y - top.size.height / 2 == pytest.approx(20)
        gap = (below.position.y - below.size.height / 2) - (top.position.y + top.size.height / 2)
        assert gap == pytest.approx(20)

    def test_heights_log_scaled_and_bounded(self):
        flow = FlowColumnLayout()
        small = node("s", NodeKind.INPUT_ADDRESS, 1.0)
        huge = node("h", NodeKind.TRANSACTION, 1e9)
        assert flow.node_height(small, 0) == 60
        assert flow.node_height(huge, 0) == 100
        assert flow.node_height(huge, 1) == 120
        # 40 + log10(1 + 999) * 20 = 100
        assert flow.node_height(node("m", NodeKind.TRANSACTION, 999.0), 1) == pytest.approx(100)

    def test_node_width_from_config(self, columns):
        layout = FlowColumnLayout(FlowConfig(node_width=120)).layout(*columns)
        assert all(n.size.width == 120 for n in layout.nodes)

    def test_empty_columns(self):
        layout = FlowColumnLayout().layout([], [], [])
        assert layout.nodes == ()
        assert layout.height == 0.0


class TestLinks:

    def test_only_adjacent_links_survive(self, columns, links):
        observer = LayoutObserver()
        layout = FlowColumnLayout(observer=observer).layout(*columns, links)

        assert [link.key for link in layout.links] == [("in-a", "tx"), ("in-b", "tx"), ("tx", "out")]
        assert [w.code for w in layout.warnings] == [ErrorCode.LINK_OUTSIDE_COLUMNS] * 2
        assert observer.get_metrics().total("links_dropped_total") == 2

    def test_paths_join_right_edge_to_left_edge(self, columns, links):
        layout = FlowColumnLayout().layout(*columns, links)
        by_id = {n.node_id: n for n in layout.nodes}
        for link in layout.links:
            assert link.path.is_cubic
            assert link.path.start == by_id[link.source_id].right_anchor()
            assert link.path.end == by_id[link.target_id].left_anchor()

    def test_link_to_missing_node_dropped(self, columns):
        layout = FlowColumnLayout().layout(*columns, [LayoutLink("in-a", "nowhere")])
        assert layout.links == ()
        assert len(layout.warnings) == 1

    def test_one_of_each_gives_two_paths(self):
        layout = FlowColumnLayout().layout(
            [node("i", NodeKind.INPUT_ADDRESS, 1.0)],
            [node("t", NodeKind.TRANSACTION, 1.0)],
            [node("o", NodeKind.OUTPUT_ADDRESS, 1.0)],
            [LayoutLink("i", "t", 1.0), LayoutLink("t", "o", 1.0)]
        )
        assert len(layout.links) == 2
        i, t, o = layout.nodes
        assert layout.links[0].path.start == i.right_anchor()
        assert layout.links[1].path.end == o.left_anchor()
        assert layout.links[0].path.end.y == t.position.y
