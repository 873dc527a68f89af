"""
Force-Directed Placer Tests
===========================

Fixed-iteration simulation: convergence, guards, seeding and centering.
"""

import math

import numpy as np
import pytest

from utxo_layout.contracts import (
    ErrorCode, ForceConfig, LayoutLink, LayoutNode, NodeKind, Point
)
from utxo_layout.core.force import ForceDirectedPlacer, center_layout
from utxo_layout.observability import LayoutObserver

from tests.fixtures import star_graph


def tx(node_id, amount=0.0):
    return LayoutNode(node_id=node_id, kind=NodeKind.TRANSACTION, amount=amount)


def address(node_id, amount=0.0):
    return LayoutNode(node_id=node_id, kind=NodeKind.ADDRESS, amount=amount)


def bbox_center(nodes):
    xs = [n.position.x for n in nodes]
    ys = [n.position.y for n in nodes]
    return (min(xs) + max(xs)) / 2, (min(ys) + max(ys)) / 2


class TestSizing:

    def test_node_size_bounds(self):
        placer = ForceDirectedPlacer()
        assert placer.node_size(tx("a", 0)).width == 30
        assert placer.node_size(tx("a", 1e15)).width == 100

    def test_ideal_distance_depends_on_kinds(self):
        placer = ForceDirectedPlacer()
        # Radii are 15 for zero amounts
        assert placer.ideal_distance(tx("a"), address("b")) == pytest.approx(180)
        assert placer.ideal_distance(tx("a"), tx("b")) == pytest.approx(330)


class TestConvergence:

    def test_linked_pair_settles_at_rest_length(self):
        config = ForceConfig(
            min_node_size=20, max_node_size=20, address_link_distance=130, iterations=300
        )
        placer = ForceDirectedPlacer(config, seed=1)
        layout = placer.simulate([tx("t"), address("a")], [LayoutLink("t", "a", 1.0)])

        first, second = layout.nodes
        assert first.position.distance_to(second.position) == pytest.approx(150, abs=5)

    def test_representative_graph_converges(self):
        nodes, links = star_graph(4)
        layout = ForceDirectedPlacer(ForceConfig(iterations=300), seed=7).simulate(nodes, links)
        assert layout.final_displacement < 0.5
        assert layout.iterations == 300

    def test_transactions_move_less_than_addresses(self):
        config = ForceConfig(repulsion_constant=0, centering_strength=0, iterations=1)
        placer = ForceDirectedPlacer(config, seed=0)
        layout = placer.simulate(
            [tx("t"), address("a")],
            [LayoutLink("t", "a")],
            prior={"t": Point(0, 0), "a": Point(1000, 0)}
        )
        pull = (1000 - 180) * 0.2
        first, second = layout.nodes
        assert first.position.distance_to(second.position) == pytest.approx(1000 - pull)
        # The address takes two thirds of the correction
        assert layout.final_displacement == pytest.approx(pull * 2 / 3)

    def test_unlinked_nodes_repel(self):
        config = ForceConfig(centering_strength=0, iterations=50)
        layout = ForceDirectedPlacer(config, seed=0).simulate(
            [address("a"), address("b")],
            [],
            prior={"a": Point(0, 0), "b": Point(50, 0)}
        )
        first, second = layout.nodes
        assert first.position.distance_to(second.position) > 50


class TestOutputShape:

    def test_positions_finite_and_centered(self):
        nodes, links = star_graph(6)
        layout = ForceDirectedPlacer(seed=3).simulate(nodes, links)

        assert all(n.position.is_finite for n in layout.nodes)
        cx, cy = bbox_center(layout.nodes)
        assert cx == pytest.approx(0, abs=1e-6)
        assert cy == pytest.approx(0, abs=1e-6)

    def test_centers_on_configured_point(self):
        nodes, links = star_graph(3)
        config = ForceConfig(center=Point(400, 300))
        layout = ForceDirectedPlacer(config, seed=3).simulate(nodes, links)
        cx, cy = bbox_center(layout.nodes)
        assert cx == pytest.approx(400)
        assert cy == pytest.approx(300)

    def test_input_nodes_untouched(self):
        nodes, links = star_graph(3)
        ForceDirectedPlacer(seed=1).simulate(nodes, links)
        assert all(node.position is None for node in nodes)

    def test_links_carry_paths_from_node_centers(self):
        nodes, links = star_graph(3)
        layout = ForceDirectedPlacer(seed=1).simulate(nodes, links)
        positions = layout.positions()
        for link in layout.links:
            assert link.path.start == positions[link.source_id]
            assert link.path.end == positions[link.target_id]

    def test_empty_input(self):
        layout = ForceDirectedPlacer().simulate([], [])
        assert layout.nodes == ()
        assert layout.links == ()

    def test_single_node_sits_on_center(self):
        layout = ForceDirectedPlacer(seed=2).simulate([tx("solo")], [])
        assert layout.nodes[0].position == Point(0, 0)

    def test_negative_iterations_rejected(self):
        with pytest.raises(ValueError):
            ForceDirectedPlacer().simulate([tx("a")], [], iterations=-1)


class TestDegradation:

    def test_dangling_link_dropped_and_reported(self):
        observer = LayoutObserver()
        layout = ForceDirectedPlacer(observer=observer, seed=0).simulate(
            [tx("a"), address("b")],
            [LayoutLink("a", "b"), LayoutLink("a", "z")]
        )

        assert [link.key for link in layout.links] == [("a", "b")]
        assert [w.code for w in layout.warnings] == [ErrorCode.DANGLING_LINK]
        assert observer.get_metrics().total("links_dropped_total") == 1
        assert len(observer.get_layer_log("force")) == 1

    def test_coincident_nodes_stay_finite(self):
        layout = ForceDirectedPlacer(seed=0).simulate(
            [address("a"), address("b")],
            [LayoutLink("a", "b")],
            iterations=10,
            prior={"a": Point(5, 5), "b": Point(5, 5)}
        )
        assert all(n.position.is_finite for n in layout.nodes)

    def test_non_finite_prior_is_ignored(self):
        layout = ForceDirectedPlacer(seed=0).simulate(
            [address("a"), address("b")],
            [],
            iterations=0,
            prior={"a": Point(math.inf, 0)}
        )
        assert all(n.position.is_finite for n in layout.nodes)

    def test_self_link_is_harmless(self):
        layout = ForceDirectedPlacer(seed=0).simulate([tx("a")], [LayoutLink("a", "a")])
        assert layout.nodes[0].position.is_finite
        assert len(layout.links) == 1


class TestSeeding:

    def test_prior_positions_seed_nodes(self):
        layout = ForceDirectedPlacer(seed=0).simulate(
            [address("a"), address("b")],
            [],
            iterations=0,
            prior={"a": Point(0, 0), "b": Point(100, 0)}
        )
        first, second = layout.nodes
        assert first.position == Point(-50, 0)
        assert second.position == Point(50, 0)

    def test_injected_generator(self):
        nodes, links = star_graph(3)
        one = ForceDirectedPlacer(rng=np.random.default_rng(11)).simulate(nodes, links)
        two = ForceDirectedPlacer(rng=np.random.default_rng(11)).simulate(nodes, links)
        assert one.positions() == two.positions()

    def test_center_layout_idempotent(self):
        nodes, links = star_graph(3)
        layout = ForceDirectedPlacer(seed=5).simulate(nodes, links)
        once = center_layout(layout.nodes, Point(10, 10))
        twice = center_layout(once, Point(10, 10))
        for a, b in zip(once, twice):
            assert a.position.x == pytest.approx(b.position.x)
            assert a.position.y == pytest.approx(b.position.y)
