"""
Configuration Tests
===================

Per-component dataclass configs and flat-mapping construction.
"""

import pytest

from utxo_layout.contracts import (
    BucketUnit, FlowConfig, ForceConfig, LayoutConfig, PackerConfig, TimelineConfig
)


class TestDefaults:

    def test_force_defaults(self):
        config = ForceConfig()
        assert (config.iterations, config.repulsion_constant, config.attraction_constant) == (100, 800, 0.2)
        assert (config.min_node_size, config.max_node_size) == (30, 100)

    def test_flow_column_centers(self):
        config = FlowConfig()
        assert [config.column_x(k) for k in range(3)] == [110, 530, 950]

    def test_layout_defaults(self):
        config = LayoutConfig()
        assert config.max_nodes == 300
        assert config.seed is None
        assert config.timeline.bucket_unit == BucketUnit.MONTH


class TestValidation:

    def test_packer_needs_positive_tile(self):
        with pytest.raises(ValueError):
            PackerConfig(min_tile_size=0)

    def test_force_size_bounds(self):
        with pytest.raises(ValueError):
            ForceConfig(min_node_size=50, max_node_size=40)

    def test_force_negative_iterations(self):
        with pytest.raises(ValueError):
            ForceConfig(iterations=-1)

    def test_timeline_unit_from_string(self):
        assert TimelineConfig(bucket_unit="day").bucket_unit == BucketUnit.DAY

    def test_timeline_unknown_unit(self):
        with pytest.raises(ValueError):
            TimelineConfig(bucket_unit="week")

    def test_flow_height_bounds(self):
        with pytest.raises(ValueError):
            FlowConfig(min_height=0)

    def test_max_nodes_positive(self):
        with pytest.raises(ValueError):
            LayoutConfig(max_nodes=0)


class TestFromMapping:

    def test_camel_case_keys(self):
        config = LayoutConfig.from_mapping({
            "iterations": 50,
            "repulsionConstant": 400,
            "attractionConstant": 0.1,
            "minNodeSize": 10,
            "maxNodeSize": 60,
            "bucketUnit": "day",
            "maxNodes": 120,
        })
        assert config.force.iterations == 50
        assert config.force.repulsion_constant == 400
        assert config.force.attraction_constant == 0.1
        assert (config.force.min_node_size, config.force.max_node_size) == (10, 60)
        assert config.timeline.bucket_unit == BucketUnit.DAY
        assert config.max_nodes == 120

    def test_snake_case_keys(self):
        config = LayoutConfig.from_mapping({"max_node_size": 80, "seed": 3})
        assert config.force.max_node_size == 80
        assert config.seed == 3

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError):
            LayoutConfig.from_mapping({"gravity": 1})

    def test_to_mapping_round_trip(self):
        config = LayoutConfig.from_mapping({"iterations": 25, "bucketUnit": "day", "maxNodes": 7})
        assert LayoutConfig.from_mapping(config.to_mapping()) == config
