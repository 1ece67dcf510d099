"""Tests for nrflow.network.node_types: classification and counts."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from nrflow.core.exceptions import ConfigurationError
from nrflow.network.node_types import NodeType, classify, count_node_types


class TestClassify:
    """Node type validation and derived counts."""

    @pytest.mark.parametrize("types", [
        [NodeType.SLACK, NodeType.PQ],
        [NodeType.PQ, NodeType.SLACK, NodeType.PV],
        [NodeType.SLACK, NodeType.PV, NodeType.PV, NodeType.PQ, NodeType.PQ_INTERMEDIATE],
    ])
    def test_counts_sum_to_node_count(self, types):
        c = classify(types, len(types))
        assert sum(c.type_counts.values()) == len(types)
        assert c.type_counts[NodeType.SLACK] == 1

    def test_slack_index(self):
        c = classify([NodeType.PQ, NodeType.PV, NodeType.SLACK], 3)
        assert c.slack_index == 2
        assert c.diagnostics == ()

    def test_zero_slack_fails(self):
        with pytest.raises(ConfigurationError, match="No slack node"):
            classify([NodeType.PQ, NodeType.PV], 2)

    def test_length_mismatch_fails(self):
        with pytest.raises(ConfigurationError, match="must match the number of nodes"):
            classify([NodeType.SLACK, NodeType.PQ], 3)

    def test_two_slack_nodes_uses_lower_index(self, caplog):
        with caplog.at_level(logging.WARNING, logger="nrflow"):
            c = classify([NodeType.PQ, NodeType.SLACK, NodeType.SLACK], 3)
        assert c.slack_index == 1
        assert c.type_counts[NodeType.SLACK] == 1
        assert c.node_types[2] == NodeType.PV
        assert len(c.diagnostics) == 1
        assert "slack" in caplog.text

    def test_string_aliases(self):
        c = classify(["SL", "pv", "PQ", "slack"], 4)
        assert c.node_types[:3] == (NodeType.SLACK, NodeType.PV, NodeType.PQ)
        assert c.slack_index == 0

    def test_unknown_type_fails(self):
        with pytest.raises(ConfigurationError, match="Unknown node type"):
            classify([NodeType.SLACK, "generator"], 2)

    def test_index_sets(self):
        c = classify(
            [NodeType.PQ, NodeType.SLACK, NodeType.PV, NodeType.PQ_INTERMEDIATE], 4,
        )
        np.testing.assert_array_equal(c.non_slack_indices, [0, 2, 3])
        np.testing.assert_array_equal(c.load_indices, [0, 3])
        np.testing.assert_array_equal(c.pv_indices, [2])
        assert c.pv_count == 1
        assert len(c) == 4

    def test_counts_immutable(self):
        c = classify([NodeType.SLACK, NodeType.PQ], 2)
        with pytest.raises(TypeError):
            c.type_counts[NodeType.PQ] = 5  # type: ignore[index]


class TestCountNodeTypes:
    def test_absent_types_are_zero(self):
        counts = count_node_types([NodeType.SLACK, NodeType.PQ, NodeType.PQ])
        assert counts[NodeType.PV] == 0
        assert counts[NodeType.PQ_INTERMEDIATE] == 0
        assert counts[NodeType.PQ] == 2
