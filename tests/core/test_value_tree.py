"""
Tests for the value tree model.

This module tests the tagged-union value nodes, conversion from and to
plain data, recursive merging, and path lookups on ValueTree.
"""

from datetime import date

import pytest

from templr.core import (
    ListNode,
    MapNode,
    ScalarNode,
    ValueTree,
    from_python,
    merge_nodes,
    to_python,
)


class TestValueNodes:
    """Tests for node construction and equality."""

    def test_from_python_builds_tagged_union(self):
        """Test dicts, lists and scalars map to their node variants."""
        node = from_python({"a": [1, "x"], "b": None})
        assert isinstance(node, MapNode)
        assert isinstance(node.get("a"), ListNode)
        assert node.get("a").items == (ScalarNode(1), ScalarNode("x"))
        assert node.get("b") == ScalarNode(None)

    def test_provenance_ignored_in_equality(self):
        """Test nodes from different layers compare equal when values match."""
        assert from_python({"a": 1}, "defaults") == from_python({"a": 1}, "override")

    def test_provenance_is_recorded(self):
        """Test every node keeps the layer it came from."""
        node = from_python({"a": {"b": 1}}, "values.yaml")
        assert node.provenance == "values.yaml"
        assert node.get("a").get("b").provenance == "values.yaml"

    def test_map_equality_ignores_insertion_order(self):
        """Test maps with the same entries in another order are equal."""
        assert from_python({"a": 1, "b": 2}) == from_python({"b": 2, "a": 1})

    def test_map_keys_are_sorted_and_stringified(self):
        """Test map keys become strings and iterate in sorted order."""
        node = from_python({2: "two", "b": 1, "a": 0})
        assert node.keys() == ["2", "a", "b"]

    def test_dates_become_strings(self):
        """Test YAML dates are stored as ISO strings."""
        assert from_python(date(2024, 1, 2)) == ScalarNode("2024-01-02")

    def test_nodes_are_immutable(self):
        """Test node attributes cannot be reassigned."""
        node = ScalarNode(1)
        with pytest.raises(AttributeError):
            node.value = 2

    def test_nodes_are_hashable(self):
        """Test equal trees hash equally."""
        assert hash(from_python({"a": [1]})) == hash(from_python({"a": [1]}))

    def test_to_python_round_trip(self):
        """Test conversion back to plain data preserves content."""
        data = {"service": {"ports": [80, 443], "name": "web", "debug": False}}
        assert to_python(from_python(data)) == data


class TestMergeNodes:
    """Tests for layer merging."""

    def test_maps_merge_recursively(self):
        """Test nested maps merge with the later key winning."""
        lower = from_python({"svc": {"name": "a", "port": 80}, "keep": 1})
        higher = from_python({"svc": {"port": 8080}})
        merged = merge_nodes(lower, higher)
        assert to_python(merged) == {"svc": {"name": "a", "port": 8080}, "keep": 1}

    def test_scalar_replaces_map(self):
        """Test any non map-map pairing is a full replacement."""
        merged = merge_nodes(from_python({"a": {"b": 1}}), from_python({"a": 5}))
        assert to_python(merged) == {"a": 5}

    def test_lists_are_replaced_not_concatenated(self):
        """Test lists from a higher layer replace lower lists."""
        merged = merge_nodes(from_python({"a": [1, 2]}), from_python({"a": [3]}))
        assert to_python(merged) == {"a": [3]}

    def test_merge_is_deterministic(self):
        """Test merging the same layers twice gives equal trees."""
        layers = [from_python({"a": {"x": 1}}), from_python({"a": {"y": 2}}), from_python({"b": 3})]

        def merge_all():
            result = MapNode()
            for layer in layers:
                result = merge_nodes(result, layer)
            return result

        assert merge_all() == merge_all()


class TestValueTree:
    """Tests for ValueTree path queries."""

    @pytest.fixture
    def tree(self):
        return ValueTree.from_python({"service": {"replicas": 3, "ports": [80]}, "name": "web"})

    def test_exists_for_present_paths(self, tree):
        """Test nested and top-level paths are found."""
        assert tree.exists("name")
        assert tree.exists("service.replicas")
        assert tree.exists("service.ports")

    def test_exists_for_missing_paths(self, tree):
        """Test missing keys and steps through scalars are absent."""
        assert not tree.exists("service.name")
        assert not tree.exists("service.replicas.count")
        assert not tree.exists("missing")

    def test_list_elements_are_not_addressable(self, tree):
        """Test canonical paths never index into lists."""
        assert not tree.exists("service.ports.0")

    def test_get_returns_node(self, tree):
        """Test get returns the node at a path."""
        assert tree.get("service.replicas") == ScalarNode(3)
        assert tree.get("nope") is None

    def test_keys(self, tree):
        """Test keys lists map children and is empty for non-maps."""
        assert tree.keys() == ["name", "service"]
        assert tree.keys("service") == ["ports", "replicas"]
        assert tree.keys("name") == []

    def test_empty_tree(self):
        """Test a tree built from no data is an empty map."""
        tree = ValueTree()
        assert tree.to_python() == {}
        assert not tree.exists("anything")
        assert tree == ValueTree.from_python(None)

    def test_root_must_be_map(self):
        """Test a non-map root is rejected."""
        with pytest.raises(TypeError):
            ValueTree(ScalarNode(1))


class TestCoreExports:
    """Tests for the public surface of templr.core."""

    def test_exports_resolve(self):
        """Test every exported name exists and pydantic names are not shadowed."""
        import templr.core as core

        for name in core.__all__:
            assert hasattr(core, name)
        assert "ConfigDict" not in core.__all__
        assert not hasattr(core, "ConfigDict")
