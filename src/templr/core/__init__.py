"""
Core templr components.

This package provides the fundamental building blocks shared by the parser,
the lint engine and the renderer: canonical path helpers and the value tree.
"""

from templr.core.path_utils import (
    PathComponents,
    join_path,
    matches_any,
    parent_path,
    split_path_components,
    validate_path_format,
)
from templr.core.types import PlainMapping, PlainValue, ScalarValue
from templr.core.value_tree import (
    ListNode,
    MapNode,
    ScalarNode,
    ValueNode,
    ValueTree,
    from_python,
    merge_nodes,
    to_python,
)

__all__ = [
    "ListNode",
    "MapNode",
    "PathComponents",
    "PlainMapping",
    "PlainValue",
    "ScalarNode",
    "ScalarValue",
    "ValueNode",
    "ValueTree",
    "from_python",
    "join_path",
    "matches_any",
    "merge_nodes",
    "parent_path",
    "split_path_components",
    "to_python",
    "validate_path_format",
]
