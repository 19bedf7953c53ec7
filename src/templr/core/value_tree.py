"""
Value tree model for templr.

The merged data set a template is rendered or linted against is represented
as an explicit tagged union of immutable nodes. Traversal always dispatches on
the node variant; nothing relies on ambient type coercion.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

from attrs import field, frozen

from templr.core.path_utils import split_path_components
from templr.core.types import PlainMapping, ScalarValue


@frozen
class ScalarNode:
    """A leaf value: string, number, bool or null."""

    value: ScalarValue
    provenance: str | None = field(default=None, eq=False)


@frozen
class ListNode:
    """An ordered sequence of value nodes."""

    items: tuple["ValueNode", ...] = field(default=(), converter=tuple)
    provenance: str | None = field(default=None, eq=False)


def _sorted_entries(
    entries: Mapping[str, "ValueNode"] | Iterable[tuple[str, "ValueNode"]],
) -> tuple[tuple[str, "ValueNode"], ...]:
    pairs = entries.items() if isinstance(entries, Mapping) else entries
    unique = dict(pairs)
    return tuple(sorted(unique.items(), key=lambda item: item[0]))


@frozen
class MapNode:
    """
    A mapping from unique string keys to value nodes.

    Entries are stored sorted by key so equality and iteration never depend
    on the insertion order of the source data.
    """

    entries: tuple[tuple[str, "ValueNode"], ...] = field(
        default=(), converter=_sorted_entries
    )
    provenance: str | None = field(default=None, eq=False)
    _index: dict[str, "ValueNode"] = field(
        init=False, eq=False, repr=False, factory=dict
    )

    def __attrs_post_init__(self) -> None:
        object.__setattr__(self, "_index", dict(self.entries))

    def get(self, key: str) -> "ValueNode | None":
        """Return the child stored under key, if any."""
        return self._index.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def keys(self) -> list[str]:
        """Return the keys in canonical (sorted) order."""
        return [key for key, _ in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


ValueNode = ScalarNode | ListNode | MapNode


def from_python(value: Any, provenance: str | None = None) -> ValueNode:
    """
    Convert decoded YAML/JSON data into value nodes.

    Params:
        value: Plain Python data (dicts, lists, scalars)
        provenance: Name of the layer the data came from

    Returns:
        The equivalent ValueNode tree

    Notes:
        Map keys are converted to strings. Values that are not plain data
        (e.g. YAML timestamps) become string scalars.
    """
    if isinstance(value, Mapping):
        return MapNode(
            entries={
                str(key): from_python(child, provenance)
                for key, child in value.items()
            },
            provenance=provenance,
        )
    if isinstance(value, (list, tuple)):
        return ListNode(
            items=[from_python(child, provenance) for child in value],
            provenance=provenance,
        )
    if value is None or isinstance(value, (str, bool, int, float)):
        return ScalarNode(value=value, provenance=provenance)
    if isinstance(value, (date, datetime)):
        return ScalarNode(value=value.isoformat(), provenance=provenance)
    return ScalarNode(value=str(value), provenance=provenance)


def to_python(node: ValueNode) -> Any:
    """Convert value nodes back into plain Python data."""
    if isinstance(node, MapNode):
        return {key: to_python(child) for key, child in node.entries}
    if isinstance(node, ListNode):
        return [to_python(child) for child in node.items]
    if isinstance(node, ScalarNode):
        return node.value
    raise TypeError(f"Not a value node: {node!r}")


def merge_nodes(lower: ValueNode, higher: ValueNode) -> ValueNode:
    """
    Merge two value nodes, the higher-precedence node winning.

    Map x Map merges recursively (later key wins); any other pairing is a
    full replacement by the higher node. Lists are never concatenated.

    Params:
        lower: Node from the lower-precedence layer
        higher: Node from the higher-precedence layer

    Returns:
        The merged node
    """
    if not (isinstance(lower, MapNode) and isinstance(higher, MapNode)):
        return higher
    merged = dict(lower.entries)
    for key, child in higher.entries:
        existing = merged.get(key)
        merged[key] = child if existing is None else merge_nodes(existing, child)
    return MapNode(entries=merged, provenance=higher.provenance)


class ValueTree:
    """
    The merged, read-only data tree for one invocation.

    Wraps a root MapNode and answers path-existence questions for canonical
    dotted paths.
    """

    def __init__(self, root: MapNode | None = None):
        """
        Initialize the tree.

        Params:
            root: Root mapping; an empty map when omitted
        """
        if root is None:
            root = MapNode()
        if not isinstance(root, MapNode):
            raise TypeError("ValueTree root must be a MapNode")
        self._root = root

    @classmethod
    def from_python(cls, data: Mapping | None, provenance: str | None = None) -> "ValueTree":
        """Build a tree directly from a plain mapping."""
        root = from_python(data or {}, provenance)
        assert isinstance(root, MapNode)
        return cls(root)

    @property
    def root(self) -> MapNode:
        return self._root

    def get(self, path: str) -> ValueNode | None:
        """
        Look up the node at a canonical path.

        Params:
            path: Canonical dotted path, "" for the root

        Returns:
            The node, or None when any step is missing or crosses a non-map
        """
        current: ValueNode = self._root
        for part in split_path_components(path):
            if not isinstance(current, MapNode):
                return None
            child = current.get(part)
            if child is None:
                return None
            current = child
        return current

    def exists(self, path: str) -> bool:
        """Return True if the canonical path resolves to a node."""
        return self.get(path) is not None

    def keys(self, path: str = "") -> list[str]:
        """Return the keys of the map at path, or [] if it is not a map."""
        node = self.get(path)
        if isinstance(node, MapNode):
            return node.keys()
        return []

    def to_python(self) -> PlainMapping:
        """Return the tree as plain nested dicts and lists."""
        return to_python(self._root)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValueTree):
            return NotImplemented
        return self._root == other._root

    def __hash__(self) -> int:
        return hash(self._root)

    def __repr__(self) -> str:
        return f"ValueTree({self.to_python()!r})"
