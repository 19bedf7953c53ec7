"""
Value tree resolution for templr.

Merges ordered data layers into a single immutable ValueTree. Layers are
applied lowest-to-highest precedence: directory defaults, the primary data
file, overlay files, dotted `key=value` overrides, and finally the computed
layer produced by rendering the `templr.vars` sub-template against
everything below it.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from templr.core.path_utils import split_path_components, validate_path_format
from templr.core.types import PlainMapping
from templr.core.value_tree import MapNode, ValueNode, ValueTree, from_python, merge_nodes, to_python
from templr.exceptions import ConfigurationError
from templr.values.loader import load_data, load_default_values, parse_data_text

logger = logging.getLogger(__name__)

VARS_TEMPLATE_NAME = "templr.vars"

OVERRIDE_LAYER = "override"
COMPUTED_LAYER = "computed"

_INT_PATTERN = re.compile(r"[+-]?\d+")
_FLOAT_PATTERN = re.compile(r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?")

VarsRenderer = Callable[[PlainMapping], str]


@dataclass(frozen=True)
class Layer:
    """
    One data source contributing to the merged tree.

    Params:
        name: Layer name, kept as provenance on every node it contributes
        data: Decoded mapping
    """

    name: str
    data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str | Path, name: str | None = None) -> "Layer":
        """Load a layer from a YAML/JSON file."""
        return cls(name or str(path), load_data(path))


def parse_scalar(text: str) -> Any:
    """
    Infer the type of an override value.

    Params:
        text: Raw value text

    Returns:
        bool for true/false (any case), int, float, JSON data for `null`,
        quoted strings and values starting with `[` or `{`, otherwise the
        text unchanged
    """
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_PATTERN.fullmatch(text):
        return int(text)
    if _FLOAT_PATTERN.fullmatch(text):
        return float(text)
    if text == "null" or text[:1] in ("[", "{", "\""):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
    return text


def parse_override(override: str) -> tuple[str, Any]:
    """
    Split a `dotted.key=value` override.

    Raises:
        ConfigurationError: If there is no `=`, the key is empty, or the key
            has an empty segment
    """
    key, sep, raw = override.partition("=")
    if not sep or not key:
        raise ConfigurationError(f"override expects key=value, got: {override}")
    try:
        validate_path_format(key, "override key")
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    return key, parse_scalar(raw)


def set_by_dotted_key(node: ValueNode | None, parts: list[str], leaf: ValueNode) -> ValueNode:
    """
    Return a copy of node with leaf stored at the given path.

    Missing intermediate maps are created; non-map values on the way are
    replaced by maps.
    """
    if not parts:
        return leaf
    base = node if isinstance(node, MapNode) else MapNode(provenance=leaf.provenance)
    head, rest = parts[0], parts[1:]
    entries = dict(base.entries)
    entries[head] = set_by_dotted_key(base.get(head), rest, leaf)
    return MapNode(entries=entries, provenance=base.provenance)


def apply_overrides(root: MapNode, overrides: Sequence[str]) -> MapNode:
    """Apply `key=value` overrides in order."""
    for override in overrides:
        key, value = parse_override(override)
        logger.debug("setting %s = %r", key, value)
        root = set_by_dotted_key(
            root, split_path_components(key), from_python(value, OVERRIDE_LAYER)
        )
    return root


def merge_layers(layers: Sequence[Layer]) -> MapNode:
    """Merge layers lowest-to-highest into one root map."""
    root = MapNode()
    for layer in layers:
        node = from_python(layer.data, layer.name)
        if not isinstance(node, MapNode):
            raise ConfigurationError("layer data must be a mapping", layer.name)
        logger.debug("merging layer %s (%d top-level key(s))", layer.name, len(node))
        merged = merge_nodes(root, node)
        assert isinstance(merged, MapNode)
        root = merged
    return root


def compute_layer(root: MapNode, vars_renderer: VarsRenderer) -> MapNode:
    """
    Render the computed-variables template and merge its output.

    Params:
        root: Tree built from all lower-precedence layers
        vars_renderer: Callable rendering the vars template against plain data

    Returns:
        The root with the computed layer merged on top

    Raises:
        ConfigurationError: If the output is not a YAML/JSON mapping
    """
    output = vars_renderer(to_python(root)).strip()
    if not output:
        return root
    data = parse_data_text(output, None, VARS_TEMPLATE_NAME)
    logger.debug("computed layer produced %d key(s)", len(data))
    merged = merge_nodes(root, from_python(data, COMPUTED_LAYER))
    assert isinstance(merged, MapNode)
    return merged


def resolve_values(
    layers: Sequence[Layer],
    overrides: Sequence[str] = (),
    vars_renderer: VarsRenderer | None = None,
) -> ValueTree:
    """
    Build the merged value tree.

    Params:
        layers: File-backed layers, lowest precedence first
        overrides: `dotted.key=value` strings applied after all layers
        vars_renderer: Optional renderer for the computed layer

    Returns:
        The immutable ValueTree
    """
    root = merge_layers(layers)
    root = apply_overrides(root, overrides)
    if vars_renderer is not None:
        root = compute_layer(root, vars_renderer)
    return ValueTree(root)


def build_value_tree(
    base_dir: str | Path | None = None,
    data_file: str | Path | None = None,
    overlay_files: Sequence[str | Path] = (),
    overrides: Sequence[str] = (),
    helpers: Sequence[Any] = (),
) -> ValueTree:
    """
    Load every layer from disk and resolve the tree.

    Params:
        base_dir: Directory searched for values.yaml / values.yml
        data_file: Primary data file
        overlay_files: Additional data files, later ones winning
        overrides: `dotted.key=value` overrides
        helpers: Parsed templates (ParseResult) searched for `templr.vars`

    Returns:
        The immutable ValueTree

    Raises:
        ConfigurationError: If any layer cannot be loaded
    """
    layers: list[Layer] = []
    if base_dir is not None:
        defaults = load_default_values(base_dir)
        if defaults:
            layers.append(Layer("defaults", defaults))
    if data_file is not None:
        layers.append(Layer.from_file(data_file))
    layers.extend(Layer.from_file(path) for path in overlay_files)

    vars_renderer = None
    if helpers:
        from templr.execution.renderer import vars_renderer_for

        vars_renderer = vars_renderer_for(helpers, VARS_TEMPLATE_NAME)

    return resolve_values(layers, overrides, vars_renderer)
