"""
Value layer loading and resolution.

Builds the merged ValueTree from defaults, data files, overlays, dotted
overrides and the computed `templr.vars` layer.
"""

from templr.values.loader import (
    DEFAULT_VALUES_FILES,
    find_default_values,
    load_data,
    load_default_values,
    parse_data_text,
)
from templr.values.resolution import (
    VARS_TEMPLATE_NAME,
    Layer,
    apply_overrides,
    build_value_tree,
    merge_layers,
    parse_override,
    parse_scalar,
    resolve_values,
    set_by_dotted_key,
)

__all__ = [
    "DEFAULT_VALUES_FILES",
    "Layer",
    "VARS_TEMPLATE_NAME",
    "apply_overrides",
    "build_value_tree",
    "find_default_values",
    "load_data",
    "load_default_values",
    "merge_layers",
    "parse_data_text",
    "parse_override",
    "parse_scalar",
    "resolve_values",
    "set_by_dotted_key",
]
