"""
Template execution.

Renders parsed templates against plain data with the default function map.
"""

from templr.execution.functions import (
    NO_VALUE,
    FunctionMap,
    build_function_map,
    format_value,
    is_true,
    sprintf,
)
from templr.execution.renderer import (
    MAX_TEMPLATE_DEPTH,
    Renderer,
    render_string,
    vars_renderer_for,
)

__all__ = [
    "FunctionMap",
    "MAX_TEMPLATE_DEPTH",
    "NO_VALUE",
    "Renderer",
    "build_function_map",
    "format_value",
    "is_true",
    "render_string",
    "sprintf",
    "vars_renderer_for",
]
