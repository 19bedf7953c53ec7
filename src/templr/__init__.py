"""
templr - Template rendering and static linting for data-driven templates

templr parses a Go-style template DSL, merges layered values into a single
data tree, and lints templates for undefined references, disallowed
functions and missing required variables without executing them.
"""

from importlib.metadata import version

from templr.config import TemplrConfig, load_config
from templr.core import ValueTree
from templr.execution import Renderer, render_string
from templr.lint import (
    Finding,
    FindingCode,
    LintEngine,
    LintReport,
    Outcome,
    Policy,
    Severity,
    TemplateSource,
    lint_sources,
)
from templr.parsing import Delimiters, TemplateParser, parse_template
from templr.reporting import ExitStatus, exit_status, format_report
from templr.values import Layer, build_value_tree, resolve_values

__version__ = version("templr")

__all__ = [
    "__version__",
    "Delimiters",
    "ExitStatus",
    "Finding",
    "FindingCode",
    "Layer",
    "LintEngine",
    "LintReport",
    "Outcome",
    "Policy",
    "Renderer",
    "Severity",
    "TemplateParser",
    "TemplateSource",
    "TemplrConfig",
    "ValueTree",
    "build_value_tree",
    "exit_status",
    "format_report",
    "lint_sources",
    "load_config",
    "parse_template",
    "render_string",
    "resolve_values",
]
