"""
Shared test fixtures and utilities for the templr test suite.
"""

import pytest

from templr.core import ValueTree
from templr.lint import Policy, TemplateSource, lint_sources
from templr.parsing import TemplateParser


@pytest.fixture
def parse():
    """Parse template text with a default parser.

    Usage:
        def test_something(parse):
            result = parse("{{ .name }}")
    """

    def _parse(source: str, file: str = "test.tpl", **parser_options):
        return TemplateParser(**parser_options).parse(source, file)

    return _parse


@pytest.fixture
def lint():
    """Lint one template (or a {path: text} mapping) against plain data.

    Policy fields are passed as keyword arguments.

    Usage:
        def test_something(lint):
            report = lint("{{ .name }}", {"name": "x"}, fail_on_warn=True)
    """

    def _lint(templates, data=None, helpers=(), **policy_fields):
        if isinstance(templates, str):
            templates = {"template.tpl": templates}
        sources = [TemplateSource(path, text) for path, text in templates.items()]
        return lint_sources(
            sources,
            ValueTree.from_python(data or {}),
            Policy(**policy_fields),
            helpers=helpers,
        )

    return _lint


@pytest.fixture
def write_file(tmp_path):
    """Write a text file below tmp_path and return its path."""

    def _write(name: str, content: str):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
