"""
Registry of named sub-templates.

All `define` (and `block`) bodies across a load unit are collected in a
first pass so that include sites can be resolved independently of the
order in which files were parsed.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from templr.parsing import Define, ParseResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefinedTemplate:
    """A named sub-template and the file that defines it."""

    name: str
    define: Define
    file: str = ""


class TemplateRegistry:
    """Name -> definition table for sub-templates."""

    def __init__(self):
        self.templates: dict[str, DefinedTemplate] = {}

    @classmethod
    def from_results(cls, results: Iterable[ParseResult]) -> "TemplateRegistry":
        """
        Build a registry from parsed files.

        Later files override earlier definitions of the same name, matching
        how the engine's template set treats redefinitions.

        Params:
            results: Parse results of helpers and templates, in load order

        Returns:
            The populated registry
        """
        registry = cls()
        for result in results:
            for define in result.defines():
                registry.register(define, result.file)
        return registry

    def register(self, define: Define, file: str = "") -> None:
        """Add a definition; unnamed definitions (from bad headers) are skipped."""
        if not define.name:
            return
        previous = self.templates.get(define.name)
        if previous is not None:
            logger.debug(
                "template %r from %s redefined in %s", define.name, previous.file or "<template>", file or "<template>"
            )
        self.templates[define.name] = DefinedTemplate(define.name, define, file)

    def get(self, name: str) -> DefinedTemplate | None:
        return self.templates.get(name)

    def names(self) -> list[str]:
        return sorted(self.templates)

    def __contains__(self, name: str) -> bool:
        return name in self.templates

    def __len__(self) -> int:
        return len(self.templates)
