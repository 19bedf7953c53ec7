"""
Static analysis of parsed templates.

This package tracks lexical scope over the template AST and extracts the
canonical data paths and function calls a template uses.
"""

from templr.analysis.extractor import (
    INCLUDE_FUNCTIONS,
    Extraction,
    FunctionCall,
    ReferenceExtractor,
    ReferencePath,
    extract_references,
)
from templr.analysis.registry import DefinedTemplate, TemplateRegistry
from templr.analysis.scopes import (
    DYNAMIC,
    ROOT_ALIAS,
    Binding,
    BoundTo,
    Dynamic,
    ElementOf,
    RootAlias,
    ScopeFrame,
    ScopeStack,
    bind_path,
)

__all__ = [
    "Binding",
    "BoundTo",
    "DYNAMIC",
    "DefinedTemplate",
    "Dynamic",
    "ElementOf",
    "Extraction",
    "FunctionCall",
    "INCLUDE_FUNCTIONS",
    "ROOT_ALIAS",
    "ReferenceExtractor",
    "ReferencePath",
    "RootAlias",
    "ScopeFrame",
    "ScopeStack",
    "TemplateRegistry",
    "bind_path",
    "extract_references",
]
