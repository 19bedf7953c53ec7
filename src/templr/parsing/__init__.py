"""
Template parsing for templr.

This package scans template source into segments and parses them into the
directive/expression AST shared by the linter and the renderer.
"""

from templr.parsing.lexer import (
    DEFAULT_DELIMITERS,
    Delimiters,
    LineIndex,
    Scanner,
    Segment,
    SegmentKind,
    Token,
    TokenKind,
    scan,
    tokenize_action,
)
from templr.parsing.nodes import (
    Action,
    Bind,
    Call,
    Comment,
    Define,
    Directive,
    ElseIf,
    Expression,
    FieldPath,
    If,
    Include,
    Literal,
    Location,
    LoopControl,
    Opaque,
    Pipeline,
    Range,
    Root,
    Text,
    VariableRef,
    With,
    child_bodies,
    walk_directives,
)
from templr.parsing.parser import (
    BUILTIN_FUNCTIONS,
    ParseResult,
    SyntaxIssue,
    TemplateParser,
    parse_template,
)

__all__ = [
    "Action",
    "BUILTIN_FUNCTIONS",
    "Bind",
    "Call",
    "Comment",
    "DEFAULT_DELIMITERS",
    "Define",
    "Delimiters",
    "Directive",
    "ElseIf",
    "Expression",
    "FieldPath",
    "If",
    "Include",
    "LineIndex",
    "Literal",
    "Location",
    "LoopControl",
    "Opaque",
    "ParseResult",
    "Pipeline",
    "Range",
    "Root",
    "Scanner",
    "Segment",
    "SegmentKind",
    "SyntaxIssue",
    "TemplateParser",
    "Text",
    "Token",
    "TokenKind",
    "VariableRef",
    "With",
    "child_bodies",
    "parse_template",
    "scan",
    "tokenize_action",
    "walk_directives",
]
