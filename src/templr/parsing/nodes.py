"""
Template AST node definitions.

Directive nodes describe the block structure of a template (text, actions,
conditionals, loops, scoped rebinding, named sub-templates). Expression nodes
describe what an action evaluates: field paths, variables, literals, function
calls and pipelines. All nodes are immutable.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, order=True)
class Location:
    """1-based line/column position of a directive or expression."""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


# Expressions


@dataclass(frozen=True)
class FieldPath:
    """
    A field-access chain.

    Params:
        base: "." for the implicit context, or a variable name ("$", "$item")
        steps: Literal field names accessed in order
        location: Where the chain starts
    """

    base: str
    steps: tuple[str, ...]
    location: Location

    @property
    def is_dot(self) -> bool:
        """True for a bare reference to the implicit context."""
        return self.base == "." and not self.steps

    def __str__(self) -> str:
        suffix = "".join(f".{step}" for step in self.steps)
        if self.base == ".":
            return suffix or "."
        return f"{self.base}{suffix}"


@dataclass(frozen=True)
class VariableRef:
    """A bare variable reference such as `$item` or `$`."""

    name: str
    location: Location


@dataclass(frozen=True)
class Literal:
    """A constant: string, number, bool or nil."""

    value: Any
    location: Location


@dataclass(frozen=True)
class Call:
    """A function invocation with explicit arguments."""

    function: str
    args: tuple["Expression", ...]
    location: Location


@dataclass(frozen=True)
class Pipeline:
    """
    A sequence of stages joined with `|`.

    Each stage after the first receives the previous stage's result as an
    extra argument. Declarations hold variables introduced by `:=` (or
    reassigned by `=` when is_assignment is set).
    """

    stages: tuple["Expression", ...]
    location: Location
    declarations: tuple[str, ...] = ()
    is_assignment: bool = False

    @property
    def single_stage(self) -> "Expression | None":
        """Return the only stage, or None when the pipeline has several."""
        if len(self.stages) == 1:
            return self.stages[0]
        return None


@dataclass(frozen=True)
class Opaque:
    """
    An expression outside the supported grammar.

    It is never resolved to a data path; parsed children are kept so that
    function calls inside it are still visible.
    """

    text: str
    location: Location
    children: tuple["Expression", ...] = ()
    reason: str = ""


Expression = FieldPath | VariableRef | Literal | Call | Pipeline | Opaque


# Directives


@dataclass(frozen=True)
class Text:
    """A run of literal template text."""

    text: str
    location: Location


@dataclass(frozen=True)
class Comment:
    """A stripped comment directive."""

    text: str
    location: Location


@dataclass(frozen=True)
class Action:
    """A directive that evaluates a pipeline and prints the result."""

    expr: Pipeline
    location: Location


@dataclass(frozen=True)
class Bind:
    """Variable declaration (`$x := e`) or reassignment (`$x = e`)."""

    name: str
    expr: Pipeline
    declare: bool
    location: Location


@dataclass(frozen=True)
class ElseIf:
    """One `else if` arm of a conditional chain."""

    cond: Pipeline
    body: tuple["Directive", ...]
    location: Location


@dataclass(frozen=True)
class If:
    cond: Pipeline
    body: tuple["Directive", ...]
    else_ifs: tuple[ElseIf, ...]
    else_body: tuple["Directive", ...] | None
    location: Location


@dataclass(frozen=True)
class Range:
    """Iteration with optional key/value captures and an `else` branch."""

    source: Pipeline
    key_var: str | None
    value_var: str | None
    body: tuple["Directive", ...]
    else_body: tuple["Directive", ...] | None
    location: Location


@dataclass(frozen=True)
class With:
    """Scoped rebinding of the implicit context."""

    expr: Pipeline
    body: tuple["Directive", ...]
    else_body: tuple["Directive", ...] | None
    location: Location


@dataclass(frozen=True)
class Define:
    """Named sub-template definition."""

    name: str
    body: tuple["Directive", ...]
    location: Location


@dataclass(frozen=True)
class Include:
    """Named sub-template invocation with an explicit data expression."""

    name: str
    data: Pipeline | None
    location: Location


@dataclass(frozen=True)
class LoopControl:
    """`break` or `continue` inside a range body."""

    keyword: str
    location: Location


Directive = (
    Text | Comment | Action | Bind | If | Range | With | Define | Include | LoopControl
)


@dataclass(frozen=True)
class Root:
    """The parsed template: an ordered sequence of directives."""

    nodes: tuple[Directive, ...]
    file: str = ""


def child_bodies(node: Directive) -> list[tuple[Directive, ...]]:
    """Return the nested directive lists of a node, in source order."""
    if isinstance(node, Define):
        return [node.body]
    if not isinstance(node, (If, Range, With)):
        return []
    bodies = [node.body]
    if isinstance(node, If):
        bodies.extend(arm.body for arm in node.else_ifs)
    if node.else_body is not None:
        bodies.append(node.else_body)
    return bodies


def walk_directives(nodes: tuple[Directive, ...]) -> Iterator[Directive]:
    """Yield every directive depth-first, parents before children."""
    for node in nodes:
        yield node
        for body in child_bodies(node):
            yield from walk_directives(body)
