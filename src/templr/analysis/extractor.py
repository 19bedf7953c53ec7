"""
Reference extraction for static template analysis.

Walks a parsed template depth-first with a ScopeStack, resolving every
field-access chain to a canonical value-tree path and recording every
function call. Nothing is executed and no data is consulted; whether the
recorded paths exist is decided later by the lint engine.

Accesses inside conditional branches are recorded unconditionally. Paths
whose base is not statically known (range elements, dynamic bindings,
define bodies) are dropped rather than guessed.
"""

import logging
from dataclasses import dataclass, field

from templr.analysis.registry import TemplateRegistry
from templr.analysis.scopes import (
    DOT,
    DYNAMIC,
    Binding,
    ElementOf,
    ScopeStack,
    bind_path,
)
from templr.exceptions import ScopeStackError
from templr.parsing import (
    Action,
    Bind,
    Call,
    Define,
    Directive,
    Expression,
    FieldPath,
    If,
    Include,
    Literal,
    Location,
    Opaque,
    ParseResult,
    Pipeline,
    Range,
    VariableRef,
    With,
)

logger = logging.getLogger(__name__)

# Functions that invoke a named sub-template: `include "name" data`
INCLUDE_FUNCTIONS = frozenset({"include", "template"})


@dataclass(frozen=True)
class ReferencePath:
    """
    A statically resolved data reference.

    Params:
        path: Canonical dotted path in the value tree
        location: Where the access appears
        file: File containing the access
        via: Sub-template name when found by include refinement
    """

    path: str
    location: Location | None
    file: str = ""
    via: str | None = None


@dataclass(frozen=True)
class FunctionCall:
    """A function invocation site."""

    name: str
    location: Location | None
    file: str = ""


@dataclass
class Extraction:
    """Everything the extractor found in one template file."""

    file: str = ""
    references: list[ReferencePath] = field(default_factory=list)
    calls: list[FunctionCall] = field(default_factory=list)

    def paths(self) -> set[str]:
        return {ref.path for ref in self.references}

    def function_names(self) -> set[str]:
        return {call.name for call in self.calls}


@dataclass(frozen=True)
class _IncludeSite:
    name: str
    location: Location


class ReferenceExtractor:
    """
    Scope-aware AST walker collecting data references and function calls.

    Example:
        extractor = ReferenceExtractor(registry)
        extraction = extractor.extract(parse_template("{{ .a.b }}"))
        extraction.paths()  # {"a.b"}
    """

    def __init__(self, registry: TemplateRegistry | None = None, refine_includes: bool = False):
        """
        Initialize the extractor.

        Params:
            registry: Sub-templates visible to include sites
            refine_includes: Re-analyze a sub-template body with the concrete
                data path an include site passes to it
        """
        self.registry = registry or TemplateRegistry()
        self.refine_includes = refine_includes
        self._extraction = Extraction()
        self._site: _IncludeSite | None = None
        self._active: list[str] = []

    def extract(self, result: ParseResult) -> Extraction:
        """
        Extract references and calls from one parsed template.

        Params:
            result: Parsed template (syntax errors are ignored here)

        Returns:
            The Extraction for the file

        Raises:
            ScopeStackError: If a construct leaves the scope stack unbalanced
        """
        self._extraction = Extraction(file=result.file)
        self._site = None
        self._active = []

        stack = ScopeStack()
        entry_depth = stack.depth
        self._walk(result.root.nodes, stack)
        if stack.depth != entry_depth:
            raise ScopeStackError(entry_depth, stack.depth, "root")

        extraction = self._extraction
        logger.debug(
            "extracted %d reference(s) and %d call(s) from %s",
            len(extraction.references),
            len(extraction.calls),
            result.file or "<template>",
        )
        return extraction

    # Recording

    def _record_reference(self, path: str, location: Location) -> None:
        if self._site is not None:
            ref = ReferencePath(path, self._site.location, self._extraction.file, self._site.name)
        else:
            ref = ReferencePath(path, location, self._extraction.file)
        self._extraction.references.append(ref)

    def _record_call(self, name: str, location: Location) -> None:
        # Refined sub-template bodies were already scanned for calls at their definition
        if self._site is None:
            self._extraction.calls.append(FunctionCall(name, location, self._extraction.file))

    # Directives

    def _walk(self, nodes: tuple[Directive, ...], stack: ScopeStack) -> None:
        for node in nodes:
            self._visit(node, stack)

    def _visit(self, node: Directive, stack: ScopeStack) -> None:
        if isinstance(node, Action):
            self._pipeline(node.expr, stack)
        elif isinstance(node, Bind):
            binding = self._pipeline(node.expr, stack)
            if node.declare:
                stack.declare(node.name, binding)
            else:
                stack.assign(node.name, binding)
        elif isinstance(node, If):
            with stack.frame("if"):
                self._pipeline(node.cond, stack)
                self._walk(node.body, stack)
                for arm in node.else_ifs:
                    self._pipeline(arm.cond, stack)
                    self._walk(arm.body, stack)
                if node.else_body is not None:
                    self._walk(node.else_body, stack)
        elif isinstance(node, Range):
            self._visit_range(node, stack)
        elif isinstance(node, With):
            self._visit_with(node, stack)
        elif isinstance(node, Define):
            self._visit_define(node)
        elif isinstance(node, Include):
            binding = DYNAMIC if node.data is None else self._pipeline(node.data, stack)
            self._refine_include(node.name, binding, node.location)

    def _visit_range(self, node: Range, stack: ScopeStack) -> None:
        outer_dot = stack.lookup(DOT)
        source = self._pipeline(node.source, stack)
        element = ElementOf(source.resolve(()) or None)
        with stack.frame("range", dot=element):
            for capture in (node.key_var, node.value_var):
                if capture:
                    stack.declare(capture, element)
            self._walk(node.body, stack)
            if node.else_body is not None:
                with stack.frame("range-else", dot=outer_dot):
                    self._walk(node.else_body, stack)

    def _visit_with(self, node: With, stack: ScopeStack) -> None:
        outer_dot = stack.lookup(DOT)
        with stack.frame("with") as frame:
            frame.bind(DOT, self._pipeline(node.expr, stack))
            self._walk(node.body, stack)
            if node.else_body is not None:
                with stack.frame("with-else", dot=outer_dot):
                    self._walk(node.else_body, stack)

    def _visit_define(self, node: Define) -> None:
        # The data passed at invocation is unknown, so both `.` and `$` are opaque
        isolated = ScopeStack(dot=DYNAMIC, root=DYNAMIC)
        with isolated.frame("define"):
            self._walk(node.body, isolated)

    def _refine_include(self, name: str, binding: Binding, location: Location) -> None:
        """Re-analyze a sub-template body with the data path an include site passes."""
        if not self.refine_includes or binding.resolve(()) is None:
            return

        target = self.registry.get(name)
        if target is None:
            logger.debug("include of unknown template %r at %s", name, location)
            return
        if name in self._active:
            logger.debug("skipping recursive include of %r at %s", name, location)
            return

        saved_site = self._site
        self._site = saved_site or _IncludeSite(name, location)
        self._active.append(name)
        try:
            refined = ScopeStack(dot=binding, root=binding)
            with refined.frame("define"):
                self._walk(target.define.body, refined)
        finally:
            self._active.pop()
            self._site = saved_site

    # Expressions

    def _pipeline(self, pipeline: Pipeline, stack: ScopeStack) -> Binding:
        binding = self._expression(pipeline, stack)
        for name in pipeline.declarations:
            if pipeline.is_assignment:
                stack.assign(name, binding)
            else:
                stack.declare(name, binding)
        return binding

    def _expression(self, expr: Expression, stack: ScopeStack) -> Binding:
        """
        Record what an expression references and return its binding.

        A simple field access or variable binds to its resolved path; every
        other expression is dynamic.
        """
        if isinstance(expr, FieldPath):
            path = stack.resolve(expr.base, expr.steps)
            if path is not None and expr.steps:
                self._record_reference(path, expr.location)
            if not expr.steps:
                return stack.lookup(expr.base) or DYNAMIC
            return bind_path(path)
        if isinstance(expr, VariableRef):
            return stack.lookup(expr.name) or DYNAMIC
        if isinstance(expr, Call):
            self._record_call(expr.function, expr.location)
            bindings = [self._expression(arg, stack) for arg in expr.args]
            name = expr.args[0] if expr.args else None
            if (
                expr.function in INCLUDE_FUNCTIONS
                and len(bindings) == 2
                and isinstance(name, Literal)
                and isinstance(name.value, str)
            ):
                self._refine_include(name.value, bindings[1], expr.location)
            return DYNAMIC
        if isinstance(expr, Pipeline):
            bindings = [self._expression(stage, stack) for stage in expr.stages]
            return bindings[0] if len(bindings) == 1 else DYNAMIC
        if isinstance(expr, Opaque):
            for child in expr.children:
                self._expression(child, stack)
        return DYNAMIC


def extract_references(
    result: ParseResult,
    registry: TemplateRegistry | None = None,
    refine_includes: bool = False,
) -> Extraction:
    """Extract references from one parsed template with a fresh extractor."""
    return ReferenceExtractor(registry, refine_includes).extract(result)
