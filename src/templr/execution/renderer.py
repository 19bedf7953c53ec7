"""
Template execution engine.

Renders the parsed AST against plain Python data. It is used for the
computed `templr.vars` layer and for rendering single templates; the lint
path never executes anything.

Semantics follow the template engine the DSL comes from: a missing map key
yields no value (printed as `<no value>`) unless strict mode is on, range
iterates lists by index and maps by sorted key, and variables are scoped to
the control structure that declares them.
"""

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from templr.core.types import PlainMapping
from templr.exceptions import ErrorContext, RenderError, TemplateSyntaxError
from templr.execution.functions import (
    NO_VALUE,
    FunctionMap,
    build_function_map,
    format_value,
    is_true,
)
from templr.parsing import (
    Action,
    Bind,
    Call,
    Define,
    Delimiters,
    Directive,
    Expression,
    FieldPath,
    If,
    Include,
    Literal,
    Location,
    LoopControl,
    Opaque,
    ParseResult,
    Pipeline,
    Range,
    TemplateParser,
    Text,
    VariableRef,
    With,
)

logger = logging.getLogger(__name__)

MAX_TEMPLATE_DEPTH = 100


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Execution:
    """State of one template execution: output buffer and variable stack."""

    def __init__(self, renderer: "Renderer", file: str, data: Any, depth: int):
        self.renderer = renderer
        self.file = file
        self.depth = depth
        self.output: list[str] = []
        self.vars: list[list[Any]] = [["$", data]]
        self.functions = dict(renderer.functions)
        self.functions["include"] = self._include

    # Variables

    def mark(self) -> int:
        return len(self.vars)

    def pop(self, mark: int) -> None:
        del self.vars[mark:]

    def push(self, name: str, value: Any) -> None:
        self.vars.append([name, value])

    def set_var(self, name: str, value: Any, location: Location) -> None:
        for entry in reversed(self.vars):
            if entry[0] == name:
                entry[1] = value
                return
        raise self.error(f"undefined variable: {name}", location)

    def var(self, name: str, location: Location) -> Any:
        for entry_name, value in reversed(self.vars):
            if entry_name == name:
                return value
        raise self.error(f"undefined variable: {name}", location)

    def error(self, message: str, location: Location | None) -> RenderError:
        context = ErrorContext(
            file=self.file or None,
            line=location.line if location else None,
            column=location.column if location else None,
        )
        return RenderError(message, context)

    # Directives

    def walk(self, nodes: Sequence[Directive], dot: Any) -> None:
        for node in nodes:
            self.visit(node, dot)

    def visit(self, node: Directive, dot: Any) -> None:
        if isinstance(node, Text):
            self.output.append(node.text)
        elif isinstance(node, Action):
            self.output.append(format_value(self.pipeline(node.expr, dot)))
        elif isinstance(node, Bind):
            value = self.pipeline(node.expr, dot)
            if node.declare:
                self.push(node.name, value)
            else:
                self.set_var(node.name, value, node.location)
        elif isinstance(node, If):
            self.visit_if(node, dot)
        elif isinstance(node, Range):
            self.visit_range(node, dot)
        elif isinstance(node, With):
            self.visit_with(node, dot)
        elif isinstance(node, Include):
            data = None if node.data is None else self.pipeline(node.data, dot)
            self.output.append(self.renderer.execute_template(node.name, data, self.depth + 1, node.location))
        elif isinstance(node, LoopControl):
            raise _Break() if node.keyword == "break" else _Continue()
        # comments and definitions produce no output

    def visit_if(self, node: If, dot: Any) -> None:
        mark = self.mark()
        try:
            if is_true(self.pipeline(node.cond, dot)):
                self.walk(node.body, dot)
                return
            for arm in node.else_ifs:
                if is_true(self.pipeline(arm.cond, dot)):
                    self.walk(arm.body, dot)
                    return
            if node.else_body is not None:
                self.walk(node.else_body, dot)
        finally:
            self.pop(mark)

    def visit_with(self, node: With, dot: Any) -> None:
        mark = self.mark()
        try:
            value = self.pipeline(node.expr, dot)
            if is_true(value):
                self.walk(node.body, value)
            elif node.else_body is not None:
                self.walk(node.else_body, dot)
        finally:
            self.pop(mark)

    def visit_range(self, node: Range, dot: Any) -> None:
        mark = self.mark()
        try:
            source = self.pipeline(node.source, dot)
            items = list(self._iterate(source, node.location))
            if not items:
                if node.else_body is not None:
                    self.walk(node.else_body, dot)
                return
            for key, element in items:
                body_mark = self.mark()
                if node.key_var:
                    self.push(node.key_var, key)
                if node.value_var:
                    self.push(node.value_var, element)
                try:
                    self.walk(node.body, element)
                except _Continue:
                    pass
                except _Break:
                    break
                finally:
                    self.pop(body_mark)
        finally:
            self.pop(mark)

    def _iterate(self, source: Any, location: Location) -> Iterator[tuple[Any, Any]]:
        if source is None:
            return
        if isinstance(source, Mapping):
            for key in sorted(source):
                yield key, source[key]
        elif isinstance(source, (list, tuple)):
            yield from enumerate(source)
        elif isinstance(source, int) and not isinstance(source, bool):
            for i in range(source):
                yield i, i
        else:
            raise self.error(f"range can't iterate over {format_value(source)}", location)

    # Expressions

    def pipeline(self, pipeline: Pipeline, dot: Any) -> Any:
        value: Any = None
        for i, stage in enumerate(pipeline.stages):
            if i == 0:
                value = self.expression(stage, dot)
            else:
                value = self.command(stage, dot, piped=(value,))
        for name in pipeline.declarations:
            if pipeline.is_assignment:
                self.set_var(name, value, pipeline.location)
            else:
                self.push(name, value)
        return value

    def command(self, stage: Expression, dot: Any, piped: tuple[Any, ...]) -> Any:
        if isinstance(stage, Call):
            return self.call(stage, dot, piped)
        raise self.error("can't give argument to non-function", getattr(stage, "location", None))

    def expression(self, expr: Expression, dot: Any) -> Any:
        if isinstance(expr, FieldPath):
            base = dot if expr.base == "." else self.var(expr.base, expr.location)
            return self.fields(base, expr.steps, expr.location)
        if isinstance(expr, VariableRef):
            return self.var(expr.name, expr.location)
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, Call):
            return self.call(expr, dot, ())
        if isinstance(expr, Pipeline):
            return self.pipeline(expr, dot)
        if isinstance(expr, Opaque):
            raise self.error(f"unsupported expression {expr.text!r}", expr.location)
        raise self.error(f"cannot evaluate {expr!r}", None)

    def fields(self, value: Any, steps: tuple[str, ...], location: Location) -> Any:
        for step in steps:
            if isinstance(value, Mapping):
                if step in value:
                    value = value[step]
                    continue
                if self.renderer.strict:
                    raise self.error(f'map has no entry for key "{step}"', location)
                return None
            if value is None:
                if self.renderer.strict:
                    raise self.error(f"nil pointer evaluating .{step}", location)
                return None
            raise self.error(f"can't evaluate field {step} in type {type(value).__name__}", location)
        return value

    def call(self, call: Call, dot: Any, piped: tuple[Any, ...]) -> Any:
        function = self.functions.get(call.function)
        if function is None:
            raise self.error(f'function "{call.function}" not defined', call.location)
        args = [self.expression(arg, dot) for arg in call.args]
        # text/template convention: the piped value is the final argument
        args.extend(piped)
        try:
            return function(*args)
        except RenderError as exc:
            if exc.context is not None:
                raise
            raise self.error(f"error calling {call.function}: {exc}", call.location) from exc
        except (TypeError, ValueError, KeyError, IndexError, AttributeError, ZeroDivisionError) as exc:
            raise self.error(f"error calling {call.function}: {exc}", call.location) from exc

    def _include(self, name: str, data: Any = None) -> str:
        return self.renderer.execute_template(name, data, self.depth + 1, None)


class Renderer:
    """
    Executes parsed templates.

    Example:
        renderer = Renderer.from_sources("{{ .greeting }}, {{ .name }}!")
        renderer.render({"greeting": "Hello", "name": "world"})
    """

    def __init__(
        self,
        main: ParseResult | None = None,
        helpers: Sequence[ParseResult] = (),
        functions: Mapping[str, Callable[..., Any]] | None = None,
        strict: bool = False,
        default_missing: str | None = None,
    ):
        """
        Initialize the renderer.

        Params:
            main: Template rendered by `render`
            helpers: Parsed helper files contributing named sub-templates
            functions: Extra functions merged over the default map
            strict: Fail on missing map keys instead of producing no value
            default_missing: Replacement for `<no value>` in the final output

        Raises:
            TemplateSyntaxError: If any template has parse errors
        """
        self.main = main
        self.strict = strict
        self.default_missing = default_missing
        self.functions: FunctionMap = build_function_map()
        if functions:
            self.functions.update(functions)

        self.templates: dict[str, tuple[Define, str]] = {}
        for result in [*helpers, *([main] if main is not None else [])]:
            if not result.ok:
                first = result.errors[0]
                raise TemplateSyntaxError(
                    f"template has {len(result.errors)} syntax error(s): {first.message}",
                    ErrorContext(
                        file=result.file or None,
                        line=first.location.line,
                        column=first.location.column,
                        directive=first.directive or None,
                    ),
                )
            for define in result.defines():
                if define.name:
                    self.templates[define.name] = (define, result.file)

    @classmethod
    def from_sources(
        cls,
        source: str,
        helpers: Sequence[str] = (),
        delimiters: Delimiters | None = None,
        **options: Any,
    ) -> "Renderer":
        """Parse template and helper text and build a renderer."""
        parser = TemplateParser(delimiters)
        main = parser.parse(source, "template")
        parsed_helpers = [parser.parse(text, f"helpers[{i}]") for i, text in enumerate(helpers)]
        return cls(main, parsed_helpers, **options)

    def has_template(self, name: str) -> bool:
        return name in self.templates

    def render(self, data: PlainMapping | None = None) -> str:
        """
        Render the main template.

        Raises:
            RenderError: If execution fails
        """
        if self.main is None:
            raise RenderError("no main template to render")
        execution = _Execution(self, self.main.file, data, 0)
        execution.walk(self.main.root.nodes, data)
        return self._finish("".join(execution.output))

    def render_template(self, name: str, data: Any = None) -> str:
        """
        Render one named sub-template.

        Raises:
            RenderError: If the template is unknown or execution fails
        """
        return self._finish(self.execute_template(name, data, 0, None))

    def execute_template(self, name: str, data: Any, depth: int, location: Location | None) -> str:
        entry = self.templates.get(name)
        if entry is None:
            raise RenderError(f'no such template "{name}"', _context(location))
        if depth > MAX_TEMPLATE_DEPTH:
            raise RenderError(f'exceeded maximum template depth ({MAX_TEMPLATE_DEPTH}) in "{name}"', _context(location))
        define, file = entry
        execution = _Execution(self, file, data, depth)
        try:
            execution.walk(define.body, data)
        except (_Break, _Continue):
            raise RenderError(f'break or continue outside range in "{name}"', _context(location)) from None
        return "".join(execution.output)

    def _finish(self, output: str) -> str:
        if self.default_missing and self.default_missing != NO_VALUE:
            output = output.replace(NO_VALUE, self.default_missing)
        return output


def _context(location: Location | None) -> ErrorContext | None:
    if location is None:
        return None
    return ErrorContext(line=location.line, column=location.column)


def render_string(
    source: str,
    data: PlainMapping | None = None,
    helpers: Sequence[str] = (),
    delimiters: Delimiters | None = None,
    strict: bool = False,
    default_missing: str | None = None,
) -> str:
    """
    Parse and render one template in memory.

    Helpers are parsed before the template so their named sub-templates are
    available to it.

    Raises:
        TemplateSyntaxError: If the template or a helper does not parse
        RenderError: If execution fails
    """
    renderer = Renderer.from_sources(
        source, helpers, delimiters, strict=strict, default_missing=default_missing
    )
    return renderer.render(data or {})


def vars_renderer_for(
    helpers: Sequence[ParseResult],
    name: str,
) -> Callable[[PlainMapping], str] | None:
    """
    Build the computed-layer renderer for a named sub-template.

    Params:
        helpers: Parsed helper files
        name: Sub-template whose output is the computed layer

    Returns:
        A callable rendering that template against plain data, or None when
        no helper defines it
    """
    renderer = Renderer(None, helpers)
    if not renderer.has_template(name):
        logger.debug("no %r template among %d helper(s)", name, len(helpers))
        return None

    def render_vars(data: PlainMapping) -> str:
        return renderer.render_template(name, data)

    return render_vars
