"""
Structural parser for the template DSL.

This module turns template source into a directive/expression AST. Parsing
never raises on malformed templates: problems are recorded as syntax issues
with line/column information and the parser resynchronizes at the next
action boundary, so the remainder of the file is still available for
analysis.
"""

import ast
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from templr.parsing.lexer import (
    DEFAULT_DELIMITERS,
    Delimiters,
    LineIndex,
    Segment,
    SegmentKind,
    Token,
    TokenKind,
    scan,
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
    walk_directives,
)

logger = logging.getLogger(__name__)

KEYWORDS = frozenset(
    {"if", "else", "end", "range", "with", "define", "template", "block", "break", "continue"}
)

LITERAL_IDENTIFIERS = {"true": True, "false": False, "nil": None}

# Functions every template engine instance provides.
BUILTIN_FUNCTIONS = frozenset(
    {
        "and", "or", "not", "len", "index", "slice", "print", "printf", "println",
        "html", "js", "urlquery", "call", "eq", "ne", "lt", "le", "gt", "ge",
    }
)

ROOT_VARIABLE = "$"
MAX_DIRECTIVE_TEXT = 60


@dataclass(frozen=True)
class SyntaxIssue:
    """
    A syntax problem found while parsing.

    Params:
        message: Human-readable description
        location: Where the problem was detected
        directive: The offending directive text, shortened
    """

    message: str
    location: Location
    directive: str = ""

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


@dataclass
class ParseResult:
    """Outcome of parsing one template file."""

    root: Root
    errors: list[SyntaxIssue] = field(default_factory=list)
    file: str = ""

    @property
    def ok(self) -> bool:
        return not self.errors

    def defines(self) -> list[Define]:
        """Return every named sub-template defined in this file."""
        return [node for node in walk_directives(self.root.nodes) if isinstance(node, Define)]


class _ActionError(Exception):
    """Internal: aborts parsing of the current action."""

    def __init__(self, message: str, offset: int | None = None):
        super().__init__(message)
        self.message = message
        self.offset = offset


@dataclass
class _Stop:
    """A terminating `end`/`else` directive handed back to the enclosing construct."""

    keyword: str
    segment: Segment

    @property
    def tokens(self) -> list[Token]:
        return self.segment.tokens


class _TokenStream:
    """Cursor over the tokens of a single action."""

    def __init__(self, tokens: list[Token], fallback_offset: int):
        self.tokens = tokens
        self.pos = 0
        self.fallback_offset = fallback_offset

    @property
    def done(self) -> bool:
        return self.pos >= len(self.tokens)

    def peek(self, ahead: int = 0) -> Token | None:
        index = self.pos + ahead
        return self.tokens[index] if index < len(self.tokens) else None

    def at(self, kind: TokenKind) -> bool:
        token = self.peek()
        return token is not None and token.kind == kind

    def next(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def offset(self) -> int:
        token = self.peek()
        if token is not None:
            return token.offset
        if self.tokens:
            return self.tokens[-1].end
        return self.fallback_offset


class _FunctionName:
    """Internal marker for an identifier operand before it becomes a Call."""

    def __init__(self, name: str, location: Location):
        self.name = name
        self.location = location


class _DirectiveParser:
    """Recursive-descent parser over the scanned segments of one template."""

    def __init__(
        self,
        source: str,
        segments: list[Segment],
        delimiters: Delimiters,
        functions: frozenset[str] | None,
    ):
        self.source = source
        self.segments = segments
        self.delimiters = delimiters
        self.functions = functions
        self.lines = LineIndex(source)
        self.index = 0
        self.errors: list[SyntaxIssue] = []
        self.vars: list[str] = [ROOT_VARIABLE]
        self.depth = 0
        self.range_depth = 0

    # Error helpers

    def location(self, offset: int) -> Location:
        return self.lines.location(offset)

    def error(self, message: str, offset: int, directive: str = "") -> None:
        if len(directive) > MAX_DIRECTIVE_TEXT:
            directive = directive[: MAX_DIRECTIVE_TEXT - 3] + "..."
        issue = SyntaxIssue(message, self.location(offset), directive)
        logger.debug("syntax issue at %s: %s", issue.location, message)
        self.errors.append(issue)

    def segment_error(self, segment: Segment, message: str, offset: int | None = None) -> None:
        self.error(message, segment.offset if offset is None else offset, segment.raw)

    # Directive level

    def parse_root(self) -> tuple[Directive, ...]:
        nodes, _ = self.parse_list(frozenset())
        return tuple(nodes)

    def parse_list(self, stops: frozenset[str]) -> tuple[list[Directive], _Stop | None]:
        """
        Parse directives until one of the stop keywords or end of input.

        Params:
            stops: Keywords ("end", "else") that terminate this list

        Returns:
            Tuple of (directives, the stop directive or None at end of input)
        """
        nodes: list[Directive] = []
        while self.index < len(self.segments):
            segment = self.segments[self.index]
            self.index += 1

            if segment.kind == SegmentKind.TEXT:
                nodes.append(Text(segment.text, self.location(segment.offset)))
                continue
            if segment.kind == SegmentKind.COMMENT:
                nodes.append(Comment(segment.text.strip(), self.location(segment.offset)))
                continue
            if segment.error:
                self.segment_error(segment, segment.error, segment.error_offset)
                continue
            if not segment.tokens:
                self.segment_error(segment, "missing value for command")
                continue

            head = segment.tokens[0]
            if head.kind == TokenKind.IDENTIFIER and head.text in ("end", "else"):
                if head.text in stops:
                    return nodes, _Stop(head.text, segment)
                self.segment_error(segment, f"unexpected {self.delimiters.wrap(head.text)}")
                continue

            try:
                nodes.extend(self.parse_directive(segment))
            except _ActionError as exc:
                self.segment_error(segment, exc.message, exc.offset)
        return nodes, None

    def parse_directive(self, segment: Segment) -> list[Directive]:
        head = segment.tokens[0]
        if head.kind == TokenKind.IDENTIFIER:
            if head.text == "block":
                return self.parse_block(segment)
            handlers = {
                "if": self.parse_if,
                "range": self.parse_range,
                "with": self.parse_with,
                "define": self.parse_define,
                "template": self.parse_template,
                "break": self.parse_loop_control,
                "continue": self.parse_loop_control,
            }
            if head.text in handlers:
                return [handlers[head.text](segment)]

        stream = _TokenStream(segment.tokens, segment.offset)
        pipeline = self.parse_pipeline(stream, allow_decl=True)
        self.expect_done(stream)
        location = self.location(segment.offset)
        if pipeline.declarations:
            expr = Pipeline(pipeline.stages, pipeline.location)
            return [
                Bind(
                    pipeline.declarations[0],
                    expr,
                    declare=not pipeline.is_assignment,
                    location=location,
                )
            ]
        return [Action(pipeline, location)]

    def parse_header(self, segment: Segment, tokens: list[Token], keyword: str, allow_decl: bool = True) -> Pipeline:
        """Parse a control header, falling back to an opaque pipeline on error."""
        offset = tokens[0].offset if tokens else segment.offset
        try:
            if not tokens:
                raise _ActionError(f"missing value for {keyword}", offset)
            stream = _TokenStream(tokens, offset)
            pipeline = self.parse_pipeline(stream, allow_decl=allow_decl)
            self.expect_done(stream)
            return pipeline
        except _ActionError as exc:
            self.segment_error(segment, exc.message, exc.offset)
            location = self.location(offset)
            return Pipeline((Opaque(segment.text.strip(), location, reason=exc.message),), location)

    def expect_end(self, segment: Segment, keyword: str, stop: _Stop | None) -> None:
        if stop is None:
            line = self.location(segment.offset).line
            self.segment_error(
                segment,
                f"unexpected EOF: {self.delimiters.wrap(keyword)} at line {line} "
                f"has no matching {self.delimiters.wrap('end')}",
            )
        elif len(stop.tokens) > 1:
            self.segment_error(stop.segment, f"unexpected {stop.tokens[1].text!r} in end", stop.tokens[1].offset)

    def parse_body(self, stops: frozenset[str]) -> tuple[tuple[Directive, ...], _Stop | None]:
        self.depth += 1
        try:
            nodes, stop = self.parse_list(stops)
        finally:
            self.depth -= 1
        return tuple(nodes), stop

    def parse_else_body(self, stop: _Stop) -> tuple[tuple[Directive, ...], _Stop | None]:
        if len(stop.tokens) > 1:
            extra = stop.tokens[1]
            self.segment_error(stop.segment, f"expected end; found {extra.text!r}", extra.offset)
        return self.parse_body(frozenset({"end"}))

    def parse_if(self, segment: Segment) -> If:
        mark = len(self.vars)
        cond = self.parse_header(segment, segment.tokens[1:], "if")
        body, stop = self.parse_body(frozenset({"end", "else"}))
        else_ifs: list[ElseIf] = []
        else_body = None

        while stop is not None and stop.keyword == "else":
            rest = stop.tokens[1:]
            if rest and rest[0].kind == TokenKind.IDENTIFIER and rest[0].text == "if":
                arm_segment = stop.segment
                arm_cond = self.parse_header(arm_segment, rest[1:], "if")
                arm_body, stop = self.parse_body(frozenset({"end", "else"}))
                else_ifs.append(ElseIf(arm_cond, arm_body, self.location(arm_segment.offset)))
                continue
            else_body, stop = self.parse_else_body(stop)
            break

        self.expect_end(segment, "if", stop)
        del self.vars[mark:]
        return If(cond, body, tuple(else_ifs), else_body, self.location(segment.offset))

    def parse_range(self, segment: Segment) -> Range:
        mark = len(self.vars)
        tokens = segment.tokens[1:]
        captures: list[str] = []

        if len(tokens) >= 2 and self._is_plain_variable(tokens[0]):
            if tokens[1].kind == TokenKind.DECLARE:
                captures = [tokens[0].text]
                tokens = tokens[2:]
            elif (
                tokens[1].kind == TokenKind.COMMA
                and len(tokens) >= 4
                and self._is_plain_variable(tokens[2])
                and tokens[3].kind == TokenKind.DECLARE
            ):
                captures = [tokens[0].text, tokens[2].text]
                tokens = tokens[4:]

        source = self.parse_header(segment, tokens, "range", allow_decl=False)
        self.vars.extend(captures)
        key_var = captures[0] if len(captures) == 2 else None
        value_var = captures[-1] if captures else None

        self.range_depth += 1
        try:
            body, stop = self.parse_body(frozenset({"end", "else"}))
        finally:
            self.range_depth -= 1

        else_body = None
        if stop is not None and stop.keyword == "else":
            else_body, stop = self.parse_else_body(stop)

        self.expect_end(segment, "range", stop)
        del self.vars[mark:]
        return Range(source, key_var, value_var, body, else_body, self.location(segment.offset))

    def parse_with(self, segment: Segment) -> With:
        node, stop = self._parse_with_chain(segment, segment.tokens[1:])
        self.expect_end(segment, "with", stop)
        return node

    def _parse_with_chain(self, segment: Segment, header: list[Token]) -> tuple[With, _Stop | None]:
        mark = len(self.vars)
        expr = self.parse_header(segment, header, "with")
        body, stop = self.parse_body(frozenset({"end", "else"}))
        else_body = None

        if stop is not None and stop.keyword == "else":
            rest = stop.tokens[1:]
            if rest and rest[0].kind == TokenKind.IDENTIFIER and rest[0].text == "with":
                del self.vars[mark:]
                nested, stop = self._parse_with_chain(stop.segment, rest[1:])
                return With(expr, body, (nested,), self.location(segment.offset)), stop
            else_body, stop = self.parse_else_body(stop)

        del self.vars[mark:]
        return With(expr, body, else_body, self.location(segment.offset)), stop

    def _template_name(self, segment: Segment, keyword: str) -> tuple[str, list[Token]]:
        tokens = segment.tokens[1:]
        if not tokens or tokens[0].kind not in (TokenKind.STRING, TokenKind.RAW_STRING):
            offset = tokens[0].offset if tokens else segment.offset
            raise _ActionError(f"{keyword} requires a quoted template name", offset)
        return _unquote(tokens[0].text), tokens[1:]

    def _block_name(self, segment: Segment, keyword: str) -> tuple[str, list[Token]]:
        # define/block still own a body up to {{end}}, so a bad name must not abort them
        try:
            return self._template_name(segment, keyword)
        except _ActionError as exc:
            self.segment_error(segment, exc.message, exc.offset)
            return "", []

    def _parse_isolated_body(self) -> tuple[tuple[Directive, ...], _Stop | None]:
        saved_vars, saved_range = self.vars, self.range_depth
        self.vars, self.range_depth = [ROOT_VARIABLE], 0
        try:
            return self.parse_body(frozenset({"end"}))
        finally:
            self.vars, self.range_depth = saved_vars, saved_range

    def parse_define(self, segment: Segment) -> Define:
        if self.depth > 0:
            self.segment_error(segment, f"unexpected {self.delimiters.wrap('define')} inside a block")
        name, rest = self._block_name(segment, "define")
        if rest:
            self.segment_error(segment, f"unexpected {rest[0].text!r} in define clause", rest[0].offset)
        body, stop = self._parse_isolated_body()
        self.expect_end(segment, "define", stop)
        return Define(name, body, self.location(segment.offset))

    def parse_template(self, segment: Segment) -> Include:
        name, rest = self._template_name(segment, "template")
        data = None
        if rest:
            stream = _TokenStream(rest, rest[0].offset)
            data = self.parse_pipeline(stream, allow_decl=False)
            self.expect_done(stream)
        return Include(name, data, self.location(segment.offset))

    def parse_block(self, segment: Segment) -> list[Directive]:
        name, rest = self._block_name(segment, "block")
        data = self.parse_header(segment, rest, "block", allow_decl=False) if rest else None
        body, stop = self._parse_isolated_body()
        self.expect_end(segment, "block", stop)
        location = self.location(segment.offset)
        return [Define(name, body, location), Include(name, data, location)]

    def parse_loop_control(self, segment: Segment) -> LoopControl:
        keyword = segment.tokens[0].text
        if self.range_depth == 0:
            raise _ActionError(f"{self.delimiters.wrap(keyword)} outside {self.delimiters.wrap('range')}")
        if len(segment.tokens) > 1:
            extra = segment.tokens[1]
            raise _ActionError(f"unexpected {extra.text!r} in {keyword}", extra.offset)
        return LoopControl(keyword, self.location(segment.offset))

    # Expression level

    @staticmethod
    def _is_plain_variable(token: Token) -> bool:
        return token.kind == TokenKind.VARIABLE and "." not in token.text

    def expect_done(self, stream: _TokenStream) -> None:
        if not stream.done:
            token = stream.peek()
            raise _ActionError(f"unexpected {token.text!r} in command", token.offset)

    def parse_pipeline(self, stream: _TokenStream, allow_decl: bool, in_parens: bool = False) -> Pipeline:
        """
        Parse `[decl] command ('|' command)*`.

        Params:
            stream: Token cursor positioned at the pipeline start
            allow_decl: Whether `$x :=` / `$x =` may prefix the pipeline
            in_parens: Stop at a closing parenthesis

        Returns:
            The parsed Pipeline
        """
        location = self.location(stream.offset())
        declarations: tuple[str, ...] = ()
        is_assignment = False

        first, second = stream.peek(), stream.peek(1)
        if (
            allow_decl
            and first is not None
            and second is not None
            and self._is_plain_variable(first)
            and second.kind in (TokenKind.DECLARE, TokenKind.ASSIGN)
        ):
            stream.next()
            stream.next()
            if second.kind == TokenKind.DECLARE:
                self.vars.append(first.text)
            elif first.text not in self.vars:
                raise _ActionError(f'undefined variable "{first.text}"', first.offset)
            declarations = (first.text,)
            is_assignment = second.kind == TokenKind.ASSIGN

        stages: list[Expression] = []
        while True:
            stage_start = stream.offset()
            stage = self.parse_command(stream)
            if stages and isinstance(stage, Literal):
                raise _ActionError(
                    f"non executable command in pipeline stage {len(stages) + 1}",
                    stage_start,
                )
            stages.append(stage)
            if stream.at(TokenKind.PIPE):
                stream.next()
                continue
            break

        if not stream.done and not (in_parens and stream.at(TokenKind.RPAREN)):
            token = stream.peek()
            raise _ActionError(f"unexpected {token.text!r} in operand", token.offset)
        return Pipeline(tuple(stages), location, declarations, is_assignment)

    def parse_command(self, stream: _TokenStream) -> Expression:
        start = stream.offset()
        location = self.location(start)
        operands: list[Expression | _FunctionName] = []
        unsupported = False
        end = start

        while not stream.done and not stream.at(TokenKind.PIPE) and not stream.at(TokenKind.RPAREN):
            token = stream.peek()
            if token.kind in (TokenKind.OTHER, TokenKind.ASSIGN, TokenKind.DECLARE, TokenKind.COMMA):
                unsupported = True
                end = stream.next().end
                continue
            operands.append(self.parse_operand(stream))
            end = stream.tokens[stream.pos - 1].end

        if not operands and not unsupported:
            raise _ActionError("missing value for command", start)

        if unsupported:
            children = tuple(self._as_expression(op) for op in operands)
            return Opaque(self.source[start:end], location, children, reason="unsupported expression")

        head = operands[0]
        if isinstance(head, _FunctionName):
            args = tuple(self._as_expression(op) for op in operands[1:])
            return Call(head.name, args, head.location)
        if len(operands) > 1:
            children = tuple(self._as_expression(op) for op in operands)
            return Opaque(self.source[start:end], location, children, reason="arguments given to non-function")
        return head

    @staticmethod
    def _as_expression(operand: "Expression | _FunctionName") -> Expression:
        if isinstance(operand, _FunctionName):
            return Call(operand.name, (), operand.location)
        return operand

    def parse_operand(self, stream: _TokenStream) -> "Expression | _FunctionName":
        token = stream.next()
        location = self.location(token.offset)

        kind = token.kind
        if kind == TokenKind.FIELD:
            return FieldPath(".", tuple(token.text[1:].split(".")), location)
        if kind == TokenKind.DOT:
            return FieldPath(".", (), location)
        if kind == TokenKind.VARIABLE:
            name, *steps = token.text.split(".")
            if name not in self.vars:
                raise _ActionError(f'undefined variable "{name}"', token.offset)
            if steps:
                return FieldPath(name, tuple(steps), location)
            return VariableRef(name, location)
        if kind == TokenKind.STRING:
            return Literal(_unquote(token.text), location)
        if kind == TokenKind.RAW_STRING:
            return Literal(token.text[1:-1], location)
        if kind == TokenKind.CHAR:
            return Literal(_char_value(token.text), location)
        if kind == TokenKind.NUMBER:
            return Literal(_number_value(token.text), location)
        if kind == TokenKind.IDENTIFIER:
            if token.text in LITERAL_IDENTIFIERS:
                return Literal(LITERAL_IDENTIFIERS[token.text], location)
            if token.text in KEYWORDS:
                raise _ActionError(f"unexpected {token.text!r} in command", token.offset)
            if self.functions is not None and token.text not in self.functions:
                raise _ActionError(f'function "{token.text}" not defined', token.offset)
            return _FunctionName(token.text, location)
        if kind == TokenKind.LPAREN:
            inner = self.parse_pipeline(stream, allow_decl=False, in_parens=True)
            if not stream.at(TokenKind.RPAREN):
                raise _ActionError("unclosed left paren", token.offset)
            closing = stream.next()
            end = closing.end
            while stream.at(TokenKind.FIELD) and not stream.peek().spaced:
                end = stream.next().end
            if end != closing.end:
                return Opaque(
                    self.source[token.offset:end],
                    location,
                    (inner,),
                    reason="field access on expression result",
                )
            return inner

        raise _ActionError(f"unexpected {token.text!r} in operand", token.offset)


def _unquote(text: str) -> str:
    if text.startswith("`"):
        return text[1:-1]
    try:
        value = ast.literal_eval(text)
    except (ValueError, SyntaxError):
        return text[1:-1]
    return value if isinstance(value, str) else text[1:-1]


def _char_value(text: str) -> int | str:
    body = _unquote(text)
    return ord(body) if len(body) == 1 else body


def _number_value(text: str) -> int | float | str:
    cleaned = text.replace("_", "")
    try:
        return int(cleaned, 0)
    except ValueError:
        pass
    try:
        return float(cleaned)
    except ValueError:
        return text


class TemplateParser:
    """
    Parser for template source text.

    Example:
        parser = TemplateParser()
        result = parser.parse("Hello {{ .name }}!", file="hello.tpl")
        assert result.ok
    """

    def __init__(
        self,
        delimiters: Delimiters | None = None,
        known_functions: Iterable[str] | None = None,
    ):
        """
        Initialize the parser.

        Params:
            delimiters: Action delimiter pair, `{{`/`}}` when omitted
            known_functions: When given, calls to any other function (besides
                the built-in ones) are reported as syntax errors
        """
        self.delimiters = delimiters or DEFAULT_DELIMITERS
        self.known_functions = (
            None if known_functions is None else frozenset(known_functions) | BUILTIN_FUNCTIONS
        )

    def parse(self, source: str, file: str = "") -> ParseResult:
        """
        Parse one template.

        Params:
            source: Template source text
            file: File name recorded on the result

        Returns:
            ParseResult with the AST and any syntax issues
        """
        segments, lex_errors = scan(source, self.delimiters)
        parser = _DirectiveParser(source, segments, self.delimiters, self.known_functions)
        for lex_error in lex_errors:
            parser.error(lex_error.message, lex_error.offset, lex_error.raw)

        nodes = parser.parse_root()
        errors = sorted(parser.errors, key=lambda issue: issue.location)
        if errors:
            logger.debug("parsed %s with %d syntax issue(s)", file or "<template>", len(errors))
        return ParseResult(Root(nodes, file), errors, file)


def parse_template(source: str, file: str = "", delimiters: Delimiters | None = None) -> ParseResult:
    """Parse template source with a default-configured TemplateParser."""
    return TemplateParser(delimiters).parse(source, file)
