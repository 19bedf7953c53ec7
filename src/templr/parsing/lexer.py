"""
Lexer for the template DSL.

Scanning happens in two levels. The source is first split into segments
(literal text, actions and comments) using the configured delimiter pair,
applying whitespace-trim markers to adjacent text. Each action's interior is
then tokenized on its own, so a broken action never derails the segments
that follow it.
"""

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum

from templr.parsing.nodes import Location

DEFAULT_LEFT_DELIMITER = "{{"
DEFAULT_RIGHT_DELIMITER = "}}"

TRIM_MARKER = "-"
COMMENT_OPEN = "/*"
COMMENT_CLOSE = "*/"
WHITESPACE = " \t\r\n"


@dataclass(frozen=True)
class Delimiters:
    """Left/right action delimiter pair."""

    left: str = DEFAULT_LEFT_DELIMITER
    right: str = DEFAULT_RIGHT_DELIMITER

    def __post_init__(self):
        """Validate the delimiter pair."""
        for name, value in (("left", self.left), ("right", self.right)):
            if not value or not isinstance(value, str):
                raise ValueError(f"{name} delimiter must be a non-empty string")
            if any(ch in WHITESPACE for ch in value):
                raise ValueError(f"{name} delimiter must not contain whitespace")
        if self.left == self.right:
            raise ValueError("left and right delimiters must differ")

    def wrap(self, keyword: str) -> str:
        """Render a keyword as a directive, e.g. "end" -> "{{end}}"."""
        return f"{self.left}{keyword}{self.right}"


DEFAULT_DELIMITERS = Delimiters()


class TokenKind(Enum):
    """Kinds of tokens found inside an action."""

    FIELD = "field"
    DOT = "dot"
    VARIABLE = "variable"
    IDENTIFIER = "identifier"
    STRING = "string"
    RAW_STRING = "raw_string"
    CHAR = "char"
    NUMBER = "number"
    PIPE = "pipe"
    LPAREN = "lparen"
    RPAREN = "rparen"
    COMMA = "comma"
    DECLARE = "declare"
    ASSIGN = "assign"
    UNTERMINATED = "unterminated"
    OTHER = "other"


# Order matters: numbers before fields so ".5" is a number, ":=" before "=".
_TOKEN_PATTERNS = [
    ("ws", r"\s+"),
    (TokenKind.DECLARE.value, r":="),
    (TokenKind.RAW_STRING.value, r"`[^`]*`"),
    (TokenKind.STRING.value, r'"(?:[^"\\\n]|\\.)*"'),
    (TokenKind.CHAR.value, r"'(?:[^'\\\n]|\\.)+'"),
    (
        TokenKind.NUMBER.value,
        r"[+-]?(?:0[xX][0-9a-fA-F_]+|0[bB][01_]+|0[oO][0-7_]+"
        r"|(?:\d[\d_]*)?\.?\d[\d_]*(?:[eE][+-]?\d+)?)",
    ),
    (TokenKind.VARIABLE.value, r"\$\w*(?:\.[A-Za-z_]\w*)*"),
    (TokenKind.FIELD.value, r"(?:\.[A-Za-z_]\w*)+"),
    (TokenKind.DOT.value, r"\."),
    (TokenKind.IDENTIFIER.value, r"[A-Za-z_]\w*"),
    (TokenKind.PIPE.value, r"\|"),
    (TokenKind.LPAREN.value, r"\("),
    (TokenKind.RPAREN.value, r"\)"),
    (TokenKind.COMMA.value, r","),
    (TokenKind.ASSIGN.value, r"="),
    (TokenKind.UNTERMINATED.value, r"[\"'`]"),
    (TokenKind.OTHER.value, r"."),
]

TOKEN_PATTERN = re.compile(
    "|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_PATTERNS),
    re.DOTALL,
)


@dataclass(frozen=True)
class Token:
    """
    A token inside an action.

    Params:
        kind: Token classification
        text: Exact source text
        offset: Absolute offset of the token in the template source
        spaced: True when whitespace (or the action start) precedes the token
    """

    kind: TokenKind
    text: str
    offset: int
    spaced: bool = True

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


class SegmentKind(Enum):
    TEXT = "text"
    ACTION = "action"
    COMMENT = "comment"


@dataclass
class Segment:
    """
    One top-level piece of template source.

    Params:
        kind: Text, action or comment
        text: Literal text, action interior, or comment body
        offset: Absolute offset where the segment (or its delimiter) starts
        raw: Full directive text including delimiters (actions and comments)
        tokens: Tokens of an action interior
        error: Tokenization problem found inside an action, if any
        error_offset: Absolute offset of that problem
    """

    kind: SegmentKind
    text: str
    offset: int
    raw: str = ""
    tokens: list[Token] = field(default_factory=list)
    error: str | None = None
    error_offset: int | None = None


@dataclass(frozen=True)
class LexError:
    """A structural scanning problem (unclosed action or comment)."""

    message: str
    offset: int
    raw: str = ""


class LineIndex:
    """Maps absolute source offsets to 1-based line/column locations."""

    def __init__(self, source: str):
        self._starts = [0]
        for match in re.finditer(r"\n", source):
            self._starts.append(match.end())

    def location(self, offset: int) -> Location:
        line = bisect_right(self._starts, offset) - 1
        return Location(line=line + 1, column=offset - self._starts[line] + 1)


def tokenize_action(source: str, start: int, end: int) -> tuple[list[Token], str | None, int | None]:
    """
    Tokenize the interior of one action.

    Params:
        source: Full template source
        start: Offset of the first interior character
        end: Offset just past the last interior character

    Returns:
        Tuple of (tokens, error message or None, error offset or None)
    """
    tokens: list[Token] = []
    spaced = True
    for match in TOKEN_PATTERN.finditer(source, start, end):
        kind_name = match.lastgroup
        if kind_name == "ws":
            spaced = True
            continue
        kind = TokenKind(kind_name)
        if kind == TokenKind.UNTERMINATED:
            return tokens, "unterminated quoted string", match.start()
        tokens.append(Token(kind, match.group(), match.start(), spaced))
        spaced = False
    return tokens, None, None


class Scanner:
    """Splits template source into text, action and comment segments."""

    def __init__(self, source: str, delimiters: Delimiters = DEFAULT_DELIMITERS):
        """
        Initialize the scanner.

        Params:
            source: Template source text
            delimiters: Action delimiter pair
        """
        self.source = source
        self.delimiters = delimiters
        self.segments: list[Segment] = []
        self.errors: list[LexError] = []
        self._trim_next_text = False

    def scan(self) -> tuple[list[Segment], list[LexError]]:
        """
        Scan the whole source.

        Returns:
            Tuple of (segments, structural errors). After an error the scanner
            resumes at the next left delimiter.
        """
        source = self.source
        left = self.delimiters.left
        pos = 0

        while pos < len(source):
            start = source.find(left, pos)
            if start == -1:
                self._add_text(pos, len(source), trim_left=False)
                break

            inner = start + len(left)
            trim_left = self._is_left_trim(inner)
            if trim_left:
                inner += len(TRIM_MARKER) + 1
            self._add_text(pos, start, trim_left)

            if source.startswith(COMMENT_OPEN, inner):
                pos = self._scan_comment(start, inner)
            else:
                pos = self._scan_action(start, inner)

        return self.segments, self.errors

    def _is_left_trim(self, inner: int) -> bool:
        source = self.source
        return (
            source.startswith(TRIM_MARKER, inner)
            and inner + 1 < len(source)
            and source[inner + 1] in WHITESPACE
        )

    def _right_trim_at(self, close: int, floor: int) -> bool:
        # " -}}": marker directly before the right delimiter, whitespace before it
        source = self.source
        return (
            close - 2 >= floor
            and source[close - 1] == TRIM_MARKER
            and source[close - 2] in WHITESPACE
        )

    def _add_text(self, start: int, end: int, trim_left: bool) -> None:
        text = self.source[start:end]
        offset = start
        if self._trim_next_text:
            stripped = text.lstrip(WHITESPACE)
            offset += len(text) - len(stripped)
            text = stripped
            self._trim_next_text = False
        if trim_left:
            text = text.rstrip(WHITESPACE)
        if text:
            self.segments.append(Segment(SegmentKind.TEXT, text, offset))

    def _resync(self, after: int) -> int:
        next_left = self.source.find(self.delimiters.left, after)
        return len(self.source) if next_left == -1 else next_left

    def _scan_comment(self, start: int, inner: int) -> int:
        source = self.source
        right = self.delimiters.right
        close = source.find(COMMENT_CLOSE, inner + len(COMMENT_OPEN))
        if close == -1:
            self.errors.append(LexError("unclosed comment", start, source[start:start + 40]))
            return len(source)

        after = close + len(COMMENT_CLOSE)
        trim_match = re.compile(r"[ \t\r\n]" + re.escape(TRIM_MARKER) + re.escape(right))
        trimmed = trim_match.match(source, after)
        if trimmed:
            end = trimmed.end()
            self._trim_next_text = True
        elif source.startswith(right, after):
            end = after + len(right)
        else:
            self.errors.append(
                LexError("comment ends before closing delimiter", start, source[start:after])
            )
            return self._resync(after)

        body = source[inner + len(COMMENT_OPEN):close]
        self.segments.append(Segment(SegmentKind.COMMENT, body, start, raw=source[start:end]))
        return end

    def _scan_action(self, start: int, inner: int) -> int:
        source = self.source
        left, right = self.delimiters.left, self.delimiters.right
        quote: str | None = None
        i = inner

        while i < len(source):
            ch = source[i]
            if quote:
                if ch == "\\" and quote != "`":
                    i += 2
                    continue
                if ch == "\n" and quote != "`":
                    # only raw strings may span lines
                    self.errors.append(
                        LexError("unterminated quoted string", start, source[start:i].rstrip())
                    )
                    return self._resync(i)
                if ch == quote:
                    quote = None
                i += 1
                continue
            if ch in "\"'`":
                quote = ch
                i += 1
                continue
            if source.startswith(right, i):
                return self._finish_action(start, inner, i)
            if source.startswith(left, i):
                self.errors.append(LexError("unclosed action", start, source[start:i].rstrip()))
                return i
            i += 1

        message = "unterminated quoted string" if quote else "unclosed action"
        self.errors.append(LexError(message, start, source[start:start + 40].rstrip()))
        return len(source)

    def _finish_action(self, start: int, inner: int, close: int) -> int:
        source = self.source
        right = self.delimiters.right
        trim_right = self._right_trim_at(close, inner)
        interior_end = close - len(TRIM_MARKER) if trim_right else close
        end = close + len(right)

        tokens, error, error_offset = tokenize_action(source, inner, interior_end)
        self.segments.append(
            Segment(
                SegmentKind.ACTION,
                source[inner:interior_end],
                start,
                raw=source[start:end],
                tokens=tokens,
                error=error,
                error_offset=error_offset,
            )
        )
        self._trim_next_text = trim_right
        return end


def scan(source: str, delimiters: Delimiters = DEFAULT_DELIMITERS) -> tuple[list[Segment], list[LexError]]:
    """Scan template source into segments; see Scanner.scan."""
    return Scanner(source, delimiters).scan()
