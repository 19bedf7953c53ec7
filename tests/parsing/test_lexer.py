"""
Tests for the template lexer.

Covers segment scanning with trim markers and comments, structural scan
errors, action tokenization and offset to line/column mapping.
"""

import pytest

from templr.parsing import (
    Delimiters,
    LineIndex,
    Location,
    SegmentKind,
    TokenKind,
    scan,
    tokenize_action,
)


class TestScanSegments:
    """Tests for splitting source into segments."""

    def test_text_and_action(self):
        """Test plain text around a single action."""
        segments, errors = scan("Hello {{ .name }}!")
        assert errors == []
        assert [s.kind for s in segments] == [SegmentKind.TEXT, SegmentKind.ACTION, SegmentKind.TEXT]
        assert segments[0].text == "Hello "
        assert segments[1].raw == "{{ .name }}"
        assert segments[1].offset == 6
        assert segments[2].text == "!"

    def test_action_tokens(self):
        """Test the action interior is tokenized with absolute offsets."""
        segments, _ = scan("Hello {{ .name }}!")
        tokens = segments[1].tokens
        assert len(tokens) == 1
        assert tokens[0].kind == TokenKind.FIELD
        assert tokens[0].text == ".name"
        assert tokens[0].offset == 9

    def test_trim_markers(self):
        """Test trim markers strip adjacent whitespace on both sides."""
        segments, errors = scan("a  {{- .x -}}  b")
        assert errors == []
        texts = [s.text for s in segments if s.kind == SegmentKind.TEXT]
        assert texts == ["a", "b"]
        assert segments[1].text == " .x "

    def test_minus_number_is_not_trim(self):
        """Test `{{-3}}` is a negative number, not a trim marker."""
        segments, errors = scan("a {{-3}}")
        assert errors == []
        assert segments[0].text == "a "
        assert segments[1].tokens[0].kind == TokenKind.NUMBER

    def test_comment_segment(self):
        """Test comments become their own segment."""
        segments, errors = scan("a{{/* note */}}b")
        assert errors == []
        assert [s.kind for s in segments] == [SegmentKind.TEXT, SegmentKind.COMMENT, SegmentKind.TEXT]
        assert segments[1].text == " note "

    def test_delimiters_inside_strings(self):
        """Test a right delimiter inside a quoted string does not close the action."""
        segments, errors = scan('{{ printf "}}" }}')
        assert errors == []
        assert len(segments) == 1
        assert segments[0].tokens[1].text == '"}}"'

    def test_custom_delimiters(self):
        """Test a custom delimiter pair leaves default braces as text."""
        segments, errors = scan("[[ .x ]] {{ .y }}", Delimiters("[[", "]]"))
        assert errors == []
        assert segments[0].kind == SegmentKind.ACTION
        assert segments[1].kind == SegmentKind.TEXT
        assert segments[1].text == " {{ .y }}"


class TestScanErrors:
    """Tests for structural scanning problems."""

    def test_unclosed_action(self):
        """Test an action without a right delimiter."""
        _, errors = scan("text {{ .x")
        assert [e.message for e in errors] == ["unclosed action"]
        assert errors[0].offset == 5

    def test_unclosed_comment(self):
        """Test a comment that never closes."""
        _, errors = scan("{{/* never closed")
        assert [e.message for e in errors] == ["unclosed comment"]

    def test_unterminated_string(self):
        """Test a quote that runs to the end of the input."""
        _, errors = scan('{{ "abc }}')
        assert [e.message for e in errors] == ["unterminated quoted string"]

    @pytest.mark.parametrize("source", ['{{ printf "oops }}\n{{ .b }}', "{{ .a 'x }}\n{{ .b }}"])
    def test_quote_ends_at_newline(self, source):
        """Test an unterminated quote stops at the line end and scanning resumes."""
        segments, errors = scan(source)
        assert [e.message for e in errors] == ["unterminated quoted string"]
        assert errors[0].offset == 0
        assert [s.raw for s in segments] == ["{{ .b }}"]

    def test_raw_string_spans_lines(self):
        """Test backtick strings may contain newlines."""
        segments, errors = scan("{{ `a\nb` }}")
        assert errors == []
        assert [s.kind for s in segments] == [SegmentKind.ACTION]

    def test_resume_after_unclosed_action(self):
        """Test scanning resumes at the next left delimiter."""
        segments, errors = scan("{{ .a {{ .b }}")
        assert len(errors) == 1
        assert [s.raw for s in segments] == ["{{ .b }}"]


class TestTokenizeAction:
    """Tests for action interior tokenization."""

    def _kinds(self, text):
        tokens, error, _ = tokenize_action(text, 0, len(text))
        assert error is None
        return [t.kind for t in tokens]

    def test_declaration_pipeline(self):
        """Test a declaration feeding a pipeline."""
        assert self._kinds('$x := "a" | printf') == [
            TokenKind.VARIABLE,
            TokenKind.DECLARE,
            TokenKind.STRING,
            TokenKind.PIPE,
            TokenKind.IDENTIFIER,
        ]

    def test_field_chain_is_one_token(self):
        """Test chained fields and root variable chains stay together."""
        tokens, _, _ = tokenize_action(".a.b $.c.d", 0, 10)
        assert [(t.kind, t.text) for t in tokens] == [
            (TokenKind.FIELD, ".a.b"),
            (TokenKind.VARIABLE, "$.c.d"),
        ]

    def test_literals(self):
        """Test numbers, raw strings and chars."""
        assert self._kinds("1.5 `raw` 'c' -2") == [
            TokenKind.NUMBER,
            TokenKind.RAW_STRING,
            TokenKind.CHAR,
            TokenKind.NUMBER,
        ]

    def test_spacing_flag(self):
        """Test tokens record whether whitespace precedes them."""
        tokens, _, _ = tokenize_action("(.a).b", 0, 6)
        assert [t.spaced for t in tokens] == [True, False, False, False]

    def test_unterminated_quote(self):
        """Test a stray quote reports an error at its offset."""
        _, error, offset = tokenize_action('.a "b', 0, 5)
        assert error == "unterminated quoted string"
        assert offset == 3


class TestLineIndex:
    """Tests for offset to location mapping."""

    def test_locations(self):
        """Test first line, later lines and line starts."""
        index = LineIndex("ab\ncd\n\nef")
        assert index.location(0) == Location(1, 1)
        assert index.location(1) == Location(1, 2)
        assert index.location(3) == Location(2, 1)
        assert index.location(7) == Location(4, 1)


class TestDelimiters:
    """Tests for delimiter validation."""

    @pytest.mark.parametrize(
        "left,right",
        [("", "}}"), ("{{", ""), ("<<", "<<"), ("{ {", "}}")],
    )
    def test_invalid_pairs(self, left, right):
        """Test empty, identical and whitespace delimiters are rejected."""
        with pytest.raises(ValueError):
            Delimiters(left, right)

    def test_wrap(self):
        """Test keywords are wrapped in the configured delimiters."""
        assert Delimiters("[[", "]]").wrap("end") == "[[end]]"
