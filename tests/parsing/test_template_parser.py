"""
Tests for the template parser.

This module tests directive structure (conditionals, loops, scoped
rebinding, named sub-templates), expression parsing, variable scoping and
error recovery with locations.
"""

import pytest

from templr.parsing import (
    Action,
    Bind,
    Call,
    Comment,
    Define,
    Delimiters,
    FieldPath,
    If,
    Include,
    Literal,
    Location,
    LoopControl,
    Opaque,
    Range,
    Text,
    TemplateParser,
    VariableRef,
    With,
    parse_template,
)


def messages(result):
    return [issue.message for issue in result.errors]


class TestDirectives:
    """Tests for block structure."""

    def test_plain_action(self, parse):
        """Test a field reference inside text."""
        result = parse("Hello {{ .name }}!")
        assert result.ok
        text, action, tail = result.root.nodes
        assert text == Text("Hello ", Location(1, 1))
        assert isinstance(action, Action)
        assert action.expr.stages == (FieldPath(".", ("name",), Location(1, 10)),)
        assert tail.text == "!"

    def test_if_else_if_else(self, parse):
        """Test a full conditional chain."""
        result = parse("{{ if .a }}A{{ else if .b }}B{{ else }}C{{ end }}")
        assert result.ok
        (node,) = result.root.nodes
        assert isinstance(node, If)
        assert node.cond.single_stage.steps == ("a",)
        assert [n.text for n in node.body] == ["A"]
        assert len(node.else_ifs) == 1
        assert node.else_ifs[0].cond.single_stage.steps == ("b",)
        assert [n.text for n in node.else_ifs[0].body] == ["B"]
        assert [n.text for n in node.else_body] == ["C"]

    def test_if_without_else(self, parse):
        """Test else_body is None when there is no else branch."""
        (node,) = parse("{{ if .a }}A{{ end }}").root.nodes
        assert node.else_ifs == ()
        assert node.else_body is None

    def test_range_with_two_captures(self, parse):
        """Test key and value captures."""
        result = parse("{{ range $i, $v := .items }}{{ $v }}{{ end }}")
        assert result.ok
        (node,) = result.root.nodes
        assert isinstance(node, Range)
        assert node.key_var == "$i"
        assert node.value_var == "$v"
        assert node.source.single_stage.steps == ("items",)
        assert isinstance(node.body[0].expr.single_stage, VariableRef)

    def test_range_with_single_capture(self, parse):
        """Test a single capture binds the element."""
        (node,) = parse("{{ range $v := .items }}{{ end }}").root.nodes
        assert node.key_var is None
        assert node.value_var == "$v"

    def test_range_else(self, parse):
        """Test the else branch of a range."""
        (node,) = parse("{{ range .items }}x{{ else }}empty{{ end }}").root.nodes
        assert node.value_var is None
        assert [n.text for n in node.else_body] == ["empty"]

    def test_with_else_with_chain(self, parse):
        """Test `else with` nests a With inside the else branch."""
        result = parse("{{ with .a }}A{{ else with .b }}B{{ else }}C{{ end }}")
        assert result.ok
        (outer,) = result.root.nodes
        assert isinstance(outer, With)
        (inner,) = outer.else_body
        assert isinstance(inner, With)
        assert inner.expr.single_stage.steps == ("b",)
        assert [n.text for n in inner.else_body] == ["C"]

    def test_define_and_template(self, parse):
        """Test a named definition and its invocation."""
        result = parse('{{ define "x" }}hi{{ end }}{{ template "x" . }}')
        assert result.ok
        define, include = result.root.nodes
        assert isinstance(define, Define)
        assert define.name == "x"
        assert isinstance(include, Include)
        assert include.name == "x"
        assert include.data.single_stage.is_dot
        assert result.defines() == [define]

    def test_template_without_data(self, parse):
        """Test an include with no data expression."""
        (include,) = parse('{{ template "x" }}').root.nodes
        assert include.data is None

    def test_block_defines_and_includes(self, parse):
        """Test block expands to a definition followed by an include."""
        result = parse('{{ block "b" .v }}default{{ end }}')
        assert result.ok
        define, include = result.root.nodes
        assert define.name == include.name == "b"
        assert include.data.single_stage.steps == ("v",)

    def test_comment(self, parse):
        """Test comments are kept with trimmed text."""
        (node,) = parse("{{/* hi */}}").root.nodes
        assert node == Comment("hi", Location(1, 1))

    def test_loop_control_inside_range(self, parse):
        """Test break and continue inside a range body."""
        result = parse("{{ range .a }}{{ break }}{{ continue }}{{ end }}")
        assert result.ok
        assert [n.keyword for n in result.root.nodes[0].body] == ["break", "continue"]
        assert isinstance(result.root.nodes[0].body[0], LoopControl)


class TestExpressions:
    """Tests for expression parsing."""

    def test_pipeline_stages(self, parse):
        """Test each stage of a pipeline is kept in order."""
        (action,) = parse("{{ .name | upper | quote }}").root.nodes
        stages = action.expr.stages
        assert len(stages) == 3
        assert stages[0].steps == ("name",)
        assert [s.function for s in stages[1:]] == ["upper", "quote"]

    def test_call_arguments(self, parse):
        """Test a function call with literal and field arguments."""
        (action,) = parse('{{ printf "%s-%d" .a 3 }}').root.nodes
        call = action.expr.single_stage
        assert isinstance(call, Call)
        assert call.function == "printf"
        assert call.args[0] == Literal("%s-%d", Location(1, 11))
        assert call.args[1].steps == ("a",)
        assert call.args[2].value == 3

    def test_root_variable_chain(self, parse):
        """Test `$.x.y` is a field path from the root variable."""
        (action,) = parse("{{ $.x.y }}").root.nodes
        assert action.expr.single_stage == FieldPath("$", ("x", "y"), Location(1, 4))

    def test_literals(self, parse):
        """Test booleans, nil and numbers become literals."""
        (action,) = parse("{{ list true nil 0x10 1.5 }}").root.nodes
        values = [arg.value for arg in action.expr.single_stage.args]
        assert values == [True, None, 16, 1.5]

    def test_parenthesized_pipeline(self, parse):
        """Test a parenthesized argument becomes a nested pipeline."""
        (action,) = parse("{{ default (.a | upper) .b }}").root.nodes
        call = action.expr.single_stage
        assert call.args[0].stages[1].function == "upper"

    def test_unsupported_operator_is_opaque(self, parse):
        """Test arithmetic outside the grammar keeps its parsed children."""
        result = parse("{{ .a + 1 }}")
        assert result.ok
        opaque = result.root.nodes[0].expr.single_stage
        assert isinstance(opaque, Opaque)
        assert opaque.text == ".a + 1"
        assert opaque.children[0].steps == ("a",)

    def test_field_on_expression_result_is_opaque(self, parse):
        """Test `(expr).field` is not resolved to a path."""
        opaque = parse("{{ (.a).b }}").root.nodes[0].expr.single_stage
        assert isinstance(opaque, Opaque)
        assert opaque.reason == "field access on expression result"

    def test_declaration_and_assignment(self, parse):
        """Test `:=` declares and `=` reassigns."""
        result = parse("{{ $x := 1 }}{{ $x = 2 }}{{ $x }}")
        assert result.ok
        declare, assign, use = result.root.nodes
        assert isinstance(declare, Bind) and declare.declare
        assert isinstance(assign, Bind) and not assign.declare
        assert declare.expr.declarations == ()
        assert use.expr.single_stage == VariableRef("$x", Location(1, 29))


class TestScoping:
    """Tests for variable scoping during parsing."""

    def test_undefined_variable(self, parse):
        """Test using a variable that was never declared."""
        assert messages(parse("{{ $x }}")) == ['undefined variable "$x"']

    def test_undeclared_assignment(self, parse):
        """Test assigning to an undeclared variable."""
        assert messages(parse("{{ $x = 1 }}")) == ['undefined variable "$x"']

    def test_range_variable_ends_with_range(self, parse):
        """Test captures are not visible after the range ends."""
        result = parse("{{ range $v := .items }}{{ $v }}{{ end }}{{ $v }}")
        assert messages(result) == ['undefined variable "$v"']

    def test_if_scoped_variable(self, parse):
        """Test variables declared in an if body end with it."""
        result = parse("{{ if .a }}{{ $x := 1 }}{{ end }}{{ $x }}")
        assert messages(result) == ['undefined variable "$x"']

    def test_define_body_is_isolated(self, parse):
        """Test outer variables are not visible inside a definition."""
        result = parse('{{ $x := 1 }}{{ define "d" }}{{ $x }}{{ end }}')
        assert messages(result) == ['undefined variable "$x"']


class TestErrors:
    """Tests for syntax errors and recovery."""

    def test_missing_end(self, parse):
        """Test an unterminated block reports where it started."""
        result = parse("{{ if .a }}x")
        assert len(result.errors) == 1
        assert result.errors[0].message.startswith("unexpected EOF")
        assert "{{if}} at line 1" in result.errors[0].message

    def test_unexpected_end(self, parse):
        """Test a stray end directive."""
        assert messages(parse("{{ end }}")) == ["unexpected {{end}}"]

    def test_error_location(self, parse):
        """Test errors carry the line and column of the directive."""
        result = parse("ok\n  {{ end }}")
        assert result.errors[0].location == Location(2, 3)
        assert result.errors[0].directive == "{{ end }}"

    def test_break_outside_range(self, parse):
        """Test loop control outside a range body."""
        assert messages(parse("{{ break }}")) == ["{{break}} outside {{range}}"]

    def test_define_inside_block(self, parse):
        """Test definitions are only allowed at the top level."""
        result = parse('{{ if .a }}{{ define "x" }}{{ end }}{{ end }}')
        assert messages(result) == ["unexpected {{define}} inside a block"]

    def test_literal_pipeline_stage(self, parse):
        """Test a literal cannot receive piped input."""
        assert messages(parse("{{ .a | 1 }}")) == ["non executable command in pipeline stage 2"]

    def test_empty_action(self, parse):
        """Test an action with nothing inside."""
        assert messages(parse("{{ }}")) == ["missing value for command"]

    def test_template_requires_quoted_name(self, parse):
        """Test include names must be string literals."""
        assert messages(parse("{{ template .name }}")) == ["template requires a quoted template name"]

    def test_resync_after_unclosed_action(self, parse):
        """Test parsing continues after a broken action."""
        result = parse("{{ .a {{ .b }}{{ .c }}")
        assert len(result.errors) == 1
        assert [type(n) for n in result.root.nodes] == [Action, Action]

    def test_errors_sorted_by_location(self, parse):
        """Test errors are ordered by position."""
        result = parse("{{ $y }}\n{{ end }}\n{{ $z }}")
        assert [issue.location.line for issue in result.errors] == [1, 2, 3]

    def test_file_recorded(self, parse):
        """Test the file name is kept on the result and the root."""
        result = parse("{{ .a }}", file="a.tpl")
        assert result.file == "a.tpl"
        assert result.root.file == "a.tpl"


class TestParserOptions:
    """Tests for parser configuration."""

    def test_known_functions(self):
        """Test unknown function names are errors when a function set is given."""
        parser = TemplateParser(known_functions={"upper"})
        assert parser.parse("{{ upper .x }}").ok
        assert parser.parse('{{ printf "%s" .x }}').ok
        result = parser.parse("{{ lower .x }}")
        assert [i.message for i in result.errors] == ['function "lower" not defined']

    def test_any_function_allowed_by_default(self):
        """Test the default parser accepts any identifier as a function."""
        assert parse_template("{{ anything .x }}").ok

    def test_custom_delimiters(self):
        """Test parsing with a custom delimiter pair."""
        result = parse_template("[[ .x ]] {{ .y }}", delimiters=Delimiters("[[", "]]"))
        assert result.ok
        action, text = result.root.nodes
        assert action.expr.single_stage.steps == ("x",)
        assert text.text == " {{ .y }}"

    @pytest.mark.parametrize("keyword", ["if", "range", "with"])
    def test_missing_header(self, parse, keyword):
        """Test control directives without an expression."""
        result = parse(f"{{{{ {keyword} }}}}x{{{{ end }}}}")
        assert messages(result) == [f"missing value for {keyword}"]
