"""
パーサーアダプタテスト: esprima 出力からノードへの変換と構文エラー
"""

from __future__ import annotations

import pytest

from pagescript.core import nodes
from pagescript.core.parser import parse_program, parse_statement
from pagescript.errors import ParseFailure


class TestParseProgram:
    """parse_program() のテスト。"""

    def test_variable_declaration(self):
        program = parse_program("const answer = 42;")
        assert len(program.body) == 1
        declaration = program.body[0]
        assert isinstance(declaration, nodes.VariableDeclaration)
        assert declaration.kind == "const"
        declarator = declaration.declarations[0]
        assert declarator.target == nodes.Identifier("answer")
        assert isinstance(declarator.init, nodes.Literal)
        assert declarator.init.value == 42

    def test_top_level_await_is_allowed(self):
        program = parse_program("await page.goto('https://example.com');")
        statement = program.body[0]
        assert isinstance(statement, nodes.ExpressionStatement)
        assert isinstance(statement.expression, nodes.AwaitExpression)
        assert isinstance(statement.expression.argument, nodes.CallExpression)

    def test_integral_float_literal_normalized(self):
        program = parse_program("1.0;")
        literal = program.body[0].expression
        assert literal.value == 1
        assert isinstance(literal.value, int)

    def test_template_literal_parts(self):
        program = parse_program("`a${x}b${y}c`;")
        template = program.body[0].expression
        assert isinstance(template, nodes.TemplateLiteral)
        assert template.quasis == ("a", "b", "c")
        assert len(template.expressions) == 2

    def test_destructuring_pattern(self):
        program = parse_program("const { page, log } = ctx;")
        target = program.body[0].declarations[0].target
        assert isinstance(target, nodes.ObjectPattern)
        assert len(target.properties) == 2

    def test_nodes_are_immutable(self):
        program = parse_program("x;")
        with pytest.raises(AttributeError):
            program.body = ()  # type: ignore[misc]

    def test_empty_source(self):
        assert parse_program("").body == ()


class TestUnsupportedNodes:
    """対応していない構文のテスト。"""

    def test_class_declaration_is_kept_as_unsupported(self):
        program = parse_program("x = 1;\nclass Foo {}")
        node = program.body[1]
        assert isinstance(node, nodes.Unsupported)
        assert node.node_type == "ClassDeclaration"
        assert node.line == 2

    def test_break_is_unsupported(self):
        program = parse_program("while (true) { break; }")
        body = program.body[0].body
        assert isinstance(body.body[0], nodes.Unsupported)
        assert body.body[0].node_type == "BreakStatement"


class TestParseErrors:
    """構文エラーのテスト。"""

    def test_syntax_error_reports_source_line(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_program("const a = 1;\nconst = ;")
        assert exc_info.value.line == 2
        assert "構文エラー (行 2" in str(exc_info.value)

    def test_extra_closing_brace_is_rejected(self):
        with pytest.raises(ParseFailure):
            parse_program("}); (function () {")

    def test_parse_statement_uses_given_line_number(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_statement("page.click(", line_number=7)
        assert exc_info.value.line == 7

    def test_parse_statement_without_line_number(self):
        with pytest.raises(ParseFailure) as exc_info:
            parse_statement("let = ;")
        assert exc_info.value.line == 1
