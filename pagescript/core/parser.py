"""
パーサーアダプタ: esprima の ESTree 出力を AST ノードへ変換

構文解析そのものは esprima（外部ライブラリ）に任せ、このモジュールは
結果の ESTree ノードを nodes.py のイミュータブルなデータクラスへ変換する。

主な機能:
  - トップレベル await を許可するため、ソースを async 関数で包んで解析
  - 報告される行番号を元のソース基準に補正
  - 対応していないノード種別は Unsupported として保持（評価時にエラー）
  - 構文エラーは ParseFailure に変換
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import esprima

from ..errors import ParseFailure
from . import nodes
from .values import normalize_number

logger = logging.getLogger(__name__)


# ソースを包む async 関数。トップレベル await を含む記録スクリプトを解析可能にする
_WRAPPER_HEAD = "(async function () {\n"
_WRAPPER_TAIL = "\n})"

# ラッパー分の行ずれ
_LINE_OFFSET = 1


# ---------------------------------------------------------------------------
# 公開 API
# ---------------------------------------------------------------------------

def parse_program(source: str) -> nodes.Program:
    """ソースコードを解析し Program ノードを返す。

    Args:
        source: スクリプトのソースコード

    Returns:
        変換済みの Program ノード

    Raises:
        ParseFailure: 構文エラーの場合
    """
    wrapped = _WRAPPER_HEAD + source + _WRAPPER_TAIL
    try:
        script = esprima.parseScript(wrapped, {"loc": True})
    except esprima.Error as exc:
        line = exc.lineNumber - _LINE_OFFSET if exc.lineNumber else None
        description = _strip_line_prefix(str(exc.message))
        column = exc.column if exc.column is not None else None
        raise ParseFailure(description, line=line, column=column) from exc
    except RecursionError as exc:
        raise ParseFailure("ネストが深すぎるため解析できません") from exc

    function = _unwrap(script)
    return nodes.Program(body=tuple(_AstConverter().convert_all(function.body.body)))


def parse_statement(line: str, line_number: Optional[int] = None) -> nodes.Program:
    """フラグメントモードの 1 行を解析する。

    Args:
        line: 1 行分のソース
        line_number: 元のフラグメント内での行番号（エラー表示用）

    Raises:
        ParseFailure: 構文エラーの場合。行番号は line_number に置き換える
    """
    try:
        return parse_program(line)
    except ParseFailure as exc:
        if line_number is None:
            raise
        raise ParseFailure(exc.description, line=line_number, column=exc.column) from exc


def _unwrap(script: Any) -> Any:
    """ラッパー関数の FunctionExpression を取り出す。

    ソース側の閉じ括弧でラッパーが途中で閉じられた場合など、
    期待した構造にならなければ ParseFailure とする。
    """
    body = list(script.body or [])
    if len(body) != 1 or body[0].type != "ExpressionStatement":
        raise ParseFailure("スクリプトの構造が不正です（余分な括弧が含まれていませんか）")
    function = body[0].expression
    if function is None or function.type != "FunctionExpression":
        raise ParseFailure("スクリプトの構造が不正です（余分な括弧が含まれていませんか）")
    return function


def _strip_line_prefix(message: str) -> str:
    """esprima のメッセージ先頭の 'Line N: ' を取り除く。"""
    if message.startswith("Line ") and ": " in message:
        return message.split(": ", 1)[1]
    return message


# ---------------------------------------------------------------------------
# ESTree → nodes 変換
# ---------------------------------------------------------------------------

class _AstConverter:
    """esprima のノードを nodes.py のデータクラスへ再帰的に変換する。"""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Any], nodes.Node]] = {
            "Identifier": self._identifier,
            "Literal": self._literal,
            "TemplateLiteral": self._template_literal,
            "BinaryExpression": self._binary,
            "LogicalExpression": self._logical,
            "UnaryExpression": self._unary,
            "UpdateExpression": self._update,
            "AssignmentExpression": self._assignment,
            "MemberExpression": self._member,
            "CallExpression": self._call,
            "NewExpression": self._new,
            "ConditionalExpression": self._conditional,
            "SequenceExpression": self._sequence,
            "SpreadElement": self._spread,
            "ObjectExpression": self._object,
            "ArrayExpression": self._array,
            "FunctionExpression": self._function_expression,
            "ArrowFunctionExpression": self._arrow,
            "AwaitExpression": self._await,
            "ObjectPattern": self._object_pattern,
            "ArrayPattern": self._array_pattern,
            "AssignmentPattern": self._assignment_pattern,
            "RestElement": self._rest,
            "ExpressionStatement": self._expression_statement,
            "VariableDeclaration": self._variable_declaration,
            "BlockStatement": self._block,
            "EmptyStatement": self._empty,
            "IfStatement": self._if,
            "ForStatement": self._for,
            "ForOfStatement": self._for_of,
            "WhileStatement": self._while,
            "DoWhileStatement": self._do_while,
            "FunctionDeclaration": self._function_declaration,
            "ReturnStatement": self._return,
            "ThrowStatement": self._throw,
            "TryStatement": self._try,
        }

    def convert(self, node: Any) -> nodes.Node:
        """1 ノードを変換する。未対応の種別は Unsupported を返す。"""
        handler = self._handlers.get(node.type)
        if handler is None:
            return nodes.Unsupported(type_name=str(node.type), line=_line_of(node))
        return handler(node)

    def convert_all(self, items: Any) -> list[nodes.Node]:
        return [self.convert(item) for item in items or []]

    def _optional(self, node: Any) -> Optional[nodes.Node]:
        return None if node is None else self.convert(node)

    # ----- 式 -----

    def _identifier(self, node: Any) -> nodes.Node:
        return nodes.Identifier(name=node.name)

    def _literal(self, node: Any) -> nodes.Node:
        if node.regex is not None:
            return nodes.Unsupported(type_name="RegExpLiteral", line=_line_of(node))
        value = node.value
        if isinstance(value, float):
            value = normalize_number(value)
        return nodes.Literal(value=value, raw=node.raw or "")

    def _template_literal(self, node: Any) -> nodes.Node:
        quasis = tuple(
            quasi.value.cooked if quasi.value.cooked is not None else quasi.value.raw
            for quasi in node.quasis
        )
        return nodes.TemplateLiteral(
            quasis=quasis,
            expressions=tuple(self.convert_all(node.expressions)),
        )

    def _binary(self, node: Any) -> nodes.Node:
        return nodes.BinaryExpression(
            operator=node.operator,
            left=self.convert(node.left),
            right=self.convert(node.right),
        )

    def _logical(self, node: Any) -> nodes.Node:
        return nodes.LogicalExpression(
            operator=node.operator,
            left=self.convert(node.left),
            right=self.convert(node.right),
        )

    def _unary(self, node: Any) -> nodes.Node:
        return nodes.UnaryExpression(
            operator=node.operator,
            argument=self.convert(node.argument),
        )

    def _update(self, node: Any) -> nodes.Node:
        return nodes.UpdateExpression(
            operator=node.operator,
            prefix=bool(node.prefix),
            argument=self.convert(node.argument),
        )

    def _assignment(self, node: Any) -> nodes.Node:
        return nodes.AssignmentExpression(
            operator=node.operator,
            target=self.convert(node.left),
            value=self.convert(node.right),
        )

    def _member(self, node: Any) -> nodes.Node:
        return nodes.MemberExpression(
            object=self.convert(node.object),
            property=self.convert(node.property),
            computed=bool(node.computed),
        )

    def _call(self, node: Any) -> nodes.Node:
        if node.callee.type == "Super":
            return nodes.Unsupported(type_name="Super", line=_line_of(node))
        return nodes.CallExpression(
            callee=self.convert(node.callee),
            arguments=tuple(self.convert_all(node.arguments)),
        )

    def _new(self, node: Any) -> nodes.Node:
        return nodes.NewExpression(
            callee=self.convert(node.callee),
            arguments=tuple(self.convert_all(node.arguments)),
        )

    def _conditional(self, node: Any) -> nodes.Node:
        return nodes.ConditionalExpression(
            test=self.convert(node.test),
            consequent=self.convert(node.consequent),
            alternate=self.convert(node.alternate),
        )

    def _sequence(self, node: Any) -> nodes.Node:
        return nodes.SequenceExpression(expressions=tuple(self.convert_all(node.expressions)))

    def _spread(self, node: Any) -> nodes.Node:
        return nodes.SpreadElement(argument=self.convert(node.argument))

    def _object(self, node: Any) -> nodes.Node:
        properties = []
        for prop in node.properties or []:
            if prop.type == "SpreadElement":
                properties.append(self._spread(prop))
            elif prop.kind in ("get", "set"):
                properties.append(nodes.Unsupported(type_name=f"{prop.kind}ter", line=_line_of(prop)))
            else:
                properties.append(nodes.Property(
                    key=self.convert(prop.key),
                    value=self.convert(prop.value),
                    computed=bool(prop.computed),
                ))
        return nodes.ObjectExpression(properties=tuple(properties))

    def _array(self, node: Any) -> nodes.Node:
        return nodes.ArrayExpression(elements=tuple(self._optional(el) for el in node.elements or []))

    def _function_expression(self, node: Any) -> nodes.Node:
        if node.generator:
            return nodes.Unsupported(type_name="GeneratorFunction", line=_line_of(node))
        return nodes.FunctionExpression(
            params=tuple(self.convert_all(node.params)),
            body=self._block(node.body),
            id=None if node.id is None else self._identifier(node.id),
            is_async=bool(node.isAsync),
        )

    def _arrow(self, node: Any) -> nodes.Node:
        expression = bool(node.expression)
        return nodes.ArrowFunctionExpression(
            params=tuple(self.convert_all(node.params)),
            body=self.convert(node.body) if expression else self._block(node.body),
            expression=expression,
            is_async=bool(node.isAsync),
        )

    def _await(self, node: Any) -> nodes.Node:
        return nodes.AwaitExpression(argument=self.convert(node.argument))

    # ----- パターン -----

    def _object_pattern(self, node: Any) -> nodes.Node:
        properties: list[nodes.Node] = []
        for prop in node.properties or []:
            if prop.type == "RestElement":
                properties.append(self._rest(prop))
            else:
                properties.append(nodes.PatternProperty(
                    key=self.convert(prop.key),
                    value=self.convert(prop.value),
                    computed=bool(prop.computed),
                ))
        return nodes.ObjectPattern(properties=tuple(properties))

    def _array_pattern(self, node: Any) -> nodes.Node:
        return nodes.ArrayPattern(elements=tuple(self._optional(el) for el in node.elements or []))

    def _assignment_pattern(self, node: Any) -> nodes.Node:
        return nodes.AssignmentPattern(left=self.convert(node.left), right=self.convert(node.right))

    def _rest(self, node: Any) -> nodes.Node:
        return nodes.RestElement(argument=self.convert(node.argument))

    # ----- 文 -----

    def _expression_statement(self, node: Any) -> nodes.Node:
        return nodes.ExpressionStatement(expression=self.convert(node.expression))

    def _variable_declaration(self, node: Any) -> nodes.Node:
        declarations = tuple(
            nodes.VariableDeclarator(target=self.convert(decl.id), init=self._optional(decl.init))
            for decl in node.declarations or []
        )
        return nodes.VariableDeclaration(kind=node.kind, declarations=declarations)

    def _block(self, node: Any) -> nodes.BlockStatement:
        return nodes.BlockStatement(body=tuple(self.convert_all(node.body)))

    def _empty(self, node: Any) -> nodes.Node:
        return nodes.EmptyStatement()

    def _if(self, node: Any) -> nodes.Node:
        return nodes.IfStatement(
            test=self.convert(node.test),
            consequent=self.convert(node.consequent),
            alternate=self._optional(node.alternate),
        )

    def _for(self, node: Any) -> nodes.Node:
        return nodes.ForStatement(
            init=self._optional(node.init),
            test=self._optional(node.test),
            update=self._optional(node.update),
            body=self.convert(node.body),
        )

    def _for_of(self, node: Any) -> nodes.Node:
        return nodes.ForOfStatement(
            left=self.convert(node.left),
            right=self.convert(node.right),
            body=self.convert(node.body),
        )

    def _while(self, node: Any) -> nodes.Node:
        return nodes.WhileStatement(test=self.convert(node.test), body=self.convert(node.body))

    def _do_while(self, node: Any) -> nodes.Node:
        return nodes.DoWhileStatement(body=self.convert(node.body), test=self.convert(node.test))

    def _function_declaration(self, node: Any) -> nodes.Node:
        if node.generator:
            return nodes.Unsupported(type_name="GeneratorFunction", line=_line_of(node))
        return nodes.FunctionDeclaration(
            id=self._identifier(node.id),
            params=tuple(self.convert_all(node.params)),
            body=self._block(node.body),
            is_async=bool(node.isAsync),
        )

    def _return(self, node: Any) -> nodes.Node:
        return nodes.ReturnStatement(argument=self._optional(node.argument))

    def _throw(self, node: Any) -> nodes.Node:
        return nodes.ThrowStatement(argument=self.convert(node.argument))

    def _try(self, node: Any) -> nodes.Node:
        handler = None
        if node.handler is not None:
            handler = nodes.CatchClause(
                param=self._optional(node.handler.param),
                body=self._block(node.handler.body),
            )
        return nodes.TryStatement(
            block=self._block(node.block),
            handler=handler,
            finalizer=None if node.finalizer is None else self._block(node.finalizer),
        )


def _line_of(node: Any) -> Optional[int]:
    """ノードの元ソース上の行番号を返す。"""
    loc = node.loc
    if loc is None or loc.start is None:
        return None
    return loc.start.line - _LINE_OFFSET
