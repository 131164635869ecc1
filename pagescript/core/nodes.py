"""
AST ノード定義: スクリプト言語の構文木

パーサーアダプタ（parser.py）が esprima の出力をこのモジュールの
イミュータブルなデータクラスへ変換する。評価器はここに定義された
ノード種別だけを扱い、それ以外の構文は Unsupported として表現される。

ノードは評価中に変更されない（読み取り専用）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


class Node:
    """全ノードの基底クラス。"""

    @property
    def node_type(self) -> str:
        """ノード種別名（ESTree の type 名と同じ）を返す。"""
        return type(self).__name__


# ---------------------------------------------------------------------------
# 式
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identifier(Node):
    name: str


@dataclass(frozen=True)
class Literal(Node):
    value: Any
    raw: str = ""


@dataclass(frozen=True)
class TemplateLiteral(Node):
    """テンプレート文字列。quasis は expressions より常に 1 つ多い。"""

    quasis: tuple[str, ...]
    expressions: tuple[Node, ...]


@dataclass(frozen=True)
class BinaryExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass(frozen=True)
class LogicalExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass(frozen=True)
class UnaryExpression(Node):
    operator: str
    argument: Node


@dataclass(frozen=True)
class UpdateExpression(Node):
    operator: str
    prefix: bool
    argument: Node


@dataclass(frozen=True)
class AssignmentExpression(Node):
    operator: str
    target: Node
    value: Node


@dataclass(frozen=True)
class MemberExpression(Node):
    object: Node
    property: Node
    computed: bool = False


@dataclass(frozen=True)
class CallExpression(Node):
    callee: Node
    arguments: tuple[Node, ...] = ()


@dataclass(frozen=True)
class NewExpression(Node):
    callee: Node
    arguments: tuple[Node, ...] = ()


@dataclass(frozen=True)
class ConditionalExpression(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass(frozen=True)
class SequenceExpression(Node):
    expressions: tuple[Node, ...]


@dataclass(frozen=True)
class SpreadElement(Node):
    argument: Node


@dataclass(frozen=True)
class Property(Node):
    """オブジェクトリテラルのプロパティ（key: value）。"""

    key: Node
    value: Node
    computed: bool = False


@dataclass(frozen=True)
class ObjectExpression(Node):
    properties: tuple[Union[Property, SpreadElement], ...] = ()


@dataclass(frozen=True)
class ArrayExpression(Node):
    """配列リテラル。穴（[1,,2]）は None で表す。"""

    elements: tuple[Optional[Node], ...] = ()


@dataclass(frozen=True)
class FunctionExpression(Node):
    params: tuple[Node, ...]
    body: "BlockStatement"
    id: Optional[Identifier] = None
    is_async: bool = False


@dataclass(frozen=True)
class ArrowFunctionExpression(Node):
    """アロー関数。expression が True の場合 body は式そのもの。"""

    params: tuple[Node, ...]
    body: Node
    expression: bool = False
    is_async: bool = False


@dataclass(frozen=True)
class AwaitExpression(Node):
    argument: Node


# ---------------------------------------------------------------------------
# 束縛パターン
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatternProperty(Node):
    """オブジェクト分割代入の 1 要素（{key: value}）。"""

    key: Node
    value: Node
    computed: bool = False


@dataclass(frozen=True)
class ObjectPattern(Node):
    properties: tuple[Node, ...] = ()


@dataclass(frozen=True)
class ArrayPattern(Node):
    elements: tuple[Optional[Node], ...] = ()


@dataclass(frozen=True)
class AssignmentPattern(Node):
    """デフォルト値付きの束縛（x = 1）。"""

    left: Node
    right: Node


@dataclass(frozen=True)
class RestElement(Node):
    argument: Node


# ---------------------------------------------------------------------------
# 文
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Program(Node):
    body: tuple[Node, ...] = ()


@dataclass(frozen=True)
class ExpressionStatement(Node):
    expression: Node


@dataclass(frozen=True)
class VariableDeclarator(Node):
    target: Node
    init: Optional[Node] = None


@dataclass(frozen=True)
class VariableDeclaration(Node):
    kind: str
    declarations: tuple[VariableDeclarator, ...] = ()


@dataclass(frozen=True)
class BlockStatement(Node):
    body: tuple[Node, ...] = ()


@dataclass(frozen=True)
class EmptyStatement(Node):
    pass


@dataclass(frozen=True)
class IfStatement(Node):
    test: Node
    consequent: Node
    alternate: Optional[Node] = None


@dataclass(frozen=True)
class ForStatement(Node):
    init: Optional[Node]
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass(frozen=True)
class ForOfStatement(Node):
    left: Node
    right: Node
    body: Node


@dataclass(frozen=True)
class WhileStatement(Node):
    test: Node
    body: Node


@dataclass(frozen=True)
class DoWhileStatement(Node):
    body: Node
    test: Node


@dataclass(frozen=True)
class FunctionDeclaration(Node):
    id: Identifier
    params: tuple[Node, ...]
    body: BlockStatement
    is_async: bool = False


@dataclass(frozen=True)
class ReturnStatement(Node):
    argument: Optional[Node] = None


@dataclass(frozen=True)
class ThrowStatement(Node):
    argument: Node


@dataclass(frozen=True)
class CatchClause(Node):
    param: Optional[Node]
    body: BlockStatement


@dataclass(frozen=True)
class TryStatement(Node):
    block: BlockStatement
    handler: Optional[CatchClause] = None
    finalizer: Optional[BlockStatement] = None


# ---------------------------------------------------------------------------
# 未対応ノード
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Unsupported(Node):
    """評価器が対応していない構文。評価時に UnsupportedConstruct を送出する。

    Attributes:
        type_name: パーサーが返したノード種別名
        line: ソース上の行番号（不明な場合は None）
    """

    type_name: str
    line: Optional[int] = None

    @property
    def node_type(self) -> str:
        return self.type_name


# 評価器がディスパッチ対象とする式ノード
EXPRESSION_TYPES: tuple[type, ...] = (
    Identifier,
    Literal,
    TemplateLiteral,
    BinaryExpression,
    LogicalExpression,
    UnaryExpression,
    UpdateExpression,
    AssignmentExpression,
    MemberExpression,
    CallExpression,
    NewExpression,
    ConditionalExpression,
    SequenceExpression,
    ObjectExpression,
    ArrayExpression,
    FunctionExpression,
    ArrowFunctionExpression,
    AwaitExpression,
)

# 評価器がディスパッチ対象とする文ノード
STATEMENT_TYPES: tuple[type, ...] = (
    Program,
    ExpressionStatement,
    VariableDeclaration,
    BlockStatement,
    EmptyStatement,
    IfStatement,
    ForStatement,
    ForOfStatement,
    WhileStatement,
    DoWhileStatement,
    FunctionDeclaration,
    ReturnStatement,
    ThrowStatement,
    TryStatement,
)
