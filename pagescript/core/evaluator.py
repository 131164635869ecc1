"""
評価器: AST を直接たどって実行する木構造インタプリタ

evaluate(node, env) が唯一の入口で、ノード種別ごとのハンドラへ
ディスパッチテーブルで振り分ける。

  - 式ノード: スクリプト値を返す
  - 文ノード: Completion（Normal / Returning）を返す。Returning を受け取った
    構造（ブロック・ループ・try）は残りを評価せずにそのまま上位へ返す
  - 未対応ノード: UnsupportedConstruct を送出する（黙って無視しない）

全ハンドラはコルーチンで、評価は単一のイベントループ上で逐次に行う。
中断点はホスト呼び出しの await のみ。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Mapping, MutableMapping
from typing import Any, Awaitable, Callable, Optional

from ..errors import CallDepthExceeded, GuestThrow, TypeFailure, UnsupportedConstruct
from ..host.interop import MISSING, PendingCalls, call_foreign, resolve_attribute, snake_case
from ..host.proxy import HostProxy
from . import nodes
from .builtins import Builtins, LogEmitter
from .environment import Environment
from .values import (
    NORMAL,
    UNDEFINED,
    Closure,
    Completion,
    NativeConstructor,
    NativeFunction,
    Normal,
    Returning,
    guest_error_value,
    is_callable,
    is_number,
    is_truthy,
    loose_equals,
    normalize_number,
    strict_equals,
    to_int32,
    to_number,
    to_string,
    to_uint32,
    type_of,
)

logger = logging.getLogger(__name__)

# 関数呼び出しのネスト上限（既定値）
DEFAULT_MAX_CALL_DEPTH = 100

Store = Callable[[str, Any], None]
Handler = Callable[[Any, Environment], Awaitable[Any]]


# ---------------------------------------------------------------------------
# 演算子
# ---------------------------------------------------------------------------

def _to_primitive(value: Any) -> Any:
    """+ 演算子用にオブジェクト値を文字列へ変換する。"""
    if isinstance(value, (list, Mapping)) or is_callable(value):
        return to_string(value)
    return value


def _add(left: Any, right: Any) -> Any:
    left, right = _to_primitive(left), _to_primitive(right)
    if isinstance(left, str) or isinstance(right, str):
        return to_string(left) + to_string(right)
    return normalize_number(to_number(left) + to_number(right))


def _divide(left: Any, right: Any) -> Any:
    dividend, divisor = to_number(left), to_number(right)
    if divisor == 0:
        if dividend == 0 or math.isnan(dividend):
            return math.nan
        return math.copysign(math.inf, dividend) * math.copysign(1, divisor)
    return normalize_number(dividend / divisor)


def _remainder(left: Any, right: Any) -> Any:
    dividend, divisor = to_number(left), to_number(right)
    if isinstance(dividend, int) and isinstance(divisor, int):
        if divisor == 0:
            return math.nan
        result = abs(dividend) % abs(divisor)
        return -result if dividend < 0 else result
    try:
        return normalize_number(math.fmod(dividend, divisor))
    except ValueError:
        return math.nan


def _power(left: Any, right: Any) -> Any:
    base, exponent = to_number(left), to_number(right)
    if math.isnan(base) or math.isnan(exponent):
        return math.nan
    if base < 0 and not float(exponent).is_integer():
        return math.nan
    try:
        return normalize_number(float(base) ** exponent)
    except ZeroDivisionError:
        return math.inf
    except OverflowError:
        return math.inf if base > 0 or float(exponent) % 2 == 0 else -math.inf


def _compare(left: Any, right: Any, test: Callable[[Any, Any], bool]) -> bool:
    left, right = _to_primitive(left), _to_primitive(right)
    if isinstance(left, str) and isinstance(right, str):
        return test(left, right)
    a, b = to_number(left), to_number(right)
    if math.isnan(a) or math.isnan(b):
        return False
    return test(a, b)


def _numeric(func: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    return lambda left, right: normalize_number(func(to_number(left), to_number(right)))


_BINARY_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+": _add,
    "-": _numeric(lambda a, b: a - b),
    "*": _numeric(lambda a, b: a * b),
    "/": _divide,
    "%": _remainder,
    "**": _power,
    "==": loose_equals,
    "!=": lambda a, b: not loose_equals(a, b),
    "===": strict_equals,
    "!==": lambda a, b: not strict_equals(a, b),
    "<": lambda a, b: _compare(a, b, lambda x, y: x < y),
    ">": lambda a, b: _compare(a, b, lambda x, y: x > y),
    "<=": lambda a, b: _compare(a, b, lambda x, y: x <= y),
    ">=": lambda a, b: _compare(a, b, lambda x, y: x >= y),
    "&": lambda a, b: to_int32(to_int32(a) & to_int32(b)),
    "|": lambda a, b: to_int32(to_int32(a) | to_int32(b)),
    "^": lambda a, b: to_int32(to_int32(a) ^ to_int32(b)),
    "<<": lambda a, b: to_int32(to_int32(a) << (to_uint32(b) & 31)),
    ">>": lambda a, b: to_int32(a) >> (to_uint32(b) & 31),
    ">>>": lambda a, b: to_uint32(a) >> (to_uint32(b) & 31),
}


def apply_binary(operator: str, left: Any, right: Any) -> Any:
    """二項演算子（in / instanceof を除く）を適用する。

    Raises:
        UnsupportedConstruct: 未知の演算子の場合
    """
    func = _BINARY_OPERATORS.get(operator)
    if func is None:
        raise UnsupportedConstruct(f"演算子 {operator}")
    return func(left, right)


def _array_index(key: Any) -> Optional[int]:
    """配列の添字として有効なキーなら int を返す。"""
    if is_number(key) and not isinstance(key, bool):
        if math.isfinite(key) and float(key).is_integer() and key >= 0:
            return int(key)
        return None
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _fit_arguments(impl: Callable[..., Any], args: list[Any]) -> list[Any]:
    """組み込み関数が受け取れる個数まで引数を切り詰める。"""
    try:
        signature = inspect.signature(impl)
    except (TypeError, ValueError):
        return args
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return args
        if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return args[:count]


def describe(node: nodes.Node) -> str:
    """エラーメッセージ用に式をソース風の文字列で表す。"""
    if isinstance(node, nodes.Identifier):
        return node.name
    if isinstance(node, nodes.MemberExpression):
        if not node.computed and isinstance(node.property, nodes.Identifier):
            return f"{describe(node.object)}.{node.property.name}"
        return f"{describe(node.object)}[...]"
    if isinstance(node, nodes.CallExpression):
        return f"{describe(node.callee)}(...)"
    return node.node_type


def _call_label(func: Any) -> str:
    """未処理エラーの報告に使う呼び出し先の名前。"""
    return getattr(func, "path", None) or getattr(func, "__qualname__", None) or type(func).__name__


# ---------------------------------------------------------------------------
# 評価器
# ---------------------------------------------------------------------------

class Evaluator:
    """木構造インタプリタ本体。

    1 回のスクリプト実行ごとに生成する（呼び出し深さのほか、タイマーと
    await されていないホスト呼び出しを保持する）。

    使用例::

        evaluator = Evaluator(emit=print)
        env = Environment()
        for name, value in evaluator.global_bindings().items():
            env.define(name, value)
        result = await evaluator.run(parse_program("1 + 2"), env)
    """

    def __init__(
        self,
        emit: Optional[LogEmitter] = None,
        *,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ) -> None:
        """評価器を初期化する。

        Args:
            emit: console.* の出力先。None の場合はモジュールロガー
            max_call_depth: スクリプト関数呼び出しのネスト上限
        """
        self.max_call_depth = max_call_depth
        self._depth = 0
        self.pending_calls = PendingCalls()
        self.builtins = Builtins(
            self.call_function,
            emit or logger.info,
            observe=self.pending_calls.observe,
        )
        self._handlers: dict[type, Handler] = {
            # 文
            nodes.Program: self._program,
            nodes.ExpressionStatement: self._expression_statement,
            nodes.VariableDeclaration: self._variable_declaration,
            nodes.BlockStatement: self._block,
            nodes.EmptyStatement: self._empty,
            nodes.IfStatement: self._if,
            nodes.ForStatement: self._for,
            nodes.ForOfStatement: self._for_of,
            nodes.WhileStatement: self._while,
            nodes.DoWhileStatement: self._do_while,
            nodes.FunctionDeclaration: self._function_declaration,
            nodes.ReturnStatement: self._return,
            nodes.ThrowStatement: self._throw,
            nodes.TryStatement: self._try,
            # 式
            nodes.Identifier: self._identifier,
            nodes.Literal: self._literal,
            nodes.TemplateLiteral: self._template_literal,
            nodes.BinaryExpression: self._binary,
            nodes.LogicalExpression: self._logical,
            nodes.UnaryExpression: self._unary,
            nodes.UpdateExpression: self._update,
            nodes.AssignmentExpression: self._assignment,
            nodes.MemberExpression: self._member,
            nodes.CallExpression: self._call,
            nodes.NewExpression: self._new,
            nodes.ConditionalExpression: self._conditional,
            nodes.SequenceExpression: self._sequence,
            nodes.ObjectExpression: self._object,
            nodes.ArrayExpression: self._array,
            nodes.FunctionExpression: self._function_expression,
            nodes.ArrowFunctionExpression: self._arrow,
            nodes.AwaitExpression: self._await,
        }

    def global_bindings(self) -> dict[str, Any]:
        """ルート Environment に登録する組み込み値を返す。"""
        return self.builtins.globals()

    # -------------------------------------------------------------------
    # 公開 API
    # -------------------------------------------------------------------

    async def evaluate(self, node: nodes.Node, env: Environment) -> Any:
        """ノードを評価する。

        Args:
            node: 評価するノード
            env: 現在の Environment

        Returns:
            式ノードなら値、文ノードなら Completion

        Raises:
            UnsupportedConstruct: 未対応のノード種別の場合
        """
        handler = self._handlers.get(type(node))
        if handler is None:
            line = getattr(node, "line", None)
            raise UnsupportedConstruct(node.node_type, f"行 {line}" if line else "")
        return await handler(node, env)

    async def run(self, program: nodes.Program, env: Environment) -> Any:
        """Program を評価し、return された値（なければ最後の式文の値）を返す。"""
        try:
            completion = await self.evaluate(program, env)
        except RecursionError as exc:
            raise CallDepthExceeded(self.max_call_depth) from exc
        return completion.value

    async def call_function(self, func: Any, args: list[Any]) -> Any:
        """スクリプトから見た関数呼び出しを行う。

        Raises:
            TypeFailure: 呼び出し可能でない値の場合
        """
        if isinstance(func, Closure):
            return await self._call_closure(func, args)
        if isinstance(func, NativeFunction):
            result = func.impl(*_fit_arguments(func.impl, list(args)))
            if inspect.iscoroutine(result):
                result = await result
            return result
        if is_callable(func):
            result = call_foreign(func, list(args))
            if asyncio.isfuture(result):
                self.pending_calls.track(result, _call_label(func))
            return result
        raise TypeFailure(f"{to_string(func)} is not a function")

    # -------------------------------------------------------------------
    # メンバーアクセス
    # -------------------------------------------------------------------

    def get_member(self, obj: Any, key: Any) -> Any:
        """obj[key] を読み出す。

        Raises:
            TypeFailure: null / undefined のプロパティを読んだ場合
        """
        if obj is None or obj is UNDEFINED:
            raise TypeFailure(f"Cannot read properties of {to_string(obj)} (reading '{to_string(key)}')")
        name = to_string(key)
        if isinstance(obj, HostProxy):
            return obj.get(name)
        if isinstance(obj, list):
            index = _array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
            return self.builtins.array_member(obj, name)
        if isinstance(obj, str):
            return self.builtins.string_member(obj, name)
        if isinstance(obj, Mapping):
            if name in obj:
                return obj[name]
            return self.builtins.object_member(obj, name)
        if isinstance(obj, bool):
            return UNDEFINED
        if is_number(obj):
            return self.builtins.number_member(obj, name)
        if isinstance(obj, NativeFunction):
            return obj.name if name == "name" else obj.properties.get(name, UNDEFINED)
        if isinstance(obj, Closure):
            return obj.name if name == "name" else UNDEFINED
        if asyncio.isfuture(obj):
            return self.builtins.promise_member(obj, name)
        value = resolve_attribute(obj, name)
        return UNDEFINED if value is MISSING else value

    def set_member(self, obj: Any, key: Any, value: Any) -> None:
        """obj[key] = value を実オブジェクトに直接反映する。

        Raises:
            TypeFailure: 書き込めない対象の場合
        """
        name = to_string(key)
        if obj is None or obj is UNDEFINED:
            raise TypeFailure(f"Cannot set properties of {to_string(obj)} (setting '{name}')")
        if isinstance(obj, HostProxy):
            obj.set(name, value)
        elif isinstance(obj, MutableMapping):
            obj[name] = value
        elif isinstance(obj, list):
            self._set_array_element(obj, key, value)
        elif isinstance(obj, (Mapping, str, bool, int, float, Closure, NativeFunction)):
            raise TypeFailure(f"Cannot assign to property '{name}' of {type_of(obj)} (read-only)")
        else:
            attr = name
            if not hasattr(obj, name) and hasattr(obj, snake_case(name)):
                attr = snake_case(name)
            setattr(obj, attr, value)

    @staticmethod
    def _set_array_element(items: list[Any], key: Any, value: Any) -> None:
        if to_string(key) == "length":
            length = _array_index(value)
            if length is None:
                raise TypeFailure("Invalid array length")
            del items[length:]
            items.extend([UNDEFINED] * (length - len(items)))
            return
        index = _array_index(key)
        if index is None:
            raise TypeFailure(f"配列に添字以外のプロパティ '{to_string(key)}' は設定できません")
        if index >= len(items):
            items.extend([UNDEFINED] * (index + 1 - len(items)))
        items[index] = value

    async def _member_key(self, node: nodes.MemberExpression, env: Environment) -> Any:
        if node.computed:
            return await self.evaluate(node.property, env)
        return node.property.name

    # -------------------------------------------------------------------
    # 文
    # -------------------------------------------------------------------

    async def _program(self, node: nodes.Program, env: Environment) -> Completion:
        return await self._run_statements(node.body, env)

    async def _block(self, node: nodes.BlockStatement, env: Environment) -> Completion:
        return await self._run_statements(node.body, env.child())

    async def _run_statements(self, body: tuple[nodes.Node, ...], env: Environment) -> Completion:
        """文の並びを順に評価する。Returning が出た時点で打ち切る。"""
        self._hoist(body, env)
        result: Completion = NORMAL
        for statement in body:
            completion = await self.evaluate(statement, env)
            if isinstance(completion, Returning):
                return completion
            result = completion
        return result

    def _hoist(self, body: tuple[nodes.Node, ...], env: Environment) -> None:
        """関数宣言を文の評価前に束縛する。"""
        for statement in body:
            if isinstance(statement, nodes.FunctionDeclaration):
                env.define(statement.id.name, self._make_function(statement, env))

    async def _expression_statement(self, node: nodes.ExpressionStatement, env: Environment) -> Completion:
        return Normal(await self.evaluate(node.expression, env))

    async def _empty(self, node: nodes.EmptyStatement, env: Environment) -> Completion:
        return NORMAL

    async def _variable_declaration(self, node: nodes.VariableDeclaration, env: Environment) -> Completion:
        constant = node.kind == "const"

        def store(name: str, value: Any) -> None:
            env.define(name, value, constant=constant)

        for declarator in node.declarations:
            value = UNDEFINED
            if declarator.init is not None:
                value = await self.evaluate(declarator.init, env)
            await self._bind(declarator.target, value, env, store)
        return NORMAL

    async def _if(self, node: nodes.IfStatement, env: Environment) -> Completion:
        if is_truthy(await self.evaluate(node.test, env)):
            return await self.evaluate(node.consequent, env)
        if node.alternate is not None:
            return await self.evaluate(node.alternate, env)
        return NORMAL

    async def _for(self, node: nodes.ForStatement, env: Environment) -> Completion:
        loop_env = env.child()
        per_iteration: list[str] = []
        if node.init is not None:
            await self.evaluate(node.init, loop_env)
            if isinstance(node.init, nodes.VariableDeclaration) and node.init.kind == "let":
                per_iteration = list(loop_env.names())

        while node.test is None or is_truthy(await self.evaluate(node.test, loop_env)):
            # let 変数は反復ごとにコピーし、クロージャが各反復の値を捕捉できるようにする
            iteration = loop_env.child()
            for name in per_iteration:
                iteration.define(name, loop_env.lookup(name))
            completion = await self.evaluate(node.body, iteration)
            for name in per_iteration:
                loop_env.assign(name, iteration.lookup(name))
            if isinstance(completion, Returning):
                return completion
            if node.update is not None:
                await self.evaluate(node.update, loop_env)
        return NORMAL

    async def _for_of(self, node: nodes.ForOfStatement, env: Environment) -> Completion:
        iterable = await self.evaluate(node.right, env)
        if isinstance(iterable, list):
            items: Any = iterable
        elif isinstance(iterable, str):
            items = list(iterable)
        elif isinstance(iterable, HostProxy):
            items = iterable.items()
        else:
            raise TypeFailure(f"{describe(node.right)} is not iterable")

        index = 0
        while index < len(items):
            iteration = env.child()
            value = items[index]
            if isinstance(node.left, nodes.VariableDeclaration):
                constant = node.left.kind == "const"
                await self._bind(
                    node.left.declarations[0].target,
                    value,
                    iteration,
                    lambda name, v: iteration.define(name, v, constant=constant),
                )
            else:
                await self._bind(node.left, value, iteration, iteration.assign)
            completion = await self.evaluate(node.body, iteration)
            if isinstance(completion, Returning):
                return completion
            index += 1
        return NORMAL

    async def _while(self, node: nodes.WhileStatement, env: Environment) -> Completion:
        while is_truthy(await self.evaluate(node.test, env)):
            completion = await self.evaluate(node.body, env.child())
            if isinstance(completion, Returning):
                return completion
        return NORMAL

    async def _do_while(self, node: nodes.DoWhileStatement, env: Environment) -> Completion:
        while True:
            completion = await self.evaluate(node.body, env.child())
            if isinstance(completion, Returning):
                return completion
            if not is_truthy(await self.evaluate(node.test, env)):
                return NORMAL

    async def _function_declaration(self, node: nodes.FunctionDeclaration, env: Environment) -> Completion:
        # 巻き上げ済みなら何もしない
        if not env.has_own(node.id.name):
            env.define(node.id.name, self._make_function(node, env))
        return NORMAL

    async def _return(self, node: nodes.ReturnStatement, env: Environment) -> Completion:
        if node.argument is None:
            return Returning(UNDEFINED)
        return Returning(await self.evaluate(node.argument, env))

    async def _throw(self, node: nodes.ThrowStatement, env: Environment) -> Completion:
        raise GuestThrow(await self.evaluate(node.argument, env))

    async def _try(self, node: nodes.TryStatement, env: Environment) -> Completion:
        completion: Completion = NORMAL
        error: Optional[Exception] = None
        try:
            completion = await self.evaluate(node.block, env)
        except Exception as exc:
            if node.handler is None:
                error = exc
            else:
                try:
                    completion = await self._catch(node.handler, exc, env)
                except Exception as inner:
                    error = inner

        if node.finalizer is not None:
            final = await self.evaluate(node.finalizer, env)
            if isinstance(final, Returning):
                return final
        if error is not None:
            raise error
        return completion

    async def _catch(self, handler: nodes.CatchClause, exc: Exception, env: Environment) -> Completion:
        logger.debug("catch 節で例外を捕捉しました: %s", exc)
        catch_env = env.child()
        if handler.param is not None:
            await self._bind(handler.param, guest_error_value(exc), catch_env, catch_env.define)
        return await self.evaluate(handler.body, catch_env)

    # -------------------------------------------------------------------
    # 束縛パターン
    # -------------------------------------------------------------------

    async def _bind(self, target: nodes.Node, value: Any, env: Environment, store: Store) -> None:
        """識別子・分割代入パターンに値を束縛する。

        分割代入は 1 段のみ対応し、要素は識別子（デフォルト値付き可）に限る。

        Raises:
            UnsupportedConstruct: ネストしたパターンの場合
        """
        if isinstance(target, nodes.Identifier):
            store(target.name, value)
        elif isinstance(target, nodes.AssignmentPattern):
            if value is UNDEFINED:
                value = await self.evaluate(target.right, env)
            await self._bind(target.left, value, env, store)
        elif isinstance(target, nodes.ObjectPattern):
            await self._destructure_object(target, value, env, store)
        elif isinstance(target, nodes.ArrayPattern):
            await self._destructure_array(target, value, env, store)
        elif isinstance(target, nodes.MemberExpression):
            obj = await self.evaluate(target.object, env)
            self.set_member(obj, await self._member_key(target, env), value)
        else:
            raise UnsupportedConstruct(target.node_type, "束縛パターン")

    @staticmethod
    def _require_flat(element: nodes.Node) -> None:
        inner = element
        if isinstance(inner, (nodes.AssignmentPattern,)):
            inner = inner.left
        elif isinstance(inner, nodes.RestElement):
            inner = inner.argument
        if not isinstance(inner, nodes.Identifier):
            raise UnsupportedConstruct("NestedPattern", "ネストした分割代入には対応していません")

    async def _destructure_object(
        self, pattern: nodes.ObjectPattern, value: Any, env: Environment, store: Store
    ) -> None:
        if value is None or value is UNDEFINED:
            raise TypeFailure(f"Cannot destructure '{to_string(value)}' as it is {to_string(value)}.")
        used: list[str] = []
        for prop in pattern.properties:
            self._require_flat(prop.value if isinstance(prop, nodes.PatternProperty) else prop)
            if isinstance(prop, nodes.RestElement):
                rest = {}
                if isinstance(value, Mapping):
                    rest = {k: v for k, v in value.items() if k not in used}
                await self._bind(prop.argument, rest, env, store)
                continue
            if prop.computed:
                key = to_string(await self.evaluate(prop.key, env))
            elif isinstance(prop.key, nodes.Identifier):
                key = prop.key.name
            else:
                key = to_string(prop.key.value)
            used.append(key)
            await self._bind(prop.value, self.get_member(value, key), env, store)

    async def _destructure_array(
        self, pattern: nodes.ArrayPattern, value: Any, env: Environment, store: Store
    ) -> None:
        if isinstance(value, (list, str)):
            items = list(value)
        else:
            raise TypeFailure(f"{type_of(value)} is not iterable")
        for index, element in enumerate(pattern.elements):
            if element is None:
                continue
            self._require_flat(element)
            if isinstance(element, nodes.RestElement):
                await self._bind(element.argument, items[index:], env, store)
                break
            await self._bind(element, items[index] if index < len(items) else UNDEFINED, env, store)

    # -------------------------------------------------------------------
    # 関数
    # -------------------------------------------------------------------

    def _make_function(self, node: Any, env: Environment) -> Closure:
        name = node.id.name if node.id is not None else ""
        return Closure(params=node.params, body=node.body, env=env, name=name, is_async=node.is_async)

    async def _function_expression(self, node: nodes.FunctionExpression, env: Environment) -> Closure:
        if node.id is None:
            return self._make_function(node, env)
        # 名前付き関数式は自身の名前を専用フレームに束縛する
        own = env.child()
        closure = self._make_function(node, own)
        own.define(node.id.name, closure)
        return closure

    async def _arrow(self, node: nodes.ArrowFunctionExpression, env: Environment) -> Closure:
        return Closure(
            params=node.params,
            body=node.body,
            env=env,
            is_async=node.is_async,
            expression_body=node.expression,
        )

    async def _call_closure(self, closure: Closure, args: list[Any]) -> Any:
        """クロージャを呼び出す。本体は定義時 Environment の子フレームで評価する。"""
        if self._depth >= self.max_call_depth:
            raise CallDepthExceeded(self.max_call_depth)
        self._depth += 1
        try:
            env = closure.env.child()
            for index, param in enumerate(closure.params):
                if isinstance(param, nodes.RestElement):
                    await self._bind(param.argument, list(args[index:]), env, env.define)
                    break
                value = args[index] if index < len(args) else UNDEFINED
                await self._bind(param, value, env, env.define)

            if closure.expression_body:
                return await self.evaluate(closure.body, env)
            completion = await self._run_statements(closure.body.body, env)
            return completion.value if isinstance(completion, Returning) else UNDEFINED
        except RecursionError as exc:
            raise CallDepthExceeded(self.max_call_depth) from exc
        finally:
            self._depth -= 1

    async def _arguments(self, items: tuple[nodes.Node, ...], env: Environment) -> list[Any]:
        """引数を左から順に評価する（スプレッド展開を含む）。"""
        values: list[Any] = []
        for item in items:
            if isinstance(item, nodes.SpreadElement):
                spread = await self.evaluate(item.argument, env)
                if not isinstance(spread, (list, str)):
                    raise TypeFailure(f"{describe(item.argument)} is not iterable")
                values.extend(spread)
            else:
                values.append(await self.evaluate(item, env))
        return values

    async def _call(self, node: nodes.CallExpression, env: Environment) -> Any:
        callee = node.callee
        if isinstance(callee, nodes.MemberExpression):
            obj = await self.evaluate(callee.object, env)
            func = self.get_member(obj, await self._member_key(callee, env))
        else:
            func = await self.evaluate(callee, env)
        args = await self._arguments(node.arguments, env)
        if not is_callable(func):
            raise TypeFailure(f"{describe(callee)} is not a function")
        return await self.call_function(func, args)

    async def _new(self, node: nodes.NewExpression, env: Environment) -> Any:
        func = await self.evaluate(node.callee, env)
        args = await self._arguments(node.arguments, env)
        if isinstance(func, NativeConstructor) and func.construct is not None:
            result = func.construct(*_fit_arguments(func.construct, args))
            if inspect.iscoroutine(result):
                result = await result
            return result
        if isinstance(func, type):
            return func(*args)
        raise TypeFailure(f"{describe(node.callee)} is not a constructor")

    async def _await(self, node: nodes.AwaitExpression, env: Environment) -> Any:
        value = await self.evaluate(node.argument, env)
        self.pending_calls.observe(value)
        if inspect.isawaitable(value):
            return await value
        return value

    # -------------------------------------------------------------------
    # 式
    # -------------------------------------------------------------------

    async def _identifier(self, node: nodes.Identifier, env: Environment) -> Any:
        return env.lookup(node.name)

    async def _literal(self, node: nodes.Literal, env: Environment) -> Any:
        return node.value

    async def _template_literal(self, node: nodes.TemplateLiteral, env: Environment) -> str:
        parts = [node.quasis[0]]
        for expression, quasi in zip(node.expressions, node.quasis[1:]):
            parts.append(to_string(await self.evaluate(expression, env)))
            parts.append(quasi)
        return "".join(parts)

    async def _binary(self, node: nodes.BinaryExpression, env: Environment) -> Any:
        left = await self.evaluate(node.left, env)
        right = await self.evaluate(node.right, env)
        if node.operator == "in":
            return self._has_property(right, left)
        if node.operator == "instanceof":
            return self._instance_of(left, right)
        return apply_binary(node.operator, left, right)

    def _has_property(self, obj: Any, key: Any) -> bool:
        name = to_string(key)
        if isinstance(obj, list):
            index = _array_index(key)
            return name == "length" or (index is not None and index < len(obj))
        if isinstance(obj, Mapping):
            return name in obj
        if isinstance(obj, HostProxy):
            return resolve_attribute(obj.target, name) is not MISSING
        raise TypeFailure(f"Cannot use 'in' operator to search for '{name}' in {to_string(obj)}")

    @staticmethod
    def _instance_of(value: Any, constructor: Any) -> bool:
        if isinstance(constructor, NativeConstructor) and constructor.instance_check is not None:
            return constructor.instance_check(value)
        if isinstance(constructor, type):
            return isinstance(value, constructor)
        if is_callable(constructor):
            return False
        raise TypeFailure("Right-hand side of 'instanceof' is not callable")

    async def _logical(self, node: nodes.LogicalExpression, env: Environment) -> Any:
        left = await self.evaluate(node.left, env)
        if node.operator == "&&":
            return await self.evaluate(node.right, env) if is_truthy(left) else left
        if node.operator == "||":
            return left if is_truthy(left) else await self.evaluate(node.right, env)
        if node.operator == "??":
            return await self.evaluate(node.right, env) if left is None or left is UNDEFINED else left
        raise UnsupportedConstruct(f"演算子 {node.operator}")

    async def _unary(self, node: nodes.UnaryExpression, env: Environment) -> Any:
        operator = node.operator
        if operator == "typeof":
            # 未宣言の識別子は ReferenceFailure にせず "undefined"
            if isinstance(node.argument, nodes.Identifier) and not env.has(node.argument.name):
                return "undefined"
            return type_of(await self.evaluate(node.argument, env))
        if operator == "delete":
            return await self._delete(node.argument, env)

        value = await self.evaluate(node.argument, env)
        if operator == "!":
            return not is_truthy(value)
        if operator == "-":
            return normalize_number(-to_number(value))
        if operator == "+":
            return to_number(value)
        if operator == "~":
            return to_int32(~to_int32(value))
        if operator == "void":
            return UNDEFINED
        raise UnsupportedConstruct(f"演算子 {operator}")

    async def _delete(self, target: nodes.Node, env: Environment) -> bool:
        if not isinstance(target, nodes.MemberExpression):
            raise UnsupportedConstruct("delete", "メンバー式以外は削除できません")
        obj = await self.evaluate(target.object, env)
        key = await self._member_key(target, env)
        if isinstance(obj, MutableMapping):
            obj.pop(to_string(key), None)
        elif isinstance(obj, list):
            index = _array_index(key)
            if index is not None and index < len(obj):
                obj[index] = UNDEFINED
        else:
            raise TypeFailure(f"Cannot delete property '{to_string(key)}' of {type_of(obj)}")
        return True

    async def _update(self, node: nodes.UpdateExpression, env: Environment) -> Any:
        delta = 1 if node.operator == "++" else -1
        target = node.argument
        if isinstance(target, nodes.Identifier):
            old = to_number(env.lookup(target.name))
            new = normalize_number(old + delta)
            env.assign(target.name, new)
        elif isinstance(target, nodes.MemberExpression):
            obj = await self.evaluate(target.object, env)
            key = await self._member_key(target, env)
            old = to_number(self.get_member(obj, key))
            new = normalize_number(old + delta)
            self.set_member(obj, key, new)
        else:
            raise UnsupportedConstruct(target.node_type, "更新式の対象")
        return new if node.prefix else old

    async def _assignment(self, node: nodes.AssignmentExpression, env: Environment) -> Any:
        target = node.target
        operator = node.operator
        if operator == "=":
            if isinstance(target, nodes.Identifier):
                value = await self.evaluate(node.value, env)
                env.assign(target.name, value)
                return value
            if isinstance(target, nodes.MemberExpression):
                obj = await self.evaluate(target.object, env)
                key = await self._member_key(target, env)
                value = await self.evaluate(node.value, env)
                self.set_member(obj, key, value)
                return value
            value = await self.evaluate(node.value, env)
            await self._bind(target, value, env, env.assign)
            return value

        binary = operator[:-1]
        if isinstance(target, nodes.Identifier):
            # 複合代入は既存の束縛が必要
            current = env.lookup(target.name)
            value = apply_binary(binary, current, await self.evaluate(node.value, env))
            env.assign(target.name, value)
            return value
        if isinstance(target, nodes.MemberExpression):
            obj = await self.evaluate(target.object, env)
            key = await self._member_key(target, env)
            current = self.get_member(obj, key)
            value = apply_binary(binary, current, await self.evaluate(node.value, env))
            self.set_member(obj, key, value)
            return value
        raise UnsupportedConstruct(target.node_type, "複合代入の対象")

    async def _member(self, node: nodes.MemberExpression, env: Environment) -> Any:
        obj = await self.evaluate(node.object, env)
        return self.get_member(obj, await self._member_key(node, env))

    async def _conditional(self, node: nodes.ConditionalExpression, env: Environment) -> Any:
        if is_truthy(await self.evaluate(node.test, env)):
            return await self.evaluate(node.consequent, env)
        return await self.evaluate(node.alternate, env)

    async def _sequence(self, node: nodes.SequenceExpression, env: Environment) -> Any:
        value = UNDEFINED
        for expression in node.expressions:
            value = await self.evaluate(expression, env)
        return value

    async def _object(self, node: nodes.ObjectExpression, env: Environment) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for prop in node.properties:
            if isinstance(prop, nodes.SpreadElement):
                source = await self.evaluate(prop.argument, env)
                if isinstance(source, Mapping):
                    result.update(source)
                elif isinstance(source, (list, str)):
                    result.update({str(i): v for i, v in enumerate(source)})
                continue
            if prop.computed:
                key = to_string(await self.evaluate(prop.key, env))
            elif isinstance(prop.key, nodes.Identifier):
                key = prop.key.name
            else:
                key = to_string(prop.key.value)
            result[key] = await self.evaluate(prop.value, env)
        return result

    async def _array(self, node: nodes.ArrayExpression, env: Environment) -> list[Any]:
        result: list[Any] = []
        for element in node.elements:
            if element is None:
                result.append(UNDEFINED)
            elif isinstance(element, nodes.SpreadElement):
                spread = await self.evaluate(element.argument, env)
                if not isinstance(spread, (list, str)):
                    raise TypeFailure(f"{describe(element.argument)} is not iterable")
                result.extend(spread)
            else:
                result.append(await self.evaluate(element, env))
        return result
