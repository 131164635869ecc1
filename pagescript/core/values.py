"""
スクリプト値モデル: 値の表現と型変換

スクリプト言語の値を Python のオブジェクトで表現する。

対応関係:
  - undefined → UNDEFINED（シングルトン）
  - null      → None
  - boolean   → bool
  - number    → int / float（整数値は int に正規化）
  - string    → str
  - 配列      → list
  - オブジェクト → dict（Error は ErrorObject）
  - 関数      → Closure / NativeFunction / NativeConstructor / Python の呼び出し可能オブジェクト

文の評価結果は Completion（Normal / Returning）で表現し、
return による脱出を例外ではなく戻り値として伝播させる。
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from ..errors import GuestThrow, ScriptError

if TYPE_CHECKING:
    from .environment import Environment
    from .nodes import Node


# ---------------------------------------------------------------------------
# undefined
# ---------------------------------------------------------------------------

class Undefined:
    """スクリプトの undefined を表すシングルトン型。"""

    _instance: Optional[Undefined] = None

    def __new__(cls) -> Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = Undefined()


# ---------------------------------------------------------------------------
# 関数値
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Closure:
    """スクリプト内で定義された関数（クロージャ）。

    定義時の Environment を保持し、呼び出し時はその子フレームで本体を評価する。

    Attributes:
        params: 仮引数ノードのタプル
        body: 本体（BlockStatement、または式本体アロー関数の式）
        env: 定義時の Environment
        name: 関数名（無名関数は空文字）
        is_async: async 関数かどうか
        expression_body: 本体が式（アロー関数の簡略形）かどうか
    """

    params: tuple[Node, ...]
    body: Node
    env: Environment
    name: str = ""
    is_async: bool = False
    expression_body: bool = False

    def __repr__(self) -> str:
        return f"<Closure {self.name or 'anonymous'}>"


@dataclass(eq=False)
class NativeFunction:
    """Python で実装された組み込み関数。

    impl は同期関数・async 関数のどちらでもよい。評価器は結果が
    awaitable の場合その場で await する。

    Attributes:
        name: 関数名（エラーメッセージ用）
        impl: 実装本体
        properties: 関数オブジェクトに付随するプロパティ（Promise.resolve 等）
    """

    name: str
    impl: Callable[..., Any]
    properties: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"<NativeFunction {self.name}>"


@dataclass(eq=False)
class NativeConstructor(NativeFunction):
    """new で呼び出せる組み込みコンストラクタ（Error, Promise 等）。

    Attributes:
        construct: new 呼び出し時の実装
        instance_check: instanceof 判定に使う関数
    """

    construct: Optional[Callable[..., Any]] = None
    instance_check: Optional[Callable[[Any], bool]] = None

    def __repr__(self) -> str:
        return f"<NativeConstructor {self.name}>"


class ErrorObject(dict):
    """スクリプトの Error オブジェクト。name / message をキーに持つ dict。"""

    def __init__(self, message: str = "", name: str = "Error") -> None:
        super().__init__(name=name, message=message)

    @property
    def name(self) -> str:
        return to_string(self.get("name", "Error"))

    @property
    def message(self) -> str:
        return to_string(self.get("message", ""))


# ---------------------------------------------------------------------------
# Completion（文の評価結果）
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Normal:
    """文が通常終了したことを表す。value は式文の値。"""

    value: Any = UNDEFINED


@dataclass(frozen=True)
class Returning:
    """return 文により関数から脱出中であることを表す。"""

    value: Any = UNDEFINED


Completion = Union[Normal, Returning]

NORMAL = Normal()


# ---------------------------------------------------------------------------
# 型判定・変換
# ---------------------------------------------------------------------------

def is_callable(value: Any) -> bool:
    """スクリプトから呼び出し可能な値かどうかを返す。"""
    if isinstance(value, (Closure, NativeFunction)):
        return True
    if isinstance(value, (dict, list, str, type)):
        return False
    return callable(value)


def is_number(value: Any) -> bool:
    """bool を除く数値かどうかを返す。"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_number(value: float) -> int | float:
    """整数値の float を int に正規化する。"""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float) and value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


def is_truthy(value: Any) -> bool:
    """スクリプトの真偽値判定。"""
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> int | float:
    """値を数値に変換する（Number(value) 相当）。"""
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        try:
            if text.lower().startswith(("0x", "-0x", "+0x")):
                return int(text, 16)
            if text in ("Infinity", "+Infinity"):
                return math.inf
            if text == "-Infinity":
                return -math.inf
            return normalize_number(float(text))
        except ValueError:
            return math.nan
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(to_string(value[0]))
    return math.nan


def to_int32(value: Any) -> int:
    """ビット演算用に 32 ビット符号付き整数へ変換する。"""
    number = to_number(value)
    if math.isnan(number) or math.isinf(number):
        return 0
    result = int(number) & 0xFFFFFFFF
    return result - 0x100000000 if result >= 0x80000000 else result


def to_uint32(value: Any) -> int:
    """ビット演算用に 32 ビット符号なし整数へ変換する。"""
    return to_int32(value) & 0xFFFFFFFF


def number_to_string(value: int | float) -> str:
    """数値をスクリプトの文字列表現に変換する。"""
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_string(value: Any) -> str:
    """値を文字列に変換する（String(value) 相当）。"""
    if isinstance(value, str):
        return value
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return number_to_string(value)
    if isinstance(value, ErrorObject):
        return f"{value.name}: {value.message}" if value.message else value.name
    if isinstance(value, list):
        return ",".join(
            "" if item is None or item is UNDEFINED else to_string(item)
            for item in value
        )
    if isinstance(value, Mapping):
        return "[object Object]"
    if isinstance(value, Closure):
        return f"function {value.name}() {{ [code] }}"
    if isinstance(value, NativeFunction):
        return f"function {value.name}() {{ [native code] }}"
    return str(value)


def type_of(value: Any) -> str:
    """typeof 演算子の結果を返す。"""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable(value):
        return "function"
    return "object"


def strict_equals(left: Any, right: Any) -> bool:
    """=== の判定。型が異なれば常に False。"""
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None or left is UNDEFINED or right is None or right is UNDEFINED:
        return left is right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    """== の判定（型変換あり）。"""
    left_nullish = left is None or left is UNDEFINED
    right_nullish = right is None or right is UNDEFINED
    if left_nullish or right_nullish:
        return left_nullish and right_nullish
    if type_of(left) == type_of(right):
        return strict_equals(left, right)
    if isinstance(left, bool):
        return loose_equals(to_number(left), right)
    if isinstance(right, bool):
        return loose_equals(left, to_number(right))
    if is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and is_number(right):
        return to_number(left) == right
    if isinstance(left, (list, dict)) and not isinstance(right, (list, dict)):
        return loose_equals(to_string(left), right)
    if isinstance(right, (list, dict)) and not isinstance(left, (list, dict)):
        return loose_equals(left, to_string(right))
    return left is right


def error_message(value: Any) -> str:
    """throw された値から人間が読めるメッセージを取り出す。"""
    if isinstance(value, ErrorObject):
        return value.message
    if isinstance(value, Mapping) and "message" in value:
        return to_string(value["message"])
    return to_string(value)


# ---------------------------------------------------------------------------
# JSON 変換
# ---------------------------------------------------------------------------

_SKIP = object()


def _to_json_value(value: Any, in_array: bool) -> Any:
    """JSON.stringify 用に値を json モジュールが扱える形へ変換する。"""
    if value is UNDEFINED or is_callable(value):
        return None if in_array else _SKIP
    if value is None or isinstance(value, (bool, str)):
        return value
    if is_number(value):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return normalize_number(value)
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item, True) for item in value]
    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            converted = _to_json_value(item, False)
            if converted is not _SKIP:
                result[to_string(key)] = converted
        return result
    return str(value)


def json_stringify(value: Any, indent: Any = None) -> str | Undefined:
    """JSON.stringify 相当。変換できない値（undefined, 関数）は UNDEFINED を返す。"""
    converted = _to_json_value(value, False)
    if converted is _SKIP:
        return UNDEFINED
    if is_number(indent) and indent > 0:
        return json.dumps(converted, ensure_ascii=False, indent=int(min(indent, 10)))
    if isinstance(indent, str) and indent:
        return json.dumps(converted, ensure_ascii=False, indent=indent[:10])
    return json.dumps(converted, ensure_ascii=False, separators=(",", ":"))


def from_json(data: Any) -> Any:
    """json.loads の結果をスクリプト値に変換する（数値の正規化のみ）。"""
    if isinstance(data, float):
        return normalize_number(data)
    if isinstance(data, list):
        return [from_json(item) for item in data]
    if isinstance(data, dict):
        return {key: from_json(item) for key, item in data.items()}
    return data


def format_log_args(args: tuple[Any, ...] | list[Any]) -> str:
    """console.log 形式で引数を 1 行の文字列に整形する。

    オブジェクト（配列・dict）は JSON、それ以外は文字列変換して空白区切りで連結する。
    """
    parts = []
    for arg in args:
        if isinstance(arg, ErrorObject):
            parts.append(to_string(arg))
        elif isinstance(arg, (list, Mapping)) or arg is None:
            parts.append(to_string(json_stringify(arg)))
        else:
            parts.append(to_string(arg))
    return " ".join(parts)


def guest_error_value(exc: BaseException) -> Any:
    """catch 句に束縛する値を例外から作る。

    throw された値はそのまま、インタプリタのエラーは e.name にエラー種別を持つ
    ErrorObject、ホスト側の例外は name が "Error" の ErrorObject になる。
    """
    if isinstance(exc, GuestThrow):
        return exc.value
    if isinstance(exc, ScriptError):
        return ErrorObject(str(exc), exc.guest_name)
    return ErrorObject(str(exc) or type(exc).__name__, "Error")
