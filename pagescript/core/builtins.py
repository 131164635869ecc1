"""
組み込みオブジェクト: グローバル束縛と値のメンバーメソッド

スクリプトのルート Environment に登録するグローバル値（console, JSON, Math,
Error, Promise 等）と、文字列・配列・数値・オブジェクトのメソッドを提供する。

コールバックを受け取るメソッド（map, forEach, filter 等）は評価器の
call_function を通じてスクリプト関数を呼び出し、左から右の順序で評価する。
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import math
import random
import re
import time
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional

from ..errors import GuestThrow, TypeFailure
from .values import (
    UNDEFINED,
    ErrorObject,
    NativeConstructor,
    NativeFunction,
    format_log_args,
    from_json,
    guest_error_value,
    is_number,
    is_truthy,
    json_stringify,
    normalize_number,
    strict_equals,
    to_int32,
    to_number,
    to_string,
)

logger = logging.getLogger(__name__)

CallFunction = Callable[[Any, list[Any]], Awaitable[Any]]
LogEmitter = Callable[[str], None]

# parseInt の先頭部分にマッチする正規表現
_INT_PREFIX = re.compile(r"^\s*([+-]?)(0[xX])?([0-9a-zA-Z]*)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))")

# console メソッドごとのログ接頭辞
_CONSOLE_PREFIXES = {
    "log": "",
    "debug": "",
    "info": "INFO: ",
    "warn": "WARNING: ",
    "error": "ERROR: ",
}

_ERROR_TYPES = ("Error", "TypeError", "RangeError", "ReferenceError", "SyntaxError")


def _native(name: str, impl: Callable[..., Any], **properties: Any) -> NativeFunction:
    return NativeFunction(name=name, impl=impl, properties=dict(properties))


def _relative_index(value: Any, length: int, default: int) -> int:
    """slice 系メソッドの負数インデックスを解決し 0..length に丸める。"""
    if value is UNDEFINED:
        return default
    number = to_number(value)
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return length if number > 0 else 0
    index = int(number)
    if index < 0:
        index = max(length + index, 0)
    return min(index, length)


def parse_int(text: Any, radix: Any = UNDEFINED) -> int | float:
    """parseInt 相当。解析できない場合は NaN。"""
    match = _INT_PREFIX.match(to_string(text))
    sign, hex_prefix, digits = match.groups()
    base = 10 if radix is UNDEFINED else to_int32(radix)
    if base == 0:
        base = 10
    if hex_prefix and base in (10, 16) and radix in (UNDEFINED, 16, 0):
        base = 16
    elif hex_prefix:
        digits = "0"
    if not 2 <= base <= 36:
        return math.nan
    valid = ""
    for char in digits:
        if int(char, 36) >= base:
            break
        valid += char
    if not valid:
        return math.nan
    value = int(valid, base)
    return -value if sign == "-" else value


def parse_float(text: Any) -> int | float:
    """parseFloat 相当。"""
    match = _FLOAT_PREFIX.match(to_string(text))
    if not match:
        return math.nan
    return normalize_number(float(match.group(1).replace("Infinity", "inf")))


class Builtins:
    """評価器 1 つ分の組み込みオブジェクト群。

    Args:
        call: スクリプト関数・組み込み関数を呼び出す評価器のメソッド
        emit: console / log の出力先
        observe: Promise として参照された Future を評価器へ知らせる関数
    """

    def __init__(
        self,
        call: CallFunction,
        emit: LogEmitter,
        observe: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self._call = call
        self._emit = emit
        self._observe = observe or (lambda _value: None)
        self._timers: dict[int, asyncio.Task] = {}
        self._timer_ids = itertools.count(1)

    # -------------------------------------------------------------------
    # グローバル束縛
    # -------------------------------------------------------------------

    def globals(self) -> dict[str, Any]:
        """ルート Environment に登録するグローバル値を返す。"""
        values: dict[str, Any] = {
            "undefined": UNDEFINED,
            "NaN": math.nan,
            "Infinity": math.inf,
            "console": self._console(),
            "JSON": {
                "stringify": _native("stringify", lambda v=UNDEFINED, _r=None, indent=None: json_stringify(v, indent)),
                "parse": _native("parse", self._json_parse),
            },
            "Math": self._math(),
            "parseInt": _native("parseInt", parse_int),
            "parseFloat": _native("parseFloat", parse_float),
            "isNaN": _native("isNaN", lambda v=UNDEFINED: math.isnan(to_number(v))),
            "String": _native("String", lambda v="": to_string(v)),
            "Number": _native(
                "Number",
                lambda v=0: to_number(v),
                isInteger=_native(
                    "isInteger",
                    lambda v=UNDEFINED: is_number(v) and math.isfinite(v) and float(v).is_integer(),
                ),
                isNaN=_native("isNaN", lambda v=UNDEFINED: is_number(v) and math.isnan(v)),
            ),
            "Boolean": _native("Boolean", lambda v=UNDEFINED: is_truthy(v)),
            "Array": _native(
                "Array",
                lambda *items: list(items),
                isArray=_native("isArray", lambda v=UNDEFINED: isinstance(v, list)),
                **{"from": _native("from", self._array_from)},
            ),
            "Object": _native(
                "Object",
                lambda v=UNDEFINED: {} if v is UNDEFINED or v is None else v,
                keys=_native("keys", lambda o=UNDEFINED: [key for key, _ in _entries(o)]),
                values=_native("values", lambda o=UNDEFINED: [value for _, value in _entries(o)]),
                entries=_native("entries", lambda o=UNDEFINED: [[key, value] for key, value in _entries(o)]),
                assign=_native("assign", _object_assign),
            ),
            "Date": {"now": _native("now", lambda: int(time.time() * 1000))},
            "Promise": self._promise(),
            "setTimeout": _native("setTimeout", self._set_timeout),
            "clearTimeout": _native("clearTimeout", self._clear_timeout),
        }
        for name in _ERROR_TYPES:
            values[name] = _error_constructor(name)
        return values

    def _console(self) -> dict[str, Any]:
        def make(prefix: str) -> Callable[..., Any]:
            def write(*args: Any) -> Any:
                self._emit(prefix + format_log_args(args))
                return UNDEFINED
            return write

        return {
            name: _native(name, make(prefix))
            for name, prefix in _CONSOLE_PREFIXES.items()
        }

    @staticmethod
    def _json_parse(text: Any = UNDEFINED) -> Any:
        try:
            return from_json(json.loads(to_string(text)))
        except json.JSONDecodeError as exc:
            raise GuestThrow(ErrorObject(f"JSON.parse: {exc.msg}", "SyntaxError")) from exc

    @staticmethod
    def _math() -> dict[str, Any]:
        def unary(func: Callable[[float], float]) -> Callable[..., Any]:
            def apply(value: Any = UNDEFINED) -> Any:
                number = to_number(value)
                if math.isnan(number):
                    return math.nan
                try:
                    return normalize_number(float(func(number)))
                except (ValueError, OverflowError):
                    return math.nan
            return apply

        def js_round(value: float) -> float:
            return math.floor(value + 0.5) if math.isfinite(value) else value

        def extreme(pick: Callable[..., Any], empty: float) -> Callable[..., Any]:
            def apply(*args: Any) -> Any:
                numbers = [to_number(arg) for arg in args]
                if any(math.isnan(n) for n in numbers):
                    return math.nan
                return pick(numbers) if numbers else empty
            return apply

        return {
            "PI": math.pi,
            "E": math.e,
            "floor": _native("floor", unary(lambda v: math.floor(v) if math.isfinite(v) else v)),
            "ceil": _native("ceil", unary(lambda v: math.ceil(v) if math.isfinite(v) else v)),
            "round": _native("round", unary(js_round)),
            "trunc": _native("trunc", unary(lambda v: math.trunc(v) if math.isfinite(v) else v)),
            "abs": _native("abs", unary(abs)),
            "sqrt": _native("sqrt", unary(math.sqrt)),
            "sign": _native("sign", unary(lambda v: (v > 0) - (v < 0))),
            "pow": _native("pow", lambda a=UNDEFINED, b=UNDEFINED: normalize_number(float(to_number(a)) ** to_number(b))),
            "min": _native("min", extreme(min, math.inf)),
            "max": _native("max", extreme(max, -math.inf)),
            "random": _native("random", random.random),
        }

    async def _array_from(self, source: Any = UNDEFINED, map_fn: Any = UNDEFINED) -> list[Any]:
        if isinstance(source, (list, tuple, str)):
            items = list(source)
        elif isinstance(source, Mapping) and "length" in source:
            items = [source.get(str(i), UNDEFINED) for i in range(int(to_number(source["length"])))]
        else:
            items = []
        if map_fn is UNDEFINED:
            return items
        return [await self._call(map_fn, [item, index]) for index, item in enumerate(items)]

    # -------------------------------------------------------------------
    # Promise / タイマー
    # -------------------------------------------------------------------

    def _promise(self) -> NativeConstructor:
        async def construct(executor: Any = UNDEFINED) -> asyncio.Future:
            loop = asyncio.get_running_loop()
            future: asyncio.Future = loop.create_future()

            def resolve(value: Any = UNDEFINED) -> Any:
                if not future.done():
                    future.set_result(value)
                return UNDEFINED

            def reject(reason: Any = UNDEFINED) -> Any:
                if not future.done():
                    future.set_exception(_as_exception(reason))
                return UNDEFINED

            try:
                await self._call(executor, [_native("resolve", resolve), _native("reject", reject)])
            except Exception as exc:
                if future.done():
                    raise
                future.set_exception(exc)
            return future

        def resolved(value: Any = UNDEFINED) -> asyncio.Future:
            if asyncio.isfuture(value):
                return value
            future: asyncio.Future = asyncio.get_running_loop().create_future()
            future.set_result(value)
            return future

        def rejected(reason: Any = UNDEFINED) -> asyncio.Future:
            future: asyncio.Future = asyncio.get_running_loop().create_future()
            future.set_exception(_as_exception(reason))
            return future

        async def gather(items: Any = UNDEFINED) -> list[Any]:
            if not isinstance(items, list):
                raise TypeFailure("Promise.all には配列を渡してください")
            for item in items:
                self._observe(item)
            return list(await asyncio.gather(*(_ensure_awaitable(item) for item in items)))

        def not_constructed(*_args: Any) -> Any:
            raise TypeFailure("Promise constructor cannot be invoked without 'new'")

        return NativeConstructor(
            name="Promise",
            impl=not_constructed,
            properties={
                "resolve": _native("resolve", resolved),
                "reject": _native("reject", rejected),
                "all": _native("all", gather),
            },
            construct=construct,
            instance_check=lambda value: isinstance(value, asyncio.Future),
        )

    def _set_timeout(self, callback: Any = UNDEFINED, delay: Any = 0, *args: Any) -> int:
        timer_id = next(self._timer_ids)
        wait = to_number(delay)
        seconds = 0.0 if math.isnan(wait) or wait < 0 else wait / 1000

        async def fire() -> None:
            try:
                await asyncio.sleep(seconds)
                await self._call(callback, list(args))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("setTimeout のコールバックでエラーが発生しました")
            finally:
                self._timers.pop(timer_id, None)

        self._timers[timer_id] = asyncio.ensure_future(fire())
        return timer_id

    def cancel_pending(self) -> int:
        """未実行の setTimeout をすべて取り消し、取り消した件数を返す。"""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("未実行のタイマー %d 件を取り消しました", len(tasks))
        return len(tasks)

    def _clear_timeout(self, timer_id: Any = UNDEFINED) -> Any:
        task = self._timers.pop(to_number(timer_id), None) if is_number(timer_id) else None
        if task is not None:
            task.cancel()
        return UNDEFINED

    # -------------------------------------------------------------------
    # メンバーメソッド
    # -------------------------------------------------------------------

    def string_member(self, text: str, name: str) -> Any:
        """文字列のプロパティ・メソッドを返す。"""
        if name == "length":
            return len(text)
        methods: dict[str, Callable[..., Any]] = {
            "charAt": lambda i=0: _char_at(text, i),
            "charCodeAt": lambda i=0: ord(_char_at(text, i)) if _char_at(text, i) else math.nan,
            "includes": lambda s=UNDEFINED, pos=0: to_string(s) in text[int(to_number(pos)):],
            "indexOf": lambda s=UNDEFINED, pos=0: text.find(to_string(s), int(to_number(pos))),
            "lastIndexOf": lambda s=UNDEFINED: text.rfind(to_string(s)),
            "startsWith": lambda s=UNDEFINED, pos=0: text.startswith(to_string(s), int(to_number(pos))),
            "endsWith": lambda s=UNDEFINED, end=UNDEFINED: text[: _relative_index(end, len(text), len(text))].endswith(to_string(s)),
            "slice": lambda start=UNDEFINED, end=UNDEFINED: text[_relative_index(start, len(text), 0):_relative_index(end, len(text), len(text))],
            "substring": lambda start=UNDEFINED, end=UNDEFINED: _substring(text, start, end),
            "toUpperCase": text.upper,
            "toLowerCase": text.lower,
            "trim": text.strip,
            "trimStart": text.lstrip,
            "trimEnd": text.rstrip,
            "split": lambda sep=UNDEFINED, limit=UNDEFINED: _split(text, sep, limit),
            "replace": lambda pattern=UNDEFINED, repl=UNDEFINED: self._replace(text, pattern, repl, 1),
            "replaceAll": lambda pattern=UNDEFINED, repl=UNDEFINED: self._replace(text, pattern, repl, -1),
            "repeat": lambda n=0: text * int(to_number(n)),
            "padStart": lambda n=0, fill=" ": _pad(text, n, fill, True),
            "padEnd": lambda n=0, fill=" ": _pad(text, n, fill, False),
            "concat": lambda *parts: text + "".join(to_string(p) for p in parts),
            "at": lambda i=0: _at(list(text), i),
            "toString": lambda: text,
            "valueOf": lambda: text,
        }
        if name in methods:
            return _native(name, methods[name])
        if name.lstrip("-").isdigit():
            index = int(name)
            return text[index] if 0 <= index < len(text) else UNDEFINED
        return UNDEFINED

    async def _replace(self, text: str, pattern: Any, repl: Any, count: int) -> str:
        needle = to_string(pattern)
        pieces = text.split(needle) if count < 0 else text.split(needle, 1)
        if len(pieces) == 1:
            return text
        result = pieces[0]
        position = len(pieces[0])
        for piece in pieces[1:]:
            if isinstance(repl, (str, int, float)) or repl is UNDEFINED or repl is None:
                replacement = to_string(repl)
            else:
                replacement = to_string(await self._call(repl, [needle, position, text]))
            result += replacement + piece
            position += len(needle) + len(piece)
        return result

    def array_member(self, items: list[Any], name: str) -> Any:
        """配列のプロパティ・メソッドを返す。"""
        if name == "length":
            return len(items)
        call = self._call

        def push(*values: Any) -> int:
            items.extend(values)
            return len(items)

        def unshift(*values: Any) -> int:
            items[0:0] = values
            return len(items)

        def splice(start: Any = UNDEFINED, count: Any = UNDEFINED, *values: Any) -> list[Any]:
            begin = _relative_index(start, len(items), 0)
            length = len(items) - begin if count is UNDEFINED else max(int(to_number(count)), 0)
            removed = items[begin:begin + length]
            items[begin:begin + length] = values
            return removed

        def reverse() -> list[Any]:
            items.reverse()
            return items

        def index_of(value: Any = UNDEFINED) -> int:
            return next((i for i, item in enumerate(items) if strict_equals(item, value)), -1)

        def includes(value: Any = UNDEFINED) -> bool:
            if is_number(value) and math.isnan(value):
                return any(is_number(item) and math.isnan(item) for item in items)
            return index_of(value) >= 0

        def concat(*others: Any) -> list[Any]:
            result = list(items)
            for other in others:
                if isinstance(other, list):
                    result.extend(other)
                else:
                    result.append(other)
            return result

        def flat(depth: Any = 1) -> list[Any]:
            return _flatten(items, int(to_number(depth)))

        async def map_(fn: Any = UNDEFINED) -> list[Any]:
            return [await call(fn, [item, i, items]) for i, item in enumerate(list(items))]

        async def filter_(fn: Any = UNDEFINED) -> list[Any]:
            return [item for i, item in enumerate(list(items)) if is_truthy(await call(fn, [item, i, items]))]

        async def for_each(fn: Any = UNDEFINED) -> Any:
            for i, item in enumerate(list(items)):
                await call(fn, [item, i, items])
            return UNDEFINED

        async def find(fn: Any = UNDEFINED) -> Any:
            for i, item in enumerate(list(items)):
                if is_truthy(await call(fn, [item, i, items])):
                    return item
            return UNDEFINED

        async def find_index(fn: Any = UNDEFINED) -> int:
            for i, item in enumerate(list(items)):
                if is_truthy(await call(fn, [item, i, items])):
                    return i
            return -1

        async def some(fn: Any = UNDEFINED) -> bool:
            for i, item in enumerate(list(items)):
                if is_truthy(await call(fn, [item, i, items])):
                    return True
            return False

        async def every(fn: Any = UNDEFINED) -> bool:
            for i, item in enumerate(list(items)):
                if not is_truthy(await call(fn, [item, i, items])):
                    return False
            return True

        async def reduce(fn: Any = UNDEFINED, *initial: Any) -> Any:
            values = list(items)
            if initial:
                accumulator, start = initial[0], 0
            elif values:
                accumulator, start = values[0], 1
            else:
                raise TypeFailure("Reduce of empty array with no initial value")
            for i in range(start, len(values)):
                accumulator = await call(fn, [accumulator, values[i], i, items])
            return accumulator

        async def sort(fn: Any = UNDEFINED) -> list[Any]:
            defined = [item for item in items if item is not UNDEFINED]
            missing = len(items) - len(defined)
            if fn is UNDEFINED:
                defined.sort(key=to_string)
            else:
                defined = await self._merge_sort(defined, fn)
            items[:] = defined + [UNDEFINED] * missing
            return items

        methods: dict[str, Callable[..., Any]] = {
            "push": push,
            "pop": lambda: items.pop() if items else UNDEFINED,
            "shift": lambda: items.pop(0) if items else UNDEFINED,
            "unshift": unshift,
            "slice": lambda start=UNDEFINED, end=UNDEFINED: items[_relative_index(start, len(items), 0):_relative_index(end, len(items), len(items))],
            "splice": splice,
            "concat": concat,
            "join": lambda sep=",": ("," if sep is UNDEFINED else to_string(sep)).join(
                "" if item is None or item is UNDEFINED else to_string(item) for item in items
            ),
            "indexOf": index_of,
            "includes": includes,
            "reverse": reverse,
            "flat": flat,
            "at": lambda i=0: _at(items, i),
            "map": map_,
            "filter": filter_,
            "forEach": for_each,
            "find": find,
            "findIndex": find_index,
            "some": some,
            "every": every,
            "reduce": reduce,
            "sort": sort,
            "toString": lambda: to_string(items),
        }
        if name in methods:
            return _native(name, methods[name])
        return UNDEFINED

    async def _merge_sort(self, items: list[Any], compare: Any) -> list[Any]:
        """比較関数を使う安定ソート。比較関数は非同期に呼び出す。"""
        if len(items) <= 1:
            return items
        middle = len(items) // 2
        left = await self._merge_sort(items[:middle], compare)
        right = await self._merge_sort(items[middle:], compare)
        merged: list[Any] = []
        i = j = 0
        while i < len(left) and j < len(right):
            order = to_number(await self._call(compare, [left[i], right[j]]))
            if order > 0:
                merged.append(right[j])
                j += 1
            else:
                merged.append(left[i])
                i += 1
        merged.extend(left[i:])
        merged.extend(right[j:])
        return merged

    @staticmethod
    def number_member(number: int | float, name: str) -> Any:
        """数値のメソッドを返す。"""
        if name == "toFixed":
            return _native("toFixed", lambda digits=0: f"{float(number):.{int(to_number(digits))}f}")
        if name == "toString":
            return _native("toString", lambda radix=10: _radix_string(number, radix))
        if name == "valueOf":
            return _native("valueOf", lambda: number)
        return UNDEFINED

    def promise_member(self, future: asyncio.Future, name: str) -> Any:
        """Promise（asyncio の Future / Task）の then / catch / finally を返す。

        いずれも新しい Task を返し、元の Future の完了後にコールバックを呼ぶ。
        """
        call = self._call
        if name in ("then", "catch", "finally"):
            self._observe(future)

        async def settle(on_fulfilled: Any, on_rejected: Any) -> Any:
            try:
                value = await future
            except Exception as exc:
                if on_rejected is UNDEFINED:
                    raise
                return await call(on_rejected, [guest_error_value(exc)])
            if on_fulfilled is UNDEFINED:
                return value
            return await call(on_fulfilled, [value])

        async def always(callback: Any) -> Any:
            try:
                return await future
            finally:
                await call(callback, [])

        if name == "then":
            return _native(
                "then",
                lambda ok=UNDEFINED, ng=UNDEFINED: asyncio.ensure_future(settle(ok, ng)),
            )
        if name == "catch":
            return _native("catch", lambda ng=UNDEFINED: asyncio.ensure_future(settle(UNDEFINED, ng)))
        if name == "finally":
            return _native("finally", lambda callback=UNDEFINED: asyncio.ensure_future(always(callback)))
        return UNDEFINED

    @staticmethod
    def object_member(obj: Mapping, name: str) -> Any:
        """オブジェクトに存在しないキーを参照された場合の既定メソッドを返す。"""
        if name == "hasOwnProperty":
            return _native("hasOwnProperty", lambda key=UNDEFINED: to_string(key) in obj)
        if name == "toString":
            return _native("toString", lambda: to_string(obj))
        return UNDEFINED


# ---------------------------------------------------------------------------
# 補助関数
# ---------------------------------------------------------------------------

def _error_constructor(name: str) -> NativeConstructor:
    def create(message: Any = UNDEFINED) -> ErrorObject:
        return ErrorObject("" if message is UNDEFINED else to_string(message), name)

    def check(value: Any) -> bool:
        return isinstance(value, ErrorObject) and (name == "Error" or value.name == name)

    return NativeConstructor(name=name, impl=create, construct=create, instance_check=check)


def _as_exception(reason: Any) -> BaseException:
    if isinstance(reason, BaseException):
        return reason
    return GuestThrow(reason)


async def _ensure_awaitable(value: Any) -> Any:
    if asyncio.isfuture(value) or asyncio.iscoroutine(value):
        return await value
    return value


def _entries(obj: Any) -> list[tuple[str, Any]]:
    if isinstance(obj, Mapping):
        return [(to_string(key), value) for key, value in obj.items()]
    if isinstance(obj, (list, str)):
        return [(str(i), value) for i, value in enumerate(obj)]
    if obj is UNDEFINED or obj is None:
        raise TypeFailure("Cannot convert undefined or null to object")
    return []


def _object_assign(target: Any = UNDEFINED, *sources: Any) -> Any:
    if not isinstance(target, dict):
        raise TypeFailure("Object.assign の対象はオブジェクトである必要があります")
    for source in sources:
        if isinstance(source, Mapping):
            target.update(source)
    return target


def _char_at(text: str, index: Any) -> str:
    i = int(to_number(index)) if index is not UNDEFINED else 0
    return text[i] if 0 <= i < len(text) else ""


def _substring(text: str, start: Any, end: Any) -> str:
    def clamp(value: Any, default: int) -> int:
        if value is UNDEFINED:
            return default
        number = to_number(value)
        if math.isnan(number):
            return 0
        return int(min(max(number, 0), len(text)))

    begin, finish = clamp(start, 0), clamp(end, len(text))
    if begin > finish:
        begin, finish = finish, begin
    return text[begin:finish]


def _split(text: str, sep: Any, limit: Any) -> list[str]:
    if sep is UNDEFINED:
        parts = [text]
    elif to_string(sep) == "":
        parts = list(text)
    else:
        parts = text.split(to_string(sep))
    if limit is not UNDEFINED:
        parts = parts[: int(to_number(limit))]
    return parts


def _pad(text: str, length: Any, fill: Any, at_start: bool) -> str:
    target = int(to_number(length))
    filler = to_string(fill)
    if target <= len(text) or not filler:
        return text
    needed = target - len(text)
    padding = (filler * (needed // len(filler) + 1))[:needed]
    return padding + text if at_start else text + padding


def _at(items: list[Any], index: Any) -> Any:
    i = int(to_number(index))
    if i < 0:
        i += len(items)
    return items[i] if 0 <= i < len(items) else UNDEFINED


def _flatten(items: list[Any], depth: int) -> list[Any]:
    result: list[Any] = []
    for item in items:
        if isinstance(item, list) and depth > 0:
            result.extend(_flatten(item, depth - 1))
        else:
            result.append(item)
    return result


def _radix_string(number: int | float, radix: Any) -> str:
    base = int(to_number(radix)) if radix is not UNDEFINED else 10
    if base == 10 or not (is_number(number) and float(number).is_integer()):
        return to_string(number)
    if not 2 <= base <= 36:
        raise TypeFailure("toString() radix must be between 2 and 36")
    value = int(number)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    sign = "-" if value < 0 else ""
    value = abs(value)
    out = ""
    while True:
        value, remainder = divmod(value, base)
        out = digits[remainder] + out
        if value == 0:
            break
    return sign + out
