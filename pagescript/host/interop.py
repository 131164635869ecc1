"""
Python オブジェクト連携: スクリプトから Python API を呼び出すための変換

スクリプト側の命名・呼び出し規約（camelCase、オプションオブジェクト）を
Python 側の規約（snake_case、キーワード引数）へ橋渡しする。

主な機能:
  - snake_case(): camelCase 名を snake_case に変換（waitForTimeout → wait_for_timeout）
  - resolve_attribute(): 属性名の解決（camelCase で見つからなければ snake_case を試す）
  - call_foreign(): Python の呼び出し可能オブジェクトを呼び出す。
    コルーチンが返った場合は即座にタスク化し、await されなくても実行されるようにする
  - PendingCalls: await されなかったタスクを追跡し、実行終了時に失敗を回収する
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

# camelCase の境界（小文字/数字の直後の大文字、または大文字連続の末尾）
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

# 属性が存在しないことを表す番兵
MISSING = object()

_KEYWORD_KINDS = (
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.KEYWORD_ONLY,
)
_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def snake_case(name: str) -> str:
    """camelCase 名を snake_case 名に変換する。

    例: "waitForTimeout" → "wait_for_timeout", "getByRole" → "get_by_role"
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def resolve_attribute(target: Any, name: str) -> Any:
    """オブジェクトの属性を解決する。

    まずスクリプト上の名前のまま探し、見つからなければ snake_case 名を試す。

    Args:
        target: 対象オブジェクト
        name: スクリプト上の属性名

    Returns:
        属性値。どちらの名前でも見つからない場合は MISSING
    """
    value = getattr(target, name, MISSING)
    if value is MISSING:
        converted = snake_case(name)
        if converted != name:
            value = getattr(target, converted, MISSING)
    return value


def split_options(func: Callable[..., Any], args: list[Any]) -> tuple[list[Any], dict[str, Any]]:
    """末尾のオプションオブジェクトをキーワード引数に分離する。

    末尾引数が dict で、そのキー（snake_case 化後）が全て呼び出し先の
    名前付き引数と一致し、位置引数と重複しない場合に限りキーワード引数として渡す。
    値は変換しない。

    Args:
        func: 呼び出し先
        args: スクリプトから渡された引数リスト

    Returns:
        (位置引数リスト, キーワード引数辞書)
    """
    if not args or type(args[-1]) is not dict or not args[-1]:
        return args, {}
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return args, {}

    parameters = list(signature.parameters.values())
    named = {p.name for p in parameters if p.kind in _KEYWORD_KINDS}
    positional = [p for p in parameters if p.kind in _POSITIONAL_KINDS]
    # 位置引数で既に埋まる仮引数
    filled = {p.name for p in positional[: len(args) - 1]}

    options = {snake_case(str(key)): value for key, value in args[-1].items()}
    if all(key in named and key not in filled for key in options):
        return args[:-1], options
    return args, {}


def call_foreign(func: Callable[..., Any], args: list[Any]) -> Any:
    """Python の呼び出し可能オブジェクトを呼び出す。

    戻り値がコルーチンの場合は asyncio タスクとしてスケジュールし、
    そのタスクを返す（await しなくても処理が開始される）。

    Args:
        func: 呼び出し先
        args: 引数リスト

    Returns:
        戻り値、またはコルーチンをラップした Task
    """
    positional, keywords = split_options(func, list(args))
    result = func(*positional, **keywords)
    if asyncio.iscoroutine(result):
        return asyncio.ensure_future(result)
    return result


def is_plain_value(value: Any) -> bool:
    """プロキシで包まずにそのまま返すスカラー値かどうかを返す。

    dict・list 等のコンテナは含まない（中の関数呼び出しもログに残すため包む）。
    """
    return value is None or isinstance(value, (bool, int, float, str, bytes))


# ---------------------------------------------------------------------------
# await されていない呼び出しの追跡
# ---------------------------------------------------------------------------

class PendingCalls:
    """await されていないホスト呼び出しのタスクを追跡する。

    await・then/catch/finally・Promise.all で参照されたタスクは追跡から外す。
    実行の最後に settle() で残りの完了を待ち、失敗したものを返す。
    """

    def __init__(self) -> None:
        self._tasks: dict[asyncio.Future, str] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def track(self, future: asyncio.Future, label: str) -> None:
        self._tasks[future] = label

    def observe(self, value: Any) -> None:
        if asyncio.isfuture(value):
            self._tasks.pop(value, None)

    async def settle(self) -> list[tuple[str, BaseException]]:
        """追跡中のタスクの完了を待ち、失敗した呼び出しの (パス, 例外) を返す。

        待機中に新たに追跡されたタスクも完了まで待つ。
        """
        failures: list[tuple[str, BaseException]] = []
        while self._tasks:
            batch, self._tasks = self._tasks, {}
            await asyncio.gather(*batch, return_exceptions=True)
            for future, label in batch.items():
                if future.cancelled():
                    continue
                exc = future.exception()
                if exc is not None:
                    failures.append((label, exc))
        return failures
