"""
テスト共通フィクスチャ

ホストオブジェクトの代わりに使う FakePage と、スクリプトを評価する
ヘルパーフィクスチャを提供する。FakePage は呼び出しを events に記録するため、
ログ行との前後関係を 1 つのリストで検証できる。
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import pytest

from pagescript.config import InterpreterConfig
from pagescript.core.environment import Environment
from pagescript.core.evaluator import Evaluator
from pagescript.core.parser import parse_program
from pagescript.host.context import ExecutionContext
from pagescript.script.runner import execute_script


# ---------------------------------------------------------------------------
# ホストオブジェクトのフェイク
# ---------------------------------------------------------------------------

class FakeKeyboard:
    """page.keyboard のフェイク。"""

    def __init__(self, events: list[str]) -> None:
        self._events = events

    async def press(self, key: str) -> None:
        self._events.append(f"press:{key}")


class FakePage:
    """Playwright Page の最小限のフェイク。

    非同期メソッドは実行開始時に events へ記録する。
    fail_on に含まれるセレクタの click は RuntimeError を送出する。
    """

    def __init__(self, events: Optional[list[str]] = None, fail_on: tuple[str, ...] = ()) -> None:
        self.events: list[str] = events if events is not None else []
        self.fail_on = fail_on
        self.url = "about:blank"
        self.keyboard = FakeKeyboard(self.events)
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        self.events.append(f"{name}:{','.join(str(a) for a in args)}")

    async def goto(self, url: str) -> None:
        self.record("goto", url)
        self.url = url

    async def click(self, selector: str, timeout: Optional[float] = None) -> None:
        self.record("click", selector, timeout=timeout)
        await asyncio.sleep(0)
        if selector in self.fail_on:
            raise RuntimeError(f"click failed: {selector}")

    async def fill(self, selector: str, value: str) -> None:
        self.record("fill", selector, value)

    async def title(self) -> str:
        self.record("title")
        return "Example"

    async def wait_for_timeout(self, timeout: float) -> None:
        self.record("wait_for_timeout", timeout)

    def is_closed(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def events() -> list[str]:
    """ログ行とホスト呼び出しを順に記録する共有リスト。"""
    return []


@pytest.fixture
def make_page(events: list[str]) -> Callable[..., FakePage]:
    """events を共有する FakePage を生成するファクトリ。"""

    def factory(fail_on: tuple[str, ...] = ()) -> FakePage:
        return FakePage(events, fail_on)

    return factory


@pytest.fixture
def run_script(events: list[str]) -> Callable[..., Any]:
    """スクリプトを execute_script で実行するコルーチン関数を返す。

    ログ行は "log:" 接頭辞付きで events に追記される。
    """

    async def runner(
        source: str,
        host: Any = None,
        parameters: Optional[dict[str, Any]] = None,
        mode: str = "auto",
    ) -> Any:
        context = ExecutionContext.create(
            host,
            lambda message: events.append(f"log:{message}"),
            parameters,
            InterpreterConfig(mode=mode),  # type: ignore[arg-type]
        )
        return await execute_script(source, context)

    return runner


@pytest.fixture
def evaluate() -> Callable[..., Any]:
    """ホストなしでプログラムを評価し、結果の値を返すコルーチン関数。

    console の出力は戻り値のリストではなく evaluate.output に溜まる。
    """
    output: list[str] = []

    async def runner(source: str, **bindings: Any) -> Any:
        evaluator = Evaluator(emit=output.append)
        env = Environment()
        for name, value in evaluator.global_bindings().items():
            env.define(name, value)
        for name, value in bindings.items():
            env.define(name, value)
        try:
            return await evaluator.run(parse_program(source), env)
        finally:
            evaluator.builtins.cancel_pending()

    runner.output = output  # type: ignore[attr-defined]
    return runner
