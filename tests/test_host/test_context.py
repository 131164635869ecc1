"""
実行コンテキストテスト: ルート束縛の構成
"""

from __future__ import annotations

import logging

import pytest

from pagescript.config import InterpreterConfig
from pagescript.core.evaluator import Evaluator
from pagescript.core.parser import parse_program
from pagescript.core.values import NativeFunction
from pagescript.errors import TypeFailure
from pagescript.host.context import ExecutionContext
from pagescript.host.proxy import HostProxy


class TestCreate:
    def test_defaults(self):
        context = ExecutionContext.create(host=None)
        assert context.parameters == {}
        assert context.config == InterpreterConfig()

    def test_parameters_are_copied(self):
        params = {"user": "alice"}
        context = ExecutionContext.create(None, parameters=params)
        params["user"] = "bob"
        assert context.parameters == {"user": "alice"}


class TestBindings:
    """bindings() / build_environment() のテスト。"""

    def test_host_is_wrapped_under_configured_name(self, make_page):
        page = make_page()
        context = ExecutionContext.create(page, config=InterpreterConfig(host_name="tab"))
        bindings = context.bindings()
        assert isinstance(bindings["tab"], HostProxy)
        assert bindings["tab"].target is page
        assert bindings["tab"].path == "tab"
        assert set(bindings) == {"tab", "log", "params", "ctx"}
        assert set(bindings["ctx"]) == {"tab", "log", "params"}

    def test_missing_host_is_null(self):
        assert ExecutionContext.create(None).bindings()["page"] is None

    def test_log_binding_formats_like_console(self):
        lines: list[str] = []
        log = ExecutionContext.create(None, lines.append).bindings()["log"]
        assert isinstance(log, NativeFunction)
        log.impl("count", 2, {"a": True})
        assert lines == ['count 2 {"a":true}']

    def test_context_bindings_override_globals(self):
        context = ExecutionContext.create(None)
        env = context.build_environment({"log": "global", "Math": "math"})
        assert isinstance(env.lookup("log"), NativeFunction)
        assert env.lookup("Math") == "math"

    @pytest.mark.asyncio
    async def test_params_are_read_only(self):
        context = ExecutionContext.create(None, parameters={"a": 1})
        evaluator = Evaluator()
        env = context.build_environment(evaluator.global_bindings())
        assert await evaluator.run(parse_program("params.a;"), env) == 1
        with pytest.raises(TypeFailure, match="read-only"):
            await evaluator.run(parse_program("params.a = 2;"), env)

    @pytest.mark.asyncio
    async def test_ctx_destructuring(self, make_page):
        context = ExecutionContext.create(make_page(), parameters={"id": 7})
        evaluator = Evaluator()
        env = context.build_environment(evaluator.global_bindings())
        result = await evaluator.run(parse_program("const { page, params } = ctx; [page.url, params.id];"), env)
        assert result == ["about:blank", 7]

    @pytest.mark.asyncio
    async def test_host_call_logging_can_go_to_debug(self, make_page, caplog):
        lines: list[str] = []
        context = ExecutionContext.create(
            make_page(), lines.append, config=InterpreterConfig(log_host_calls=False)
        )
        evaluator = Evaluator()
        env = context.build_environment(evaluator.global_bindings())
        with caplog.at_level(logging.DEBUG, logger="pagescript.host.context"):
            await evaluator.run(parse_program("await page.goto('https://example.com');"), env)
        assert lines == []
        assert 'Calling page.goto("https://example.com")' in caplog.text
