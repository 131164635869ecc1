"""
Runner テスト: execute_script / ScriptRunner の実行とログ

FakePage（conftest.py）の呼び出しとログ行を 1 つの events リストに記録し、
ログとホスト側の副作用の前後関係を検証する。
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagescript.config import BrowserConfig, InterpreterConfig
from pagescript.core.values import UNDEFINED
from pagescript.errors import ParseFailure, ReferenceFailure
from pagescript.host.context import ExecutionContext
from pagescript.script.catalog import ScriptDefinition
from pagescript.script.runner import ScriptExecutionResult, ScriptRunner, error_text, execute_script


TWO_CLICKS = "await page.click('#a')\nawait page.click('#b')"


# ---------------------------------------------------------------------------
# execute_script
# ---------------------------------------------------------------------------

class TestFragmentExecution:
    """断片モードの行単位実行のテスト。"""

    @pytest.mark.asyncio
    async def test_failed_line_does_not_stop_fragment(self, run_script, make_page, events):
        page = make_page(fail_on=("#a",))
        result = await run_script(TWO_CLICKS, page)
        assert result is UNDEFINED
        assert events == [
            'log:Calling page.click("#a")',
            "click:#a",
            "log:Error on line 1: click failed: #a",
            'log:Calling page.click("#b")',
            "click:#b",
        ]

    @pytest.mark.asyncio
    async def test_await_line_with_trailing_comment(self, run_script, make_page, events):
        page = make_page()
        await run_script("await page.click('#a') // open menu\nawait page.click('#b')", page)
        assert events == [
            'log:Calling page.click("#a")',
            "click:#a",
            'log:Calling page.click("#b")',
            "click:#b",
        ]

    @pytest.mark.asyncio
    async def test_syntax_error_on_one_line(self, run_script, events):
        await run_script("log('one');\nlog(;\nlog('three');")
        assert events[0] == "log:one"
        assert events[1].startswith("log:Error on line 2: 構文エラー (行 2")
        assert events[2] == "log:three"

    @pytest.mark.asyncio
    async def test_lines_share_environment(self, run_script, events):
        await run_script("total = 2;\ntotal *= 3;\nlog('total', total);")
        assert events == ["log:total 6"]

    @pytest.mark.asyncio
    async def test_forced_fragment_mode(self, run_script, events):
        await run_script("const a = 1;\nmissing();\nlog(a);", mode="fragment")
        assert events == ["log:Error on line 2: missing is not defined", "log:1"]

    @pytest.mark.asyncio
    async def test_context_destructuring_line_skipped(self, run_script, make_page, events):
        page = make_page()
        await run_script("const { page, log } = ctx;\nawait page.fill('#q', 'term');", page)
        assert page.calls == [("fill", ("#q", "term"), {})]


class TestProgramExecution:
    """プログラムモードの一括実行のテスト。"""

    @pytest.mark.asyncio
    async def test_first_failure_aborts(self, run_script, make_page, events):
        page = make_page(fail_on=("#a",))
        with pytest.raises(RuntimeError, match="click failed: #a"):
            await run_script(TWO_CLICKS, page, mode="program")
        assert events == [
            'log:Calling page.click("#a")',
            "click:#a",
            "log:Error executing script: click failed: #a",
        ]

    @pytest.mark.asyncio
    async def test_parse_failure_before_evaluation(self, run_script, events):
        with pytest.raises(ParseFailure):
            await run_script("const a = 1;\nlog('should not run');\nconst = ;")
        assert len(events) == 1
        assert events[0].startswith("log:Error executing script: 構文エラー (行 3")

    @pytest.mark.asyncio
    async def test_returns_program_value(self, run_script):
        assert await run_script("const a = 20;\nreturn a + 1;") == 21

    @pytest.mark.asyncio
    async def test_log_precedes_each_host_effect(self, run_script, make_page, events):
        page = make_page()
        source = """
        const selectors = ['#one', '#two'];
        for (const selector of selectors) {
          log('clicking', selector);
          await page.click(selector, { timeout: 1000 });
        }
        const title = await page.title();
        log(`title=${title} url=${page.url}`);
        """
        await run_script(source, page)
        assert events == [
            "log:clicking #one",
            'log:Calling page.click("#one", {"timeout":1000})',
            "click:#one",
            "log:clicking #two",
            'log:Calling page.click("#two", {"timeout":1000})',
            "click:#two",
            "log:Calling page.title()",
            "title:",
            "log:title=Example url=about:blank",
        ]
        assert page.calls[0] == ("click", ("#one",), {"timeout": 1000})

    @pytest.mark.asyncio
    async def test_camel_case_host_method(self, run_script, make_page):
        page = make_page()
        await run_script("const t = 250;\nawait page.waitForTimeout(t);\nawait page.keyboard.press('Enter');", page)
        assert page.calls == [("wait_for_timeout", (250,), {})]
        assert page.events[-1] == "press:Enter"

    @pytest.mark.asyncio
    async def test_host_failure_caught_by_script(self, run_script, make_page, events):
        page = make_page(fail_on=("#missing",))
        source = """
        try {
          await page.click('#missing');
        } catch (e) {
          log('recovered:', e.message);
        } finally {
          log('done');
        }
        """
        await run_script(source, page)
        assert events[-2:] == ["log:recovered: click failed: #missing", "log:done"]
        assert not any(event.startswith("log:Unhandled error") for event in events)

    @pytest.mark.asyncio
    async def test_unawaited_host_failure_is_reported(self, run_script, make_page, events):
        page = make_page(fail_on=("#a",))
        await run_script("let x = 1;\npage.click('#a');\nlog('after');", page)
        assert events == [
            'log:Calling page.click("#a")',
            "log:after",
            "click:#a",
            "log:Unhandled error in page.click: click failed: #a",
        ]

    @pytest.mark.asyncio
    async def test_unawaited_host_call_completes_before_return(self, run_script, make_page):
        page = make_page()
        await run_script("let x = 1;\npage.goto('https://example.com');", page)
        assert page.url == "https://example.com"

    @pytest.mark.asyncio
    async def test_then_handler_counts_as_handled(self, run_script, make_page, events):
        page = make_page(fail_on=("#a",))
        source = "let x = 1;\nawait page.click('#a').catch((e) => log('handled', e.message));"
        await run_script(source, page)
        assert events[-1] == "log:handled click failed: #a"
        assert not any(event.startswith("log:Unhandled error") for event in events)

    @pytest.mark.asyncio
    async def test_host_mapping_member_call_is_logged(self, run_script, make_page, events):
        page = make_page()
        page.api = {"ping": lambda: "pong", "version": 2}
        await run_script("let r = page.api.ping();\nlog(r, page.api.version);", page)
        assert events == ["log:Calling page.api.ping()", "log:pong 2"]

    @pytest.mark.asyncio
    async def test_params_binding(self, run_script, events):
        await run_script("const user = params.user;\nlog(`hello ${user}`);", parameters={"user": "alice"})
        assert events == ["log:hello alice"]

    @pytest.mark.asyncio
    async def test_explicit_config_overrides_context(self, events):
        context = ExecutionContext.create(None, lambda m: events.append(m), config=InterpreterConfig(mode="program"))
        with pytest.raises(ReferenceFailure):
            await execute_script("log('a');\nundefinedThing;", context, InterpreterConfig(mode="program"))
        assert events[0] == "a"


# ---------------------------------------------------------------------------
# ScriptRunner
# ---------------------------------------------------------------------------

@pytest.fixture
def definition() -> ScriptDefinition:
    return ScriptDefinition(
        id="greet",
        name="Greeting",
        code="const who = params.user;\nlog('hi', who, params.count);",
        params={"user": "default", "count": 1},
        startUrl="https://example.com/start",
    )


class TestScriptRunner:
    """ScriptRunner.run / run_in_browser のテスト。"""

    @pytest.mark.asyncio
    async def test_success_logs(self, definition):
        result = await ScriptRunner().run(definition, host=None, parameters={"user": "bob"})
        assert result == ScriptExecutionResult(
            success=True,
            logs=["Executing script: Greeting", "hi bob 1", "Script Greeting completed successfully"],
        )

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        broken = ScriptDefinition(id="bad", name="Bad", code="const x = 1;\nnotDefined();")
        result = await ScriptRunner().run(broken, host=None)
        assert result.success is False
        assert result.error == "notDefined is not defined"
        assert result.logs[-2:] == [
            "Error executing script: notDefined is not defined",
            "Error: notDefined is not defined",
        ]

    @pytest.mark.asyncio
    async def test_run_in_browser_opens_start_url_and_closes(self, definition, make_page):
        page = make_page()
        session = MagicMock()
        session.launch = AsyncMock(return_value=page)
        session.close = AsyncMock()

        with patch("pagescript.script.runner.BrowserSession", return_value=session) as session_cls:
            runner = ScriptRunner(browser_config=BrowserConfig(headed=True))
            result = await runner.run_in_browser(definition)

        session_cls.assert_called_once_with(runner.browser_config)
        assert result.success is True
        assert page.url == "https://example.com/start"
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_config_start_url_takes_precedence(self, definition, make_page):
        page = make_page()
        session = MagicMock(launch=AsyncMock(return_value=page), close=AsyncMock())
        with patch("pagescript.script.runner.BrowserSession", return_value=session):
            runner = ScriptRunner(browser_config=BrowserConfig(start_url="https://override.test"))
            await runner.run_in_browser(definition)
        assert page.url == "https://override.test"

    @pytest.mark.asyncio
    async def test_browser_closed_when_navigation_fails(self, definition):
        page = MagicMock()
        page.goto = AsyncMock(side_effect=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))
        session = MagicMock(launch=AsyncMock(return_value=page), close=AsyncMock())
        with patch("pagescript.script.runner.BrowserSession", return_value=session):
            with pytest.raises(RuntimeError, match="ERR_NAME_NOT_RESOLVED"):
                await ScriptRunner().run_in_browser(definition)
        session.close.assert_awaited_once()


def test_error_text_falls_back_to_type_name():
    assert error_text(TimeoutError()) == "TimeoutError"
    assert error_text(ValueError("bad value")) == "bad value"
