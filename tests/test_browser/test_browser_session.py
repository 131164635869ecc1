"""
Session テスト: ブラウザセッションのライフサイクル

Playwright の起動はモックで代替し、状態遷移と後始末のみ検証する。
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from pagescript.browser.session import BrowserSession, SessionState
from pagescript.config import BrowserConfig


def _mock_playwright():
    """async_playwright() の戻り値と、起動される各オブジェクトのモックを返す。"""
    mock_pw = AsyncMock()
    mock_browser = AsyncMock()
    mock_context = AsyncMock()
    mock_page = AsyncMock()

    mock_pw.chromium.launch.return_value = mock_browser
    mock_browser.new_context.return_value = mock_context
    mock_context.new_page.return_value = mock_page

    mock_async_pw_cm = AsyncMock()
    mock_async_pw_cm.start = AsyncMock(return_value=mock_pw)
    return mock_async_pw_cm, mock_pw, mock_browser, mock_context, mock_page


class TestSessionState:
    def test_all_states_exist(self):
        """全状態が定義されていること。"""
        assert {s.value for s in SessionState} == {"idle", "launching", "active", "closed"}


class TestBrowserSession:
    """BrowserSession のライフサイクル管理テスト。"""

    def test_initial_state_is_idle(self):
        session = BrowserSession()
        assert session.state == SessionState.IDLE
        assert session.is_active is False

    def test_page_when_not_active(self):
        """非アクティブ時に page を参照すると RuntimeError になること。"""
        with pytest.raises(RuntimeError, match="launch"):
            BrowserSession().page

    @pytest.mark.asyncio
    async def test_launch_uses_config(self):
        """launch() が設定どおりにブラウザを起動し Page を返すこと。"""
        cm, mock_pw, mock_browser, _, mock_page = _mock_playwright()
        session = BrowserSession(BrowserConfig(headed=True, viewport_width=800, viewport_height=600))

        # async_playwright() は launch() 内でローカルインポートされる
        with patch("playwright.async_api.async_playwright", return_value=cm):
            page = await session.launch()

        assert page is mock_page
        assert session.page is mock_page
        assert session.state == SessionState.ACTIVE
        mock_pw.chromium.launch.assert_awaited_once_with(headless=False)
        mock_browser.new_context.assert_awaited_once_with(viewport={"width": 800, "height": 600})

    @pytest.mark.asyncio
    async def test_launch_twice_fails(self):
        cm, *_ = _mock_playwright()
        session = BrowserSession()
        with patch("playwright.async_api.async_playwright", return_value=cm):
            await session.launch()
            with pytest.raises(RuntimeError, match="既にアクティブ"):
                await session.launch()

    @pytest.mark.asyncio
    async def test_launch_failure_releases_resources(self):
        cm, mock_pw, _, _, _ = _mock_playwright()
        mock_pw.chromium.launch.side_effect = RuntimeError("no browser installed")
        session = BrowserSession()

        with patch("playwright.async_api.async_playwright", return_value=cm):
            with pytest.raises(RuntimeError, match="no browser installed"):
                await session.launch()

        assert session.state == SessionState.IDLE
        mock_pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_releases_browser(self):
        cm, mock_pw, mock_browser, _, _ = _mock_playwright()
        session = BrowserSession()
        with patch("playwright.async_api.async_playwright", return_value=cm):
            await session.launch()
        await session.close()

        assert session.state == SessionState.CLOSED
        mock_browser.close.assert_awaited_once()
        mock_pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        session = BrowserSession()
        await session.close()
        await session.close()
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_survives_browser_error(self):
        cm, _, mock_browser, _, _ = _mock_playwright()
        mock_browser.close.side_effect = RuntimeError("already gone")
        session = BrowserSession()
        with patch("playwright.async_api.async_playwright", return_value=cm):
            await session.launch()
        await session.close()
        assert session.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        cm, _, mock_browser, _, mock_page = _mock_playwright()
        with patch("playwright.async_api.async_playwright", return_value=cm):
            async with BrowserSession() as session:
                assert session.page is mock_page
        assert session.state == SessionState.CLOSED
        mock_browser.close.assert_awaited_once()
