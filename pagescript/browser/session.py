"""
Session: スクリプト実行用のブラウザセッション

Playwright ブラウザの起動・終了を担当し、スクリプトのホストオブジェクトとなる
Page を提供する。1 回のスクリプト実行ごとに起動して終了する。

使用例::

    async with BrowserSession(BrowserConfig(headed=False)) as session:
        await session.page.goto("https://example.com")
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Optional

from ..config import BrowserConfig

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """ブラウザセッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSED = "closed"


class BrowserSession:
    """Playwright ブラウザセッション。

    Attributes:
        config: 起動時に使うブラウザ設定
    """

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self.config = config or BrowserConfig()
        self._state = SessionState.IDLE
        self._pw_instance: Optional[Any] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.ACTIVE

    @property
    def page(self) -> Page:
        """現在の Page を返す。

        Raises:
            RuntimeError: セッションがアクティブでない場合
        """
        if not self.is_active or self._page is None:
            raise RuntimeError("アクティブなセッションがありません。先に launch() を呼んでください。")
        return self._page

    async def launch(self) -> Page:
        """ブラウザを起動し、Page を生成して返す。

        Raises:
            RuntimeError: 既にアクティブなセッションがある場合
        """
        if self._state == SessionState.ACTIVE:
            raise RuntimeError("既にアクティブなセッションがあります。先に close() を呼んでください。")

        self._state = SessionState.LAUNCHING
        logger.info("ブラウザを起動しています... (headed=%s)", self.config.headed)

        try:
            from playwright.async_api import async_playwright

            pw = await async_playwright().start()
            self._pw_instance = pw
            self._browser = await pw.chromium.launch(headless=not self.config.headed)
            self._context = await self._browser.new_context(
                viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            )
            self._page = await self._context.new_page()
            self._state = SessionState.ACTIVE
            logger.info("ブラウザを起動しました")
        except Exception:
            self._state = SessionState.IDLE
            logger.exception("ブラウザの起動に失敗しました")
            await self._release()
            raise
        return self._page

    async def close(self) -> None:
        """ブラウザを終了する。既に終了していれば何もしない。"""
        if self._state == SessionState.CLOSED:
            return
        logger.info("ブラウザを終了しています...")
        try:
            await self._release()
        finally:
            self._state = SessionState.CLOSED
            logger.info("ブラウザを終了しました")

    async def _release(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
            if self._pw_instance is not None:
                await self._pw_instance.stop()
        except Exception:
            logger.exception("ブラウザの終了中にエラーが発生しました")
        finally:
            self._browser = None
            self._context = None
            self._page = None
            self._pw_instance = None

    async def __aenter__(self) -> BrowserSession:
        await self.launch()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
