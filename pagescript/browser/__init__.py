# ブラウザモジュール
# スクリプトのホストオブジェクトとなる Playwright Page のセッション管理を提供

from .session import BrowserSession, SessionState  # noqa: F401
