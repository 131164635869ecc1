"""
設定: 環境変数・CLI 引数からの設定読み込み

インタプリタとブラウザセッションの動作を制御する。
CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  PAGESCRIPT_MODE           : 実行モード（auto/program/fragment, デフォルト: auto）
  PAGESCRIPT_LOG_HOST_CALLS : ホスト呼び出しをスクリプトログに出すか（true/false, デフォルト: true）
  PAGESCRIPT_MAX_CALL_DEPTH : 関数呼び出しのネスト上限（デフォルト: 100）
  PAGESCRIPT_HOST_NAME      : ホストオブジェクトの変数名（デフォルト: page）
  PAGESCRIPT_HEADED         : ブラウザ表示モード（true/false, デフォルト: false）
  PAGESCRIPT_VIEWPORT_WIDTH : ビューポート幅（デフォルト: 1280）
  PAGESCRIPT_VIEWPORT_HEIGHT: ビューポート高さ（デフォルト: 720）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Literal, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_MODE = "PAGESCRIPT_MODE"
_ENV_LOG_HOST_CALLS = "PAGESCRIPT_LOG_HOST_CALLS"
_ENV_MAX_CALL_DEPTH = "PAGESCRIPT_MAX_CALL_DEPTH"
_ENV_HOST_NAME = "PAGESCRIPT_HOST_NAME"
_ENV_HEADED = "PAGESCRIPT_HEADED"
_ENV_VIEWPORT_WIDTH = "PAGESCRIPT_VIEWPORT_WIDTH"
_ENV_VIEWPORT_HEIGHT = "PAGESCRIPT_VIEWPORT_HEIGHT"

ExecutionMode = Literal["auto", "program", "fragment"]
EXECUTION_MODES: tuple[str, ...] = ("auto", "program", "fragment")


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class InterpreterConfig:
    """インタプリタの実行時設定。

    Attributes:
        mode: 実行モード（auto はソースから判定、program は一括、fragment は行単位）
        log_host_calls: ホスト呼び出しのログをスクリプトログへ出力するか
        max_call_depth: スクリプト関数呼び出しのネスト上限
        host_name: ホストオブジェクトを束縛する変数名
    """

    mode: ExecutionMode = "auto"
    log_host_calls: bool = True
    max_call_depth: int = 100
    host_name: str = "page"


@dataclass
class BrowserConfig:
    """スクリプトを実ブラウザで実行するときのセッション設定。

    Attributes:
        headed: ブラウザ表示モード（True=表示, False=ヘッドレス）
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
        start_url: 実行前に開く URL（None なら about:blank のまま）
    """

    headed: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    start_url: Optional[str] = None


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False
    """
    return value.lower() in ("true", "1", "yes")


def _parse_positive_int(key: str) -> Optional[int]:
    """環境変数を正の整数として読む。不正な値は警告して None を返す。"""
    raw = os.environ[key]
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s の値が不正です: %s", key, raw)
        return None
    if value <= 0:
        logger.warning("%s には正の整数を指定してください: %s", key, raw)
        return None
    return value


def load_config_from_env() -> InterpreterConfig:
    """環境変数から InterpreterConfig を生成する。

    設定されていない環境変数・不正な値はデフォルト値を使用する。
    """
    config = InterpreterConfig()

    if _ENV_MODE in os.environ:
        val = os.environ[_ENV_MODE]
        if val in EXECUTION_MODES:
            config.mode = val  # type: ignore[assignment]
        else:
            logger.warning("%s の値が不正です: %s", _ENV_MODE, val)

    if _ENV_LOG_HOST_CALLS in os.environ:
        config.log_host_calls = _parse_bool(os.environ[_ENV_LOG_HOST_CALLS])

    if _ENV_MAX_CALL_DEPTH in os.environ:
        depth = _parse_positive_int(_ENV_MAX_CALL_DEPTH)
        if depth is not None:
            config.max_call_depth = depth

    if _ENV_HOST_NAME in os.environ:
        name = os.environ[_ENV_HOST_NAME].strip()
        if name.isidentifier():
            config.host_name = name
        else:
            logger.warning("%s の値が不正です: %s", _ENV_HOST_NAME, name)

    logger.debug("インタプリタ設定を読み込みました: %s", config)
    return config


def load_browser_config_from_env() -> BrowserConfig:
    """環境変数から BrowserConfig を生成する。"""
    config = BrowserConfig()

    if _ENV_HEADED in os.environ:
        config.headed = _parse_bool(os.environ[_ENV_HEADED])

    if _ENV_VIEWPORT_WIDTH in os.environ:
        width = _parse_positive_int(_ENV_VIEWPORT_WIDTH)
        if width is not None:
            config.viewport_width = width

    if _ENV_VIEWPORT_HEIGHT in os.environ:
        height = _parse_positive_int(_ENV_VIEWPORT_HEIGHT)
        if height is not None:
            config.viewport_height = height

    logger.debug("ブラウザ設定を読み込みました: %s", config)
    return config


def apply_overrides(config: Any, **overrides: Any) -> Any:
    """CLI 引数で指定された値を設定に適用する。

    値が None の項目は上書きしない。存在しない項目名は無視して警告する。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）
        **overrides: 項目名と値

    Returns:
        上書き後の設定（同じオブジェクト）
    """
    for name, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, name):
            logger.warning("未知の設定項目です: %s", name)
            continue
        setattr(config, name, value)
    return config
