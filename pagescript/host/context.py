"""
実行コンテキスト: スクリプトに渡す値の集合

1 回のスクリプト実行で使う {ホストオブジェクト, ログ関数, パラメータ} をまとめ、
ルート Environment の束縛を作る。実行後は保持しない。

ルートの束縛:
  - page   : HostProxy で包んだホストオブジェクト（変数名は設定で変更可）
  - log    : console.log と同じ整形で引数をログ関数へ渡す
  - params : 読み取り専用のパラメータ
  - ctx    : {page, log, params}（記録スクリプトの `const { page, log } = ctx;` 用）
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Optional

from ..config import InterpreterConfig
from ..core.environment import Environment
from ..core.values import UNDEFINED, NativeFunction, format_log_args
from .proxy import HostProxy, LogSink

logger = logging.getLogger(__name__)


def _default_log(message: str) -> None:
    logger.info(message)


@dataclass
class ExecutionContext:
    """スクリプト 1 回分の実行コンテキスト。

    Attributes:
        host: ホストオブジェクト（Playwright の Page 等）
        log: ログ 1 行を受け取る関数
        parameters: 呼び出し側から渡すパラメータ
        config: インタプリタ設定
    """

    host: Any
    log: LogSink = _default_log
    parameters: Mapping[str, Any] = field(default_factory=dict)
    config: InterpreterConfig = field(default_factory=InterpreterConfig)

    @classmethod
    def create(
        cls,
        host: Any,
        log: Optional[LogSink] = None,
        parameters: Optional[Mapping[str, Any]] = None,
        config: Optional[InterpreterConfig] = None,
    ) -> ExecutionContext:
        """実行コンテキストを生成する。

        Args:
            host: ホストオブジェクト
            log: ログ関数。None の場合はモジュールロガーに出力
            parameters: パラメータ。None の場合は空
            config: インタプリタ設定。None の場合はデフォルト値
        """
        return cls(
            host=host,
            log=log or _default_log,
            parameters=dict(parameters or {}),
            config=config or InterpreterConfig(),
        )

    def wrap_host(self) -> Any:
        """ホストオブジェクトを HostProxy で包む。"""
        if self.host is None:
            return None
        sink = self.log if self.config.log_host_calls else logger.debug
        return HostProxy(self.host, self.config.host_name, sink=sink)

    def bindings(self) -> dict[str, Any]:
        """ルート Environment に定義するコンテキスト由来の束縛を返す。"""
        host = self.wrap_host()
        write = self.log

        def log(*args: Any) -> Any:
            write(format_log_args(args))
            return UNDEFINED

        log_function = NativeFunction(name="log", impl=log)
        params = MappingProxyType(dict(self.parameters))
        return {
            self.config.host_name: host,
            "log": log_function,
            "params": params,
            "ctx": {self.config.host_name: host, "log": log_function, "params": params},
        }

    def build_environment(self, global_bindings: Mapping[str, Any]) -> Environment:
        """組み込み値とコンテキストの束縛を持つルート Environment を生成する。

        同名の場合はコンテキスト側の束縛が優先される。

        Args:
            global_bindings: 評価器の組み込み値
        """
        root = Environment()
        for name, value in global_bindings.items():
            root.define(name, value)
        for name, value in self.bindings().items():
            root.define(name, value)
        return root
