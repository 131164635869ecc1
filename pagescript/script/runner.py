"""
Runner: スクリプトの実行と結果の収集

前処理 → 解析 → 評価 の流れで 1 本のスクリプトを実行する。

  - execute_script(): 最下層の実行関数。失敗時はログに残してから例外を再送出する
  - ScriptRunner.run(): スクリプト定義を実行し、ログと成否を ScriptExecutionResult にまとめる
  - ScriptRunner.run_in_browser(): Playwright を起動して run() を実行し、必ずブラウザを閉じる

断片モードでは 1 行ごとに解析・評価し、行単位の失敗はログに残して次の行へ進む。
await されなかったホスト呼び出しは実行の最後に完了を待ち、失敗を
「Unhandled error in <パス>: <メッセージ>」としてログに残す。
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..browser.session import BrowserSession
from ..config import BrowserConfig, InterpreterConfig
from ..core.environment import Environment
from ..core.evaluator import Evaluator
from ..core.parser import parse_program, parse_statement
from ..core.values import UNDEFINED
from ..host.context import ExecutionContext
from .catalog import ScriptDefinition
from .preprocessor import PreparedScript, prepare

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 実行結果
# ---------------------------------------------------------------------------

@dataclass
class ScriptExecutionResult:
    """スクリプト 1 回分の実行結果。

    Attributes:
        success: 例外なく完了したか
        error: 失敗時のエラーメッセージ
        logs: 実行中に出力されたログ行（順序どおり）
    """

    success: bool
    error: Optional[str] = None
    logs: list[str] = field(default_factory=list)


def error_text(exc: BaseException) -> str:
    """例外からユーザー向けのメッセージを取り出す。"""
    return str(exc) or type(exc).__name__


# ---------------------------------------------------------------------------
# 実行関数
# ---------------------------------------------------------------------------

async def execute_script(
    source: str,
    context: ExecutionContext,
    config: Optional[InterpreterConfig] = None,
) -> Any:
    """スクリプトを実行する。

    Args:
        source: スクリプトのソース（完全なプログラムまたは断片）
        context: 実行コンテキスト
        config: インタプリタ設定。指定時は context の設定より優先

    Returns:
        プログラムモードでは return された値（なければ最後の式文の値）。
        断片モードでは UNDEFINED

    Raises:
        ParseFailure: プログラムモードでの構文エラー（評価は行われない）
        Exception: 評価中に捕捉されなかったエラー（ホスト側の例外はそのまま）
    """
    if config is not None:
        context = dataclasses.replace(context, config=config)
    evaluator = Evaluator(emit=context.log, max_call_depth=context.config.max_call_depth)
    env = context.build_environment(evaluator.global_bindings())

    try:
        prepared = prepare(source, context.config.mode)
        if prepared.mode == "fragment":
            return await _run_fragment(prepared, evaluator, env, context)
        program = parse_program(prepared.source)
        return await evaluator.run(program, env)
    except Exception as exc:
        message = error_text(exc)
        logger.error("スクリプトの実行に失敗しました: %s", message)
        context.log(f"Error executing script: {message}")
        raise
    finally:
        evaluator.builtins.cancel_pending()
        await _report_unawaited_calls(evaluator, context)


async def _report_unawaited_calls(evaluator: Evaluator, context: ExecutionContext) -> None:
    """await されなかったホスト呼び出しの完了を待ち、失敗をログに残す。"""
    for path, exc in await evaluator.pending_calls.settle():
        message = error_text(exc)
        logger.warning("await されていないホスト呼び出しが失敗しました: %s: %s", path, message)
        context.log(f"Unhandled error in {path}: {message}")


async def _run_fragment(
    prepared: PreparedScript,
    evaluator: Evaluator,
    env: Environment,
    context: ExecutionContext,
) -> Any:
    """断片を 1 行ずつ実行する。失敗した行はログに残して次の行へ進む。"""
    failures = 0
    for line in prepared.lines:
        try:
            program = parse_statement(line.source, line.number)
            await evaluator.run(program, env)
        except Exception as exc:
            failures += 1
            message = error_text(exc)
            logger.warning("行 %d の実行に失敗しました: %s (%s)", line.number, message, line.original)
            context.log(f"Error on line {line.number}: {message}")
    if failures:
        logger.info("断片の実行を終了しました（失敗 %d / %d 行）", failures, len(prepared.lines))
    return UNDEFINED


# ---------------------------------------------------------------------------
# ScriptRunner
# ---------------------------------------------------------------------------

class ScriptRunner:
    """スクリプト定義を実行し、結果を ScriptExecutionResult にまとめる。"""

    def __init__(
        self,
        config: Optional[InterpreterConfig] = None,
        browser_config: Optional[BrowserConfig] = None,
    ) -> None:
        """ScriptRunner を初期化する。

        Args:
            config: インタプリタ設定
            browser_config: run_in_browser() で使うブラウザ設定
        """
        self.config = config or InterpreterConfig()
        self.browser_config = browser_config or BrowserConfig()

    async def run(
        self,
        definition: ScriptDefinition,
        host: Any,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> ScriptExecutionResult:
        """スクリプト定義をホストオブジェクトに対して実行する。

        パラメータは定義のデフォルト値に parameters を上書きしたものを渡す。
        失敗しても例外は送出せず、結果の success / error に反映する。
        """
        logs: list[str] = []

        def log(message: str) -> None:
            logs.append(message)
            logger.info("[%s] %s", definition.id, message)

        log(f"Executing script: {definition.name}")
        merged = {**definition.params, **dict(parameters or {})}
        context = ExecutionContext.create(host, log, merged, self.config)
        try:
            await execute_script(definition.code, context)
        except Exception as exc:
            message = error_text(exc)
            log(f"Error: {message}")
            return ScriptExecutionResult(success=False, error=message, logs=logs)

        log(f"Script {definition.name} completed successfully")
        return ScriptExecutionResult(success=True, logs=logs)

    async def run_in_browser(
        self,
        definition: ScriptDefinition,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> ScriptExecutionResult:
        """Playwright のブラウザを起動してスクリプトを実行する。

        開始 URL はブラウザ設定の start_url、なければ定義の startUrl を使う。
        ブラウザは結果に関わらず必ず閉じる。
        """
        session = BrowserSession(self.browser_config)
        page = await session.launch()
        try:
            start_url = self.browser_config.start_url or definition.startUrl
            if start_url:
                logger.info("開始 URL を開きます: %s", start_url)
                await page.goto(start_url)
            return await self.run(definition, page, parameters)
        finally:
            await session.close()
