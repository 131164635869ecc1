"""
CLI エントリポイント: Typer ベースのコマンドラインインターフェース

pagescript コマンドとして以下のサブコマンドを提供する:
  - run: スクリプトを Playwright のページに対して実行
  - check: スクリプトの構文チェック（実行しない）
  - list: ディレクトリ内のスクリプト定義一覧
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import EXECUTION_MODES, apply_overrides, load_browser_config_from_env, load_config_from_env

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "pagescript: ブラウザ自動化スクリプトのインタプリタ\n\n"
        "基本の流れ:\n"
        "  1. pagescript check scripts/login.js   構文チェック\n"
        "  2. pagescript run scripts/login.js     ブラウザで実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_params(values: list[str]) -> dict[str, str]:
    """--param key=value の一覧を辞書に変換する。

    Raises:
        typer.BadParameter: key=value 形式でない場合
    """
    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"key=value 形式で指定してください: {item}")
        params[key.strip()] = value
    return params


def _select_script(path: Path, script_id: Optional[str]):
    """ファイルから実行対象のスクリプト定義を 1 件選ぶ。"""
    from .script.catalog import ScriptCatalog, find_script

    scripts = ScriptCatalog().load_file(path)
    if script_id is not None:
        script = find_script(scripts, script_id)
        if script is None:
            raise ValueError(f"スクリプト ID '{script_id}' が見つかりません: {path}")
        return script
    if len(scripts) > 1:
        ids = ", ".join(s.id for s in scripts)
        raise ValueError(f"複数のスクリプトが定義されています。--script-id で指定してください: {ids}")
    return scripts[0]


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    script_file: Path = typer.Argument(..., help="実行するスクリプト（.js / .yaml）"),
    script_id: Optional[str] = typer.Option(None, "--script-id", "-s", help="YAML に複数定義がある場合の ID"),
    url: Optional[str] = typer.Option(None, "--url", help="実行前に開く URL（定義の startUrl より優先）"),
    param: list[str] = typer.Option([], "--param", "-p", help="パラメータ（key=value、複数指定可）"),
    headed: Optional[bool] = typer.Option(None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 非表示）"),
    mode: Optional[str] = typer.Option(None, "--mode", help="実行モード (auto / program / fragment)"),
) -> None:
    """スクリプトを Playwright のページに対して実行する。"""
    import asyncio

    from .script.runner import ScriptRunner

    if mode is not None and mode not in EXECUTION_MODES:
        typer.echo(f"エラー: 未知の実行モードです: {mode}", err=True)
        raise typer.Exit(code=1)

    try:
        definition = _select_script(script_file, script_id)
        params = _parse_params(param)

        config = apply_overrides(load_config_from_env(), mode=mode)
        browser_config = apply_overrides(load_browser_config_from_env(), headed=headed, start_url=url)

        runner = ScriptRunner(config, browser_config)
        result = asyncio.run(runner.run_in_browser(definition, params))

        for line in result.logs:
            typer.echo(line)
        if not result.success:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# check コマンド
# ---------------------------------------------------------------------------

@app.command()
def check(
    script_file: Path = typer.Argument(..., help="構文チェックするスクリプト（.js / .yaml）"),
    mode: str = typer.Option("auto", "--mode", help="実行モード (auto / program / fragment)"),
) -> None:
    """スクリプトを解析のみ行い、構文エラーを報告する。"""
    from .core.parser import parse_program, parse_statement
    from .errors import ParseFailure
    from .script.catalog import ScriptCatalog
    from .script.preprocessor import prepare

    try:
        scripts = ScriptCatalog().load_file(script_file)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    failed = False
    for script in scripts:
        try:
            prepared = prepare(script.code, mode)
        except ValueError as exc:
            typer.echo(f"エラー: {exc}", err=True)
            raise typer.Exit(code=1)

        errors: list[ParseFailure] = []
        if prepared.mode == "fragment":
            for line in prepared.lines:
                try:
                    parse_statement(line.source, line.number)
                except ParseFailure as exc:
                    errors.append(exc)
        else:
            try:
                parse_program(prepared.source)
            except ParseFailure as exc:
                errors.append(exc)

        if not errors:
            typer.echo(f"✓ {script.id}: 構文 OK ({prepared.mode})")
            continue
        failed = True
        for err in errors:
            typer.echo(f"✗ {script.id}: {err}", err=True)

    if failed:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list コマンド
# ---------------------------------------------------------------------------

@app.command(name="list")
def list_scripts(
    directory: Path = typer.Argument(Path("."), help="スクリプト定義のディレクトリ"),
) -> None:
    """ディレクトリ内のスクリプト定義を一覧表示する。"""
    from .script.catalog import ScriptCatalog

    try:
        scripts = ScriptCatalog().load_directory(directory)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if not scripts:
        typer.echo("スクリプトが見つかりません")
        return

    id_width = max(len(s.id) for s in scripts)
    for script in scripts:
        typer.echo(f"{script.id:<{id_width}}  {script.name}  [{script.source}]")
    typer.echo(f"\n合計: {len(scripts)} 件")
