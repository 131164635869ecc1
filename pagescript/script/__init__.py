"""
スクリプト実行モジュール

前処理・実行・スクリプト定義の読み込みを提供する。

主要エクスポート:
  - execute_script: ソースと実行コンテキストからスクリプトを実行
  - ScriptRunner: スクリプト定義を実行し ScriptExecutionResult を返す
  - ScriptDefinition / ScriptCatalog: スクリプト定義とその読み込み
"""

from .catalog import ScriptCatalog, ScriptDefinition, merge_scripts
from .runner import ScriptExecutionResult, ScriptRunner, execute_script

__all__ = [
    "ScriptCatalog",
    "ScriptDefinition",
    "ScriptExecutionResult",
    "ScriptRunner",
    "execute_script",
    "merge_scripts",
]
