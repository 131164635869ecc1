"""
インタプリタコアモジュール

構文木・値モデル・スコープチェーン・評価器を提供する。

主要エクスポート:
  - parse_program / parse_statement: ソースを AST に変換
  - Environment: 変数束縛のスコープチェーン
  - Evaluator: 木構造インタプリタ
  - UNDEFINED: スクリプトの undefined
"""

from .environment import Environment
from .evaluator import Evaluator
from .parser import parse_program, parse_statement
from .values import UNDEFINED

__all__ = [
    "Environment",
    "Evaluator",
    "UNDEFINED",
    "parse_program",
    "parse_statement",
]
