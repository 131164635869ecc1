"""
pagescript: ブラウザ自動化スクリプトのインタプリタ

記録されたブラウザ操作スクリプト（JavaScript のサブセット）を、
ネイティブの eval を使わずに木構造インタプリタで実行する。
ホストオブジェクト（Playwright の Page 等）の呼び出しは全てログに記録される。
"""

__version__ = "0.1.0"
