"""
例外定義: スクリプト実行時のエラー分類

インタプリタが送出する例外の階層を定義する。

分類:
  - ParseFailure: 構文エラー（評価開始前に検出）
  - ReferenceFailure: 未定義変数の参照
  - TypeFailure: 関数でない値の呼び出し、不正なプロパティアクセス
  - UnsupportedConstruct: 意図的に未対応としている構文・分割代入パターン
  - CallDepthExceeded: 関数呼び出しの深さ上限超過
  - GuestThrow: スクリプト内の throw 文で送出された値

ホストオブジェクトが送出した例外はラップせず、そのまま伝播させる。
"""

from __future__ import annotations

from typing import Any, Optional


class ScriptError(Exception):
    """インタプリタが送出する例外の基底クラス。

    Attributes:
        guest_name: スクリプト側の catch で参照されるエラー名（e.name）
    """

    guest_name = "Error"


class ParseFailure(ScriptError):
    """ソースコードの構文エラー。

    Attributes:
        line: エラー行番号（1始まり、取得できない場合は None）
        column: エラー列番号（1始まり、取得できない場合は None）
        description: パーサーが返したエラー内容
    """

    guest_name = "SyntaxError"

    def __init__(
        self,
        description: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        self.description = description
        self.line = line
        self.column = column
        location = ""
        if line is not None:
            location = f" (行 {line}"
            location += f", 列 {column})" if column is not None else ")"
        super().__init__(f"構文エラー{location}: {description}")


class ReferenceFailure(ScriptError):
    """未定義の変数が参照された場合に送出される例外。

    Attributes:
        name: 参照された変数名
    """

    guest_name = "ReferenceError"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"{name} is not defined")


class TypeFailure(ScriptError):
    """関数でない値の呼び出しや不正なプロパティアクセス。"""

    guest_name = "TypeError"


class UnsupportedConstruct(ScriptError):
    """インタプリタが対応していない構文に到達した場合の例外。

    Attributes:
        kind: 未対応のノード種別や構文の名前
    """

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = kind
        message = f"未対応の構文です: {kind}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class CallDepthExceeded(ScriptError):
    """関数呼び出しの深さが上限を超えた場合の例外。"""

    guest_name = "RangeError"

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Maximum call stack size exceeded (上限: {limit})")


class GuestThrow(ScriptError):
    """スクリプトの throw 文で送出された値を運ぶ例外。

    Attributes:
        value: throw された値（任意のスクリプト値）
    """

    def __init__(self, value: Any) -> None:
        self.value = value
        # 循環 import を避けるため遅延インポート
        from .core.values import error_message

        super().__init__(error_message(value))
