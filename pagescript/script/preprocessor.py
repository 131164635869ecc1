"""
スクリプト前処理: 完全なプログラムと断片（フラグメント）の判定

ソースの先頭行が文・宣言のキーワードで始まれば完全なプログラム、
それ以外（自動化ステップの本体だけを貼り付けたもの等）は断片として扱う。

断片の扱い:
  - 1 行ずつに分割し、空行・コメント行・ctx の分割代入行は読み飛ばす
  - await で始まる行は async の即時実行関数で包み、単独の文として解析できるようにする
  - 各行は独立に解析・評価され、失敗しても次の行へ進む（runner.py 側で実施）
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

# 完全なプログラムとみなす先頭キーワード
PROGRAM_KEYWORDS: frozenset[str] = frozenset({
    "const",
    "let",
    "var",
    "function",
    "async",
    "if",
    "for",
    "while",
    "do",
    "try",
    "return",
    "throw",
})

_LEADING_WORD = re.compile(r"^([A-Za-z_$][\w$]*)")

# `const { page, log } = ctx;` 形式の行
_CONTEXT_DESTRUCTURE = re.compile(r"^\s*(?:const|let|var)\s*\{[^}]*\}\s*=\s*ctx\s*;?\s*$")

_COMMENT_PREFIXES = ("//", "/*", "*")

ScriptMode = Literal["program", "fragment"]


@dataclass(frozen=True)
class FragmentLine:
    """断片の 1 行。

    Attributes:
        number: 元ソースでの行番号（1始まり）
        source: 解析に渡すソース（await 行は即時実行関数で包んだもの）
        original: 元の行テキスト（前後空白除去済み）
    """

    number: int
    source: str
    original: str


@dataclass(frozen=True)
class PreparedScript:
    """前処理済みのスクリプト。

    Attributes:
        mode: "program"（一括実行）または "fragment"（行単位実行）
        source: 元のソース
        lines: 断片モードで実行する行（program モードでは空）
    """

    mode: ScriptMode
    source: str
    lines: tuple[FragmentLine, ...] = ()


def is_skippable(line: str) -> bool:
    """空行・コメント行・ctx の分割代入行なら True を返す。"""
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith(_COMMENT_PREFIXES):
        return True
    return bool(_CONTEXT_DESTRUCTURE.match(stripped))


def classify(source: str) -> ScriptMode:
    """ソースが完全なプログラムか断片かを判定する。

    最初の意味のある行（空行・コメント・ctx の分割代入を除く）の
    先頭語で判定する。意味のある行が無い場合は "program"。
    """
    for line in source.splitlines():
        if is_skippable(line):
            continue
        stripped = line.strip()
        if stripped.startswith("{"):
            return "program"
        match = _LEADING_WORD.match(stripped)
        if match and match.group(1) in PROGRAM_KEYWORDS:
            return "program"
        return "fragment"
    return "program"


def wrap_await(line: str) -> str:
    """await で始まる行を async の即時実行関数で包む。

    行末の // コメントが閉じ括弧を飲み込まないよう、行本体は単独の行に置く。
    """
    return f"(async () => {{\n{line}\n}})()"


def split_fragment(source: str) -> tuple[FragmentLine, ...]:
    """断片を実行対象の行に分割する。"""
    lines: list[FragmentLine] = []
    for number, line in enumerate(source.splitlines(), start=1):
        if is_skippable(line):
            continue
        stripped = line.strip()
        text = wrap_await(stripped) if re.match(r"^await\b", stripped) else stripped
        lines.append(FragmentLine(number=number, source=text, original=stripped))
    return tuple(lines)


def prepare(source: str, mode: str = "auto") -> PreparedScript:
    """ソースを前処理する。

    Args:
        source: スクリプトのソース
        mode: "auto"（自動判定）/ "program" / "fragment"

    Raises:
        ValueError: 未知のモードの場合
    """
    if mode == "auto":
        resolved: ScriptMode = classify(source)
    elif mode in ("program", "fragment"):
        resolved = mode  # type: ignore[assignment]
    else:
        raise ValueError(f"未知の実行モードです: {mode}")

    logger.debug("スクリプトを %s モードで実行します", resolved)
    if resolved == "fragment":
        return PreparedScript(mode="fragment", source=source, lines=split_fragment(source))
    return PreparedScript(mode="program", source=source)


def strip_context_destructuring(source: str) -> str:
    """`const { page, log } = ctx;` 行を取り除いたソースを返す。"""
    kept = [line for line in source.splitlines() if not _CONTEXT_DESTRUCTURE.match(line)]
    return "\n".join(kept).strip("\n")
