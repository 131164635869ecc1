"""
スクリプトカタログ: スクリプト定義の読み込みと統合

ruamel.yaml で YAML ファイルを読み込み、Pydantic の ScriptDefinition に変換する。
.js ファイルはファイル名をそのまま id / name とする定義として扱う。

ファイル形式:
  - 1 定義の YAML:        {id, name, description, code, ...}
  - 複数定義の YAML:      {scripts: [{...}, {...}]}
  - JavaScript ファイル:  ファイル全体がスクリプト本体

リモート由来の定義（source: remote）は `const { page, log } = ctx;` 行を読み込み時に取り除く。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .preprocessor import strip_context_destructuring

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")
_SCRIPT_SUFFIXES = (".js",)


# ---------------------------------------------------------------------------
# スクリプト定義モデル
# ---------------------------------------------------------------------------

class ScriptDefinition(BaseModel):
    """実行可能なスクリプトの定義。

    code の代わりに scriptBody（リモート形式の別名）も受け付ける。
    """

    id: str = Field(..., min_length=1, description="スクリプト ID（一意）")
    name: str = Field(..., min_length=1, description="表示名")
    description: str = Field(default="", description="説明")
    code: str = Field(..., description="スクリプト本体のソース")
    version: int = Field(default=1, ge=1, description="バージョン番号")
    source: Literal["local", "remote"] = Field(default="local", description="定義の出どころ")
    startUrl: Optional[str] = Field(default=None, description="実行前に開く URL")
    params: dict[str, Any] = Field(default_factory=dict, description="パラメータのデフォルト値")

    @model_validator(mode="before")
    @classmethod
    def _accept_script_body(cls, data: Any) -> Any:
        """リモート形式の scriptBody を code として受け付ける。"""
        if isinstance(data, dict) and "code" not in data and "scriptBody" in data:
            data = {**data, "code": data["scriptBody"]}
            data.pop("scriptBody")
        return data

    @model_validator(mode="after")
    def _strip_remote_context(self) -> ScriptDefinition:
        if self.source == "remote":
            self.code = strip_context_destructuring(self.code)
        return self


# ---------------------------------------------------------------------------
# ローダー本体
# ---------------------------------------------------------------------------

class ScriptCatalog:
    """スクリプト定義ファイルの読み込みを担当するローダー。"""

    def __init__(self) -> None:
        """ruamel.yaml インスタンスを初期化する。"""
        self._yaml = YAML()
        self._yaml.preserve_quotes = True

    def load_file(self, path: Path) -> list[ScriptDefinition]:
        """1 ファイルからスクリプト定義を読み込む。

        Args:
            path: .yaml / .yml / .js ファイルのパス

        Returns:
            ファイルに含まれる定義のリスト

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            ValueError: 未対応の拡張子、YAML 構文エラー、スキーマ検証エラーの場合
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"スクリプトファイルが見つかりません: {path}")

        suffix = path.suffix.lower()
        if suffix in _SCRIPT_SUFFIXES:
            code = path.read_text(encoding="utf-8")
            return [ScriptDefinition(id=path.stem, name=path.stem, code=code)]
        if suffix not in _YAML_SUFFIXES:
            raise ValueError(f"未対応のファイル形式です: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except YAMLError as e:
            line_info = ""
            if hasattr(e, "problem_mark") and e.problem_mark is not None:
                mark = e.problem_mark
                line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
            raise ValueError(f"YAML 構文エラー{line_info}: {e}") from e

        if data is None:
            raise ValueError(f"YAML ファイルが空です: {path}")

        plain = _to_plain(data)
        entries = plain.get("scripts") if isinstance(plain, dict) and "scripts" in plain else [plain]
        if not isinstance(entries, list):
            raise ValueError(f"scripts はリストである必要があります: {path}")

        try:
            return [ScriptDefinition(**entry) for entry in entries]
        except (PydanticValidationError, TypeError) as e:
            raise ValueError(f"スキーマ検証エラー ({path}): {e}") from e

    def load_directory(self, directory: Path) -> list[ScriptDefinition]:
        """ディレクトリ直下の定義ファイルをすべて読み込む。

        同じ id の定義が複数ある場合は後に読み込んだ方で上書きし、警告を出す。
        ファイルはファイル名順に読み込む。

        Raises:
            FileNotFoundError: ディレクトリが存在しない場合
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"ディレクトリが見つかりません: {directory}")

        scripts: dict[str, ScriptDefinition] = {}
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() not in _YAML_SUFFIXES + _SCRIPT_SUFFIXES:
                continue
            for script in self.load_file(path):
                if script.id in scripts:
                    logger.warning("スクリプト ID '%s' が重複しています。%s の定義で上書きします", script.id, path.name)
                scripts[script.id] = script
        logger.info("%d 件のスクリプトを読み込みました: %s", len(scripts), directory)
        return sorted(scripts.values(), key=lambda s: s.name)


# ---------------------------------------------------------------------------
# ユーティリティ
# ---------------------------------------------------------------------------

def _to_plain(data: object) -> Any:
    """ruamel.yaml の CommentedMap/CommentedSeq を通常の dict/list に再帰変換する。"""
    if isinstance(data, dict):
        return {str(key): _to_plain(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_to_plain(item) for item in data]
    return data


def merge_scripts(
    local: list[ScriptDefinition],
    remote: list[ScriptDefinition],
) -> list[ScriptDefinition]:
    """ローカルとリモートの定義を統合する。

    id が重複する場合はローカルを優先する。結果は name 順。
    """
    merged: dict[str, ScriptDefinition] = {script.id: script for script in local}
    for script in remote:
        if script.id in merged:
            logger.debug("リモートのスクリプト '%s' はローカル定義で上書きされます", script.id)
            continue
        merged[script.id] = script
    return sorted(merged.values(), key=lambda s: s.name)


def find_script(scripts: list[ScriptDefinition], script_id: str) -> Optional[ScriptDefinition]:
    """id でスクリプト定義を検索する。見つからなければ None。"""
    return next((script for script in scripts if script.id == script_id), None)
