"""
Environment: 変数束縛のスコープチェーン

名前から値への対応表と、親 Environment への参照を持つ。
ブロック・関数呼び出し・ループ本体の反復ごとに子フレームを生成する。

規則:
  - define(): 常に現在のフレームに束縛を作成（上書き）する
  - lookup(): 親方向に探索し、どのフレームにもなければ ReferenceFailure
  - assign(): 名前を定義している最初のフレームの値を書き換える。
    どのフレームにも無い場合はルートフレームに暗黙定義する
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from ..errors import ReferenceFailure, TypeFailure

logger = logging.getLogger(__name__)


class Environment:
    """変数束縛の 1 フレーム。

    使用例::

        root = Environment()
        root.define("x", 1)
        child = root.child()
        child.assign("x", 2)   # root の x が 2 になる
    """

    def __init__(self, parent: Optional[Environment] = None) -> None:
        """フレームを初期化する。

        Args:
            parent: 親フレーム。None の場合はルートフレーム
        """
        self._bindings: dict[str, Any] = {}
        self._constants: set[str] = set()
        self.parent = parent

    # ----- フレーム操作 -----

    def child(self) -> Environment:
        """このフレームを親とする子フレームを生成する。"""
        return Environment(self)

    @property
    def root(self) -> Environment:
        """チェーンの最も外側（グローバル）のフレームを返す。"""
        frame = self
        while frame.parent is not None:
            frame = frame.parent
        return frame

    # ----- 束縛操作 -----

    def define(self, name: str, value: Any, *, constant: bool = False) -> None:
        """現在のフレームに束縛を作成する。既存の束縛は上書きする。

        Args:
            name: 変数名
            value: 値
            constant: const 宣言の場合 True（以降の assign を拒否する）
        """
        self._bindings[name] = value
        if constant:
            self._constants.add(name)
        else:
            self._constants.discard(name)

    def lookup(self, name: str) -> Any:
        """名前を外側へ向かって探索し、値を返す。

        Raises:
            ReferenceFailure: どのフレームにも定義されていない場合
        """
        frame = self._resolve(name)
        if frame is None:
            raise ReferenceFailure(name)
        return frame._bindings[name]

    def assign(self, name: str, value: Any) -> None:
        """既存の束縛を書き換える。未定義ならルートフレームに定義する。

        Raises:
            TypeFailure: const で宣言された束縛への代入の場合
        """
        frame = self._resolve(name)
        if frame is None:
            logger.debug("未宣言の変数 '%s' をグローバルに定義します", name)
            self.root._bindings[name] = value
            return
        if name in frame._constants:
            raise TypeFailure("Assignment to constant variable.")
        frame._bindings[name] = value

    def has(self, name: str) -> bool:
        """チェーン上のいずれかのフレームで定義されているかを返す。"""
        return self._resolve(name) is not None

    def has_own(self, name: str) -> bool:
        """現在のフレームで定義されているかを返す。"""
        return name in self._bindings

    def names(self) -> Iterator[str]:
        """現在のフレームの変数名を返す（テスト・デバッグ用）。"""
        return iter(self._bindings)

    # ----- 内部メソッド -----

    def _resolve(self, name: str) -> Optional[Environment]:
        """名前を定義している最も内側のフレームを返す。"""
        frame: Optional[Environment] = self
        while frame is not None:
            if name in frame._bindings:
                return frame
            frame = frame.parent
        return None

    def __repr__(self) -> str:
        depth = 0
        frame = self.parent
        while frame is not None:
            depth += 1
            frame = frame.parent
        return f"<Environment depth={depth} names={sorted(self._bindings)}>"
