"""
ホストバインディング: ホストオブジェクト呼び出しのログ記録付きラッパー

スクリプトに渡すホストオブジェクト（Playwright の Page 等）を HostProxy で包み、
メソッド呼び出しを必ずログに記録してから実オブジェクトへ転送する。

規則:
  - スカラー値の属性はそのまま返す。オブジェクト値の属性は HostProxy で再帰的に包む
    （アクセスされた時点で遅延生成する）
  - dict 等のマッピングは HostMapping で包み、読み出した値に同じ規則を適用する。
    list / tuple は各要素に同じ規則を適用したコピーを返す
  - メソッド属性は HostMethod を返す。呼び出すと「Calling <パス>(<引数 JSON>)」を
    1 行ログに出力した後、実メソッドを呼び出す
  - 引数・戻り値は一切変更しない
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any, Callable, Iterator, Optional

from ..core.values import UNDEFINED, json_stringify, to_string
from .interop import MISSING, call_foreign, is_plain_value, resolve_attribute, snake_case

logger = logging.getLogger(__name__)

LogSink = Callable[[str], None]


class HostProxy:
    """ホストオブジェクトのラッパー。

    状態は包んだ対象とログ用のドット区切りパスのみ。

    使用例::

        proxy = HostProxy(page, "page", sink=log)
        method = proxy.get("click")       # HostMethod
        await method("#submit")           # "Calling page.click(\"#submit\")" を記録
    """

    __slots__ = ("_target", "_path", "_sink")

    def __init__(self, target: Any, path: str = "", sink: Optional[LogSink] = None) -> None:
        """ラッパーを初期化する。

        Args:
            target: 包む対象オブジェクト
            path: ログに表示するドット区切りのアクセスパス
            sink: ログ 1 行を受け取る関数。None の場合はモジュールロガーに出力
        """
        self._target = target
        self._path = path
        self._sink = sink

    @property
    def target(self) -> Any:
        """包んでいる実オブジェクトを返す。"""
        return self._target

    @property
    def path(self) -> str:
        return self._path

    def get(self, name: str) -> Any:
        """属性を読み出す。

        Args:
            name: スクリプト上の属性名

        Returns:
            メソッドなら HostMethod、マッピングなら HostMapping、
            オブジェクトなら HostProxy、スカラーは値そのもの。存在しない属性は UNDEFINED
        """
        full_path = f"{self._path}.{name}" if self._path else name
        value = resolve_attribute(self._target, name)
        if value is MISSING:
            return UNDEFINED
        return wrap_value(value, full_path, self._sink)

    def items(self) -> list[Any]:
        """反復可能な対象の要素を、属性と同じ規則で包んだリストを返す。"""
        return [
            wrap_value(item, f"{self._path}[{index}]", self._sink)
            for index, item in enumerate(self._target)
        ]

    def set(self, name: str, value: Any) -> None:
        """実オブジェクトの属性を書き換える。

        スクリプト上の名前で属性が見つからず snake_case 名なら存在する場合は、
        snake_case 名の属性を書き換える。
        """
        attr = name
        if not hasattr(self._target, name):
            converted = snake_case(name)
            if hasattr(self._target, converted):
                attr = converted
        setattr(self._target, attr, value)

    def __repr__(self) -> str:
        return f"<HostProxy {self._path or type(self._target).__name__}>"


class HostMethod:
    """ホストオブジェクトのメソッドを転送する呼び出し可能オブジェクト。

    呼び出し時、実メソッドの実行開始より前に必ず 1 行ログを出力する。
    """

    __slots__ = ("_method", "_path", "_sink")

    def __init__(self, method: Callable[..., Any], path: str, sink: Optional[LogSink] = None) -> None:
        self._method = method
        self._path = path
        self._sink = sink

    @property
    def path(self) -> str:
        return self._path

    def __call__(self, *args: Any) -> Any:
        """ログを出力してから実メソッドを呼び出す。

        Returns:
            実メソッドの戻り値（コルーチンの場合は実行中の Task）
        """
        message = f"Calling {self._path}({format_call_args(args)})"
        if self._sink is not None:
            self._sink(message)
        else:
            logger.info(message)
        return call_foreign(self._method, list(args))

    def __repr__(self) -> str:
        return f"<HostMethod {self._path}>"


class HostMapping(MutableMapping):
    """ホストの dict 等を包むビュー。

    読み出した値は wrap_value() で包み、書き込みは実マッピングへそのまま反映する。
    スクリプトからは通常のオブジェクトとして扱える。
    """

    __slots__ = ("_target", "_path", "_sink")

    def __init__(self, target: Mapping, path: str, sink: Optional[LogSink] = None) -> None:
        self._target = target
        self._path = path
        self._sink = sink

    @property
    def target(self) -> Mapping:
        return self._target

    @property
    def path(self) -> str:
        return self._path

    def __getitem__(self, key: Any) -> Any:
        return wrap_value(self._target[key], f"{self._path}.{key}", self._sink)

    def __setitem__(self, key: Any, value: Any) -> None:
        self._target[key] = value  # type: ignore[index]

    def __delitem__(self, key: Any) -> None:
        del self._target[key]  # type: ignore[attr-defined]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._target)

    def __len__(self) -> int:
        return len(self._target)

    def __repr__(self) -> str:
        return f"<HostMapping {self._path}>"


def wrap_value(value: Any, path: str, sink: Optional[LogSink] = None) -> Any:
    """ホスト側から読み出した値をスクリプトに渡す形へ包む。

    Args:
        value: 読み出した値
        path: ログに表示するアクセスパス
        sink: ログ出力先
    """
    if callable(value) and not isinstance(value, type):
        return HostMethod(value, path, sink)
    if is_plain_value(value):
        return value
    if isinstance(value, Mapping):
        return HostMapping(value, path, sink)
    if isinstance(value, (list, tuple)):
        return [wrap_value(item, f"{path}[{index}]", sink) for index, item in enumerate(value)]
    return HostProxy(value, path, sink)


def format_call_args(args: tuple[Any, ...]) -> str:
    """ログ用に引数を JSON 形式でカンマ区切りに整形する。"""
    return ", ".join(to_string(json_stringify(arg)) for arg in args)
