# ホストモジュール
# ホストオブジェクトのログ付きラッパーと実行コンテキストを提供

from .context import ExecutionContext  # noqa: F401
from .proxy import HostMapping, HostMethod, HostProxy  # noqa: F401
