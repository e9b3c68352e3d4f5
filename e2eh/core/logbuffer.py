"""
LogBuffer — ページイベントの順序保証付きトランスクリプト

Page のイベント（console / requestfinished 等）を購読し、各イベントを
1 行の文字列に整形してメモリ上のバッファへ追記する。

主な機能:
  - LogBuffer: イベント発火順を保ったまま非同期整形結果を追記するバッファ
  - format_console_message(): console イベントの整形
  - format_request(): requestfinished イベントの整形（<no response> 対応）

整形は非同期に並行実行されるが、追記はイベント発火順に直列化される。
先に整形が終わった行は、それより前に発火したイベントの行が揃うまで待機する。
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, TypeVar, Union

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Request

logger = logging.getLogger(__name__)

E = TypeVar("E")

Formatter = Callable[[E], Union[str, Awaitable[str]]]

NO_RESPONSE = "<no response>"
"""レスポンスを取得できなかったリクエストに使用するステータスの代替値。"""


# ---------------------------------------------------------------------------
# LogBuffer 本体
# ---------------------------------------------------------------------------

class LogBuffer(Generic[E]):
    """1 つのイベントストリームの追記専用トランスクリプト。

    生成時に source.on(event_name, ...) でリスナーを登録する。購読解除の
    手段は持たない（バッファの寿命はセッションの寿命と同じで、購読元の
    Page もセッション終了時に破棄される）。

    Attributes:
        source: イベント発行元（Page 互換オブジェクト、所有しない）
        event_name: 購読するイベント名
    """

    def __init__(self, source: Any, event_name: str, formatter: Formatter[E]) -> None:
        self.source = source
        self.event_name = event_name
        self._formatter = formatter
        self._buffer = ""
        # 発火順に並んだ整形タスク。先頭から完了済みのものだけを追記する
        self._pending: deque[asyncio.Future[str]] = deque()
        source.on(event_name, self._on_event)

    @property
    def buffer(self) -> str:
        """追記済みの内容を返す。"""
        return self._buffer

    def contents(self) -> str:
        """追記済みの内容を 1 つの文字列として返す。"""
        return self._buffer

    @property
    def pending_count(self) -> int:
        """整形待ちのイベント数を返す。"""
        return len(self._pending)

    async def flush(self) -> str:
        """現時点で整形中のイベントをすべて待ち、追記してから内容を返す。

        flush() 呼び出し後に発火したイベントは対象外。
        """
        snapshot = list(self._pending)
        if snapshot:
            await asyncio.gather(*snapshot, return_exceptions=True)
        self._drain()
        return self._buffer

    # ----- 内部処理 -----

    def _on_event(self, event: E) -> None:
        task = asyncio.ensure_future(self._format(event))
        self._pending.append(task)
        task.add_done_callback(self._drain)

    async def _format(self, event: E) -> str:
        try:
            line = self._formatter(event)
            if inspect.isawaitable(line):
                line = await line
            return line
        except Exception as exc:
            logger.warning("%s イベントの整形に失敗しました: %s", self.event_name, exc)
            return f"<unformattable {self.event_name} event: {exc}>\n"

    def _drain(self, _done: object = None) -> None:
        while self._pending and self._pending[0].done():
            task = self._pending.popleft()
            if task.cancelled():
                self._buffer += f"<cancelled {self.event_name} event>\n"
            else:
                self._buffer += task.result()


# ---------------------------------------------------------------------------
# 整形関数
# ---------------------------------------------------------------------------

def _timestamp() -> str:
    """ISO-8601 形式（UTC, ミリ秒精度, Z 終端）の現在時刻。"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def format_console_message(msg: ConsoleMessage) -> str:
    """console イベントを 1 行に整形する。

    先頭の文字列引数は msg.text に含まれているため省略し、
    それ以外の引数は JSON 値として末尾に連結する。

    Args:
        msg: Playwright の ConsoleMessage

    Returns:
        改行で終わる整形済みの行
    """
    line = f"{_timestamp()} | {msg.type:<9}| {msg.text} "
    for index, arg in enumerate(msg.args):
        try:
            value = await arg.json_value()
        except Exception as exc:
            logger.debug("console 引数の取得に失敗: %s", exc)
            continue
        if isinstance(value, str):
            if index == 0:
                continue
            line += f"{value} "
            continue
        try:
            line += f"{json.dumps(value, ensure_ascii=False)} "
        except (TypeError, ValueError):
            line += f"{value!r} "
    return line.rstrip(" ") + "\n"


async def format_request(request: Request) -> str:
    """requestfinished イベントを 1 行に整形する。

    形式: ``<timestamp> <resource type> <status> <METHOD> <url> \\n``

    レスポンスが無い、または取得に失敗した場合はステータスに
    ``<no response>`` を使用し、イベントを捨てたり例外を送出したりしない。

    Args:
        request: Playwright の Request

    Returns:
        改行で終わる整形済みの行
    """
    timestamp = _timestamp()
    try:
        response = await request.response()
        status: object = response.status if response is not None else NO_RESPONSE
    except Exception as exc:
        logger.debug("レスポンスの取得に失敗: %s (%s)", request.url, exc)
        status = NO_RESPONSE
    return f"{timestamp} {request.resource_type} {status} {request.method} {request.url} \n"
