"""
テスト共通フィクスチャ・フェイクオブジェクト定義

Playwright の Page の代替となるフェイクと、
ポーリングのテストで使用する仮想時計を提供する。
実際のブラウザは起動しない。
"""

from __future__ import annotations

import io
from collections import defaultdict
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from e2eh.core.polling import PollingWaiter
from e2eh.core.session import ElementSession


# ---------------------------------------------------------------------------
# フェイク: イベント発行可能な Page
# ---------------------------------------------------------------------------

class FakePage:
    """on() / emit() を持つ Page の代替。

    Playwright の Page と同じく、イベントハンドラは emit() 内で同期的に呼ばれる。
    DOM 操作系のメソッドは AsyncMock。
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[[Any], Any]]] = defaultdict(list)
        self.wait_for_selector = AsyncMock()
        self.query_selector = AsyncMock(return_value=None)
        self.query_selector_all = AsyncMock(return_value=[])
        self.goto = AsyncMock()
        self.content = AsyncMock(return_value="<html></html>")
        self.screenshot = AsyncMock()
        self.evaluate = AsyncMock(return_value="[]")
        self.title = AsyncMock(return_value="")
        self.set_viewport_size = AsyncMock()
        self.context = MagicMock()
        self.context.new_cdp_session = AsyncMock()

    def on(self, event: str, handler: Callable[[Any], Any]) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, payload: Any) -> None:
        for handler in self._handlers[event]:
            handler(payload)

    def listener_count(self, event: str) -> int:
        return len(self._handlers[event])


# ---------------------------------------------------------------------------
# 仮想時計
# ---------------------------------------------------------------------------

class FakeClock:
    """sleep() で進むだけの仮想時計（整数ミリ秒で保持する）。"""

    def __init__(self) -> None:
        self.now_ms = 0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now_ms / 1000.0

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now_ms += round(seconds * 1000)


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def make_session(fake_page: FakePage, fake_clock: FakeClock, log_stream: io.StringIO):
    """仮想時計付きの ElementSession を生成するファクトリ。"""

    def _make(identity: str = "alice", timeout_ms: int = 20_000, **kwargs: Any) -> ElementSession:
        browser = AsyncMock()
        playwright = AsyncMock()
        waiter = PollingWaiter(timeout_ms=timeout_ms, sleep=fake_clock.sleep, clock=fake_clock)
        session = ElementSession(
            playwright,
            browser,
            fake_page,
            identity,
            "http://localhost:5000",
            "http://localhost:5005",
            default_timeout_ms=timeout_ms,
            waiter=waiter,
            **kwargs,
        )
        session.log._stream = log_stream
        return session

    return _make
