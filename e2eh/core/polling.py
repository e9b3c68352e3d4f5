"""
ポーリング待機 — UI の結果整合を待つための有限時間リトライ

述語を一定間隔で評価し、真になるかタイムアウトするまで繰り返す。

主な機能:
  - PollingWaiter.poll(): 真になれば True、タイムアウトで False を返す
  - PollingWaiter.wait_until(): False の場合にメッセージ付きで失敗させる
  - poll(): 既定設定の PollingWaiter への簡易アクセス

述語が例外を送出した場合は「まだ成立していない」とみなして継続する。
sleep / clock は差し替え可能で、テストでは仮想時計を注入する。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Union

from .errors import ConditionNotMetError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 100
DEFAULT_TIMEOUT_MS = 20_000

Predicate = Callable[[], Union[bool, Awaitable[bool]]]


class PollingWaiter:
    """有限時間のポーリング待機。

    Attributes:
        timeout_ms: 既定のタイムアウト（ミリ秒）
        interval_ms: 既定のポーリング間隔（ミリ秒）
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.interval_ms = interval_ms
        self._sleep = sleep
        self._clock = clock

    async def poll(
        self,
        predicate: Predicate,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> bool:
        """述語が真になるまでポーリングする。

        各周回で interval_ms 待機してから述語を評価する。経過時間が
        timeout_ms 以上になった時点で False を返す。述語の例外では失敗しない。
        最後の周回でも述語は必ず評価し、非同期の述語は残り時間と
        1 間隔のうち長いほうで打ち切る。

        Args:
            predicate: 評価する述語（同期・非同期いずれも可）
            interval_ms: ポーリング間隔（ミリ秒、省略時は既定値）
            timeout_ms: タイムアウト（ミリ秒、省略時は既定値）

        Returns:
            タイムアウトまでに述語が真になれば True、それ以外は False
        """
        interval = self.interval_ms if interval_ms is None else interval_ms
        timeout = self.timeout_ms if timeout_ms is None else timeout_ms
        start = self._clock()
        attempts = 0

        while True:
            await self._sleep(interval / 1000.0)
            attempts += 1
            remaining_ms = timeout - (self._clock() - start) * 1000.0

            if await self._evaluate(predicate, max(remaining_ms, interval)):
                logger.debug("ポーリング条件が成立しました（%d 回目）", attempts)
                return True

            elapsed_ms = (self._clock() - start) * 1000.0
            if elapsed_ms >= timeout:
                logger.debug(
                    "ポーリングがタイムアウトしました（%d 回, %.0fms 経過）",
                    attempts, elapsed_ms,
                )
                return False

    async def wait_until(
        self,
        predicate: Predicate,
        message: str,
        interval_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        """述語が真になるまで待機し、成立しなければ失敗させる。

        Raises:
            ConditionNotMetError: タイムアウトまでに述語が真にならなかった場合
        """
        if not await self.poll(predicate, interval_ms=interval_ms, timeout_ms=timeout_ms):
            timeout = self.timeout_ms if timeout_ms is None else timeout_ms
            raise ConditionNotMetError(f"{message}（{timeout}ms 待機）")

    async def _evaluate(self, predicate: Predicate, budget_ms: float) -> bool:
        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=budget_ms / 1000.0)
            return bool(result)
        except asyncio.TimeoutError:
            logger.debug("述語の評価が残り時間内に完了しませんでした")
            return False
        except Exception as exc:
            logger.debug("述語の評価中にエラー（再試行します）: %s", exc)
            return False


async def poll(
    predicate: Predicate,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> bool:
    """既定設定の PollingWaiter で述語をポーリングする。"""
    return await PollingWaiter().poll(predicate, interval_ms=interval_ms, timeout_ms=timeout_ms)
