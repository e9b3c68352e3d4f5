"""
ポーリング待機のユニットテスト

sleep / clock には conftest の仮想時計を注入し、実時間を消費しない。

テスト対象:
  - PollingWaiter.poll: 成立・タイムアウト・述語の例外
  - PollingWaiter.wait_until: ConditionNotMetError
  - 停止した非同期述語の打ち切り
"""

from __future__ import annotations

import asyncio
import time

import pytest

from e2eh.core.errors import ConditionNotMetError, HarnessError
from e2eh.core.polling import PollingWaiter, poll


def _make_waiter(clock, timeout_ms: int = 20_000, interval_ms: int = 100) -> PollingWaiter:  # type: ignore[no-untyped-def]
    return PollingWaiter(timeout_ms, interval_ms, sleep=clock.sleep, clock=clock)


# ===========================================================================
# テスト: poll
# ===========================================================================

class TestPoll:
    """PollingWaiter.poll のテスト。"""

    async def test_true_on_fourth_interval(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """400ms 経過後に成立する述語では、約 400ms で True を返すこと。"""
        waiter = _make_waiter(fake_clock)

        result = await waiter.poll(lambda: fake_clock.now_ms >= 400)

        assert result is True
        assert fake_clock.now_ms == 400

    async def test_sleeps_before_first_evaluation(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """最初の評価の前に 1 間隔待機すること。"""
        waiter = _make_waiter(fake_clock)
        seen: list[int] = []

        def predicate() -> bool:
            seen.append(fake_clock.now_ms)
            return True

        assert await waiter.poll(predicate) is True
        assert seen == [100]

    async def test_never_true_returns_false_after_timeout(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """成立しない述語では、タイムアウト以上経過した時点で False を返すこと。"""
        waiter = _make_waiter(fake_clock, timeout_ms=1000)
        calls = 0

        def predicate() -> bool:
            nonlocal calls
            calls += 1
            return False

        result = await waiter.poll(predicate)

        assert result is False
        assert fake_clock.now_ms >= 1000
        assert fake_clock.now_ms < 1100
        assert calls == 10

    async def test_predicate_exceptions_are_not_propagated(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """述語の例外は「未成立」として扱い、以降の評価で成立すれば True を返すこと。"""
        waiter = _make_waiter(fake_clock)
        calls = 0

        def predicate() -> bool:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise RuntimeError("element detached")
            return True

        assert await waiter.poll(predicate) is True
        assert calls == 3

    async def test_always_raising_predicate_returns_false(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """常に例外を送出する述語でも、タイムアウトで False を返すこと。"""
        waiter = _make_waiter(fake_clock, timeout_ms=500)

        def predicate() -> bool:
            raise ValueError("boom")

        assert await waiter.poll(predicate) is False

    async def test_async_predicate(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """非同期の述語も評価できること。"""
        waiter = _make_waiter(fake_clock)

        async def predicate() -> bool:
            return fake_clock.now_ms >= 300

        assert await waiter.poll(predicate) is True
        assert fake_clock.now_ms == 300

    async def test_async_predicate_true_exactly_at_timeout(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """タイムアウト時刻ちょうどに成立する非同期述語でも True を返すこと。"""
        waiter = _make_waiter(fake_clock, timeout_ms=400)
        seen: list[int] = []

        async def predicate() -> bool:
            seen.append(fake_clock.now_ms)
            return fake_clock.now_ms >= 400

        assert await waiter.poll(predicate) is True
        assert seen == [100, 200, 300, 400]

    async def test_interval_equal_to_timeout_evaluates_once(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """間隔とタイムアウトが等しい場合も、非同期述語を 1 回評価すること。"""
        waiter = _make_waiter(fake_clock)
        calls = 0

        async def predicate() -> bool:
            nonlocal calls
            calls += 1
            return True

        assert await waiter.poll(predicate, interval_ms=500, timeout_ms=500) is True
        assert calls == 1

    async def test_interval_equal_to_timeout_with_real_clock(self) -> None:
        """実時計でも、最後の周回の非同期述語が評価されること。"""
        waiter = PollingWaiter()

        async def predicate() -> bool:
            return True

        assert await waiter.poll(predicate, interval_ms=50, timeout_ms=50) is True

    async def test_overrides_interval_and_timeout(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """呼び出し時の interval_ms / timeout_ms が既定値より優先されること。"""
        waiter = _make_waiter(fake_clock)

        result = await waiter.poll(lambda: False, interval_ms=50, timeout_ms=200)

        assert result is False
        assert fake_clock.sleeps == [0.05] * 4

    async def test_hanging_async_predicate_is_bounded(self) -> None:
        """完了しない非同期述語でも、タイムアウトを大きく超えずに False を返すこと。"""
        waiter = PollingWaiter(timeout_ms=200, interval_ms=20)

        started = time.monotonic()
        result = await waiter.poll(lambda: asyncio.sleep(10, result=True))
        elapsed = time.monotonic() - started

        assert result is False
        assert elapsed < 2.0

    async def test_module_level_poll(self) -> None:
        """モジュール関数 poll() でもポーリングできること。"""
        assert await poll(lambda: True, interval_ms=1, timeout_ms=100) is True


# ===========================================================================
# テスト: wait_until
# ===========================================================================

class TestWaitUntil:
    """PollingWaiter.wait_until のテスト。"""

    async def test_returns_when_condition_holds(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """条件が成立すれば例外を送出しないこと。"""
        waiter = _make_waiter(fake_clock)

        await waiter.wait_until(lambda: True, "never")

    async def test_raises_with_message(self, fake_clock) -> None:  # type: ignore[no-untyped-def]
        """成立しない場合は message を含む ConditionNotMetError を送出すること。"""
        waiter = _make_waiter(fake_clock, timeout_ms=300)

        with pytest.raises(ConditionNotMetError, match="room never appeared") as exc_info:
            await waiter.wait_until(lambda: False, "room never appeared")

        # assert 失敗と同じ扱いで報告されること
        assert isinstance(exc_info.value, AssertionError)
        assert isinstance(exc_info.value, HarnessError)
