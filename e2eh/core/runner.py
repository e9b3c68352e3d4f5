"""
ScenarioRunner — シナリオ実行と後処理

シナリオ関数に セッション生成関数 を渡して実行し、結果に応じて
診断情報の保存・計測エントリの集約・セッションの終了を行う。

主な機能:
  - RunnerState: IDLE → RUNNING → SUCCEEDED / FAILED
  - ScenarioOutcome: 実行結果（プロセス終了コードの判断材料）
  - ScenarioRunner: シナリオ実行エンジン本体

実行順序:
  1. シナリオ本体の実行（セッションはシナリオが必要に応じて生成）
  2. 失敗時: ログディレクトリが設定されていれば全セッションの診断情報を保存
  3. 失敗時かつウィンドウ表示時: 調査用に一定時間待機
  4. 全セッションを並行に「計測エントリ取得 → 終了」
  5. 計測エントリがあれば performance-entries.json に保存

Runner 自身はプロセスを終了しない。終了コードは呼び出し側が決める。
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Optional

from .diagnostics import DiagnosticsWriter
from .performance import PerformanceEntry, aggregate_entries, write_performance_entries
from .session import ElementSession

if TYPE_CHECKING:
    from ..config import HarnessConfig

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], Awaitable[ElementSession]]
Scenario = Callable[[SessionFactory, "HarnessConfig"], Awaitable[Any]]


# ---------------------------------------------------------------------------
# 状態・結果
# ---------------------------------------------------------------------------

class RunnerState(enum.Enum):
    """ScenarioRunner の状態。"""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ScenarioOutcome:
    """シナリオの実行結果。

    Attributes:
        status: 全体結果（succeeded / failed）
        error: シナリオが送出した例外（失敗時のみ）
        identities: 生成されたセッションの識別名（生成順）
        diagnostics_dirs: 診断情報を保存したディレクトリ（識別名 → パス）
        performance_entries: 集約済みの計測エントリ
        performance_path: 計測エントリの保存先（保存しなかった場合は None）
        duration_ms: 全体実行時間（ミリ秒）
        started_at: 実行開始日時
        finished_at: 実行終了日時
    """

    status: Literal["succeeded", "failed"] = "succeeded"
    error: Optional[BaseException] = None
    identities: list[str] = field(default_factory=list)
    diagnostics_dirs: dict[str, Path] = field(default_factory=dict)
    performance_entries: list[PerformanceEntry] = field(default_factory=list)
    performance_path: Optional[Path] = None
    duration_ms: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


# ---------------------------------------------------------------------------
# ScenarioRunner 本体
# ---------------------------------------------------------------------------

class ScenarioRunner:
    """1 回分のシナリオ実行を管理する。

    使用例::

        runner = ScenarioRunner(config)
        outcome = await runner.run(scenario)
    """

    def __init__(
        self,
        config: HarnessConfig,
        session_factory: Optional[SessionFactory] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """ScenarioRunner を初期化する。

        Args:
            config: ハーネス設定
            session_factory: セッション生成関数（省略時は Chromium を起動する）
            sleep: 調査用待機に使用する sleep 関数
        """
        self._config = config
        self._factory = session_factory or self._launch_session
        self._sleep = sleep
        self._sessions: list[ElementSession] = []
        self._state = RunnerState.IDLE

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def sessions(self) -> list[ElementSession]:
        """これまでに生成されたセッション（生成順）。"""
        return list(self._sessions)

    # -------------------------------------------------------------------
    # セッション生成
    # -------------------------------------------------------------------

    async def create_session(self, identity: str) -> ElementSession:
        """セッションを生成し、後処理の対象として登録する。"""
        session = await self._factory(identity)
        self._sessions.append(session)
        return session

    async def _launch_session(self, identity: str) -> ElementSession:
        config = self._config
        return await ElementSession.create(
            identity,
            config.launch_options(),
            config.app_url,
            config.service_url,
            config.throttle_cpu,
            default_timeout_ms=config.default_timeout_ms,
            close_timeout_ms=config.close_timeout_ms,
        )

    # -------------------------------------------------------------------
    # 実行
    # -------------------------------------------------------------------

    async def run(self, scenario: Scenario) -> ScenarioOutcome:
        """シナリオを実行し、後処理まで行って結果を返す。

        Args:
            scenario: (create_session, config) を受け取る非同期関数

        Returns:
            シナリオの実行結果

        Raises:
            RuntimeError: 同じ Runner で 2 回実行しようとした場合
            BaseException: シナリオまたは調査用待機が中断された場合
                （全セッションを終了してから再送出する）
        """
        if self._state != RunnerState.IDLE:
            raise RuntimeError("ScenarioRunner は 1 回しか実行できません")

        self._state = RunnerState.RUNNING
        outcome = ScenarioOutcome(started_at=datetime.now())
        start_time = time.perf_counter()

        interrupted = True
        try:
            try:
                await scenario(self.create_session, self._config)
                self._state = RunnerState.SUCCEEDED
            except Exception as exc:
                self._state = RunnerState.FAILED
                outcome.status = "failed"
                outcome.error = exc
                logger.error("シナリオが失敗しました: %r", exc, exc_info=exc)
                if self._config.log_directory is not None:
                    writer = DiagnosticsWriter(Path(self._config.log_directory))
                    outcome.diagnostics_dirs = await writer.write_all(self._sessions)

            outcome.identities = [s.identity for s in self._sessions]
            await self._pause_for_inspection(outcome)
            interrupted = False
        finally:
            if interrupted:
                # CancelledError / KeyboardInterrupt でもブラウザを残さない
                self._state = RunnerState.FAILED
                outcome.status = "failed"
                outcome.identities = [s.identity for s in self._sessions]
                logger.warning("シナリオが中断されました。セッションを終了します")
            await self._teardown(outcome)
            outcome.finished_at = datetime.now()
            outcome.duration_ms = (time.perf_counter() - start_time) * 1000
        return outcome

    # -------------------------------------------------------------------
    # 後処理
    # -------------------------------------------------------------------

    async def _teardown(self, outcome: ScenarioOutcome) -> None:
        """全セッションを並行に「計測エントリ取得 → 終了」し、エントリを保存する。"""
        entry_sets = await asyncio.gather(
            *(self._collect_and_close(session) for session in self._sessions)
        )
        entries = aggregate_entries(entry_sets)
        if entries:
            outcome.performance_entries = entries
            outcome.performance_path = write_performance_entries(
                entries, self._config.performance_output
            )

    async def _pause_for_inspection(self, outcome: ScenarioOutcome) -> None:
        """失敗時、ウィンドウ表示であればブラウザを閉じる前に待機する。"""
        pause = self._config.inspection_pause_seconds
        if outcome.succeeded or self._config.headless or pause <= 0:
            return
        logger.warning("調査のため %.0f 秒待機してからブラウザを閉じます", pause)
        await self._sleep(pause)

    async def _collect_and_close(self, session: ElementSession) -> list[PerformanceEntry]:
        """計測エントリを取得してからセッションを終了する。"""
        entries: list[PerformanceEntry] = []
        try:
            entries = await session.collect_performance_entries()
        except Exception as exc:
            logger.warning("計測エントリの取得に失敗しました (%s): %s", session.identity, exc)

        try:
            await session.close()
        except Exception as exc:
            logger.warning("セッションの終了に失敗しました (%s): %s", session.identity, exc)
        return entries
