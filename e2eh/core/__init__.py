# コアモジュール
# セッション、ログバッファ、ポーリング待機、診断情報保存、計測エントリ集約、Runner を提供

from .diagnostics import DiagnosticsWriter
from .errors import (
    ConditionNotMetError,
    ElementNotFoundError,
    HarnessError,
    ScenarioLoadError,
    SessionClosedError,
)
from .logbuffer import LogBuffer, format_console_message, format_request
from .logger import StepLogger
from .performance import PerformanceEntry, aggregate_entries, write_performance_entries
from .polling import PollingWaiter, poll
from .runner import RunnerState, ScenarioOutcome, ScenarioRunner
from .session import ElementSession, SessionState

__all__ = [
    "ConditionNotMetError",
    "DiagnosticsWriter",
    "ElementNotFoundError",
    "ElementSession",
    "HarnessError",
    "LogBuffer",
    "PerformanceEntry",
    "PollingWaiter",
    "RunnerState",
    "ScenarioLoadError",
    "ScenarioOutcome",
    "ScenarioRunner",
    "SessionClosedError",
    "SessionState",
    "StepLogger",
    "aggregate_entries",
    "format_console_message",
    "format_request",
    "poll",
    "write_performance_entries",
]
