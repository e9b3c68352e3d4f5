"""
StepLogger — セッションごとの進捗表示

シナリオがステップの開始と完了を報告するための簡易ロガー。
出力形式::

    * alice joins room "test" ... done
      * bob receives message "hi" from alice ... done

step() の内容は done() まで保留し、1 行まるごと 1 回の write で出力する。
複数セッションの出力が同じストリームに混在しても行が途中で分断されない。
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


class StepLogger:
    """セッション識別名付きのステップ/ステータス報告。

    Attributes:
        identity: セッションの識別名（ユーザー名）
    """

    def __init__(self, identity: str, stream: Optional[TextIO] = None) -> None:
        self.identity = identity
        self._stream = stream
        self._indent = 0
        self._muted = False
        self._pending: Optional[str] = None

    @property
    def stream(self) -> TextIO:
        """出力先ストリーム（未指定時は呼び出し時点の sys.stdout）。"""
        return self._stream if self._stream is not None else sys.stdout

    def start_group(self, description: str) -> StepLogger:
        """グループ見出しを出力し、以降の行を字下げする。"""
        self._flush_pending()
        self._write(f"{self._prefix()}{description}:\n")
        self._indent += 1
        return self

    def end_group(self) -> StepLogger:
        """グループを閉じる。"""
        self._flush_pending()
        self._indent = max(0, self._indent - 1)
        return self

    def step(self, description: str) -> StepLogger:
        """ステップの開始を記録する。行は done() で確定する。"""
        self._flush_pending()
        self._pending = f"{self._prefix()}{description} ... "
        logger.debug("%s: %s", self.identity, description)
        return self

    def done(self, status: str = "done") -> StepLogger:
        """直前のステップを status 付きで確定する。"""
        line = self._pending if self._pending is not None else self._prefix()
        self._pending = None
        self._write(f"{line}{status}\n")
        return self

    def log(self, message: str) -> StepLogger:
        """任意のメッセージを 1 行出力する。"""
        self._flush_pending()
        self._write(f"{self._prefix()}{message}\n")
        return self

    def mute(self) -> StepLogger:
        self._muted = True
        return self

    def unmute(self) -> StepLogger:
        self._muted = False
        return self

    # ----- 内部処理 -----

    def _prefix(self) -> str:
        return f"{'  ' * self._indent} * {self.identity} "

    def _flush_pending(self) -> None:
        # done() されないまま次の出力が来た場合は未完了として確定する
        if self._pending is not None:
            pending, self._pending = self._pending, None
            self._write(f"{pending}\n")

    def _write(self, text: str) -> None:
        if self._muted:
            return
        self.stream.write(text)
        self.stream.flush()
