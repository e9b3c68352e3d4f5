"""
DiagnosticsWriter — 失敗時の診断情報の保存

シナリオ失敗時に、セッションごとのディレクトリへ以下を書き出す:

  <log_dir>/<identity>/
    app.html         ページ HTML のスナップショット
    network.log      network ログ
    console.log      console ログ
    screenshot.png   フルページのスクリーンショット

セッションごとの書き出しは互いに独立しており、並行に実行される。
あるセッションの書き出しに失敗しても、他のセッションの書き出しは継続する。
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .session import ElementSession

logger = logging.getLogger(__name__)

CONSOLE_LOG_FILENAME = "console.log"
NETWORK_LOG_FILENAME = "network.log"
APP_HTML_FILENAME = "app.html"
SCREENSHOT_FILENAME = "screenshot.png"

_UNSAFE_CHARS = re.compile(r"[^\w\-.@]")
"""ディレクトリ名に使用できない文字を検出する正規表現。"""


@dataclass
class DiagnosticsWriter:
    """セッションごとの診断情報を書き出す。

    Attributes:
        log_dir: 出力先のベースディレクトリ
    """

    log_dir: Path

    async def write_all(self, sessions: Sequence[ElementSession]) -> dict[str, Path]:
        """全セッションの診断情報を並行に書き出す。

        Args:
            sessions: 対象セッション（生成順）

        Returns:
            書き出しに成功したセッションの 識別名 → ディレクトリ
        """
        self.log_dir.mkdir(parents=True, exist_ok=True)
        dir_names = _unique_dir_names([session.identity for session in sessions])
        results = await asyncio.gather(
            *(
                self._write_isolated(session, dir_name)
                for session, dir_name in zip(sessions, dir_names)
            )
        )
        return {
            session.identity: path
            for session, path in zip(sessions, results)
            if path is not None
        }

    async def write_session(
        self, session: ElementSession, dir_name: Optional[str] = None
    ) -> Path:
        """1 セッション分の診断情報を書き出す。

        ディレクトリが既に存在する場合は警告を出し、そのまま書き込む。

        Args:
            session: 対象セッション
            dir_name: 出力ディレクトリ名（省略時は識別名から生成）

        Returns:
            書き出し先ディレクトリ
        """
        session_dir = self.log_dir / (dir_name or _sanitize_identity(session.identity))
        try:
            session_dir.mkdir(parents=True)
        except FileExistsError as exc:
            logger.warning("ディレクトリの作成に失敗しました（続行します）: %s (%s)", session_dir, exc)

        await session.flush_logs()
        html = await session.page.content()
        (session_dir / APP_HTML_FILENAME).write_text(html, encoding="utf-8")
        (session_dir / NETWORK_LOG_FILENAME).write_text(session.network_logs(), encoding="utf-8")
        (session_dir / CONSOLE_LOG_FILENAME).write_text(session.console_logs(), encoding="utf-8")
        await session.page.screenshot(path=str(session_dir / SCREENSHOT_FILENAME), full_page=True)

        logger.info("診断情報を保存しました: %s", session_dir)
        return session_dir

    async def _write_isolated(
        self, session: ElementSession, dir_name: str
    ) -> Optional[Path]:
        try:
            return await self.write_session(session, dir_name)
        except Exception as exc:
            logger.warning(
                "診断情報の保存に失敗しました (%s): %s", session.identity, exc
            )
            return None


def _sanitize_identity(identity: str) -> str:
    """識別名をディレクトリ名に安全な文字列に変換する。

    英数字、ハイフン、アンダースコア、ドット、@ 以外をハイフンに置換し、
    連続するハイフンを 1 つにまとめる。
    """
    sanitized = _UNSAFE_CHARS.sub("-", identity)
    sanitized = re.sub(r"-+", "-", sanitized).strip("-")
    # "." / ".." は親ディレクトリ参照になるため置換する
    if sanitized in ("", ".", ".."):
        return "session"
    return sanitized


def _unique_dir_names(identities: Sequence[str]) -> list[str]:
    """識別名ごとに重複しないディレクトリ名を割り当てる。

    正規化後の名前が衝突した場合は、後のセッションに -2, -3 ... を付ける。
    """
    used: set[str] = set()
    names: list[str] = []
    for identity in identities:
        base = _sanitize_identity(identity)
        name = base
        suffix = 2
        while name in used:
            name = f"{base}-{suffix}"
            suffix += 1
        if name != base:
            logger.warning("ディレクトリ名が重複するため %s を使用します (%s)", name, identity)
        used.add(name)
        names.append(name)
    return names
