"""
パフォーマンス計測 — ページ側計測オブジェクトからのエントリ取得と集約

テスト対象ページが公開する window.mxPerformanceMonitor から、
登録済みの計測エントリ（登録・ログイン・ルーム参加など）を取得する。
取得はセッション終了時に 1 回だけ行う。

主な機能:
  - PerformanceEntry: 計測エントリの Pydantic モデル
  - extract_performance_entries(): Page からエントリを取得
  - aggregate_entries(): 複数セッションの結果を 1 つの配列に集約
  - write_performance_entries(): performance-entries.json への書き出し
"""

from __future__ import annotations

import enum
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

PERFORMANCE_ENTRIES_FILENAME = "performance-entries.json"


class PerformanceEntryName(str, enum.Enum):
    """ページ側 window.mxPerformanceEntryNames のキー。"""

    REGISTER = "REGISTER"
    LOGIN = "LOGIN"
    JOIN_ROOM = "JOIN_ROOM"
    CREATE_DM = "CREATE_DM"
    VERIFY_E2EE_USER = "VERIFY_E2EE_USER"


class PerformanceEntry(BaseModel):
    """ページが記録した名前付きの計測値。

    ページが返した未知のフィールド（detail 等）はそのまま保持する。
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="計測名")
    entryType: str = Field(default="measure", description="PerformanceEntry.entryType")
    startTime: float = Field(default=0.0, description="開始時刻（ミリ秒）")
    duration: float = Field(default=0.0, description="所要時間（ミリ秒）")
    identity: Optional[str] = Field(default=None, description="計測元セッションの識別名")


def _build_collect_script(names: Iterable[PerformanceEntryName]) -> str:
    entry_names = ",\n".join(
        f"            window.mxPerformanceEntryNames.{name.value}" for name in names
    )
    return f"""() => {{
    let measurements;
    // アプリ外へ遷移したセッションは計測対象外
    if (!window.mxPerformanceMonitor) return JSON.stringify([]);
    window.mxPerformanceMonitor.addPerformanceDataCallback({{
        entryNames: [
{entry_names}
        ],
        callback: (events) => {{
            measurements = JSON.stringify(events);
        }},
    }}, true);
    return measurements;
}}"""


COLLECT_SCRIPT = _build_collect_script(PerformanceEntryName)
"""計測エントリを JSON 文字列として返すページ内スクリプト。"""


async def extract_performance_entries(
    page: Page, identity: Optional[str] = None
) -> list[PerformanceEntry]:
    """Page から計測エントリを取得する。

    計測オブジェクトが存在しない場合（アプリ外へ遷移した等）は空リストを返す。

    Args:
        page: Playwright の Page オブジェクト
        identity: エントリに付与するセッション識別名

    Returns:
        計測エントリのリスト
    """
    raw = await page.evaluate(COLLECT_SCRIPT)
    if not raw:
        return []

    data = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(data, list):
        logger.warning("計測データの形式が不正です（%s）: %r", identity, data)
        return []

    entries = []
    for item in data:
        entry = PerformanceEntry.model_validate(item)
        entry.identity = identity
        entries.append(entry)
    logger.info("計測エントリを %d 件取得しました（%s）", len(entries), identity)
    return entries


def aggregate_entries(
    entry_sets: Iterable[list[PerformanceEntry]],
) -> list[PerformanceEntry]:
    """空でない計測セットを順に連結する。"""
    aggregated: list[PerformanceEntry] = []
    for entries in entry_sets:
        if entries:
            aggregated.extend(entries)
    return aggregated


def write_performance_entries(entries: list[PerformanceEntry], path: Path) -> Path:
    """計測エントリを JSON 配列として書き出す。

    Args:
        entries: 書き出すエントリ
        path: 出力先ファイル

    Returns:
        書き出したファイルのパス
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [entry.model_dump(mode="json") for entry in entries]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("計測エントリを保存しました: %s", path)
    return path
