"""
エラー定義 — ハーネス共通の例外階層

待機系の失敗（要素が見つからない・条件が成立しない）は AssertionError の
サブクラスとして送出し、シナリオ側では通常のアサーション失敗として扱える。
"""

from __future__ import annotations


class HarnessError(Exception):
    """e2eh の全例外の基底クラス。"""


class ElementNotFoundError(HarnessError, AssertionError):
    """セレクタに一致する要素がタイムアウトまでに現れなかった。

    Attributes:
        selector: 待機したセレクタ
        timeout_ms: 待機時間（ミリ秒）
    """

    def __init__(self, selector: str, timeout_ms: int) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(
            f"要素 '{selector}' が {timeout_ms}ms 以内に見つかりませんでした"
        )


class ConditionNotMetError(HarnessError, AssertionError):
    """ポーリング条件がタイムアウトまでに成立しなかった。"""


class SessionClosedError(HarnessError):
    """close() 済みのセッションに対して操作が行われた。"""


class ScenarioLoadError(HarnessError):
    """MODULE:FUNCTION 形式のシナリオ指定を解決できなかった。"""
