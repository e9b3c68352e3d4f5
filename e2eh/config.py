"""
ハーネス設定 — 環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  E2EH_APP_URL            : テスト対象アプリの URL（デフォルト: http://localhost:5000）
  E2EH_SERVICE_URL        : バックエンド（ホームサーバー）の URL（デフォルト: http://localhost:5005）
  E2EH_HEADLESS           : ヘッドレス実行（true/false, デフォルト: true）
  E2EH_THROTTLE_CPU       : CPU スロットリング倍率（デフォルト: 1.0）
  E2EH_LOG_DIRECTORY      : 失敗時の診断情報の出力先（デフォルト: なし）
  E2EH_DEFAULT_TIMEOUT_MS : 待機系操作の既定タイムアウト（デフォルト: 20000）
  CHROME_PATH             : 外部 Chrome / Chromium 実行ファイルのパス
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .core.performance import PERFORMANCE_ENTRIES_FILENAME

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_APP_URL = "E2EH_APP_URL"
_ENV_SERVICE_URL = "E2EH_SERVICE_URL"
_ENV_HEADLESS = "E2EH_HEADLESS"
_ENV_THROTTLE_CPU = "E2EH_THROTTLE_CPU"
_ENV_LOG_DIRECTORY = "E2EH_LOG_DIRECTORY"
_ENV_DEFAULT_TIMEOUT_MS = "E2EH_DEFAULT_TIMEOUT_MS"
_ENV_CHROME_PATH = "CHROME_PATH"

SLOW_MO_MS = 20
"""--slow-mo 指定時の操作間遅延（ミリ秒）。"""

INSPECTION_PAUSE_SECONDS = 5 * 60
"""ウィンドウ表示で失敗した場合に調査のため待機する時間（秒）。"""


# ---------------------------------------------------------------------------
# ブラウザ起動オプション
# ---------------------------------------------------------------------------

@dataclass
class LaunchOptions:
    """Chromium 起動オプション。

    Attributes:
        headless: ヘッドレスで起動するか
        slow_mo: 各操作間の遅延（ミリ秒、0 で無効）
        dev_tools: DevTools をタブごとに自動で開くか
        sandbox: サンドボックスを有効にするか
        executable_path: 外部 Chromium 実行ファイル
        args: 追加のコマンドライン引数
    """

    headless: bool = True
    slow_mo: int = 0
    dev_tools: bool = False
    sandbox: bool = True
    executable_path: Optional[str] = None
    args: list[str] = field(default_factory=list)

    def to_playwright_kwargs(self) -> dict[str, Any]:
        """playwright の chromium.launch() に渡すキーワード引数に変換する。"""
        args = list(self.args)
        if not self.sandbox:
            args.extend(["--no-sandbox", "--disable-setuid-sandbox"])
        if self.dev_tools:
            args.append("--auto-open-devtools-for-tabs")

        kwargs: dict[str, Any] = {"headless": self.headless, "args": args}
        if self.slow_mo:
            kwargs["slow_mo"] = self.slow_mo
        if self.executable_path:
            kwargs["executable_path"] = self.executable_path
        return kwargs


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class HarnessConfig:
    """ハーネスの実行時設定。

    Attributes:
        app_url: テスト対象アプリの URL
        service_url: バックエンド（ホームサーバー）の URL
        headless: ヘッドレス実行か（False でウィンドウ表示）
        slow_mo: 人の速度で入力するか
        dev_tools: DevTools を開くか
        sandbox: Chromium のサンドボックスを有効にするか
        throttle_cpu: CPU スロットリング倍率（1.0 で無効）
        log_directory: 失敗時の診断情報の出力先（None で出力しない）
        registration_shared_secret: ユーザー登録用の共有シークレット
        chrome_path: 外部 Chromium 実行ファイル
        default_timeout_ms: 待機系操作の既定タイムアウト
        close_timeout_ms: セッション終了待ちのタイムアウト
        inspection_pause_seconds: 失敗時の調査用待機時間（ウィンドウ表示時のみ）
        performance_output: 計測エントリの出力先
    """

    app_url: str = "http://localhost:5000"
    service_url: str = "http://localhost:5005"
    headless: bool = True
    slow_mo: bool = False
    dev_tools: bool = False
    sandbox: bool = True
    throttle_cpu: float = 1.0
    log_directory: Optional[Path] = None
    registration_shared_secret: Optional[str] = None
    chrome_path: Optional[str] = None
    default_timeout_ms: int = 20_000
    close_timeout_ms: int = 30_000
    inspection_pause_seconds: float = 0.0
    performance_output: Path = field(
        default_factory=lambda: Path(PERFORMANCE_ENTRIES_FILENAME)
    )

    def launch_options(self) -> LaunchOptions:
        """設定から Chromium 起動オプションを生成する。"""
        return LaunchOptions(
            headless=self.headless,
            slow_mo=SLOW_MO_MS if self.slow_mo else 0,
            dev_tools=self.dev_tools,
            sandbox=self.sandbox,
            executable_path=self.chrome_path,
        )


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    """文字列を bool に変換する（"true", "1", "yes" → True）。"""
    return value.lower() in ("true", "1", "yes")


def load_config_from_env(environ: Optional[dict[str, str]] = None) -> HarnessConfig:
    """環境変数から HarnessConfig を生成する。

    設定されていない環境変数はデフォルト値を使用する。

    Args:
        environ: 参照する環境変数（省略時は os.environ）

    Returns:
        環境変数から読み込んだ設定
    """
    env = os.environ if environ is None else environ
    config = HarnessConfig()

    if _ENV_APP_URL in env:
        config.app_url = env[_ENV_APP_URL]

    if _ENV_SERVICE_URL in env:
        config.service_url = env[_ENV_SERVICE_URL]

    if _ENV_HEADLESS in env:
        config.headless = _parse_bool(env[_ENV_HEADLESS])

    if _ENV_THROTTLE_CPU in env:
        try:
            config.throttle_cpu = float(env[_ENV_THROTTLE_CPU])
        except ValueError:
            logger.warning("%s の値が不正です: %s", _ENV_THROTTLE_CPU, env[_ENV_THROTTLE_CPU])

    if _ENV_LOG_DIRECTORY in env:
        config.log_directory = Path(env[_ENV_LOG_DIRECTORY])

    if _ENV_DEFAULT_TIMEOUT_MS in env:
        try:
            config.default_timeout_ms = int(env[_ENV_DEFAULT_TIMEOUT_MS])
        except ValueError:
            logger.warning(
                "%s の値が不正です: %s", _ENV_DEFAULT_TIMEOUT_MS, env[_ENV_DEFAULT_TIMEOUT_MS]
            )

    if env.get(_ENV_CHROME_PATH):
        config.chrome_path = env[_ENV_CHROME_PATH]
        logger.info(
            "外部 Chrome/Chromium を使用します: %s（Playwright との互換性に注意）",
            config.chrome_path,
        )

    return config
