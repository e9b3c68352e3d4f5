"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

e2eh コマンドとして以下のサブコマンドを提供する:
  - run: シナリオ実行（MODULE:FUNCTION 形式で指定）

プロセス終了コードと、ウィンドウ表示時の調査用待機の有効化はここで決める。
"""

from __future__ import annotations

import importlib
import inspect
import logging
from pathlib import Path
from typing import Optional

import typer

from .core.errors import ScenarioLoadError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "e2eh — ブラウザ E2E テストハーネス\n\n"
        "使い方:\n"
        "  e2eh run my_tests.scenario:scenario --registration-shared-secret XXX\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="デバッグログを表示する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s - %(message)s",
    )


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    scenario: str = typer.Argument(..., help="実行するシナリオ（MODULE:FUNCTION）"),
    registration_shared_secret: str = typer.Option(
        ..., "--registration-shared-secret", help="ユーザー登録に使用する共有シークレット",
    ),
    app_url: Optional[str] = typer.Option(None, "--app-url", help="テスト対象の URL"),
    service_url: Optional[str] = typer.Option(
        None, "--service-url", help="バックエンド（ホームサーバー）の URL",
    ),
    windowed: bool = typer.Option(False, "--windowed", help="ヘッドレスではなくウィンドウ表示で実行する"),
    slow_mo: bool = typer.Option(False, "--slow-mo", help="人の速度で入力する"),
    dev_tools: bool = typer.Option(False, "--dev-tools", help="ブラウザの DevTools を開く"),
    throttle_cpu: Optional[float] = typer.Option(
        None, "--throttle-cpu", help="CPU を遅くする倍率（1.0 で無効）",
    ),
    sandbox: Optional[bool] = typer.Option(
        None, "--sandbox/--no-sandbox", help="Chromium のサンドボックスを有効にする",
    ),
    log_directory: Optional[Path] = typer.Option(
        None, "--log-directory", help="失敗時に HTML とログを保存するディレクトリ",
    ),
    performance_output: Optional[Path] = typer.Option(
        None, "--performance-output", help="計測エントリの出力先",
    ),
) -> None:
    """シナリオを実行する。失敗時は終了コード 1 を返す。"""
    import asyncio

    from .config import INSPECTION_PAUSE_SECONDS, load_config_from_env
    from .core.runner import ScenarioRunner

    try:
        scenario_fn = load_scenario(scenario)
    except ScenarioLoadError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    # 環境変数 → CLI 引数の順で設定を構築
    config = load_config_from_env()
    config.registration_shared_secret = registration_shared_secret
    if app_url is not None:
        config.app_url = app_url
    if service_url is not None:
        config.service_url = service_url
    if windowed:
        config.headless = False
    if slow_mo:
        config.slow_mo = True
    if dev_tools:
        config.dev_tools = True
    if throttle_cpu is not None:
        config.throttle_cpu = throttle_cpu
    if sandbox is not None:
        config.sandbox = sandbox
    if log_directory is not None:
        config.log_directory = log_directory
    if performance_output is not None:
        config.performance_output = performance_output
    if not config.headless:
        config.inspection_pause_seconds = INSPECTION_PAUSE_SECONDS

    runner = ScenarioRunner(config)
    outcome = asyncio.run(runner.run(scenario_fn))

    if outcome.performance_path is not None:
        typer.echo(f"計測エントリ: {outcome.performance_path}")
    for identity, path in outcome.diagnostics_dirs.items():
        typer.echo(f"診断情報 ({identity}): {path}")

    if not outcome.succeeded:
        typer.echo(f"失敗: {outcome.error!r}", err=True)
        raise typer.Exit(code=outcome.exit_code)
    typer.echo("すべてのテストが正常に終了しました")


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def load_scenario(spec: str):  # type: ignore[no-untyped-def]
    """MODULE:FUNCTION 形式の指定からシナリオ関数を読み込む。

    Args:
        spec: "package.module:function" 形式の文字列

    Returns:
        シナリオ関数（非同期関数）

    Raises:
        ScenarioLoadError: 形式不正、モジュール/関数が見つからない、
            または非同期関数でない場合
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ScenarioLoadError(f"シナリオは MODULE:FUNCTION 形式で指定してください: {spec}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ScenarioLoadError(f"モジュールを読み込めません: {module_name} ({exc})") from exc

    scenario_fn = getattr(module, attr, None)
    if scenario_fn is None:
        raise ScenarioLoadError(f"{module_name} に {attr} がありません")
    if not inspect.iscoroutinefunction(scenario_fn):
        raise ScenarioLoadError(f"{spec} は async 関数ではありません")
    return scenario_fn
