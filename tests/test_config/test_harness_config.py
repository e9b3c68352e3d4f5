"""
Config テスト — ハーネス設定の単体テスト

環境変数からの設定読み込みと、Chromium 起動オプションへの変換を検証する。
"""

from __future__ import annotations

from pathlib import Path

from e2eh.config import (
    SLOW_MO_MS,
    HarnessConfig,
    LaunchOptions,
    _parse_bool,
    load_config_from_env,
)


# ---------------------------------------------------------------------------
# HarnessConfig デフォルト値のテスト
# ---------------------------------------------------------------------------

class TestHarnessConfigDefaults:
    """HarnessConfig のデフォルト値テスト。"""

    def test_default_urls(self):
        """デフォルトの URL がローカル環境を指すこと。"""
        config = HarnessConfig()
        assert config.app_url == "http://localhost:5000"
        assert config.service_url == "http://localhost:5005"

    def test_default_headless(self):
        """デフォルトでヘッドレス・サンドボックス有効であること。"""
        config = HarnessConfig()
        assert config.headless is True
        assert config.sandbox is True

    def test_default_timeouts(self):
        """待機は 20 秒、終了待ちは 30 秒であること。"""
        config = HarnessConfig()
        assert config.default_timeout_ms == 20_000
        assert config.close_timeout_ms == 30_000

    def test_no_inspection_pause_by_default(self):
        """デフォルトでは調査用待機をしないこと。"""
        assert HarnessConfig().inspection_pause_seconds == 0

    def test_default_performance_output(self):
        """計測エントリの出力先が performance-entries.json であること。"""
        assert HarnessConfig().performance_output == Path("performance-entries.json")


# ---------------------------------------------------------------------------
# 起動オプションのテスト
# ---------------------------------------------------------------------------

class TestLaunchOptions:
    """LaunchOptions / HarnessConfig.launch_options のテスト。"""

    def test_default_kwargs(self):
        """デフォルトではヘッドレスのみ指定されること。"""
        assert LaunchOptions().to_playwright_kwargs() == {"headless": True, "args": []}

    def test_no_sandbox_args(self):
        """サンドボックス無効時は Chromium にフラグを渡すこと。"""
        kwargs = LaunchOptions(sandbox=False).to_playwright_kwargs()
        assert "--no-sandbox" in kwargs["args"]
        assert "--disable-setuid-sandbox" in kwargs["args"]

    def test_dev_tools_arg(self):
        """DevTools 指定時はタブごとに自動で開くこと。"""
        kwargs = LaunchOptions(dev_tools=True).to_playwright_kwargs()
        assert kwargs["args"] == ["--auto-open-devtools-for-tabs"]

    def test_slow_mo_and_executable(self):
        """slow_mo と実行ファイルのパスが渡されること。"""
        kwargs = LaunchOptions(slow_mo=20, executable_path="/usr/bin/chromium").to_playwright_kwargs()
        assert kwargs["slow_mo"] == 20
        assert kwargs["executable_path"] == "/usr/bin/chromium"

    def test_config_to_launch_options(self):
        """設定値が起動オプションに反映されること。"""
        config = HarnessConfig(headless=False, slow_mo=True, chrome_path="/opt/chrome")
        options = config.launch_options()
        assert options.headless is False
        assert options.slow_mo == SLOW_MO_MS
        assert options.executable_path == "/opt/chrome"


# ---------------------------------------------------------------------------
# 環境変数からの読み込みテスト
# ---------------------------------------------------------------------------

class TestLoadConfigFromEnv:
    """load_config_from_env のテスト。"""

    def test_empty_env_uses_defaults(self):
        """環境変数が無ければデフォルト値を使用すること。"""
        assert load_config_from_env({}) == HarnessConfig()

    def test_reads_all_variables(self):
        """すべての環境変数が反映されること。"""
        env = {
            "E2EH_APP_URL": "http://app.test",
            "E2EH_SERVICE_URL": "http://hs.test",
            "E2EH_HEADLESS": "false",
            "E2EH_THROTTLE_CPU": "4",
            "E2EH_LOG_DIRECTORY": "/tmp/logs",
            "E2EH_DEFAULT_TIMEOUT_MS": "5000",
            "CHROME_PATH": "/usr/bin/chromium",
        }
        config = load_config_from_env(env)
        assert config.app_url == "http://app.test"
        assert config.service_url == "http://hs.test"
        assert config.headless is False
        assert config.throttle_cpu == 4.0
        assert config.log_directory == Path("/tmp/logs")
        assert config.default_timeout_ms == 5000
        assert config.chrome_path == "/usr/bin/chromium"

    def test_invalid_numbers_keep_defaults(self):
        """数値として解釈できない値はデフォルト値のままにすること。"""
        config = load_config_from_env({
            "E2EH_THROTTLE_CPU": "fast",
            "E2EH_DEFAULT_TIMEOUT_MS": "soon",
        })
        assert config.throttle_cpu == 1.0
        assert config.default_timeout_ms == 20_000

    def test_empty_chrome_path_is_ignored(self):
        """空の CHROME_PATH は無視すること。"""
        assert load_config_from_env({"CHROME_PATH": ""}).chrome_path is None

    def test_parse_bool(self):
        """true / 1 / yes（大文字小文字を問わない）のみ True であること。"""
        assert _parse_bool("TRUE") is True
        assert _parse_bool("1") is True
        assert _parse_bool("yes") is True
        assert _parse_bool("off") is False
