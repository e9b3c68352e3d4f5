"""
ElementSession — 1 ブラウザ・1 ページのテストセッション

テスト対象ページとのやり取りを一元化し、待機付きの要素取得・操作、
console / network ログの収集、ステップロガーを提供する。

主な機能:
  - create(): Chromium 起動、Page 生成、ビューポート設定、CPU スロットリング
  - query() / query_all(): タイムアウト付きの要素待機
  - replace_input_text(): 入力欄のテキスト置換
  - wait_no_spinner(): ローディング表示の消失待機
  - poll(): セッション既定タイムアウトでのポーリング
  - close(): ブラウザの終了（2 回目以降は何もしない）
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Any, Optional

from .errors import ConditionNotMetError, ElementNotFoundError, SessionClosedError
from .logbuffer import LogBuffer, format_console_message, format_request
from .logger import StepLogger
from .performance import PerformanceEntry, extract_performance_entries
from .polling import DEFAULT_INTERVAL_MS, DEFAULT_TIMEOUT_MS, Predicate, PollingWaiter

if TYPE_CHECKING:
    from playwright.async_api import (
        Browser,
        ConsoleMessage,
        ElementHandle,
        Page,
        Playwright,
        Request,
        Response,
    )

    from ..config import LaunchOptions

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 800}
SETTLE_DELAY_MS = 300
SPINNER_SELECTOR = ".mx_Spinner"
DEFAULT_CLOSE_TIMEOUT_MS = 30_000


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """セッションの状態。"""

    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# ElementSession 本体
# ---------------------------------------------------------------------------

class ElementSession:
    """1 つのブラウザ識別（ユーザー）に対応するテストセッション。

    ブラウザプロセスと Page はセッションが排他的に所有する。
    console_log / network_log は生成時点で Page に接続済み。

    Attributes:
        identity: セッションの識別名（ユーザー名）
        app_url: テスト対象アプリのベース URL
        service_url: バックエンド（ホームサーバー）のベース URL
        console_log: console イベントのトランスクリプト
        network_log: requestfinished イベントのトランスクリプト
        log: ステップロガー
    """

    def __init__(
        self,
        playwright: Optional[Playwright],
        browser: Browser,
        page: Page,
        identity: str,
        app_url: str,
        service_url: str,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        close_timeout_ms: int = DEFAULT_CLOSE_TIMEOUT_MS,
        type_delay_ms: int = 0,
        waiter: Optional[PollingWaiter] = None,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._state = SessionState.ACTIVE
        self.identity = identity
        self.app_url = app_url
        self.service_url = service_url
        self.default_timeout_ms = default_timeout_ms
        self.close_timeout_ms = close_timeout_ms
        self.type_delay_ms = type_delay_ms
        self._waiter = waiter or PollingWaiter(timeout_ms=default_timeout_ms)

        self.console_log: LogBuffer[ConsoleMessage] = LogBuffer(
            page, "console", format_console_message
        )
        self.network_log: LogBuffer[Request] = LogBuffer(
            page, "requestfinished", format_request
        )
        self.log = StepLogger(identity)

    # -------------------------------------------------------------------
    # 生成
    # -------------------------------------------------------------------

    @classmethod
    async def create(
        cls,
        identity: str,
        launch_options: LaunchOptions,
        app_url: str,
        service_url: str,
        throttle_cpu_factor: float = 1.0,
        **kwargs: Any,
    ) -> ElementSession:
        """ブラウザを起動し、ログ収集を開始したセッションを返す。

        Args:
            identity: セッションの識別名
            launch_options: Chromium 起動オプション
            app_url: テスト対象アプリのベース URL
            service_url: バックエンドのベース URL
            throttle_cpu_factor: CPU スロットリング倍率（1.0 で無効）
            **kwargs: ElementSession コンストラクタへの追加引数

        Raises:
            Exception: ブラウザ起動またはスロットリング設定に失敗した場合
        """
        from playwright.async_api import async_playwright

        logger.info("ブラウザを起動しています... (%s)", identity)
        pw = await async_playwright().start()
        browser = None
        try:
            browser = await pw.chromium.launch(**launch_options.to_playwright_kwargs())
            page = await browser.new_page()
            await page.set_viewport_size(VIEWPORT)
            if throttle_cpu_factor != 1:
                logger.info("CPU を %s 倍にスロットリングします", throttle_cpu_factor)
                client = await page.context.new_cdp_session(page)
                await client.send(
                    "Emulation.setCPUThrottlingRate", {"rate": throttle_cpu_factor}
                )
        except Exception:
            logger.exception("セッションの生成に失敗しました (%s)", identity)
            if browser is not None:
                await browser.close()
            await pw.stop()
            raise

        if launch_options.slow_mo:
            kwargs.setdefault("type_delay_ms", launch_options.slow_mo)
        session = cls(pw, browser, page, identity, app_url, service_url, **kwargs)
        logger.info("セッションを生成しました (%s)", identity)
        return session

    # -------------------------------------------------------------------
    # 状態
    # -------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """現在のセッション状態を返す。"""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.ACTIVE

    @property
    def browser(self) -> Browser:
        self._require_active()
        return self._browser

    @property
    def page(self) -> Page:
        """セッションの Page。close() 後は SessionClosedError。"""
        self._require_active()
        return self._page

    def _require_active(self) -> None:
        if self._state != SessionState.ACTIVE:
            raise SessionClosedError(
                f"セッション '{self.identity}' は既に終了しています"
            )

    # -------------------------------------------------------------------
    # ログ
    # -------------------------------------------------------------------

    def console_logs(self) -> str:
        return self.console_log.contents()

    def network_logs(self) -> str:
        return self.network_log.contents()

    async def flush_logs(self) -> None:
        """整形中のログ行をすべて確定させる。"""
        await asyncio.gather(self.console_log.flush(), self.network_log.flush())

    # -------------------------------------------------------------------
    # 要素取得
    # -------------------------------------------------------------------

    async def query(
        self,
        selector: str,
        timeout_ms: Optional[int] = None,
        allow_hidden: bool = False,
    ) -> ElementHandle:
        """selector に一致する要素が表示されるまで待機して返す。

        Args:
            selector: CSS セレクタ
            timeout_ms: タイムアウト（ミリ秒、省略時はセッション既定値）
            allow_hidden: True の場合は非表示の要素も受け付ける

        Raises:
            ElementNotFoundError: タイムアウトまでに要素が現れなかった場合
        """
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        state = "attached" if allow_hidden else "visible"
        try:
            handle = await self.page.wait_for_selector(selector, state=state, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFoundError(selector, timeout) from exc
        if handle is None:
            raise ElementNotFoundError(selector, timeout)
        return handle

    async def query_without_waiting(self, selector: str) -> Optional[ElementHandle]:
        return await self.page.query_selector(selector)

    async def query_all(
        self, selector: str, timeout_ms: Optional[int] = None
    ) -> list[ElementHandle]:
        """少なくとも 1 件一致するまで待機し、その時点の全一致要素を返す。

        待機がタイムアウトした場合は ElementNotFoundError を送出する。
        空リストは、待機後に要素が消えた場合にのみ返る。
        """
        await self.query(selector, timeout_ms)
        return await self.page.query_selector_all(selector)

    async def try_get_inner_text(self, selector: str) -> Optional[str]:
        """要素があれば innerText を、無ければ None を返す（待機しない）。"""
        field = await self.page.query_selector(selector)
        if field is None:
            return None
        return await self.inner_text(field)

    async def get_element_property(self, handle: ElementHandle, prop: str) -> Any:
        prop_handle = await handle.get_property(prop)
        return await prop_handle.json_value()

    async def inner_text(self, handle: ElementHandle) -> str:
        return await self.get_element_property(handle, "innerText")

    async def is_checked(self, handle: ElementHandle) -> bool:
        return await self.get_element_property(handle, "checked")

    # -------------------------------------------------------------------
    # 操作・待機
    # -------------------------------------------------------------------

    async def replace_input_text(self, handle: ElementHandle, text: str) -> None:
        """入力欄のテキストを text で置き換える。

        トリプルクリックで全選択した直後は、フィールドラベルのアニメーションの
        影響で選択が完了していないことがあるため、固定時間待ってから削除する。
        この待機はフレーク対策であり、正しさを保証するものではない。
        """
        await handle.click(click_count=3)
        await self.delay(SETTLE_DELAY_MS)
        await handle.press("Backspace")
        await handle.type(text, delay=self.type_delay_ms)

    async def wait_no_spinner(self, timeout_ms: Optional[int] = None) -> None:
        """ローディング表示が消えるまで待機する。

        Raises:
            ConditionNotMetError: タイムアウトまでに消えなかった場合
        """
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        try:
            await self.page.wait_for_selector(SPINNER_SELECTOR, state="hidden", timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise ConditionNotMetError(
                f"ローディング表示が {timeout}ms 以内に消えませんでした"
            ) from exc

    async def poll(self, callback: Predicate, interval_ms: int = DEFAULT_INTERVAL_MS) -> bool:
        """セッション既定のタイムアウトで callback をポーリングする。"""
        self._require_active()
        return await self._waiter.poll(callback, interval_ms=interval_ms)

    async def wait_until(
        self, callback: Predicate, message: str, interval_ms: int = DEFAULT_INTERVAL_MS
    ) -> None:
        """poll() が False の場合に message 付きで ConditionNotMetError を送出する。"""
        self._require_active()
        await self._waiter.wait_until(callback, message, interval_ms=interval_ms)

    async def goto(self, url: str) -> Optional[Response]:
        return await self.page.goto(url)

    def url(self, path: str) -> str:
        """アプリのベース URL に path を連結する。"""
        return self.app_url + path

    async def delay(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000.0)

    # -------------------------------------------------------------------
    # 計測・終了
    # -------------------------------------------------------------------

    async def collect_performance_entries(self) -> list[PerformanceEntry]:
        """ページ側の計測エントリを取得する（計測オブジェクトが無ければ空）。"""
        return await extract_performance_entries(self.page, self.identity)

    async def close(self) -> None:
        """ブラウザを終了する。

        2 回目以降の呼び出しは何もしない。ブラウザの終了が close_timeout_ms
        以内に完了しない場合は警告を出して Playwright ドライバを停止する。
        """
        if self._state != SessionState.ACTIVE:
            logger.debug("セッション '%s' は既に終了しています", self.identity)
            return

        self._state = SessionState.CLOSING
        logger.info("ブラウザを終了しています... (%s)", self.identity)
        try:
            await asyncio.wait_for(
                self._browser.close(), timeout=self.close_timeout_ms / 1000.0
            )
        except asyncio.TimeoutError:
            logger.warning(
                "ブラウザが %dms 以内に終了しませんでした (%s)",
                self.close_timeout_ms, self.identity,
            )
        finally:
            try:
                if self._playwright is not None:
                    await self._playwright.stop()
            finally:
                self._state = SessionState.CLOSED
                logger.info("ブラウザを終了しました (%s)", self.identity)
