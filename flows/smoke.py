"""
スモークシナリオ — アプリが読み込まれることの確認

使用例:
  e2eh run flows.smoke:scenario --registration-shared-secret dummy --windowed
"""

from __future__ import annotations

from e2eh.config import HarnessConfig
from e2eh.core.runner import SessionFactory


async def scenario(create_session: SessionFactory, config: HarnessConfig) -> None:
    alice = await create_session("alice")

    alice.log.step(f"opens {config.app_url}")
    await alice.goto(alice.url("/"))
    await alice.wait_no_spinner()
    alice.log.done()

    alice.log.step("waits for the document title")
    await alice.wait_until(alice.page.title, "document title never appeared")
    alice.log.done()
