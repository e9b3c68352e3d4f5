"""
タイムライン操作 — メッセージ受信の検証

ルームのタイムライン末尾に期待したメッセージが現れるまでポーリングし、
送信者・本文・暗号化状態を検証する。
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Optional

from ..core.errors import ConditionNotMetError

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle

    from ..core.session import ElementSession


LAST_EVENT_TILE_SELECTOR = ".mx_EventTile_last"
SENDER_SELECTOR = ".mx_DisambiguatedProfile_displayName"
BODY_SELECTOR = ".mx_EventTile_body"


@dataclass
class Message:
    """タイムライン上の 1 メッセージ。

    encrypted / continuation が None の場合、検証ではその項目を比較しない。
    """

    sender: Optional[str]
    body: str
    encrypted: Optional[bool] = None
    continuation: Optional[bool] = None


async def receive_message(session: ElementSession, expected: Message) -> None:
    """期待したメッセージがタイムライン末尾に現れるまで待機して検証する。

    Raises:
        ConditionNotMetError: メッセージが現れない、または内容が一致しない場合
    """
    session.log.step(f'receives message "{expected.body}" from {expected.sender}')
    last_message: Optional[Message] = None

    async def _is_expected_last() -> bool:
        nonlocal last_message
        last_message = await get_last_message(session)
        return (
            last_message is not None
            and last_message.body == expected.body
            and last_message.sender == expected.sender
        )

    await session.poll(_is_expected_last)
    assert_message(last_message, expected)
    session.log.done()


async def get_last_message(session: ElementSession) -> Optional[Message]:
    tile = await session.query(LAST_EVENT_TILE_SELECTOR)
    return await get_message_from_event_tile(tile)


async def get_message_from_event_tile(tile: ElementHandle) -> Optional[Message]:
    """イベントタイルからメッセージを読み取る。本文が無いタイルは None。"""
    sender_element = await tile.query_selector(SENDER_SELECTOR)
    class_name = await (await tile.get_property("className")).json_value()
    class_names = str(class_name).split(" ")
    body_element = await tile.query_selector(BODY_SELECTOR)

    sender = None
    if sender_element is not None:
        sender = await (await sender_element.get_property("innerText")).json_value()
    if body_element is None:
        return None
    body = await (await body_element.get_property("innerText")).json_value()

    return Message(
        sender=sender,
        body=body,
        encrypted="mx_EventTile_verified" in class_names,
        continuation="mx_EventTile_continuation" in class_names,
    )


def assert_message(found: Optional[Message], expected: Message) -> None:
    """found が expected と一致することを検証する。"""
    if found is None:
        raise ConditionNotMetError(
            f"message {json.dumps(asdict(expected), ensure_ascii=False)} not found in timeline"
        )
    if found.body != expected.body:
        raise ConditionNotMetError(f"本文が一致しません: {found.body!r} != {expected.body!r}")
    if found.sender != expected.sender:
        raise ConditionNotMetError(f"送信者が一致しません: {found.sender!r} != {expected.sender!r}")
    if expected.encrypted is not None and found.encrypted != expected.encrypted:
        raise ConditionNotMetError(
            f"暗号化状態が一致しません: {found.encrypted!r} != {expected.encrypted!r}"
        )
