# シナリオから利用する操作・検証ヘルパー

from .timeline import Message, receive_message

__all__ = [
    "Message",
    "receive_message",
]
