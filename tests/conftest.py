"""Shared fixtures: an in-memory messaging platform that records every call."""

from typing import Awaitable, Callable, List, Optional, Tuple

import pytest

from channel.base import MessagingPlatform
from channel.models import IncomingMessage
from delivery.models import MessageKind


class RecordingPlatform(MessagingPlatform):
    """MessagingPlatform double; set ``fail_*`` to make a call raise."""

    name = "recording"

    def __init__(self):
        self.sent: List[dict] = []
        self.updates: List[dict] = []
        self.reactions: List[Tuple[str, str, str, str]] = []
        self.fail_send: Optional[Callable[[dict], bool]] = None
        self.fail_update = False
        self.fail_reaction = False
        self.started = False
        self.handler = None
        self._next_id = 100

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_to: Optional[str] = None,
        kind: MessageKind = MessageKind.TEXT,
        streaming: bool = False,
    ) -> str:
        call = {
            "chat_id": chat_id,
            "text": text,
            "reply_to": reply_to,
            "kind": kind,
            "streaming": streaming,
        }
        if self.fail_send and self.fail_send(call):
            raise RuntimeError("send failed")
        self._next_id += 1
        call["message_id"] = str(self._next_id)
        self.sent.append(call)
        return call["message_id"]

    async def update_message(
        self, chat_id: str, message_id: str, text: str, done: bool = True
    ) -> None:
        if self.fail_update:
            raise RuntimeError("update failed")
        self.updates.append(
            {"chat_id": chat_id, "message_id": message_id, "text": text, "done": done}
        )

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        if self.fail_reaction:
            raise RuntimeError("reaction failed")
        self.reactions.append(("add", chat_id, message_id, emoji))

    async def remove_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        if self.fail_reaction:
            raise RuntimeError("reaction failed")
        self.reactions.append(("remove", chat_id, message_id, emoji))

    def on_message(self, handler: Callable[[IncomingMessage], Awaitable[None]]) -> None:
        self.handler = handler

    @property
    def is_connected(self) -> bool:
        return self.started


@pytest.fixture
def platform():
    return RecordingPlatform()
