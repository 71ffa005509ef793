"""Abstract messaging platform used by the delivery core."""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from delivery.models import MessageKind
from .models import IncomingMessage


class MessagingPlatform(ABC):
    """
    Transport contract for one messaging backend.

    Every call is atomic from the caller's point of view and raises on
    failure; the delivery core decides which failures are fatal.
    """

    name: str = "platform"

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin receiving messages."""

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and release resources."""

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_to: Optional[str] = None,
        kind: MessageKind = MessageKind.TEXT,
        streaming: bool = False,
    ) -> str:
        """
        Send a new message.

        Args:
            chat_id: Target chat
            text: Message content
            reply_to: Message id to reply to
            kind: Plain text or rich card rendering
            streaming: True when the message will be revised in place

        Returns:
            Handle (message id) of the created message
        """

    @abstractmethod
    async def update_message(
        self,
        chat_id: str,
        message_id: str,
        text: str,
        done: bool = True,
    ) -> None:
        """Replace the content of a message; ``done=False`` marks it as still streaming."""

    @abstractmethod
    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        """Put an emoji reaction on a message."""

    @abstractmethod
    async def remove_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        """Remove the bot's reaction from a message."""

    @abstractmethod
    def on_message(
        self,
        handler: Callable[[IncomingMessage], Awaitable[None]],
    ) -> None:
        """Register the inbound message callback."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the platform is connected."""
