import logging
from typing import Optional, Callable, Awaitable

from delivery.models import MessageKind
from .base import MessagingPlatform
from .models import IncomingMessage
from .limiter import GlobalRateLimiter

logger = logging.getLogger(__name__)


class RateLimitedPlatform(MessagingPlatform):
    """
    A wrapper around MessagingPlatform that ensures outgoing messages
    are sent according to the global rate limit.
    """

    def __init__(
        self,
        platform: MessagingPlatform,
        rate_limit: int = 1,
        rate_window: float = 1.0,
    ):
        self._platform = platform
        self._limiter = GlobalRateLimiter(calls=rate_limit, period=rate_window)

        logger.info(
            f"RateLimitedPlatform initialized with {rate_limit} calls per {rate_window}s"
        )

    @property
    def name(self) -> str:
        return f"rate_limited_{self._platform.name}"

    async def start(self) -> None:
        self._limiter.start()
        await self._platform.start()

    async def stop(self) -> None:
        await self._limiter.stop()
        await self._platform.stop()

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_to: Optional[str] = None,
        kind: MessageKind = MessageKind.TEXT,
        streaming: bool = False,
    ) -> str:
        """Queues the message for sending."""

        async def _send():
            return await self._platform.send_message(
                chat_id, text, reply_to=reply_to, kind=kind, streaming=streaming
            )

        return await self._limiter.enqueue(_send)

    async def update_message(
        self,
        chat_id: str,
        message_id: str,
        text: str,
        done: bool = True,
    ) -> None:
        """Queues the edit; a newer edit of the same message replaces a queued one."""

        async def _edit():
            return await self._platform.update_message(
                chat_id, message_id, text, done=done
            )

        await self._limiter.enqueue(_edit, dedup_key=f"edit:{chat_id}:{message_id}")

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        async def _react():
            return await self._platform.add_reaction(chat_id, message_id, emoji)

        await self._limiter.enqueue(_react)

    async def remove_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        async def _unreact():
            return await self._platform.remove_reaction(chat_id, message_id, emoji)

        await self._limiter.enqueue(_unreact)

    def on_message(
        self,
        handler: Callable[[IncomingMessage], Awaitable[None]],
    ) -> None:
        self._platform.on_message(handler)

    @property
    def is_connected(self) -> bool:
        return self._platform.is_connected
