"""
Typing indicator coordinator.

Telegram bots cannot show a persistent "typing" status, so an emoji reaction
on the inbound message stands in for it while a reply is being produced.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .models import TypingState

if TYPE_CHECKING:
    from channel.base import MessagingPlatform

logger = logging.getLogger(__name__)


class TypingPhase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


_TRANSITIONS = {
    (TypingPhase.IDLE, "start"): TypingPhase.ACTIVE,
    (TypingPhase.ACTIVE, "stop"): TypingPhase.IDLE,
}


class TypingIndicatorCoordinator:
    """
    Owns at most one typing indicator for one reply context.

    ``start`` and ``stop`` are idempotent and serialised, so they may be called
    from both the dispatcher and the streaming path. Indicator failures are
    logged and never raised.
    """

    def __init__(
        self,
        platform: "MessagingPlatform",
        chat_id: str,
        message_id: Optional[str],
        emoji: str = "✍",
    ):
        self._platform = platform
        self._chat_id = chat_id
        self._message_id = message_id
        self._emoji = emoji
        self._phase = TypingPhase.IDLE
        self._state: Optional[TypingState] = None
        self._lock = asyncio.Lock()

    @property
    def phase(self) -> TypingPhase:
        return self._phase

    @property
    def is_active(self) -> bool:
        return self._phase == TypingPhase.ACTIVE

    def _next_phase(self, action: str) -> Optional[TypingPhase]:
        target = _TRANSITIONS.get((self._phase, action))
        if target is None:
            logger.debug(f"Typing indicator: ignoring {action} while {self._phase.value}")
        return target

    async def start(self) -> None:
        """Show the indicator unless it is already shown or there is no target."""
        async with self._lock:
            if not self._message_id:
                return
            target = self._next_phase("start")
            if target is None:
                return

            state = TypingState(
                chat_id=self._chat_id, message_id=self._message_id, emoji=self._emoji
            )
            try:
                await self._platform.add_reaction(
                    state.chat_id, state.message_id, state.emoji
                )
            except Exception as e:
                logger.warning(f"Typing indicator start failed for {self._chat_id}: {e}")
                return

            self._state = state
            self._phase = target
            logger.debug(f"Typing indicator added on {self._chat_id}/{self._message_id}")

    async def stop(self) -> None:
        """Remove the indicator; the coordinator returns to idle even if removal fails."""
        async with self._lock:
            target = self._next_phase("stop")
            if target is None:
                return

            state = self._state
            self._state = None
            self._phase = target
            if state is None:
                return
            try:
                await self._platform.remove_reaction(
                    state.chat_id, state.message_id, state.emoji
                )
                logger.debug(
                    f"Typing indicator removed from {state.chat_id}/{state.message_id}"
                )
            except Exception as e:
                logger.warning(f"Typing indicator stop failed for {state.chat_id}: {e}")
