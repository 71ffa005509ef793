"""
Streaming update controller.

Owns the single "live" message of one reply turn. Partial revisions are
applied to it in place, at most once per debounce interval; the newest
revision always wins. Finalization sends one last update carrying the done
marker.
"""

import asyncio
import contextlib
import logging
import time
from enum import Enum
from typing import Callable, Optional, TYPE_CHECKING

from .models import MessageKind

if TYPE_CHECKING:
    from channel.base import MessagingPlatform

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    EMPTY = "empty"
    INITIALIZING = "initializing"
    LIVE = "live"
    FAILED = "failed"  # creation failed, nothing was ever shown
    FINALIZED = "finalized"


_TRANSITIONS = {
    StreamState.EMPTY: {StreamState.INITIALIZING, StreamState.FINALIZED},
    StreamState.INITIALIZING: {
        StreamState.LIVE,
        StreamState.FAILED,
        StreamState.FINALIZED,
    },
    StreamState.LIVE: {StreamState.FINALIZED},
    StreamState.FAILED: {StreamState.FINALIZED},
    StreamState.FINALIZED: set(),
}


class StreamingUpdateController:
    """
    Per-turn state machine for a message revised while the reply streams.

    Concurrent ``update`` calls share one in-flight creation. Once live,
    updates closer together than the debounce interval are coalesced into a
    single pending slot flushed by one background task. Transport failures
    are logged; they never raise out of ``update``/``finalize``.
    """

    def __init__(
        self,
        platform: "MessagingPlatform",
        chat_id: str,
        reply_to: Optional[str] = None,
        debounce_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._platform = platform
        self._chat_id = chat_id
        self._reply_to = reply_to
        self._debounce = debounce_ms / 1000.0
        self._clock = clock

        self._state = StreamState.EMPTY
        self.message_id: Optional[str] = None
        self.last_sent_content = ""
        self.last_sent_at = 0.0

        self._create_task: Optional[asyncio.Future] = None
        self._pending_content: Optional[str] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def started(self) -> bool:
        """True once any partial content was handed to the controller."""
        return self._state != StreamState.EMPTY

    @property
    def is_live(self) -> bool:
        return self._state == StreamState.LIVE

    def _transition(self, target: StreamState) -> bool:
        if target not in _TRANSITIONS[self._state]:
            logger.debug(f"Stream {self._chat_id}: ignoring {self._state.value} -> {target.value}")
            return False
        self._state = target
        return True

    def _remaining(self) -> float:
        return self._debounce - (self._clock() - self.last_sent_at)

    def _has_pending_flush(self) -> bool:
        return self._flush_task is not None and not self._flush_task.done()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def update(self, content: str) -> None:
        """Apply a new revision of the reply text."""
        if self._state in (StreamState.FINALIZED, StreamState.FAILED):
            return
        if not content or not content.strip():
            return

        if self._state == StreamState.EMPTY:
            self._transition(StreamState.INITIALIZING)
            self._create_task = asyncio.ensure_future(self._create(content))
            await asyncio.shield(self._create_task)
            return

        if self._state == StreamState.INITIALIZING:
            await asyncio.shield(self._create_task)
            if self._state != StreamState.LIVE:
                return

        await self._apply(content)

    async def _create(self, content: str) -> None:
        try:
            message_id = await self._platform.send_message(
                self._chat_id,
                content,
                reply_to=self._reply_to,
                kind=MessageKind.CARD,
                streaming=True,
            )
        except Exception as e:
            logger.error(f"Stream {self._chat_id}: failed to create live message: {e}")
            self._transition(StreamState.FAILED)
            return

        self.message_id = message_id
        self.last_sent_content = content
        self.last_sent_at = self._clock()
        if self._transition(StreamState.LIVE):
            logger.debug(f"Stream {self._chat_id}: live message {message_id}")

    async def _apply(self, content: str) -> None:
        if content == self._pending_content:
            return
        if content == self.last_sent_content:
            # the newest revision is already on screen
            self._pending_content = None
            return

        if (
            self._remaining() <= 0
            and not self._has_pending_flush()
            and not self._send_lock.locked()
        ):
            await self._send(content, done=False)
            return

        self._pending_content = content
        if not self._has_pending_flush():
            self._flush_task = asyncio.ensure_future(
                self._flush_loop(max(self._remaining(), 0.0))
            )

    async def _flush_loop(self, delay: float) -> None:
        while True:
            await asyncio.sleep(delay)
            delay = self._remaining()
            if delay > 0:
                continue

            content = self._pending_content
            self._pending_content = None
            if content is not None and content != self.last_sent_content:
                # shielded: a cancelled flush must not abort a request mid-flight
                await asyncio.shield(self._send(content, done=False))

            if self._pending_content is None:
                return
            delay = max(self._remaining(), 0.0)

    async def _send(self, content: str, done: bool) -> bool:
        async with self._send_lock:
            self.last_sent_at = self._clock()
            try:
                await self._platform.update_message(
                    self._chat_id, self.message_id, content, done=done
                )
            except Exception as e:
                logger.warning(
                    f"Stream {self._chat_id}: update of {self.message_id} failed "
                    f"(done={done}): {e}"
                )
                return False
            self.last_sent_content = content
            return True

    async def _cancel_pending(self) -> None:
        self._pending_content = None
        task = self._flush_task
        self._flush_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def finalize(self, content: str) -> bool:
        """
        Send the final content with the done marker and close the stream.

        Returns:
            True if the final content was delivered through this controller
            (successfully or not); False when no live message exists and the
            caller has to deliver the content another way.
        """
        if self._state == StreamState.FINALIZED:
            return False

        await self._cancel_pending()
        if self._state == StreamState.INITIALIZING:
            await asyncio.shield(self._create_task)

        if self._state == StreamState.EMPTY:
            self._transition(StreamState.FINALIZED)
            if not content or not content.strip():
                return False
            try:
                self.message_id = await self._platform.send_message(
                    self._chat_id, content, reply_to=self._reply_to, kind=MessageKind.CARD
                )
                self.last_sent_content = content
            except Exception as e:
                logger.error(f"Stream {self._chat_id}: final send failed: {e}")
            return True

        if self._state != StreamState.LIVE:
            self._transition(StreamState.FINALIZED)
            return False

        final = content if content and content.strip() else self.last_sent_content
        self._transition(StreamState.FINALIZED)
        if await self._send(final, done=True):
            logger.debug(f"Stream {self._chat_id}: finalized message {self.message_id}")
        return True

    async def abort(self) -> None:
        """Drop pending work without another network call (error path)."""
        await self._cancel_pending()
        if self._state != StreamState.FINALIZED:
            self._transition(StreamState.FINALIZED)
