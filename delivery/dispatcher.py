"""
Reply dispatcher.

Drives one reply turn end to end: replays pending history into the body,
consumes the agent's reply events, keeps the typing indicator in step,
streams partial text into a live message and delivers the final text either
by finalizing that message or as ordered, size-bounded chunks.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Callable,
    List,
    Optional,
    Protocol,
    Tuple,
    TYPE_CHECKING,
)

from .chunking import chunk_text
from .history import PendingHistoryBuffer, format_envelope
from .models import (
    Chunk,
    ChunkMode,
    DispatchContext,
    DispatchResult,
    FinalReply,
    HistoryEntry,
    MessageKind,
    ModelSelected,
    PartialReply,
    RenderMode,
    ReplyEvent,
    TurnContext,
)
from .render import select_render
from .streaming import StreamState, StreamingUpdateController
from .typing_indicator import TypingIndicatorCoordinator

if TYPE_CHECKING:
    from channel.base import MessagingPlatform
    from config.settings import Settings

logger = logging.getLogger(__name__)


class ReplyAgent(Protocol):
    """Produces the reply events of one turn, in order."""

    def stream_reply(self, ctx: DispatchContext) -> AsyncIterator[ReplyEvent]:
        ...


@dataclass
class DeliveryOptions:
    """Knobs of the outbound pipeline."""

    chunk_limit: int = 4000
    chunk_mode: ChunkMode = ChunkMode.BOUNDARY
    render_mode: RenderMode = RenderMode.AUTO
    streaming: bool = True
    debounce_ms: int = 1000
    history_limit: int = 50
    typing_emoji: str = "✍"
    response_prefix: Optional[str] = None
    turn_timeout: float = 0.0
    channel_label: str = "Telegram"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DeliveryOptions":
        return cls(
            chunk_limit=settings.text_chunk_limit,
            chunk_mode=ChunkMode(settings.chunk_mode),
            render_mode=RenderMode(settings.render_mode),
            streaming=settings.stream_replies,
            debounce_ms=settings.stream_debounce_ms,
            history_limit=max(0, settings.history_limit),
            typing_emoji=settings.typing_emoji,
            response_prefix=settings.response_prefix,
            turn_timeout=settings.turn_timeout,
        )


class _TemplateVars(dict):
    def __missing__(self, key):
        return ""


class ReplyDispatcher:
    """
    Orchestrates reply turns against one transport.

    Collaborators are injected; the dispatcher holds no per-turn state, so
    turns for different conversations may run concurrently.
    """

    def __init__(
        self,
        platform: "MessagingPlatform",
        agent: ReplyAgent,
        history: PendingHistoryBuffer,
        options: Optional[DeliveryOptions] = None,
        format_entry: Optional[Callable[[HistoryEntry], str]] = None,
    ):
        self.platform = platform
        self.agent = agent
        self.history = history
        self.options = options or DeliveryOptions()
        self._format_entry = format_entry or self._default_format_entry

    def _default_format_entry(self, entry: HistoryEntry) -> str:
        return format_envelope(
            self.options.channel_label, entry.sender, entry.body, entry.timestamp
        )

    def build_context(self, turn: TurnContext) -> DispatchContext:
        """Freeze the outgoing context, with the replay prefix when history is pending."""
        return self._snapshot(turn)[0]

    def _snapshot(
        self, turn: TurnContext
    ) -> Tuple[DispatchContext, List[HistoryEntry]]:
        body = turn.body
        replayed: List[HistoryEntry] = []
        limit = self.options.history_limit
        if turn.history_key and limit > 0:
            replayed = self.history.entries(turn.history_key)
            body = self.history.build_replay_prefix(
                turn.history_key, limit, turn.body, self._format_entry
            )

        return DispatchContext(
            chat_id=turn.chat_id,
            body=body,
            raw_body=turn.raw_body if turn.raw_body is not None else turn.body,
            session_key=turn.session_key,
            reply_to_message_id=turn.reply_to_message_id,
            sender_id=turn.sender_id,
            chat_type=turn.chat_type,
            history_key=turn.history_key,
            history_replayed=len(replayed),
        ), replayed

    async def dispatch(self, turn: TurnContext) -> DispatchResult:
        """
        Run one reply turn.

        Returns:
            DispatchResult with ``queued_final`` and ``counts["final"]``.

        Raises:
            Whatever the agent raises (including ``asyncio.TimeoutError`` when
            a turn timeout is configured). Pending history is kept in that case.
        """
        ctx, replayed = self._snapshot(turn)
        if ctx.history_replayed:
            logger.info(
                f"Replaying {ctx.history_replayed} pending message(s) for {ctx.history_key}"
            )

        run = _ReplyTurn(self, ctx)
        try:
            if self.options.turn_timeout > 0:
                await asyncio.wait_for(run.consume(), timeout=self.options.turn_timeout)
            else:
                await run.consume()
        finally:
            await run.close()

        if ctx.history_key:
            # messages recorded while the turn ran were not replayed and stay
            self.history.consume(
                ctx.history_key, replayed, self.options.history_limit
            )

        logger.info(
            f"Dispatch complete for {ctx.session_key} "
            f"(queued_final={run.result.queued_final}, replies={run.result.counts['final']})"
        )
        return run.result


class _ReplyTurn:
    """Mutable state of one turn; never shared across turns."""

    def __init__(self, dispatcher: ReplyDispatcher, ctx: DispatchContext):
        self.dispatcher = dispatcher
        self.options = dispatcher.options
        self.platform = dispatcher.platform
        self.ctx = ctx
        self.result = DispatchResult()
        self.typing = TypingIndicatorCoordinator(
            self.platform,
            ctx.chat_id,
            ctx.reply_to_message_id,
            emoji=self.options.typing_emoji,
        )
        self.stream: Optional[StreamingUpdateController] = None
        self.model: Optional[ModelSelected] = None
        self._seen_event = False

    async def consume(self) -> None:
        async for event in self.dispatcher.agent.stream_reply(self.ctx):
            await self.handle(event)

    async def handle(self, event: ReplyEvent) -> None:
        if not self._seen_event:
            self._seen_event = True
            if not (self.stream and self.stream.is_live):
                await self.typing.start()

        if isinstance(event, ModelSelected):
            self.model = event
        elif isinstance(event, PartialReply):
            await self._on_partial(event.text)
        elif isinstance(event, FinalReply):
            await self._on_final(event.text)
        else:
            logger.warning(f"Ignoring unknown reply event {event!r}")

    def _decorate(self, text: str) -> str:
        template = self.options.response_prefix
        if not template or not text or not text.strip():
            return text
        model = self.model
        prefix = template.format_map(
            _TemplateVars(
                provider=model.provider if model else "",
                model=model.model if model else "",
                think_level=(model.think_level or "") if model else "",
            )
        )
        return f"{prefix}{text}"

    def _preview(self, text: str) -> str:
        limit = self.options.chunk_limit
        if len(text) <= limit:
            return text
        return text[: max(limit - 1, 1)] + "…"

    async def _on_partial(self, text: str) -> None:
        if not self.options.streaming:
            return
        if self.stream is None or self.stream.state == StreamState.FINALIZED:
            self.stream = StreamingUpdateController(
                self.platform,
                self.ctx.chat_id,
                reply_to=self.ctx.reply_to_message_id,
                debounce_ms=self.options.debounce_ms,
            )

        await self.stream.update(self._preview(self._decorate(text)))
        if self.stream.is_live:
            # visible streaming text replaces the typing indicator
            await self.typing.stop()

    async def _on_final(self, text: str) -> None:
        text = self._decorate(text or "")
        if not text.strip():
            logger.debug(f"Empty final reply for {self.ctx.chat_id}, nothing to send")
            return

        chunks = chunk_text(text, self.options.chunk_limit, self.options.chunk_mode)
        stream = self.stream
        if stream is not None and stream.started:
            self.stream = None
            if await stream.finalize(chunks[0].text):
                if len(chunks) > 1:
                    # the live message only holds what fits; the rest follows it
                    kind = select_render(text, self.options.render_mode)
                    await self._send_chunks(chunks[1:], kind)
                self._count_final()
                return
            logger.info(f"Stream for {self.ctx.chat_id} never went live, sending final as chunks")

        kind = select_render(text, self.options.render_mode)
        if await self._send_chunks(chunks, kind):
            self._count_final()
        else:
            logger.warning(f"No chunk of the final reply reached {self.ctx.chat_id}")

    async def _send_chunks(self, chunks: List[Chunk], kind: MessageKind) -> int:
        """Send chunks in order; returns how many were delivered."""
        logger.debug(f"Sending {len(chunks)} chunk(s) to {self.ctx.chat_id} as {kind.value}")
        delivered = 0
        for chunk in chunks:
            try:
                await self.platform.send_message(
                    self.ctx.chat_id,
                    chunk.text,
                    reply_to=self.ctx.reply_to_message_id,
                    kind=kind,
                )
            except Exception as e:
                logger.error(
                    f"Failed to send chunk {chunk.index + 1}/{len(chunks)} "
                    f"to {self.ctx.chat_id}: {e}"
                )
            else:
                delivered += 1
        return delivered

    def _count_final(self) -> None:
        self.result.queued_final = True
        self.result.counts["final"] = self.result.counts.get("final", 0) + 1

    async def close(self) -> None:
        """Terminal cleanup, run on success and on error."""
        if self.stream is not None and self.stream.state != StreamState.FINALIZED:
            await self.stream.abort()
        await self.typing.stop()
