"""Outbound reply delivery: chunking, rendering, streaming, typing and history replay."""

from .chunking import chunk_text
from .dispatcher import DeliveryOptions, ReplyAgent, ReplyDispatcher
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
    TypingState,
)
from .render import select_render
from .streaming import StreamState, StreamingUpdateController
from .typing_indicator import TypingIndicatorCoordinator, TypingPhase

__all__ = [
    "Chunk",
    "ChunkMode",
    "DeliveryOptions",
    "DispatchContext",
    "DispatchResult",
    "FinalReply",
    "HistoryEntry",
    "MessageKind",
    "ModelSelected",
    "PartialReply",
    "PendingHistoryBuffer",
    "RenderMode",
    "ReplyAgent",
    "ReplyDispatcher",
    "ReplyEvent",
    "StreamState",
    "StreamingUpdateController",
    "TurnContext",
    "TypingIndicatorCoordinator",
    "TypingPhase",
    "TypingState",
    "chunk_text",
    "format_envelope",
    "select_render",
]
