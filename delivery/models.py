"""Data model for one outbound reply turn."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union


class ChunkMode(str, Enum):
    """How oversized text is split before sending."""

    BOUNDARY = "boundary"  # prefer paragraph / line / sentence breaks
    LENGTH = "length"  # naive fixed-width slices


class RenderMode(str, Enum):
    PLAIN = "plain"
    RICH = "rich"
    AUTO = "auto"


class MessageKind(str, Enum):
    """What the transport is asked to send."""

    TEXT = "text"
    CARD = "card"


# ==================== Reply events ====================


@dataclass(frozen=True)
class PartialReply:
    """Cumulative text of the reply so far (a revision, not a delta)."""

    text: str


@dataclass(frozen=True)
class FinalReply:
    text: str


@dataclass(frozen=True)
class ModelSelected:
    provider: str
    model: str
    think_level: Optional[str] = None


ReplyEvent = Union[PartialReply, FinalReply, ModelSelected]


# ==================== Delivery values ====================


@dataclass(frozen=True)
class Chunk:
    """One bounded segment of an outbound body."""

    index: int
    text: str


@dataclass(frozen=True)
class TypingState:
    """Handle on a live typing indicator (a reaction on the inbound message)."""

    chat_id: str
    message_id: str
    emoji: str


@dataclass
class HistoryEntry:
    """A suppressed inbound message kept for replay as context."""

    sender: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message_id: Optional[str] = None


@dataclass
class TurnContext:
    """
    Inbound side of a reply turn.

    Built by the inbound handler after policy and route resolution, then
    handed to ``ReplyDispatcher.dispatch``.
    """

    chat_id: str
    body: str
    session_key: str

    # Optional fields
    reply_to_message_id: Optional[str] = None
    raw_body: Optional[str] = None
    sender_id: Optional[str] = None
    chat_type: str = "private"
    history_key: Optional[str] = None  # set for group chats that buffer history


@dataclass(frozen=True)
class DispatchContext:
    """
    Immutable per-turn value given to the agent and to delivery.

    ``body`` already carries the replay prefix when history was pending.
    """

    chat_id: str
    body: str
    raw_body: str
    session_key: str
    reply_to_message_id: Optional[str] = None
    sender_id: Optional[str] = None
    chat_type: str = "private"
    history_key: Optional[str] = None
    history_replayed: int = 0


@dataclass
class DispatchResult:
    """Outcome of ``ReplyDispatcher.dispatch``."""

    queued_final: bool = False
    counts: Dict[str, int] = field(default_factory=lambda: {"final": 0})
