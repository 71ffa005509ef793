"""Platform-agnostic inbound message model."""

from dataclasses import dataclass, field
from typing import Optional, Any
from datetime import datetime, timezone


@dataclass
class IncomingMessage:
    """
    Platform-agnostic incoming message.

    Adapters convert platform-specific events to this format.
    """

    text: str
    chat_id: str
    user_id: str
    message_id: str
    platform: str  # "telegram", ...

    # Optional fields
    chat_type: str = "private"  # "private" | "group" | "supergroup" | "channel"
    mentioned_bot: bool = False
    reply_to_message_id: Optional[str] = None
    quoted_text: Optional[str] = None  # text of the message being replied to
    username: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    voice_file_id: Optional[str] = None  # For voice messages (Telegram)

    # Platform-specific raw event for edge cases
    raw_event: Any = None

    def is_reply(self) -> bool:
        """Check if this message is a reply to another message."""
        return self.reply_to_message_id is not None

    def is_group(self) -> bool:
        """Check if this message was posted in a group chat."""
        return self.chat_type in ("group", "supergroup")
