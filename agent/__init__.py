"""Reply agents producing reply-event streams."""

from .nim import NimReplyAgent

__all__ = ["NimReplyAgent"]
