"""
Access policy for inbound messages.

Direct messages and group chats are gated separately. Each gate is one of
``open`` (anyone), ``allowlist`` (only listed ids, ``*`` matches all) or
``disabled`` (nobody).
"""

from typing import Iterable, Optional

from config.settings import GroupSettings, Settings

WILDCARD = "*"


def _normalize(values: Iterable[str]) -> set:
    return {str(v).strip() for v in values if str(v).strip()}


def _allowed(candidate: str, policy: str, allow_from: Iterable[str]) -> bool:
    if policy == "disabled":
        return False
    if policy == "open":
        return True
    allowed = _normalize(allow_from)
    return WILDCARD in allowed or str(candidate) in allowed


def is_sender_allowed(sender_id: str, policy: str, allow_from: Iterable[str]) -> bool:
    """Whether a direct-message sender may talk to the bot."""
    return _allowed(sender_id, policy, allow_from)


def is_group_allowed(chat_id: str, policy: str, allow_from: Iterable[str]) -> bool:
    """Whether the bot answers in this group at all."""
    return _allowed(chat_id, policy, allow_from)


def resolve_group_config(settings: Settings, chat_id: str) -> Optional[GroupSettings]:
    """Per-group overrides for ``chat_id``, falling back to the ``*`` entry."""
    groups = settings.groups or {}
    return groups.get(str(chat_id)) or groups.get(WILDCARD)


def resolve_require_mention(
    settings: Settings, group_config: Optional[GroupSettings]
) -> bool:
    if group_config is not None and group_config.require_mention is not None:
        return group_config.require_mention
    return settings.require_mention


def is_group_sender_allowed(
    sender_id: str, group_config: Optional[GroupSettings]
) -> bool:
    """Per-group sender allowlist; an empty list admits every member."""
    if group_config is None or not group_config.allow_from:
        return True
    allowed = _normalize(group_config.allow_from)
    return WILDCARD in allowed or str(sender_id) in allowed
