"""
Inbound Message Handler

Turns one inbound Telegram message into one reply turn: access policy,
pending-history recording for unaddressed group chatter, voice
transcription, quoting, routing and finally the reply dispatcher.
"""

import logging
from typing import Optional, TYPE_CHECKING

from config.settings import Settings, get_settings
from delivery.dispatcher import ReplyDispatcher
from delivery.history import format_envelope
from delivery.models import DispatchResult, HistoryEntry, TurnContext
from .models import IncomingMessage
from .policy import (
    is_group_allowed,
    is_group_sender_allowed,
    is_sender_allowed,
    resolve_group_config,
    resolve_require_mention,
)

if TYPE_CHECKING:
    from .voice_processor import VoiceProcessor

logger = logging.getLogger(__name__)

CHANNEL_LABEL = "Telegram"
VOICE_PREFIX = "[Voice transcript]: "


def resolve_session_key(incoming: IncomingMessage) -> str:
    """Groups share one conversation; DMs are keyed by the sender."""
    if incoming.is_group():
        return f"{incoming.platform}:group:{incoming.chat_id}"
    return f"{incoming.platform}:{incoming.user_id}"


class InboundHandler:
    """
    Platform-agnostic entry point for inbound messages.

    Registered with ``MessagingPlatform.on_message``. Never raises: every
    failure is logged so the transport keeps polling.
    """

    def __init__(
        self,
        dispatcher: ReplyDispatcher,
        voice_processor: Optional["VoiceProcessor"] = None,
        settings: Optional[Settings] = None,
    ):
        self.dispatcher = dispatcher
        self.voice_processor = voice_processor
        self.settings = settings or get_settings()

    @property
    def history_limit(self) -> int:
        return self.dispatcher.options.history_limit

    async def handle_message(self, incoming: IncomingMessage) -> Optional[DispatchResult]:
        """
        Main entry point for an inbound message.

        Returns the dispatch result, or None when the message produced no turn.
        """
        logger.info(
            f"Received message from {incoming.user_id} in {incoming.chat_id} ({incoming.chat_type})"
        )

        if not self._admit(incoming):
            return None

        try:
            body = await self._build_body(incoming)
            if not body.strip():
                logger.debug(f"Empty message {incoming.message_id}, nothing to dispatch")
                return None

            turn = TurnContext(
                chat_id=incoming.chat_id,
                body=format_envelope(
                    CHANNEL_LABEL,
                    incoming.chat_id if incoming.is_group() else incoming.user_id,
                    body,
                    incoming.timestamp,
                ),
                raw_body=incoming.text,
                session_key=resolve_session_key(incoming),
                reply_to_message_id=incoming.message_id,
                sender_id=incoming.user_id,
                chat_type="group" if incoming.is_group() else "direct",
                history_key=incoming.chat_id if incoming.is_group() else None,
            )

            logger.info(f"Dispatching to agent (session={turn.session_key})")
            return await self.dispatcher.dispatch(turn)
        except Exception as e:
            logger.error(f"Failed to dispatch message {incoming.message_id}: {e}", exc_info=True)
            return None

    def _admit(self, incoming: IncomingMessage) -> bool:
        """Apply access policy; unaddressed group messages are buffered, not admitted."""
        settings = self.settings

        if not incoming.is_group():
            if not is_sender_allowed(incoming.user_id, settings.dm_policy, settings.allow_from):
                logger.info(f"Sender {incoming.user_id} not allowed to DM (policy={settings.dm_policy})")
                return False
            return True

        if not is_group_allowed(incoming.chat_id, settings.group_policy, settings.group_allow_from):
            logger.info(f"Group {incoming.chat_id} not in allowlist")
            return False

        group_config = resolve_group_config(settings, incoming.chat_id)
        if group_config is not None and not group_config.enabled:
            logger.info(f"Group {incoming.chat_id} is disabled")
            return False

        if not is_group_sender_allowed(incoming.user_id, group_config):
            logger.info(f"Sender {incoming.user_id} not in group {incoming.chat_id} allowlist")
            return False

        if resolve_require_mention(settings, group_config) and not incoming.mentioned_bot:
            logger.debug(
                f"Message in group {incoming.chat_id} did not mention bot, recording to history"
            )
            self.dispatcher.history.record(
                incoming.chat_id,
                HistoryEntry(
                    sender=incoming.username or incoming.user_id,
                    body=incoming.text,
                    timestamp=incoming.timestamp,
                    message_id=incoming.message_id,
                ),
                self.history_limit,
            )
            return False

        return True

    async def _build_body(self, incoming: IncomingMessage) -> str:
        body = incoming.text or ""

        if incoming.voice_file_id and self.voice_processor is not None:
            try:
                transcript = await self.voice_processor.transcribe(incoming.voice_file_id)
            except Exception as e:
                # The turn continues without the transcript
                logger.warning(f"Failed to transcribe voice message {incoming.message_id}: {e}")
            else:
                body = f"{VOICE_PREFIX}{transcript}\n\n{body}" if body else f"{VOICE_PREFIX}{transcript}"

        if incoming.quoted_text:
            body = f'[Replying to: "{incoming.quoted_text}"]\n\n{body}'

        return body
