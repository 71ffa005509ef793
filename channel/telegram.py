"""
Telegram Platform Adapter

Implements MessagingPlatform for Telegram using python-telegram-bot.
"""

import asyncio
import logging
import os
import re

# Opt-in to future behavior for python-telegram-bot (retry_after as timedelta)
# This must be set BEFORE importing telegram.error
os.environ["PTB_TIMEDELTA"] = "1"

from typing import Callable, Awaitable, Optional, Any

from telegram import Update, Message
from telegram.ext import (
    Application,
    MessageHandler,
    ContextTypes,
    filters,
)
from telegram.error import BadRequest, TelegramError, RetryAfter, NetworkError
from telegram.request import HTTPXRequest

from delivery.models import MessageKind
from .base import MessagingPlatform
from .models import IncomingMessage

logger = logging.getLogger(__name__)

# Appended to a message while it is still being revised
STREAMING_CURSOR = " ▍"
RICH_PARSE_MODE = "Markdown"


class TelegramPlatform(MessagingPlatform):
    """
    Telegram messaging platform adapter.

    Uses python-telegram-bot (Bot API) for Telegram access.
    Requires a Bot Token from @BotFather.
    """

    name = "telegram"

    def __init__(
        self, bot_token: Optional[str] = None, concurrent_updates: int = 256
    ):
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN")
        self.concurrent_updates = concurrent_updates

        if not self.bot_token:
            # We don't raise here to allow instantiation for testing/conditional logic,
            # but start() will fail.
            logger.warning("TELEGRAM_BOT_TOKEN not set")

        self._application: Optional[Application] = None
        self._message_handler: Optional[
            Callable[[IncomingMessage], Awaitable[None]]
        ] = None
        self._connected = False
        self._bot_id: Optional[int] = None
        self._bot_username: Optional[str] = None

    @property
    def bot(self):
        """The underlying telegram.Bot, once started."""
        return self._application.bot if self._application else None

    def _build_application(self) -> Application:
        # Configure request with longer timeouts
        request = HTTPXRequest(
            connection_pool_size=8, connect_timeout=30.0, read_timeout=30.0
        )

        # A handler awaits its whole reply turn; chats must not queue behind it
        return (
            Application.builder()
            .token(self.bot_token)
            .request(request)
            .concurrent_updates(self.concurrent_updates)
            .build()
        )

    async def start(self) -> None:
        """Initialize and connect to Telegram."""
        if not self.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")

        self._application = self._build_application()

        # Text (commands included) and voice messages are all forwarded
        self._application.add_handler(
            MessageHandler(filters.TEXT | filters.VOICE, self._on_telegram_message)
        )

        # Initialize internal components with retry logic
        max_retries = 3
        for attempt in range(max_retries):
            try:
                await self._application.initialize()
                await self._application.start()

                if self._application.updater:
                    await self._application.updater.start_polling(
                        drop_pending_updates=False
                    )

                self._connected = True
                break
            except Exception as e:
                if attempt < max_retries - 1:
                    wait_time = 2 * (attempt + 1)
                    logger.warning(
                        f"Connection failed (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"Failed to connect after {max_retries} attempts")
                    raise

        # initialize() fetched getMe, so the bot identity is known here
        self._bot_id = self._application.bot.id
        self._bot_username = self._application.bot.username
        logger.info(f"Telegram platform started as @{self._bot_username}")

    async def stop(self) -> None:
        """Stop the bot."""
        if self._application and self._application.updater:
            await self._application.updater.stop()
            await self._application.stop()
            await self._application.shutdown()

        self._connected = False
        logger.info("Telegram platform stopped")

    async def _with_retry(
        self, func: Callable[..., Awaitable[Any]], **kwargs
    ) -> Any:
        """Execute a Bot API call with exponential backoff on network errors."""
        max_retries = 3
        for attempt in range(max_retries):
            try:
                return await func(**kwargs)
            except RetryAfter as e:
                # Telegram explicitly tells us to wait
                retry_after = e.retry_after
                if hasattr(retry_after, "total_seconds"):
                    wait_secs = float(retry_after.total_seconds())
                else:
                    wait_secs = float(retry_after)

                logger.warning(f"Rate limited by Telegram, waiting {wait_secs}s...")
                await asyncio.sleep(wait_secs)
                # We don't count this attempt, it is a specific instruction
                return await func(**kwargs)
            except BadRequest as e:
                # BadRequest subclasses NetworkError but is never worth retrying as is
                if "Message is not modified" in str(e):
                    return None
                if "Can't parse entities" in str(e) and kwargs.get("parse_mode"):
                    logger.warning("Markdown failed, retrying without parse_mode")
                    kwargs["parse_mode"] = None
                    return await func(**kwargs)
                raise
            except (NetworkError, asyncio.TimeoutError) as e:
                if attempt < max_retries - 1:
                    wait_time = 2**attempt  # 1s, 2s
                    logger.warning(
                        f"Telegram API network error (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"Telegram API failed after {max_retries} attempts: {e}")
                    raise
            except TelegramError as e:
                # Non-network Telegram errors
                if "Message is not modified" in str(e):
                    return None
                raise

    def _require_bot(self):
        if not self._application or not self._application.bot:
            raise RuntimeError("Telegram application or bot not initialized")
        return self._application.bot

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_to: Optional[str] = None,
        kind: MessageKind = MessageKind.TEXT,
        streaming: bool = False,
    ) -> str:
        """Send a message to a chat."""
        bot = self._require_bot()
        body = f"{text}{STREAMING_CURSOR}" if streaming else text

        async def _do_send(parse_mode: Optional[str] = None):
            msg = await bot.send_message(
                chat_id=chat_id,
                text=body,
                reply_to_message_id=int(reply_to) if reply_to else None,
                parse_mode=parse_mode,
            )
            return str(msg.message_id)

        parse_mode = RICH_PARSE_MODE if kind == MessageKind.CARD else None
        return await self._with_retry(_do_send, parse_mode=parse_mode)

    async def update_message(
        self,
        chat_id: str,
        message_id: str,
        text: str,
        done: bool = True,
    ) -> None:
        """Edit an existing message; unfinished revisions carry the streaming cursor."""
        bot = self._require_bot()
        body = text if done else f"{text}{STREAMING_CURSOR}"

        async def _do_edit(parse_mode: Optional[str] = None):
            await bot.edit_message_text(
                chat_id=chat_id,
                message_id=int(message_id),
                text=body,
                parse_mode=parse_mode,
            )

        await self._with_retry(_do_edit, parse_mode=RICH_PARSE_MODE)

    async def add_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        bot = self._require_bot()

        async def _do_react():
            await bot.set_message_reaction(
                chat_id=chat_id, message_id=int(message_id), reaction=emoji
            )

        await self._with_retry(_do_react)

    async def remove_reaction(self, chat_id: str, message_id: str, emoji: str) -> None:
        # Bots hold at most one reaction per message; an empty list clears it
        bot = self._require_bot()

        async def _do_clear():
            await bot.set_message_reaction(
                chat_id=chat_id, message_id=int(message_id), reaction=[]
            )

        await self._with_retry(_do_clear)

    def on_message(
        self,
        handler: Callable[[IncomingMessage], Awaitable[None]],
    ) -> None:
        """Register a message handler callback."""
        self._message_handler = handler

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._connected

    def _mentions_bot(self, message: Message) -> bool:
        """True when the message @-mentions the bot or replies to one of its messages."""
        reply = message.reply_to_message
        if reply and reply.from_user and self._bot_id and reply.from_user.id == self._bot_id:
            return True

        text = message.text or message.caption or ""
        for entity in message.entities or ():
            if entity.type == "mention" and self._bot_username:
                mention = text[entity.offset : entity.offset + entity.length]
                if mention.lstrip("@").lower() == self._bot_username.lower():
                    return True
            elif entity.type == "text_mention" and entity.user and entity.user.id == self._bot_id:
                return True
        return False

    def _strip_mention(self, text: str) -> str:
        if not self._bot_username:
            return text
        pattern = re.compile(rf"@{re.escape(self._bot_username)}\b", re.IGNORECASE)
        if not pattern.search(text):
            return text
        return re.sub(r"[ \t]{2,}", " ", pattern.sub("", text)).strip()

    def to_incoming(self, update: Update) -> Optional[IncomingMessage]:
        """Normalize a Telegram update into an IncomingMessage."""
        message = update.message
        if not message or not update.effective_user or not update.effective_chat:
            return None

        text = message.text or message.caption or ""
        quoted = None
        reply_to_id = None
        if message.reply_to_message:
            reply_to_id = str(message.reply_to_message.message_id)
            quoted = message.reply_to_message.text or message.reply_to_message.caption

        return IncomingMessage(
            text=self._strip_mention(text),
            chat_id=str(update.effective_chat.id),
            user_id=str(update.effective_user.id),
            message_id=str(message.message_id),
            platform="telegram",
            chat_type=update.effective_chat.type,
            mentioned_bot=self._mentions_bot(message),
            reply_to_message_id=reply_to_id,
            quoted_text=quoted,
            username=update.effective_user.username,
            voice_file_id=message.voice.file_id if message.voice else None,
            raw_event=update,
        )

    async def _on_telegram_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming messages (text and voice)."""
        if not self._message_handler:
            logger.warning("No message handler registered")
            return

        incoming = self.to_incoming(update)
        if incoming is None:
            logger.debug("Ignoring update without message, user or chat")
            return

        logger.info(
            f"Received {'voice' if incoming.voice_file_id else 'text'} message "
            f"{incoming.message_id} from {incoming.user_id} in {incoming.chat_id} ({incoming.chat_type})"
        )
        try:
            await self._message_handler(incoming)
        except Exception as e:
            logger.error(f"Error processing message {incoming.message_id}: {e}", exc_info=True)
