"""Tests for the Telegram adapter (no network)."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import BadRequest

from channel.telegram import STREAMING_CURSOR, TelegramPlatform
from delivery.models import MessageKind


@pytest.fixture
def telegram():
    platform = TelegramPlatform(bot_token="123:abc")
    platform._application = MagicMock()
    platform._bot_id = 4242
    platform._bot_username = "relaybot"
    bot = platform._application.bot
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=99))
    bot.edit_message_text = AsyncMock()
    bot.set_message_reaction = AsyncMock()
    return platform


def _update(text, chat_type="supergroup", entities=(), reply=None, voice=None):
    message = MagicMock()
    message.text = text
    message.caption = None
    message.message_id = 7
    message.entities = list(entities)
    message.reply_to_message = reply
    message.voice = voice

    update = MagicMock()
    update.message = message
    update.effective_chat.id = -100
    update.effective_chat.type = chat_type
    update.effective_user.id = 5
    update.effective_user.username = "alice"
    return update


def _mention(offset, length):
    entity = MagicMock()
    entity.type = "mention"
    entity.offset = offset
    entity.length = length
    return entity


def test_application_handles_updates_concurrently():
    platform = TelegramPlatform(bot_token="123:abc", concurrent_updates=16)

    application = platform._build_application()

    assert application.concurrent_updates == 16


@pytest.mark.asyncio
async def test_card_send_uses_markdown_and_cursor(telegram):
    message_id = await telegram.send_message("1", "hi", kind=MessageKind.CARD, streaming=True)

    assert message_id == "99"
    telegram.bot.send_message.assert_awaited_once_with(
        chat_id="1",
        text=f"hi{STREAMING_CURSOR}",
        reply_to_message_id=None,
        parse_mode="Markdown",
    )


@pytest.mark.asyncio
async def test_text_send_is_plain_reply(telegram):
    await telegram.send_message("1", "hi", reply_to="7")

    telegram.bot.send_message.assert_awaited_once_with(
        chat_id="1", text="hi", reply_to_message_id=7, parse_mode=None
    )


@pytest.mark.asyncio
async def test_markdown_failure_retries_as_plain_text(telegram):
    telegram.bot.send_message.side_effect = [
        BadRequest("Can't parse entities: can't find end of the entity"),
        MagicMock(message_id=5),
    ]

    assert await telegram.send_message("1", "*broken", kind=MessageKind.CARD) == "5"
    assert telegram.bot.send_message.await_args.kwargs["parse_mode"] is None


@pytest.mark.asyncio
async def test_update_adds_cursor_until_done(telegram):
    await telegram.update_message("1", "99", "partial", done=False)
    await telegram.update_message("1", "99", "final", done=True)

    texts = [c.kwargs["text"] for c in telegram.bot.edit_message_text.await_args_list]
    assert texts == [f"partial{STREAMING_CURSOR}", "final"]


@pytest.mark.asyncio
async def test_unchanged_edit_is_ignored(telegram):
    telegram.bot.edit_message_text.side_effect = BadRequest("Message is not modified")

    await telegram.update_message("1", "99", "same")


@pytest.mark.asyncio
async def test_reactions(telegram):
    await telegram.add_reaction("1", "7", "✍")
    await telegram.remove_reaction("1", "7", "✍")

    calls = telegram.bot.set_message_reaction.await_args_list
    assert calls[0].kwargs == {"chat_id": "1", "message_id": 7, "reaction": "✍"}
    assert calls[1].kwargs == {"chat_id": "1", "message_id": 7, "reaction": []}


@pytest.mark.asyncio
async def test_send_before_start_raises():
    platform = TelegramPlatform(bot_token="123:abc")

    with pytest.raises(RuntimeError):
        await platform.send_message("1", "hi")


def test_mention_is_detected_and_stripped(telegram):
    incoming = telegram.to_incoming(_update("@relaybot what time is it", entities=[_mention(0, 9)]))

    assert incoming.mentioned_bot is True
    assert incoming.text == "what time is it"
    assert incoming.is_group()
    assert incoming.chat_id == "-100"
    assert incoming.user_id == "5"
    assert incoming.username == "alice"


def test_other_mentions_do_not_count(telegram):
    incoming = telegram.to_incoming(_update("@someone hi", entities=[_mention(0, 8)]))

    assert incoming.mentioned_bot is False
    assert incoming.text == "@someone hi"


def test_reply_to_bot_counts_as_mention_and_quotes(telegram):
    reply = MagicMock()
    reply.message_id = 3
    reply.from_user.id = 4242
    reply.text = "earlier answer"
    reply.caption = None

    incoming = telegram.to_incoming(_update("and then?", reply=reply))

    assert incoming.mentioned_bot is True
    assert incoming.reply_to_message_id == "3"
    assert incoming.quoted_text == "earlier answer"


def test_voice_message(telegram):
    voice = MagicMock()
    voice.file_id = "voice_1"

    incoming = telegram.to_incoming(_update(None, chat_type="private", voice=voice))

    assert incoming.voice_file_id == "voice_1"
    assert incoming.text == ""
    assert not incoming.is_group()


def test_update_without_message_is_skipped(telegram):
    update = MagicMock()
    update.message = None

    assert telegram.to_incoming(update) is None


@pytest.mark.asyncio
async def test_handler_errors_do_not_escape(telegram):
    handler = AsyncMock(side_effect=RuntimeError("boom"))
    telegram.on_message(handler)

    await telegram._on_telegram_message(_update("hi", chat_type="private"), MagicMock())

    handler.assert_awaited_once()
