"""Tests for RateLimitedPlatform."""

import pytest

from channel.rate_limited_platform import RateLimitedPlatform
from delivery.models import MessageKind


@pytest.mark.asyncio
async def test_calls_are_forwarded_through_limiter(platform):
    wrapped = RateLimitedPlatform(platform, rate_limit=100, rate_window=1.0)
    await wrapped.start()
    try:
        assert wrapped.is_connected
        message_id = await wrapped.send_message(
            "c1", "hi", reply_to="m1", kind=MessageKind.CARD, streaming=True
        )
        await wrapped.update_message("c1", message_id, "hi there", done=False)
        await wrapped.add_reaction("c1", "m1", "✍")
        await wrapped.remove_reaction("c1", "m1", "✍")
    finally:
        await wrapped.stop()

    assert platform.sent[0]["kind"] == MessageKind.CARD
    assert platform.sent[0]["streaming"] is True
    assert platform.updates == [
        {"chat_id": "c1", "message_id": message_id, "text": "hi there", "done": False}
    ]
    assert [r[0] for r in platform.reactions] == ["add", "remove"]
    assert not wrapped.is_connected


@pytest.mark.asyncio
async def test_errors_reach_the_caller(platform):
    platform.fail_update = True
    wrapped = RateLimitedPlatform(platform, rate_limit=100, rate_window=1.0)
    await wrapped.start()
    try:
        with pytest.raises(RuntimeError, match="update failed"):
            await wrapped.update_message("c1", "1", "x")
    finally:
        await wrapped.stop()


def test_on_message_registers_on_inner_platform(platform):
    wrapped = RateLimitedPlatform(platform)

    async def handler(incoming):
        return None

    wrapped.on_message(handler)

    assert platform.handler is handler
    assert wrapped.name == "rate_limited_recording"
