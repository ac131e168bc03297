"""Tests for the bundled handlers."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest

from matrix_bot.handler import HandleResult
from matrix_bot.plugins import EchoHandler, UuidHandler
from matrix_bot.types import MessageContext
from matrix_fixtures import MATRIX_EVENT_ID, MATRIX_ROOM_ID, MATRIX_SENDER


def _ctx(body: str, msgtype: str = "m.text") -> MessageContext:
    return MessageContext(
        room_id=MATRIX_ROOM_ID,
        sender=MATRIX_SENDER,
        event_id=MATRIX_EVENT_ID,
        body=body,
        msgtype=msgtype,
    )


def _bot() -> AsyncMock:
    bot = AsyncMock()
    bot.send_message = AsyncMock(return_value="$reply")
    return bot


@pytest.mark.anyio
async def test_uuid_replies_and_stops() -> None:
    bot = _bot()

    result = await UuidHandler().handle_message(bot, _ctx("!uuid"))

    assert result is HandleResult.STOP
    bot.send_message.assert_awaited_once()
    room_id, value = bot.send_message.await_args.args
    assert room_id == MATRIX_ROOM_ID
    assert uuid.UUID(value).version == 4


@pytest.mark.anyio
@pytest.mark.parametrize("body", ["hello", "!uuid please", "", "!echo hi"])
async def test_uuid_ignores_other_messages(body: str) -> None:
    bot = _bot()

    result = await UuidHandler().handle_message(bot, _ctx(body))

    assert result is HandleResult.CONTINUE
    bot.send_message.assert_not_awaited()


@pytest.mark.anyio
async def test_uuid_ignores_non_text_message() -> None:
    bot = _bot()
    result = await UuidHandler().handle_message(bot, _ctx("", msgtype="m.image"))
    assert result is HandleResult.CONTINUE


@pytest.mark.anyio
async def test_echo_replies_to_message() -> None:
    bot = _bot()

    result = await EchoHandler().handle_message(bot, _ctx("!echo  hello world "))

    assert result is HandleResult.STOP
    bot.send_message.assert_awaited_once_with(
        MATRIX_ROOM_ID, "hello world", reply_to_event_id=MATRIX_EVENT_ID
    )


@pytest.mark.anyio
@pytest.mark.parametrize("body", ["!echo", "!echo   ", "echo hi", "!uuid"])
async def test_echo_ignores_other_messages(body: str) -> None:
    bot = _bot()

    result = await EchoHandler().handle_message(bot, _ctx(body))

    assert result is HandleResult.CONTINUE
    bot.send_message.assert_not_awaited()
