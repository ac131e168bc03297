from __future__ import annotations

from typing import TYPE_CHECKING

from ..handler import HandleResult
from ..types import MessageContext

if TYPE_CHECKING:
    from ..bot import MatrixBot

COMMAND = "!echo"


class EchoHandler:
    """Repeat the text after ``!echo`` back to the room, as a reply."""

    async def handle_message(self, bot: MatrixBot, ctx: MessageContext) -> HandleResult:
        command, _, text = ctx.body.strip().partition(" ")
        if command != COMMAND or not text.strip():
            return HandleResult.CONTINUE

        await bot.send_message(ctx.room_id, text.strip(), reply_to_event_id=ctx.event_id)
        return HandleResult.STOP
