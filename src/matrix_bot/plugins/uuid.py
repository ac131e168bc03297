from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from ..handler import HandleResult
from ..logging import get_logger
from ..types import MessageContext

if TYPE_CHECKING:
    from ..bot import MatrixBot

logger = get_logger(__name__)

COMMAND = "!uuid"


class UuidHandler:
    """Reply to ``!uuid`` with a freshly generated UUID4."""

    async def handle_message(self, bot: MatrixBot, ctx: MessageContext) -> HandleResult:
        if ctx.body.strip() != COMMAND:
            return HandleResult.CONTINUE

        value = str(uuid.uuid4())
        await bot.send_message(ctx.room_id, value)
        logger.info("plugin.uuid.sent", room_id=ctx.room_id)
        return HandleResult.STOP
