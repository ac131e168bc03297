"""Message handler plugins and the ordered chain that runs them."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from .logging import get_logger
from .types import MessageContext

if TYPE_CHECKING:
    from .bot import MatrixBot

logger = get_logger(__name__)


class HandleResult(Enum):
    """Verdict of a handler.

    CONTINUE passes the message on to the next handler, STOP ends the
    chain for this message.
    """

    CONTINUE = "continue"
    STOP = "stop"


class MessageHandler(Protocol):
    """A plugin reacting to room messages.

    Example::

        class EchoHandler:
            async def handle_message(self, bot, ctx):
                if not ctx.body:
                    return HandleResult.CONTINUE
                await bot.send_message(ctx.room_id, ctx.body)
                return HandleResult.STOP
    """

    async def handle_message(
        self, bot: MatrixBot, ctx: MessageContext
    ) -> HandleResult: ...


def _handler_name(handler: MessageHandler) -> str:
    return type(handler).__name__


class HandlerChain:
    """Ordered handlers consulted for every incoming message.

    Registration order is priority order. Handlers are never reordered or
    de-duplicated: registering the same handler twice runs it twice.
    """

    def __init__(self) -> None:
        self._handlers: list[MessageHandler] = []

    def register(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    @property
    def handlers(self) -> Sequence[MessageHandler]:
        return tuple(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(self, bot: MatrixBot, ctx: MessageContext) -> bool:
        """Run handlers in order until one returns STOP.

        A handler that raises is logged and treated as CONTINUE, so one
        broken plugin never silences the rest of the chain.

        Returns:
            True if a handler stopped the chain, False if the message went
            unhandled.
        """
        for index, handler in enumerate(self._handlers):
            try:
                result = await handler.handle_message(bot, ctx)
            except Exception as exc:
                logger.exception(
                    "handler.failed",
                    handler=_handler_name(handler),
                    position=index,
                    room_id=ctx.room_id,
                    event_id=ctx.event_id,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                continue
            if result is HandleResult.STOP:
                logger.debug(
                    "handler.stopped",
                    handler=_handler_name(handler),
                    position=index,
                    event_id=ctx.event_id,
                )
                return True
        return False
