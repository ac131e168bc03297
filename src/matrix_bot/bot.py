"""The bot: wires the sync stream into auto-join and the handler chain.

Example::

    settings, _ = load_settings("~/.matrix-bot/config.toml")
    bot = MatrixBot.from_settings(settings)
    bot.add_handler(UuidHandler())
    anyio.run(bot.run)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

import anyio

from .autojoin import AutoJoinController
from .client import MatrixClient
from .errors import LoginError, MatrixRetryAfter
from .events import iter_invite_events, iter_sync_events
from .handler import HandlerChain, MessageHandler
from .logging import get_logger
from .types import MembershipEvent, MessageContext

if TYPE_CHECKING:
    from anyio.abc import TaskGroup

    from .config import MatrixBotSettings

logger = get_logger(__name__)

SYNC_TIMEOUT_MS = 30000
INITIAL_SYNC_TIMEOUT_MS = 10000


class ExponentialBackoff:
    """Exponential backoff for sync reconnection."""

    def __init__(
        self,
        initial: float = 1.0,
        maximum: float = 60.0,
        multiplier: float = 2.0,
    ) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.current = initial

    def next(self) -> float:
        delay = self.current
        self.current = min(self.current * self.multiplier, self.maximum)
        return delay

    def reset(self) -> None:
        self.current = self.initial


class MatrixBot:
    """Registers handlers and feeds them from the sync loop started by `run`.

    The client is the single session object shared by everything that
    talks to the homeserver; handlers reach it through the bot.
    """

    def __init__(
        self,
        client: MatrixClient,
        *,
        autojoin: AutoJoinController | None = None,
        enable_autojoin: bool = True,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self.client = client
        self._chain = HandlerChain()
        if autojoin is None and enable_autojoin:
            autojoin = AutoJoinController(client, sleep=sleep)
        self._autojoin = autojoin
        self._sleep = sleep
        self._task_group: TaskGroup | None = None

    @classmethod
    def from_settings(cls, settings: MatrixBotSettings) -> MatrixBot:
        client = MatrixClient(
            settings.homeserver,
            settings.username,
            password=settings.password,
            access_token=settings.access_token,
            device_id=settings.device_id,
            device_name=settings.device_name,
            store_path=settings.state_dir,
        )
        autojoin_cfg = settings.autojoin
        autojoin = (
            AutoJoinController(
                client,
                initial_delay=autojoin_cfg.initial_delay,
                multiplier=autojoin_cfg.multiplier,
                max_delay=autojoin_cfg.max_delay,
            )
            if autojoin_cfg.enabled
            else None
        )
        return cls(client, autojoin=autojoin, enable_autojoin=autojoin_cfg.enabled)

    def add_handler(self, handler: MessageHandler) -> None:
        """Register a handler. Handlers run in the order they were added."""
        self._chain.register(handler)

    @property
    def handlers(self) -> Sequence[MessageHandler]:
        return self._chain.handlers

    @property
    def user_id(self) -> str:
        return self.client.user_id

    async def send_message(self, room_id: str, body: str, **kwargs: Any) -> str:
        return await self.client.send_message(room_id, body, **kwargs)

    async def handle_event(self, event: object) -> None:
        """Route one event from the sync stream."""
        if isinstance(event, MembershipEvent):
            await self.on_membership(event)
        elif isinstance(event, MessageContext):
            await self.on_room_message(event)
        else:
            logger.debug("bot.event.ignored", event_type=type(event).__name__)

    async def on_membership(self, event: MembershipEvent) -> None:
        if self._autojoin is None:
            return
        await self._autojoin.handle_membership(event, self._task_group)

    async def on_room_message(self, ctx: MessageContext) -> None:
        if ctx.sender == self.client.user_id:
            logger.debug("bot.message.own", room_id=ctx.room_id)
            return
        handled = await self._chain.dispatch(self, ctx)
        if not handled:
            logger.debug(
                "bot.message.unhandled",
                room_id=ctx.room_id,
                event_id=ctx.event_id,
            )

    async def run(self) -> None:
        """Log in and process events until cancelled.

        Raises:
            LoginError: The homeserver rejected the credentials.
        """
        if not await self.client.login():
            raise LoginError(f"could not log in as {self.client.username}")
        logger.info("bot.started", user_id=self.user_id, handlers=len(self._chain))

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                await self._initial_sync()
                await self._sync_loop()
            finally:
                self._task_group = None

    async def _initial_sync(self) -> None:
        """First sync: accept pending invites but skip message history."""
        backoff = ExponentialBackoff()
        logger.debug("matrix.startup.initial_sync")
        while True:
            try:
                response = await self.client.sync(timeout_ms=INITIAL_SYNC_TIMEOUT_MS)
            except MatrixRetryAfter as exc:
                logger.warning("matrix.sync.rate_limited", retry_after=exc.retry_after)
                await self._sleep(exc.retry_after)
                continue
            if response is not None:
                break
            await self._sleep(backoff.next())

        for event in iter_invite_events(response):
            await self.handle_event(event)

    async def _sync_loop(self) -> None:
        """Continuous sync loop with reconnection."""
        backoff = ExponentialBackoff()
        logger.debug("matrix.sync.start", user_id=self.user_id)

        while True:
            try:
                response = await self.client.sync(timeout_ms=SYNC_TIMEOUT_MS)
                if response is None:
                    await self._sleep(backoff.next())
                    continue

                backoff.reset()
                for event in iter_sync_events(response):
                    await self.handle_event(event)

            except MatrixRetryAfter as exc:
                logger.warning("matrix.sync.rate_limited", retry_after=exc.retry_after)
                await self._sleep(exc.retry_after)
            except Exception as exc:
                logger.error(
                    "matrix.sync.error",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                await self._sleep(backoff.next())

    async def close(self) -> None:
        await self.client.close()
