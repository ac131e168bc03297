"""Automatic acceptance of room invites with exponential backoff.

Synapse may deliver an invite before the invited user is actually allowed
to join (https://github.com/matrix-org/synapse/issues/4345), so the first
join attempts can fail. Each invite gets its own retry loop: the delay
starts at ``initial_delay`` and is multiplied after every failure. When a
failure would schedule a delay above ``max_delay`` the invite is given up.
Any exception from the join counts as a failed attempt, so a broken
connection never takes the rest of the bot down with it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import anyio

from .logging import get_logger
from .types import MembershipEvent

if TYPE_CHECKING:
    from anyio.abc import TaskGroup

logger = get_logger(__name__)

DEFAULT_INITIAL_DELAY = 2.0
DEFAULT_MULTIPLIER = 2.0
DEFAULT_MAX_DELAY = 3600.0


class JoinClient(Protocol):
    @property
    def user_id(self) -> str: ...

    async def join_room(self, room_id: str) -> None: ...


@dataclass(slots=True)
class JoinAttemptState:
    """Progress of one invite's retry loop."""

    room_id: str
    delay: float
    attempts: int = 0


class AutoJoinController:
    def __init__(
        self,
        client: JoinClient,
        *,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        multiplier: float = DEFAULT_MULTIPLIER,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._client = client
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self._sleep = sleep

    def should_join(self, event: MembershipEvent) -> bool:
        """Only invites addressed to the bot itself are accepted."""
        return event.membership == "invite" and event.state_key == self._client.user_id

    async def handle_membership(
        self,
        event: MembershipEvent,
        task_group: TaskGroup | None = None,
    ) -> bool:
        """Start a join loop for a qualifying invite.

        With a task group the loop runs detached and this returns at once;
        without one the loop runs to completion before returning.

        Returns:
            True if a join loop was started.
        """
        if not self.should_join(event):
            return False
        if task_group is not None:
            task_group.start_soon(self.join_with_retry, event.room_id)
        else:
            await self.join_with_retry(event.room_id)
        return True

    async def join_with_retry(self, room_id: str) -> bool:
        """Join ``room_id``, retrying failed attempts with backoff.

        Returns:
            True once joined, False if the invite was given up.
        """
        state = JoinAttemptState(room_id=room_id, delay=self.initial_delay)
        logger.info("autojoin.start", room_id=room_id)

        while True:
            state.attempts += 1
            try:
                await self._client.join_room(room_id)
            except Exception as exc:
                if state.delay > self.max_delay:
                    logger.error(
                        "autojoin.gave_up",
                        room_id=room_id,
                        attempts=state.attempts,
                        error=str(exc),
                        error_type=exc.__class__.__name__,
                    )
                    return False
                logger.warning(
                    "autojoin.retry",
                    room_id=room_id,
                    attempt=state.attempts,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    retry_in=state.delay,
                )
                await self._sleep(state.delay)
                state.delay *= self.multiplier
                continue

            logger.info(
                "autojoin.joined",
                room_id=room_id,
                attempts=state.attempts,
            )
            return True
