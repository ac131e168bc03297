"""Event types routed through the bot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class MembershipEvent:
    """A room membership change (m.room.member).

    Attributes:
        room_id: Room the membership applies to.
        state_key: User whose membership changed.
        membership: New membership state: invite, join, leave, ban, knock.
        sender: User who caused the change (the inviter for invites).
    """

    room_id: str
    state_key: str
    membership: str
    sender: str | None = None


@dataclass(frozen=True, slots=True)
class MessageContext:
    """A room message handed to plugins.

    Non-text messages (images, files, ...) carry an empty body.
    """

    room_id: str
    sender: str
    event_id: str
    body: str = ""
    msgtype: str | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    @property
    def is_text(self) -> bool:
        return self.msgtype == "m.text"
