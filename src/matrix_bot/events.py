"""Turn nio sync responses into bot events."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from .logging import get_logger
from .types import MembershipEvent, MessageContext

logger = get_logger(__name__)

BotEvent = MembershipEvent | MessageContext

MESSAGE_EVENT_TYPES = frozenset(
    {
        "RoomMessageText",
        "RoomMessageNotice",
        "RoomMessageEmote",
        "RoomMessageImage",
        "RoomMessageFile",
        "RoomMessageAudio",
        "RoomMessageVideo",
        "RoomEncryptedImage",
        "RoomEncryptedFile",
        "RoomEncryptedAudio",
        "RoomEncryptedVideo",
        "RoomMessageUnknown",
    }
)
MEMBER_EVENT_TYPES = frozenset({"RoomMemberEvent", "InviteMemberEvent"})
TEXT_MSGTYPES = frozenset({"m.text", "m.notice", "m.emote"})


def _source_content(event: Any) -> dict[str, Any]:
    source = getattr(event, "source", None)
    if not isinstance(source, dict):
        return {}
    content = source.get("content")
    return content if isinstance(content, dict) else {}


def parse_membership(event: Any, room_id: str) -> MembershipEvent | None:
    """Parse a nio member event. Returns None when fields are missing."""
    state_key = getattr(event, "state_key", None)
    membership = getattr(event, "membership", None)
    if membership is None:
        membership = _source_content(event).get("membership")
    if not isinstance(state_key, str) or not isinstance(membership, str):
        return None
    return MembershipEvent(
        room_id=room_id,
        state_key=state_key,
        membership=membership,
        sender=getattr(event, "sender", None),
    )


def parse_message(event: Any, room_id: str) -> MessageContext | None:
    """Parse a nio room message event.

    Text-like msgtypes (m.text, m.notice, m.emote) keep their body; every
    other msgtype is handed on with an empty body.
    """
    sender = getattr(event, "sender", None)
    event_id = getattr(event, "event_id", None)
    if sender is None or event_id is None:
        return None

    source = getattr(event, "source", None)
    content = _source_content(event)
    msgtype = content.get("msgtype")
    if type(event).__name__ == "RoomMessageText":
        msgtype = msgtype or "m.text"
    body = getattr(event, "body", "") if msgtype in TEXT_MSGTYPES else ""

    return MessageContext(
        room_id=room_id,
        sender=sender,
        event_id=event_id,
        body=body if isinstance(body, str) else "",
        msgtype=msgtype if isinstance(msgtype, str) else None,
        raw=source if isinstance(source, dict) else None,
    )


def iter_invite_events(response: Any) -> Iterator[MembershipEvent]:
    """Yield membership events from the invite section of a sync response."""
    rooms = getattr(response, "rooms", None)
    if rooms is None:
        return
    invite = getattr(rooms, "invite", None) or {}
    for room_id, invite_info in invite.items():
        for event in getattr(invite_info, "invite_state", []):
            if type(event).__name__ not in MEMBER_EVENT_TYPES:
                continue
            parsed = parse_membership(event, room_id)
            if parsed is not None:
                yield parsed


def iter_timeline_events(response: Any) -> Iterator[BotEvent]:
    """Yield membership and message events from joined room timelines."""
    rooms = getattr(response, "rooms", None)
    if rooms is None:
        return
    join = getattr(rooms, "join", None) or {}
    for room_id, room_info in join.items():
        timeline = getattr(room_info, "timeline", None)
        if timeline is None:
            continue
        for event in getattr(timeline, "events", []):
            event_type = type(event).__name__
            parsed: BotEvent | None
            if event_type in MEMBER_EVENT_TYPES:
                parsed = parse_membership(event, room_id)
            elif event_type in MESSAGE_EVENT_TYPES:
                parsed = parse_message(event, room_id)
            else:
                continue
            if parsed is None:
                logger.debug(
                    "matrix.sync.malformed_event",
                    room_id=room_id,
                    event_type=event_type,
                )
                continue
            yield parsed


def iter_sync_events(response: Any) -> Iterator[BotEvent]:
    """Yield every bot event of a sync response, invites first."""
    yield from iter_invite_events(response)
    yield from iter_timeline_events(response)
