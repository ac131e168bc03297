"""Exceptions raised by matrix-bot."""

from __future__ import annotations


class MatrixBotError(Exception):
    """Base class for all matrix-bot errors."""


class ConfigError(MatrixBotError):
    """Configuration file is missing or invalid."""


class LoginError(MatrixBotError):
    """Logging in to the homeserver failed."""


class JoinError(MatrixBotError):
    """Joining a room failed. Usually transient right after an invite."""

    def __init__(self, room_id: str, message: str) -> None:
        super().__init__(f"failed to join {room_id}: {message}")
        self.room_id = room_id
        self.message = message


class SendError(MatrixBotError):
    def __init__(self, room_id: str, message: str) -> None:
        super().__init__(f"failed to send to {room_id}: {message}")
        self.room_id = room_id
        self.message = message


class RetryAfter(MatrixBotError):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


class MatrixRetryAfter(RetryAfter):
    pass
