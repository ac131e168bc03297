"""A small Matrix bot framework: auto-join on invite and chained message handlers."""

__version__ = "0.1.0"

from .bot import MatrixBot
from .client import MatrixClient
from .errors import (
    ConfigError,
    JoinError,
    LoginError,
    MatrixBotError,
    SendError,
)
from .handler import HandleResult, HandlerChain, MessageHandler
from .types import MembershipEvent, MessageContext

__all__ = [
    "ConfigError",
    "HandleResult",
    "HandlerChain",
    "JoinError",
    "LoginError",
    "MatrixBot",
    "MatrixBotError",
    "MatrixClient",
    "MembershipEvent",
    "MessageContext",
    "MessageHandler",
    "SendError",
]
