"""Handlers bundled with matrix-bot."""

from .echo import EchoHandler
from .uuid import UuidHandler

__all__ = ["EchoHandler", "UuidHandler"]
