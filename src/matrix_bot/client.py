from __future__ import annotations

import functools
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, cast

import nio

from .errors import JoinError, MatrixRetryAfter, SendError
from .logging import get_logger

logger = get_logger(__name__)


class NioClientProtocol(Protocol):
    """Protocol for the parts of matrix-nio AsyncClient the bot uses."""

    user_id: str
    access_token: str
    device_id: str

    async def close(self) -> None: ...

    async def login(
        self, password: str | None = None, device_name: str | None = None
    ) -> Any: ...

    async def sync(
        self,
        timeout: int = 30000,
        sync_filter: dict[str, Any] | None = None,
        since: str | None = None,
        full_state: bool = False,
    ) -> Any: ...

    async def room_send(
        self,
        room_id: str,
        message_type: str,
        content: dict[str, Any],
        tx_id: str | None = None,
        ignore_unverified_devices: bool = True,
    ) -> Any: ...

    async def join(self, room_id: str) -> Any: ...

    async def whoami(self) -> Any: ...


def _e2ee_available() -> bool:
    try:
        from nio.crypto import Olm  # noqa: F401
    except Exception:
        return False
    return True


def _error_message(response: Any) -> str:
    return getattr(response, "message", None) or str(response)


def _retry_after(response: Any) -> MatrixRetryAfter | None:
    retry_ms = getattr(response, "retry_after_ms", None)
    if retry_ms is None:
        return None
    return MatrixRetryAfter(retry_ms / 1000.0, _error_message(response))


def build_text_content(
    body: str,
    *,
    formatted_body: str | None = None,
    reply_to_event_id: str | None = None,
    msgtype: str = "m.text",
) -> dict[str, Any]:
    content: dict[str, Any] = {"msgtype": msgtype, "body": body}
    if formatted_body:
        content["format"] = "org.matrix.custom.html"
        content["formatted_body"] = formatted_body
    if reply_to_event_id:
        content["m.relates_to"] = {
            "m.in_reply_to": {"event_id": reply_to_event_id},
        }
    return content


def _require_login(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
    """Log in lazily before running a client method; return None if that fails."""

    @functools.wraps(func)
    async def wrapper(self: "MatrixClient", *args: Any, **kwargs: Any) -> Any:
        self._ensure_nio_client()
        if not self._logged_in:
            if not await self.login():
                return None
        return await func(self, *args, **kwargs)

    return wrapper


class MatrixClient:
    """Session wrapper around nio.AsyncClient shared by the whole bot."""

    def __init__(
        self,
        homeserver: str,
        username: str,
        *,
        password: str | None = None,
        access_token: str | None = None,
        device_id: str | None = None,
        device_name: str = "matrix-bot",
        store_path: Path | None = None,
        nio_client: NioClientProtocol | None = None,
    ) -> None:
        self.homeserver = homeserver.rstrip("/")
        self.username = username
        self._password = password
        self._access_token = access_token
        self._device_id = device_id
        self._device_name = device_name
        self._store_path = store_path
        self._nio_client = nio_client
        self._logged_in = False

    @property
    def user_id(self) -> str:
        """Fully qualified user id once logged in, the configured name before."""
        if self._nio_client is not None and getattr(self._nio_client, "user_id", None):
            return self._nio_client.user_id
        return self.username

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def _ensure_nio_client(self) -> NioClientProtocol:
        if self._nio_client is not None:
            return self._nio_client

        store_path = self._store_path
        if store_path is not None:
            store_path.mkdir(parents=True, exist_ok=True)
            config = nio.AsyncClientConfig(
                store_sync_tokens=True,
                encryption_enabled=_e2ee_available(),
            )
            self._nio_client = cast(
                NioClientProtocol,
                nio.AsyncClient(
                    self.homeserver,
                    self.username,
                    device_id=self._device_id,
                    store_path=str(store_path),
                    config=config,
                ),
            )
        else:
            self._nio_client = cast(
                NioClientProtocol,
                nio.AsyncClient(
                    self.homeserver,
                    self.username,
                    device_id=self._device_id,
                ),
            )
        return self._nio_client

    async def login(self) -> bool:
        """Login to the homeserver with an access token or a password."""
        client = self._ensure_nio_client()

        if self._access_token:
            return await self._login_with_token(client)

        if self._password:
            try:
                response = await client.login(
                    password=self._password,
                    device_name=self._device_name,
                )
            except Exception as exc:
                logger.error(
                    "matrix.login.error",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                return False
            if isinstance(response, nio.LoginResponse):
                self._access_token = response.access_token
                self._device_id = response.device_id
                self._logged_in = True
                logger.info(
                    "matrix.login.password",
                    user_id=self.user_id,
                    device_id=response.device_id,
                )
                return True
            logger.error("matrix.login.failed", error=_error_message(response))
            return False

        logger.error("matrix.login.no_credentials")
        return False

    async def _login_with_token(self, client: NioClientProtocol) -> bool:
        """Adopt the access token and resolve the full user id via whoami."""
        client.access_token = self._access_token or ""
        try:
            response = await client.whoami()
        except Exception as exc:
            logger.error(
                "matrix.login.error",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return False
        if not isinstance(response, nio.WhoamiResponse):
            logger.error("matrix.login.failed", error=_error_message(response))
            return False

        client.user_id = response.user_id
        device_id = self._device_id or response.device_id
        if device_id:
            self._device_id = device_id
            client.device_id = device_id
        self._logged_in = True
        logger.info("matrix.login.token", user_id=self.user_id, device_id=device_id)
        return True

    @_require_login
    async def sync(self, timeout_ms: int = 30000, full_state: bool = False) -> Any:
        """Fetch one batch of events. nio tracks the since token itself."""
        # Guaranteed by @_require_login
        client = cast(NioClientProtocol, self._nio_client)

        try:
            response = await client.sync(timeout=timeout_ms, full_state=full_state)
        except Exception as exc:
            logger.error(
                "matrix.sync.error",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None
        if isinstance(response, nio.SyncResponse):
            return response
        retry = _retry_after(response)
        if retry is not None:
            raise retry
        logger.error("matrix.sync.failed", error=_error_message(response))
        return None

    async def join_room(self, room_id: str) -> None:
        """Accept an invitation to (or join) a room.

        Raises:
            JoinError: The server refused the join or the request failed.
        """
        client = self._ensure_nio_client()
        if not self._logged_in and not await self.login():
            raise JoinError(room_id, "not logged in")

        try:
            response = await client.join(room_id)
        except Exception as exc:
            raise JoinError(room_id, f"{exc.__class__.__name__}: {exc}") from exc
        if isinstance(response, nio.JoinResponse):
            return
        raise JoinError(room_id, _error_message(response))

    accept_invitation = join_room

    async def send_message(
        self,
        room_id: str,
        body: str,
        *,
        formatted_body: str | None = None,
        reply_to_event_id: str | None = None,
        msgtype: str = "m.text",
    ) -> str:
        """Send a message to a room and return its event id.

        Raises:
            SendError: The message could not be sent.
            MatrixRetryAfter: The homeserver rate limited the request.
        """
        client = self._ensure_nio_client()
        if not self._logged_in and not await self.login():
            raise SendError(room_id, "not logged in")

        content = build_text_content(
            body,
            formatted_body=formatted_body,
            reply_to_event_id=reply_to_event_id,
            msgtype=msgtype,
        )
        try:
            response = await client.room_send(
                room_id=room_id,
                message_type="m.room.message",
                content=content,
                ignore_unverified_devices=True,
            )
        except Exception as exc:
            raise SendError(room_id, f"{exc.__class__.__name__}: {exc}") from exc
        if isinstance(response, nio.RoomSendResponse):
            logger.debug(
                "matrix.send.sent",
                room_id=room_id,
                event_id=response.event_id,
            )
            return response.event_id
        retry = _retry_after(response)
        if retry is not None:
            raise retry
        raise SendError(room_id, _error_message(response))

    async def close(self) -> None:
        if self._nio_client is not None:
            await self._nio_client.close()
            self._nio_client = None
        self._logged_in = False
