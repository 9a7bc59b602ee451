from __future__ import annotations
import asyncio
import sys
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import websockets

from mudslide.credentials import AuthState
from mudslide.state import ConnectionUpdate
from shared.envelope import Envelope, create_envelope
from shared.errors import BadFrameError, SessionConnectionError, TransportError
from shared.log import get_logger
from shared.message_types import EVENT_FRAMES, FrameType

logger = get_logger(__name__)


# connection.update handlers receive a ConnectionUpdate, every other event the raw payload
EventHandler = Callable[[Any], Awaitable[None]]


class Transport(Protocol):
    """
    The external session transport as the session controller sees it.

    Implementations own the wire protocol, encryption and pairing; they emit
    connection.update / creds.update / keys.update / messages.* events and
    execute domain requests once the connection is open.
    """

    user_id: Optional[str]

    def on(self, event: str, handler: EventHandler) -> None:
        ...

    async def open(self, auth: AuthState) -> None:
        """Start connecting; raises SessionConnectionError when that is impossible"""
        ...

    async def request(self, method: str, **params: Any) -> Any:
        ...

    async def logout(self) -> None:
        ...

    async def end(self) -> None:
        ...


def browser_description() -> List[str]:
    if sys.platform == "darwin":
        os_name = "macOS"
    elif sys.platform == "win32":
        os_name = "Windows"
    else:
        os_name = "Linux"
    return [os_name, "Chrome", "10.15.0"]


class BridgeTransport:
    """
    Transport backed by a WhatsApp bridge process reachable over WebSocket.

    One instance drives one bridge connection; the session controller creates
    a fresh instance for every (re)connect.
    """

    def __init__(
        self,
        url: str,
        *,
        log_level: str = "silent",
        proxy: bool = False,
        request_timeout: float = 60.0,
    ) -> None:
        self.url = url
        self.log_level = log_level
        self.proxy = proxy
        self.request_timeout = request_timeout
        self.websocket: Optional[websockets.ClientConnection] = None
        self.handlers: Dict[str, List[EventHandler]] = {}
        self.user_id: Optional[str] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._recv_task: Optional[asyncio.Task] = None
        self._ending = False

    def on(self, event: str, handler: EventHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def open(self, auth: AuthState) -> None:
        """Connect to the bridge and ask it to open the WhatsApp socket"""
        try:
            self.websocket = await websockets.connect(
                self.url,
                ping_interval=15,
                ping_timeout=45,
                proxy=True if self.proxy else None,
            )
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise SessionConnectionError(f"Could not connect to bridge at {self.url}: {e}") from e

        logger.debug("Connected to bridge at %s", self.url)
        self._recv_task = asyncio.create_task(self.recv_loop())

        payload = {
            "creds": auth.creds,
            "keys": auth.keys,
            "browser": browser_description(),
            "log_level": self.log_level,
            "sync_full_history": False,
        }
        try:
            await self.send(create_envelope(FrameType.AUTH_OPEN.value, payload))
        except TransportError as e:
            raise SessionConnectionError(str(e)) from e

    async def send(self, envelope: Envelope) -> None:
        if self.websocket is None:
            raise TransportError("Bridge is not connected")
        try:
            await self.websocket.send(envelope.to_json())
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Bridge connection closed while sending {envelope.type}") from e
        logger.debug("Sent %s frame", envelope.type)

    async def request(self, method: str, **params: Any) -> Any:
        """Send a request frame and wait for the response with the same id"""
        envelope = create_envelope(FrameType.REQUEST.value, {"method": method, "params": params})
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[envelope.id] = future
        try:
            await self.send(envelope)
            return await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"Request {method} timed out after {self.request_timeout:g}s", code="TIMEOUT")
        finally:
            self._pending.pop(envelope.id, None)

    async def logout(self) -> None:
        await self.request("logout")

    async def recv_loop(self) -> None:
        assert self.websocket is not None
        reason: Optional[str] = None
        try:
            async for raw in self.websocket:
                try:
                    if isinstance(raw, bytes):
                        raw = raw.decode('utf-8')
                    env = Envelope.from_json(raw)
                except (BadFrameError, UnicodeDecodeError) as e:
                    logger.error("Failed to parse inbound frame: %s", e)
                    continue
                await self._dispatch(env)
        except websockets.exceptions.ConnectionClosed as e:
            reason = str(e)
        finally:
            self._fail_pending(TransportError("Bridge connection closed"))

        if not self._ending:
            logger.warning("Bridge connection lost", extra={"event": FrameType.CONNECTION_UPDATE.value})
            await self._emit(
                FrameType.CONNECTION_UPDATE.value,
                ConnectionUpdate.closed(reason=reason or "bridge connection lost"),
            )

    async def end(self) -> None:
        self._ending = True
        if self.websocket is not None:
            try:
                await self.websocket.close(code=1000)
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.error(f"Error closing bridge connection: {e}")

        task = self._recv_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def _dispatch(self, env: Envelope) -> None:
        if env.type == FrameType.RESPONSE.value:
            self._resolve(env)
            return

        if not FrameType.is_valid(env.type) or FrameType(env.type) not in EVENT_FRAMES:
            logger.debug("Ignoring %s frame", env.type)
            return

        data: Any = env.payload
        if env.type == FrameType.CONNECTION_UPDATE.value:
            data = ConnectionUpdate.from_payload(env.payload)
            if data.user_id:
                self.user_id = data.user_id
        await self._emit(env.type, data)

    def _resolve(self, env: Envelope) -> None:
        future = self._pending.get(env.id)
        if future is None or future.done():
            logger.debug("Dropping response for unknown request %s", env.id)
            return

        error = env.payload.get("error")
        if error:
            if isinstance(error, dict):
                future.set_exception(TransportError(str(error.get("message", "request failed")), code=error.get("code")))
            else:
                future.set_exception(TransportError(str(error)))
        else:
            future.set_result(env.payload.get("result"))

    async def _emit(self, event: str, data: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            try:
                await handler(data)
            except Exception:
                logger.exception("Handler for %s failed", event)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
