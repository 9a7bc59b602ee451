"""
Session lifecycle for one mudslide invocation.

    DISCONNECTED -> CONNECTING -> {AWAITING_PAIRING | OPEN} -> CLOSING -> TERMINATED
                         ^                                        |
                         +---- non-logout close (reconnect) ------+

All transport connection.update events go through _on_connection_update(),
the only place that moves the session between CONNECTING, AWAITING_PAIRING,
OPEN and CLOSING. Commands wait for states with wait_for() and only talk to the
transport while the session is OPEN.
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, FrozenSet, List, Optional, Set, Tuple

from mudslide.credentials import CredentialStore
from mudslide.resolver import RecipientResolver
from mudslide.state import ConnectionUpdate, SessionState
from mudslide.transport import EventHandler, Transport
from shared.config import ReconnectPolicy
from shared.errors import (
    MudslideError,
    NotReady,
    SessionConnectionError,
    StorageError,
    TerminalLogout,
)
from shared.log import get_logger
from shared.message_types import RESTART_REQUIRED, Connection, FrameType

logger = get_logger(__name__)

TransportFactory = Callable[[], Transport]
PairingHandler = Callable[[str], None]


class SessionController:
    """
    Owns the session state machine and the transport it drives.

    Args:
        transport_factory: Builds a fresh transport for every (re)connect
        credentials: Store that supplies and receives the auth state
        resolver: Recipient resolver used by resolve() once the session is open
        reconnect: Policy applied after a close that is not a logout
        on_pairing: Called with every pairing challenge (QR payload)
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        credentials: CredentialStore,
        resolver: RecipientResolver,
        *,
        reconnect: Optional[ReconnectPolicy] = None,
        on_pairing: Optional[PairingHandler] = None,
    ) -> None:
        self.transport_factory = transport_factory
        self.credentials = credentials
        self.resolver = resolver
        self.reconnect_policy = reconnect or ReconnectPolicy()
        self.on_pairing = on_pairing

        self.state = SessionState.DISCONNECTED
        self.transport: Optional[Transport] = None
        self.error: Optional[MudslideError] = None
        self.reconnects = 0

        self._attempt = 0
        self._closing_requested = False
        self._logging_out = False
        self._subscriptions: List[Tuple[str, EventHandler]] = []
        self._waiters: List[Tuple[FrozenSet[SessionState], asyncio.Future]] = []
        self._terminated = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def self_id(self) -> Optional[str]:
        return self.transport.user_id if self.transport is not None else None

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """Open the transport with the persisted credentials"""
        if self.state is not SessionState.DISCONNECTED:
            raise RuntimeError(f"Session already started ({self.state.value})")
        try:
            await self._connect()
        except (SessionConnectionError, StorageError) as e:
            logger.error(f"Could not start session: {e}")
            await self._finish(e)
            raise

    def terminate(self, grace_period_seconds: float = 1) -> None:
        """
        Close the session after the grace period.

        The grace period lets a just-submitted send flush before the socket
        closes. Once called, termination always happens; later calls are no-ops.
        """
        if self._closing_requested or self.state is SessionState.TERMINATED:
            logger.debug("Termination already scheduled")
            return
        self._closing_requested = True
        self._transition(SessionState.CLOSING)
        self._spawn(self._shutdown_after(max(grace_period_seconds, 0)))

    async def logout(self, grace_period_seconds: float = 1) -> None:
        """Log the device out, drop the stored credentials and terminate"""
        transport = self._require_open()
        self._logging_out = True
        try:
            await transport.logout()
        finally:
            self.credentials.clear()
            self.terminate(grace_period_seconds)

    async def wait_for(self, *states: SessionState) -> SessionState:
        """
        Wait until the session enters one of the given states.

        Raises the terminal error (or NotReady) if the session terminates first.
        """
        if self.state in states:
            return self.state
        if self.state is SessionState.TERMINATED:
            raise self.error or NotReady("Session already terminated")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append((frozenset(states), future))
        return await future

    async def wait_terminated(self) -> None:
        await self._terminated.wait()
        if self.error is not None:
            raise self.error

    # ========== Operations (OPEN only) ==========

    def subscribe(self, event: str, handler: EventHandler) -> None:
        """Attach an event handler to the current and every future transport"""
        self._subscriptions.append((event, handler))
        if self.transport is not None:
            self.transport.on(event, handler)

    def resolve(self, token: str) -> str:
        self._require_open()
        address = self.resolver.resolve(token, self.self_id)
        logger.debug("Resolved %r", token, extra={"recipient": address})
        return address

    async def request(self, method: str, **params: Any) -> Any:
        transport = self._require_open()
        return await transport.request(method, **params)

    # ========== Transport events ==========

    async def _on_connection_update(self, transport: Transport, update: ConnectionUpdate) -> None:
        if transport is not self.transport:
            logger.debug("Ignoring event from a replaced transport")
            return
        if self.state is SessionState.TERMINATED:
            return
        if self._closing_requested and update.connection is not Connection.CLOSE:
            return

        if update.qr:
            self._transition(SessionState.AWAITING_PAIRING)
            if self.on_pairing is not None:
                self.on_pairing(update.qr)

        if update.connection is Connection.OPEN:
            self._attempt = 0
            self._transition(SessionState.OPEN)
        elif update.connection is Connection.CLOSE:
            await self._on_close(update)

    async def _on_close(self, update: ConnectionUpdate) -> None:
        if self._closing_requested or self._logging_out:
            logger.debug("Connection closed during shutdown", extra={"state": self.state.value})
            return

        if update.is_logged_out:
            logger.warning("Session was logged out by the server", extra={"state": self.state.value})
            try:
                self.credentials.clear()
            except StorageError as e:
                logger.error(f"Could not clear credentials: {e}")
            await self._finish(TerminalLogout())
            return

        if update.status_code == RESTART_REQUIRED:
            logger.info("Pairing complete, restarting connection", extra={"state": self.state.value})
        self._transition(SessionState.CLOSING)
        self._spawn(self._reconnect(update))

    async def _on_creds_update(self, creds: Any) -> None:
        if self._logging_out or self.state is SessionState.TERMINATED:
            return
        try:
            self.credentials.save_creds(creds)
        except StorageError as e:
            logger.error(f"Could not persist credentials: {e}")
            await self._finish(e)

    async def _on_keys_update(self, keys: Any) -> None:
        if self._logging_out or self.state is SessionState.TERMINATED:
            return
        try:
            self.credentials.save_keys(keys)
        except StorageError as e:
            logger.error(f"Could not persist keys: {e}")
            await self._finish(e)

    # ========== Internals ==========

    async def _connect(self) -> None:
        self._transition(SessionState.CONNECTING)
        transport = self.transport_factory()
        transport.on(FrameType.CONNECTION_UPDATE.value, partial(self._on_connection_update, transport))
        transport.on(FrameType.CREDS_UPDATE.value, self._on_creds_update)
        transport.on(FrameType.KEYS_UPDATE.value, self._on_keys_update)
        for event, handler in self._subscriptions:
            transport.on(event, handler)
        self.transport = transport

        await transport.open(self.credentials.load_auth_state())

        if self._closing_requested:
            # terminate() ran while the transport was opening
            await transport.end()

    async def _reconnect(self, update: ConnectionUpdate) -> None:
        self._attempt += 1
        attempt = self._attempt
        if not self.reconnect_policy.allows(attempt):
            await self._finish(SessionConnectionError(
                f"Connection lost; gave up after {attempt - 1} reconnect attempt(s)"
            ))
            return

        logger.info(
            "Connection closed (%s), reconnecting",
            update.reason or update.status_code or "unknown reason",
            extra={"attempt": attempt},
        )
        if self.transport is not None:
            await self.transport.end()

        delay = self.reconnect_policy.delay(attempt)
        if delay > 0:
            await asyncio.sleep(delay)
        if self._closing_requested or self.state is SessionState.TERMINATED:
            return

        self.reconnects += 1
        try:
            await self._connect()
        except (SessionConnectionError, StorageError) as e:
            logger.error(f"Reconnect failed: {e}", extra={"attempt": attempt})
            await self._finish(e)

    async def _shutdown_after(self, grace_period_seconds: float) -> None:
        if grace_period_seconds > 0:
            await asyncio.sleep(grace_period_seconds)
        await self._finish()

    async def _finish(self, error: Optional[MudslideError] = None) -> None:
        if self.state is SessionState.TERMINATED:
            return
        if error is not None and self.error is None:
            self.error = error
        if self.transport is not None:
            await self.transport.end()
        self._transition(SessionState.TERMINATED)

    def _transition(self, new_state: SessionState) -> None:
        if new_state is self.state:
            return
        old_state = self.state
        self.state = new_state
        logger.debug(f"{old_state.value} -> {new_state.value}", extra={"state": new_state.value})

        remaining = []
        for states, future in self._waiters:
            if future.done():
                continue
            if new_state in states:
                future.set_result(new_state)
            elif new_state is SessionState.TERMINATED:
                future.set_exception(self.error or NotReady("Session terminated before it was ready"))
            else:
                remaining.append((states, future))
        self._waiters = remaining

        if new_state is SessionState.TERMINATED:
            self._terminated.set()

    def _require_open(self) -> Transport:
        if self.state is not SessionState.OPEN or self.transport is None:
            raise NotReady(f"Session is {self.state.value}, not open")
        return self.transport

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session task failed", exc_info=task.exception())
