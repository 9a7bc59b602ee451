import asyncio
import json
import logging
from pathlib import Path

import pytest

from mudslide.state import ConnectionUpdate
from shared.errors import SessionConnectionError
from shared.message_types import Connection, LOGGED_OUT


SELF_ID = "31612345678:7@s.whatsapp.net"


class FakeTransport:
    """In-memory stand-in for the WhatsApp bridge"""

    def __init__(self, user_id: str | None = SELF_ID, fail_open: bool = False, auto_open: bool = False,
                 auto_update: dict | None = None) -> None:
        self.user_id = user_id
        self.fail_open = fail_open
        # connection.update fields emitted right after open()
        self.auto_update = auto_update or ({"connection": Connection.OPEN} if auto_open else None)
        self.handlers: dict[str, list] = {}
        self.opened_with = None
        self.requests: list[tuple[str, dict]] = []
        self.responses: dict[str, object] = {}
        self.logged_out = False
        self.end_calls = 0

    def on(self, event, handler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def open(self, auth) -> None:
        if self.fail_open:
            raise SessionConnectionError("bridge unreachable")
        self.opened_with = auth
        if self.auto_update:
            fields = self.auto_update
            asyncio.get_running_loop().call_soon(
                lambda: asyncio.ensure_future(self.emit_connection(**fields))
            )

    async def request(self, method: str, **params):
        self.requests.append((method, params))
        return self.responses.get(method)

    async def logout(self) -> None:
        self.logged_out = True

    async def end(self) -> None:
        self.end_calls += 1

    async def emit(self, event: str, data) -> None:
        for handler in list(self.handlers.get(event, [])):
            await handler(data)

    async def emit_connection(self, **fields) -> None:
        await self.emit("connection.update", ConnectionUpdate(**fields))

    async def emit_open(self) -> None:
        await self.emit_connection(connection=Connection.OPEN)

    async def emit_close(self, status_code: int | None = 428) -> None:
        await self.emit_connection(connection=Connection.CLOSE, status_code=status_code, reason="test close")

    async def emit_logged_out(self) -> None:
        await self.emit_close(LOGGED_OUT)


class FakeTransportFactory:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(**self.kwargs)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


async def settle(rounds: int = 10) -> None:
    """Let spawned session tasks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


def write_creds(cache_folder: Path) -> None:
    cache_folder.mkdir(parents=True, exist_ok=True)
    (cache_folder / "creds.json").write_text(json.dumps({"me": {"id": SELF_ID}}))


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI runs attach handlers to streams that are closed once the run ends"""
    yield
    for package in ("mudslide", "shared"):
        logger = logging.getLogger(package)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


@pytest.fixture
def cache_folder(tmp_path: Path) -> Path:
    return tmp_path / "mudslide-cache"


@pytest.fixture
def logged_in(cache_folder: Path) -> Path:
    write_creds(cache_folder)
    return cache_folder
