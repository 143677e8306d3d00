"""Shared pytest fixtures.

The manager tests never open a socket: ConnectionManager takes a session
factory, and these fixtures hand it FakeSession objects that record every
write and can be told to fail, stall, or drop the link.
"""

from __future__ import annotations

import asyncio

import pytest

from config import RouterConfig
from core.connection_manager import ConnectionManager, reset_connection_manager

IDENTITY_ROWS = [{"name": "MikroTik-Test"}]


class FakeSession:
    """Stands in for RouterSession; same surface, no network."""

    def __init__(
        self,
        factory: "SessionFactory",
        connect_error: Exception | None = None,
        connect_delay: float = 0.0,
    ) -> None:
        self.factory = factory
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.write_delay = 0.0
        self.close_error: Exception | None = None
        self.connected = False
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._close_handlers: list = []
        self._error_handlers: list = []

    def on_close(self, handler) -> None:
        self._close_handlers.append(handler)

    def on_error(self, handler) -> None:
        self._error_handlers.append(handler)

    async def connect(self) -> None:
        await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def close(self) -> None:
        self.connected = False
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    async def write(self, path: str, params=None, queries=None) -> list[dict]:
        self.factory.writes.append((path, params, queries))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.write_delay)
            result = self.factory.responses.get(path, [])
            if isinstance(result, Exception):
                raise result
            return [dict(row) for row in result]
        finally:
            self.in_flight -= 1

    def drop(self, error: Exception | None = None) -> None:
        """Simulate the router going away."""
        self.connected = False
        if error is not None:
            for handler in list(self._error_handlers):
                handler(error)
        for handler in list(self._close_handlers):
            handler()


class SessionFactory:
    """Callable passed as session_factory; keeps every session it built."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        self.writes: list[tuple] = []
        self.responses: dict[str, object] = {"/system/identity/print": IDENTITY_ROWS}
        self.connect_errors: list[Exception] = []
        self.connect_delay = 0.0

    def __call__(self, config: RouterConfig) -> FakeSession:
        error = self.connect_errors.pop(0) if self.connect_errors else None
        session = FakeSession(self, error, self.connect_delay)
        self.sessions.append(session)
        return session

    @property
    def connect_calls(self) -> int:
        return len(self.sessions)

    @property
    def current(self) -> FakeSession:
        return self.sessions[-1]

    def paths(self) -> list[str]:
        return [path for path, _, _ in self.writes]


@pytest.fixture(autouse=True)
def _reset_global_manager() -> None:
    """Ensure the process-wide manager does not leak between tests."""
    reset_connection_manager()
    yield
    reset_connection_manager()


@pytest.fixture
def router_config() -> RouterConfig:
    return RouterConfig(host="192.168.88.1", port=8728, username="admin", password="secret")


@pytest.fixture
def sessions() -> SessionFactory:
    return SessionFactory()


@pytest.fixture
async def manager(router_config: RouterConfig, sessions: SessionFactory) -> ConnectionManager:
    """Manager wired to fake sessions, with zero reconnect backoff."""
    mgr = ConnectionManager(
        config_loader=lambda: router_config,
        session_factory=sessions,
        reconnect_backoff=(0,),
    )
    yield mgr
    await mgr.disconnect()
