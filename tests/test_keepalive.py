"""Tests for the keepalive loop."""

import asyncio

import pytest

from core.keepalive import Keepalive


class TestKeepalive:
    @pytest.mark.asyncio
    async def test_waits_before_first_ping(self) -> None:
        pings = []

        async def ping() -> None:
            pings.append(1)

        keepalive = Keepalive(ping)
        keepalive.start(0.05)
        await asyncio.sleep(0.01)

        assert pings == []
        await keepalive.stop()

    @pytest.mark.asyncio
    async def test_pings_repeatedly(self) -> None:
        pings = []

        async def ping() -> None:
            pings.append(1)

        keepalive = Keepalive(ping)
        keepalive.start(0.01)
        await asyncio.sleep(0.055)
        await keepalive.stop()

        assert len(pings) >= 3
        assert not keepalive.running

    @pytest.mark.asyncio
    async def test_failed_ping_keeps_running(self) -> None:
        calls = []

        async def ping() -> None:
            calls.append(1)
            raise ConnectionError("no route to host")

        keepalive = Keepalive(ping)
        keepalive.start(0.01)
        await asyncio.sleep(0.035)

        assert len(calls) >= 2
        assert keepalive.running
        await keepalive.stop()

    @pytest.mark.asyncio
    async def test_restart_replaces_task(self) -> None:
        async def ping() -> None:
            pass

        keepalive = Keepalive(ping)
        keepalive.start(10)
        first = keepalive._task
        keepalive.start(10)
        await asyncio.sleep(0)

        assert first.cancelled()
        assert keepalive.running
        keepalive.cancel()
        assert not keepalive.running
