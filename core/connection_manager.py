"""
Connection Manager – owns the single RouterOS session of the process.

Every caller (HTTP handlers, WebSocket pollers, AI tools, the terminal) goes
through execute_command(), which:
  - connects first if needed (one shared attempt, however many callers)
  - queues the command and waits its turn (FIFO, one command on the wire)
  - returns the raw !re rows

Around that:
  - unexpected session close -> cache cleared, reconnect with backoff
    [1, 2, 4, 8, 16, 30]s, at most max_reconnect_attempts in a row
  - keepalive pings /system/identity/print every keepalive_interval
  - read-heavy getters sit behind a short-TTL cache
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from config import RouterConfig, load_router_config
from ui.formatters import format_row, format_rows

from .api_session import RouterSession
from .cache import ResponseCache
from .errors import CommandError, ConfigurationError, RouterConnectionError, RouterError
from .keepalive import Keepalive
from .models import (
    ArpEntry,
    DhcpLease,
    FirewallRule,
    HealthStatus,
    IpAddress,
    NetworkInterface,
    Route,
    RouterStatus,
    SystemResources,
)
from .parsers import parse_bytes, parse_uptime
from .terminal import parse_terminal_command, split_arguments
from .traffic import RateTracker

log = logging.getLogger("ConnectionManager")

T = TypeVar("T")

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BACKOFF = (1, 2, 4, 8, 16, 30)  # seconds
KEEPALIVE_COMMAND = "/system/identity/print"

# Cache keys and how stale each may get (seconds)
IDENTITY_KEY = "router-identity"
ROUTER_STATUS_KEY = "router-status"
INTERFACES_KEY = "interfaces"
TTL_IDENTITY = 30.0
TTL_ROUTER_STATUS = 3.0
TTL_INTERFACES = 5.0
DEFAULT_TTL = 5.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class QueuedCommand:
    path: str
    params: Optional[dict]
    queries: Optional[list[str]]
    future: asyncio.Future

    @property
    def command(self) -> str:
        words = [self.path]
        words += [f"{k}={v}" for k, v in (self.params or {}).items()]
        words += self.queries or []
        return " ".join(words)


class ConnectionManager:
    """
    Usage:
        manager = ConnectionManager()
        await manager.start()
        rows = await manager.execute_command("/ip/address/print")
        text = await manager.execute_terminal_command("/interface print where running=yes")
        await manager.stop()
    """

    def __init__(
        self,
        config_loader: Callable[[], RouterConfig] = load_router_config,
        session_factory: Callable[[RouterConfig], RouterSession] = RouterSession.from_config,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_backoff: tuple[float, ...] = RECONNECT_BACKOFF,
    ):
        self._config_loader = config_loader
        self._session_factory = session_factory
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_backoff = tuple(reconnect_backoff)

        self._config: Optional[RouterConfig] = None
        self._session: Optional[RouterSession] = None
        self.state = ConnectionState.DISCONNECTED
        self.connected_since: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.router_identity: Optional[str] = None
        self.reconnect_attempts = 0

        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        # Bumped by disconnect() so a login still in flight knows it was abandoned
        self._epoch = 0

        self._queue: asyncio.Queue[QueuedCommand] = asyncio.Queue()
        self._drain_task: Optional[asyncio.Task] = None

        self._keepalive = Keepalive(self._keepalive_ping)
        self.cache = ResponseCache()
        self._rates = RateTracker()

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> bool:
        """
        Connect at process start. A router that is down is not fatal: the
        first command retries. A missing host is (ConfigurationError).
        """
        try:
            return await self.connect()
        except RouterConnectionError as e:
            log.warning(f"Router unavailable at startup, will connect on first use: {e}")
            return False

    async def stop(self) -> None:
        await self.disconnect("shutdown")

    @property
    def config(self) -> RouterConfig:
        if self._config is None:
            self._config = self._config_loader()
            log.info(f"Configuration loaded: {self._config.describe()}")
        return self._config

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self._session is not None

    def is_connection_active(self) -> bool:
        return self.is_connected

    # ─── Connection ───────────────────────────────────────────────────────────

    async def connect(self) -> bool:
        """
        Idempotent: already connected returns True, and callers arriving while
        an attempt is outstanding all await that one attempt.
        """
        if self.is_connected:
            return True
        if self._connect_task is None:
            self._connect_task = asyncio.ensure_future(self._connect_once())
        return await asyncio.shield(self._connect_task)

    async def _connect_once(self) -> bool:
        try:
            return await self._do_connect()
        finally:
            self._connect_task = None

    async def _do_connect(self) -> bool:
        config = self.config
        epoch = self._epoch
        if self.state is not ConnectionState.RECONNECTING:
            self.state = ConnectionState.CONNECTING

        log.info(f"Connecting to {config.host}:{config.port}...")
        started = time.monotonic()

        session = self._session_factory(config)
        session.on_close(lambda: self._handle_close(session))
        session.on_error(self._handle_session_error)

        try:
            await session.connect()
            identity = await self._read_identity(session)
            if not session.connected:
                # its close event came before adoption and was ignored
                raise RouterConnectionError("Connection lost during login")
        except Exception as e:
            self.last_error = str(e)
            if self.state is ConnectionState.CONNECTING:
                self.state = ConnectionState.DISCONNECTED
            log.error(f"Failed to connect to {config.host}:{config.port}: {e}")
            if session.connected:
                await self._close_quietly(session, "connect failed")
            if isinstance(e, RouterError):
                raise
            raise RouterConnectionError(str(e)) from e

        if epoch != self._epoch:
            self.last_error = "Disconnected while the connection was being established"
            await self._close_quietly(session, "abandoned by disconnect")
            raise RouterConnectionError(self.last_error)

        self._session = session
        self.state = ConnectionState.CONNECTED
        self.connected_since = datetime.now(timezone.utc)
        self.reconnect_attempts = 0
        self.last_error = None
        self.router_identity = identity
        self._keepalive.start(config.keepalive_interval)
        log.info(f"Connected to {identity or config.host} in {(time.monotonic() - started) * 1000:.0f} ms")
        return True

    async def _read_identity(self, session: RouterSession) -> Optional[str]:
        """
        Identity read on a session not yet adopted. Must not go through
        get_identity(): its caller may be the one waiting on this connect.
        """
        try:
            rows = await session.write("/system/identity/print")
        except CommandError as e:
            log.warning(f"Failed to fetch router identity: {e}")
            return None
        return (rows[0].get("name") if rows else None) or "MikroTik"

    async def disconnect(self, reason: Optional[str] = None) -> None:
        """Stop keepalive and reconnects, close the session, reset state. Never raises."""
        self._epoch += 1
        await self._keepalive.stop()

        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect and not reconnect.done() and reconnect is not asyncio.current_task():
            reconnect.cancel()

        session, self._session = self._session, None
        self.state = ConnectionState.DISCONNECTED
        self.connected_since = None
        self.router_identity = None
        self.cache.clear()

        if session is not None:
            await self._close_quietly(session, reason)

    async def refresh_connection(self) -> bool:
        """Reload settings and reconnect, e.g. after the router address changed."""
        log.info("Refreshing connection with new configuration...")
        await self.disconnect("settings updated")
        self._config = None
        self.reconnect_attempts = 0
        try:
            await self.connect()
        except RouterError as e:
            log.error(f"Failed to refresh connection: {e}")
            return False
        log.info("Connection refreshed successfully")
        return True

    async def _close_quietly(self, session: RouterSession, reason: Optional[str]) -> None:
        try:
            await session.close()
            log.info(f"Disconnected from router{f' ({reason})' if reason else ''}")
        except Exception as e:
            log.error(f"Error during disconnect: {e}")

    async def _ensure_connected(self) -> None:
        if not self.is_connected:
            await self.connect()

    # ─── Disconnect / Reconnect ───────────────────────────────────────────────

    def _handle_close(self, session: RouterSession) -> None:
        if session is not self._session:
            return  # stale session or intentional disconnect()

        log.warning("Connection closed unexpectedly")
        self._session = None
        self.state = ConnectionState.DISCONNECTED
        self.connected_since = None
        self._keepalive.cancel()

        # Never serve data from before the drop
        self.cache.clear()
        log.info("Cache cleared due to disconnection")

        self._schedule_reconnect()

    def _handle_session_error(self, error: Exception) -> None:
        self.last_error = str(error)
        log.error(f"Connection error: {error}")

    def backoff_delay(self, attempt: int) -> float:
        return self.reconnect_backoff[min(attempt, len(self.reconnect_backoff) - 1)]

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            log.error("Max reconnection attempts reached. Manual intervention required.")
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        try:
            while self.reconnect_attempts < self.max_reconnect_attempts:
                self.state = ConnectionState.RECONNECTING
                delay = self.backoff_delay(self.reconnect_attempts)
                self.reconnect_attempts += 1
                attempt = self.reconnect_attempts
                log.info(f"Reconnecting in {delay:g}s (attempt {attempt}/{self.max_reconnect_attempts})...")
                await asyncio.sleep(delay)

                if self.is_connected:
                    log.info("Connection already re-established")
                    return
                try:
                    await self.connect()
                except ConfigurationError as e:
                    log.error(f"Reconnection aborted: {e}")
                    return
                except Exception as e:
                    log.warning(f"Reconnection attempt {attempt} failed: {e}")
                    continue
                if not self.is_connected:
                    # dropped again before this loop resumed; its close event saw us running
                    log.warning("Connection lost right after reconnecting")
                    continue
                log.info("Reconnection successful")
                return

            log.error("Max reconnection attempts reached. Manual intervention required.")
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None
            if self.state is ConnectionState.RECONNECTING:
                self.state = ConnectionState.DISCONNECTED

    async def _keepalive_ping(self) -> None:
        if not self.is_connected:
            return
        await self.execute_command(KEEPALIVE_COMMAND)

    # ─── Command Execution ────────────────────────────────────────────────────

    async def execute_command(
        self,
        path: str,
        params: Optional[dict] = None,
        queries: Optional[list[str]] = None,
    ) -> list[dict]:
        """Run one API command (e.g. "/ip/address/print") and return its rows."""
        await self._ensure_connected()

        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(QueuedCommand(path, params, queries, future))
        if self._drain_task is None:
            self._drain_task = asyncio.create_task(self._drain_queue())
        return await future

    async def _drain_queue(self) -> None:
        """Single consumer: one command on the wire at a time, in queue order."""
        request: Optional[QueuedCommand] = None
        try:
            while not self._queue.empty():
                request = self._queue.get_nowait()
                if request.future.done():
                    continue  # caller gave up waiting

                started = time.monotonic()
                try:
                    rows = await self._write(request)
                except Exception as e:
                    elapsed = (time.monotonic() - started) * 1000
                    log.error(f'Error executing command "{request.command}" after {elapsed:.0f} ms: {e}')
                    self.last_error = str(e)
                    if not request.future.done():
                        request.future.set_exception(e)
                else:
                    elapsed = (time.monotonic() - started) * 1000
                    log.debug(f'"{request.command}" -> {len(rows)} rows in {elapsed:.0f} ms')
                    if not request.future.done():
                        request.future.set_result(rows)
        finally:
            self._drain_task = None
            if request is not None and not request.future.done():
                request.future.cancel()

    async def _write(self, request: QueuedCommand) -> list[dict]:
        session = self._session
        if session is None or not session.connected:
            raise RouterConnectionError(f"Not connected to router, dropped {request.path}")
        return await session.write(request.path, request.params, request.queries)

    async def execute_terminal_command(self, command: str) -> str:
        """
        Run a console-style command and return the rows as text:
          "/ip address print where disabled=no"
        """
        terminal = parse_terminal_command(command)
        params, queries = split_arguments(terminal.arguments)
        log.debug(f'Command conversion: "{terminal.raw}" -> "{terminal.api_command}"')

        started = time.monotonic()
        rows = await self.execute_command(terminal.path, params or None, queries or None)
        elapsed = (time.monotonic() - started) * 1000
        log.info(f'Terminal command "{terminal.raw}" returned {len(rows)} rows in {elapsed:.0f} ms')
        return format_rows(rows)

    # ─── Cache ────────────────────────────────────────────────────────────────

    async def get_cached(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: float = DEFAULT_TTL,
    ) -> T:
        return await self.cache.get_or_fetch(key, fetcher, ttl)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self.cache.clear()
        else:
            self.cache.invalidate(key)

    # ─── Health ───────────────────────────────────────────────────────────────

    async def health_check(self, timeout: Optional[float] = None) -> HealthStatus:
        config = self.config

        if self.is_connected:
            try:
                self.router_identity = await asyncio.wait_for(self.get_identity(), timeout)
            except Exception as e:
                # The link may still be fine; report what we have
                log.debug(f"Identity refresh failed during health check: {e}")

        return HealthStatus(
            connected=self.is_connected,
            connected_since=self.connected_since.isoformat() if self.connected_since else None,
            last_error=self.last_error,
            router_identity=self.router_identity,
            host=config.host,
            port=config.port,
            state=self.state.value,
            reconnect_attempts=self.reconnect_attempts,
        )

    # ─── Parsing helpers ──────────────────────────────────────────────────────

    parse_uptime = staticmethod(parse_uptime)
    parse_bytes = staticmethod(parse_bytes)

    # ─── System ───────────────────────────────────────────────────────────────

    async def get_identity(self) -> str:
        return await self.get_cached(IDENTITY_KEY, self._fetch_identity, TTL_IDENTITY)

    async def _fetch_identity(self) -> str:
        rows = await self.execute_command("/system/identity/print")
        return (rows[0].get("name") if rows else None) or "MikroTik"

    async def get_system_resources(self) -> Optional[SystemResources]:
        rows = await self.execute_command("/system/resource/print")
        return SystemResources.from_row(rows[0]) if rows else None

    async def get_router_status(self) -> RouterStatus:
        return await self.get_cached(ROUTER_STATUS_KEY, self._fetch_router_status, TTL_ROUTER_STATUS)

    async def _fetch_router_status(self) -> RouterStatus:
        config = self.config
        resources, identity, routerboard, interfaces, addresses = await asyncio.gather(
            self.execute_command("/system/resource/print"),
            self.execute_command("/system/identity/print"),
            self._optional("/system/routerboard/print"),
            self._optional("/interface/print"),
            self._optional("/ip/address/print"),
        )

        res = SystemResources.from_row(resources[0] if resources else {})
        identity_row = identity[0] if identity else {}
        board = routerboard[0] if routerboard else {}
        mac = next((i["mac-address"] for i in interfaces if i.get("mac-address")), None)
        subnet = IpAddress.from_row(addresses[0]).prefix if addresses else ""

        return RouterStatus(
            name=identity_row.get("name") or "MikroTik",
            ip=config.host,
            model=board.get("model") or res.board_name,
            version=res.version,
            status="online",
            cpu_load=res.cpu_load,
            memory_used=res.used_memory,
            memory_total=res.total_memory,
            uptime=res.uptime,
            timestamp=datetime.now(timezone.utc).isoformat(),
            cpu_architecture=res.architecture,
            cpu_count=res.cpu_count,
            mac_address=mac,
            subnet=subnet,
        )

    async def _optional(self, path: str) -> list[dict]:
        """Rows of a command some boards do not support; [] when it traps."""
        try:
            return await self.execute_command(path)
        except CommandError as e:
            log.debug(f"Optional command {path} failed: {e}")
            return []

    async def export_config(self) -> str:
        rows = await self.execute_command("/export")
        if not rows:
            raise CommandError("No configuration data received", command="/export")
        return "\n".join(row["ret"] if "ret" in row else format_row(row) for row in rows)

    # ─── Interfaces ───────────────────────────────────────────────────────────

    async def get_interfaces(self) -> list[NetworkInterface]:
        return await self.get_cached(INTERFACES_KEY, self._fetch_interfaces, TTL_INTERFACES)

    async def _fetch_interfaces(self) -> list[NetworkInterface]:
        rows = await self.execute_command("/interface/print")
        sampled_at = time.monotonic()
        addresses = await self._optional("/ip/address/print")
        ports = await self._optional("/interface/bridge/port/print")

        interface_to_bridge: dict[str, str] = {}
        bridge_members: dict[str, list[str]] = {}
        for port in ports:
            member, bridge = port.get("interface"), port.get("bridge")
            if member and bridge:
                interface_to_bridge[member] = bridge
                bridge_members.setdefault(bridge, []).append(member)

        address_of: dict[str, str] = {}
        for addr in addresses:
            if addr.get("interface") and addr.get("address"):
                address_of.setdefault(addr["interface"], addr["address"])

        interfaces = []
        for index, row in enumerate(rows):
            iface = NetworkInterface.from_row(row, index)
            iface.rx_rate, iface.tx_rate = self._rates.update(
                iface.name, iface.rx_bytes, iface.tx_bytes, sampled_at
            )
            iface.ip_address = address_of.get(iface.name)
            iface.bridge = interface_to_bridge.get(iface.name)
            if iface.is_bridge:
                iface.bridge_ports = bridge_members.get(iface.name, [])
            interfaces.append(iface)

        self._rates.retain(iface.name for iface in interfaces)
        return interfaces

    async def update_interface(
        self,
        id_: str,
        name: Optional[str] = None,
        comment: Optional[str] = None,
        disabled: Optional[bool] = None,
    ) -> NetworkInterface:
        params: dict[str, str] = {".id": id_}
        if name is not None:
            params["name"] = name
        if comment is not None:
            params["comment"] = comment
        if disabled is not None:
            params["disabled"] = "yes" if disabled else "no"
        if len(params) == 1:
            raise ValueError("No updates provided")

        log.info(f"Updating interface {id_}: {params}")
        await self.execute_command("/interface/set", params)
        self.cache.invalidate(INTERFACES_KEY)

        for iface in await self.get_interfaces():
            if iface.id == id_:
                return iface
        raise CommandError(f"Interface {id_} not found after update", command="/interface/set")

    # ─── IP / Routing / Firewall / DHCP ───────────────────────────────────────

    async def _records(self, path: str, model):
        rows = await self.execute_command(path)
        return [model.from_row(row, index) for index, row in enumerate(rows)]

    async def get_ip_addresses(self) -> list[IpAddress]:
        return await self._records("/ip/address/print", IpAddress)

    async def get_routes(self) -> list[Route]:
        return await self._records("/ip/route/print", Route)

    async def get_arp_table(self) -> list[ArpEntry]:
        return await self._records("/ip/arp/print", ArpEntry)

    async def get_firewall_filter_rules(self) -> list[FirewallRule]:
        return await self._records("/ip/firewall/filter/print", FirewallRule)

    async def get_firewall_nat_rules(self) -> list[FirewallRule]:
        return await self._records("/ip/firewall/nat/print", FirewallRule)

    async def get_dhcp_leases(self) -> list[DhcpLease]:
        return await self._records("/ip/dhcp-server/lease/print", DhcpLease)


# ─── Process-wide instance ────────────────────────────────────────────────────

_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Shared manager, built on first use."""
    global _manager
    if _manager is None:
        _manager = ConnectionManager()
    return _manager


def reset_connection_manager() -> None:
    global _manager
    _manager = None
