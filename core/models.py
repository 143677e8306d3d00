"""
Typed records for the command families the dashboard reads.

RouterOS hands back flat string dicts ({"rx-byte": "1234", "disabled": "false"});
each from_row() turns one of those into a record with real types.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional

from .parsers import parse_bytes, parse_flag, parse_int, parse_uptime


def _row_id(row: dict, index: int) -> str:
    return row.get(".id") or f"*{index}"


@dataclass
class RouterStatus:
    name: str
    ip: str
    model: str
    version: str
    status: str
    cpu_load: int
    memory_used: int
    memory_total: int
    uptime: int
    timestamp: str
    cpu_architecture: str = "Unknown"
    cpu_count: int = 1
    mac_address: Optional[str] = None
    subnet: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NetworkInterface:
    id: str
    name: str
    type: str
    status: str
    rx_bytes: int
    tx_bytes: int
    rx_rate: float = 0.0
    tx_rate: float = 0.0
    comment: str = ""
    mac_address: str = ""
    ip_address: Optional[str] = None
    bridge: Optional[str] = None
    is_bridge: bool = False
    bridge_ports: Optional[list[str]] = None

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "NetworkInterface":
        running = parse_flag(row.get("running"))
        disabled = parse_flag(row.get("disabled"))
        return cls(
            id=_row_id(row, index),
            name=row.get("name", "unknown"),
            type=row.get("type", "unknown"),
            status="up" if running and not disabled else "down",
            rx_bytes=parse_int(row.get("rx-byte", 0)),
            tx_bytes=parse_int(row.get("tx-byte", 0)),
            comment=row.get("comment", ""),
            mac_address=row.get("mac-address", ""),
            is_bridge=row.get("type") == "bridge",
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class IpAddress:
    id: str
    address: str
    network: str
    interface: str
    dynamic: bool = False
    disabled: bool = False
    invalid: bool = False
    comment: str = ""

    @property
    def status(self) -> str:
        return "inactive" if self.disabled or self.invalid else "active"

    @property
    def prefix(self) -> str:
        """'/24' from '192.168.88.1/24', '' when absent."""
        _, sep, bits = self.address.partition("/")
        return f"/{bits}" if sep else ""

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "IpAddress":
        return cls(
            id=_row_id(row, index),
            address=row.get("address", ""),
            network=row.get("network", ""),
            interface=row.get("interface", ""),
            dynamic=parse_flag(row.get("dynamic")),
            disabled=parse_flag(row.get("disabled")),
            invalid=parse_flag(row.get("invalid")),
            comment=row.get("comment", ""),
        )

    def to_dict(self) -> dict:
        return {**asdict(self), "status": self.status}


@dataclass
class Route:
    id: str
    dst_address: str
    gateway: str
    distance: int
    interface: str = ""
    gateway_status: str = ""
    scope: int = 30
    target_scope: int = 10
    dynamic: bool = False
    active: bool = False
    static: bool = False
    comment: str = ""

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "Route":
        return cls(
            id=_row_id(row, index),
            dst_address=row.get("dst-address", "0.0.0.0/0"),
            gateway=row.get("gateway", ""),
            distance=parse_int(row.get("distance"), 1),
            interface=row.get("interface", ""),
            gateway_status=row.get("gateway-status", ""),
            scope=parse_int(row.get("scope"), 30),
            target_scope=parse_int(row.get("target-scope"), 10),
            dynamic=parse_flag(row.get("dynamic")),
            active=parse_flag(row.get("active")),
            static=parse_flag(row.get("static")),
            comment=row.get("comment", ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ArpEntry:
    id: str
    address: str
    mac_address: str
    interface: str
    status: str = ""
    dynamic: bool = False
    dhcp: bool = False
    complete: bool = False
    disabled: bool = False
    comment: str = ""

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "ArpEntry":
        return cls(
            id=_row_id(row, index),
            address=row.get("address", ""),
            mac_address=row.get("mac-address", ""),
            interface=row.get("interface", ""),
            status=row.get("status", ""),
            dynamic=parse_flag(row.get("dynamic")),
            dhcp=parse_flag(row.get("DHCP")),
            complete=parse_flag(row.get("complete")),
            disabled=parse_flag(row.get("disabled")),
            comment=row.get("comment", ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FirewallRule:
    id: str
    chain: str
    action: str
    protocol: Optional[str] = None
    src_address: Optional[str] = None
    dst_address: Optional[str] = None
    src_port: Optional[str] = None
    dst_port: Optional[str] = None
    in_interface: Optional[str] = None
    out_interface: Optional[str] = None
    to_addresses: Optional[str] = None
    to_ports: Optional[str] = None
    bytes: int = 0
    packets: int = 0
    disabled: bool = False
    invalid: bool = False
    dynamic: bool = False
    comment: str = ""

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "FirewallRule":
        return cls(
            id=_row_id(row, index),
            chain=row.get("chain", ""),
            action=row.get("action", ""),
            protocol=row.get("protocol"),
            src_address=row.get("src-address"),
            dst_address=row.get("dst-address"),
            src_port=row.get("src-port"),
            dst_port=row.get("dst-port"),
            in_interface=row.get("in-interface"),
            out_interface=row.get("out-interface"),
            to_addresses=row.get("to-addresses"),
            to_ports=row.get("to-ports"),
            bytes=parse_int(row.get("bytes", 0)),
            packets=parse_int(row.get("packets", 0)),
            disabled=parse_flag(row.get("disabled")),
            invalid=parse_flag(row.get("invalid")),
            dynamic=parse_flag(row.get("dynamic")),
            comment=row.get("comment", ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DhcpLease:
    id: str
    address: str
    mac_address: str
    hostname: str = ""
    status: str = "waiting"
    expires_after: str = ""
    last_seen: str = ""
    server: str = ""
    dynamic: bool = False
    blocked: bool = False
    disabled: bool = False
    comment: str = ""

    @property
    def expires_in(self) -> int:
        """Seconds until expiry, from the '1h30m' style field."""
        return parse_uptime(self.expires_after)

    @classmethod
    def from_row(cls, row: dict, index: int = 0) -> "DhcpLease":
        return cls(
            id=_row_id(row, index),
            address=row.get("address", ""),
            mac_address=row.get("mac-address", ""),
            hostname=row.get("host-name", ""),
            status=row.get("status", "waiting"),
            expires_after=row.get("expires-after", ""),
            last_seen=row.get("last-seen", ""),
            server=row.get("server", ""),
            dynamic=parse_flag(row.get("dynamic")),
            blocked=parse_flag(row.get("blocked")),
            disabled=parse_flag(row.get("disabled")),
            comment=row.get("comment", ""),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SystemResources:
    uptime: int
    version: str
    board_name: str
    cpu_load: int
    cpu_count: int
    architecture: str
    free_memory: int
    total_memory: int
    free_hdd_space: int = 0
    total_hdd_space: int = 0
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def used_memory(self) -> int:
        return max(0, self.total_memory - self.free_memory)

    @classmethod
    def from_row(cls, row: dict) -> "SystemResources":
        return cls(
            uptime=parse_uptime(row.get("uptime", "0s")),
            version=row.get("version", "Unknown"),
            board_name=row.get("board-name", "Unknown"),
            cpu_load=parse_int(row.get("cpu-load", 0)),
            cpu_count=parse_int(row.get("cpu-count", row.get("cpu", 1)), 1),
            architecture=row.get("architecture-name", row.get("architecture", "Unknown")),
            free_memory=parse_bytes(row.get("free-memory", 0)),
            total_memory=parse_bytes(row.get("total-memory", 0)),
            free_hdd_space=parse_bytes(row.get("free-hdd-space", 0)),
            total_hdd_space=parse_bytes(row.get("total-hdd-space", 0)),
            raw=dict(row),
        )


@dataclass
class HealthStatus:
    connected: bool
    connected_since: Optional[str]
    last_error: Optional[str]
    router_identity: Optional[str]
    host: str
    port: int
    state: str = "disconnected"
    reconnect_attempts: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
