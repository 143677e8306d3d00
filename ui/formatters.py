"""
Text formatters – turn router rows and status records into plain terminal text.
"""

from core.models import HealthStatus, NetworkInterface, RouterStatus

NO_OUTPUT = "Command executed successfully (no output)"


def _safe(v) -> str:
    return str(v) if v is not None else "—"


def fmt_bytes(b) -> str:
    b = int(b)
    if b < 1024:
        return f"{b} B"
    elif b < 1024 ** 2:
        return f"{b / 1024:.1f} KiB"
    elif b < 1024 ** 3:
        return f"{b / 1024 ** 2:.1f} MiB"
    else:
        return f"{b / 1024 ** 3:.2f} GiB"


def fmt_bps(bps) -> str:
    bps = int(bps)
    if bps < 1000:
        return f"{bps} bps"
    elif bps < 1_000_000:
        return f"{bps / 1000:.1f} Kbps"
    elif bps < 1_000_000_000:
        return f"{bps / 1_000_000:.1f} Mbps"
    else:
        return f"{bps / 1_000_000_000:.2f} Gbps"


def fmt_duration(seconds: int) -> str:
    """788645 -> '1w2d3h4m5s', the router's own notation."""
    parts = []
    for unit, size in (("w", 604800), ("d", 86400), ("h", 3600), ("m", 60)):
        value, seconds = divmod(seconds, size)
        if value:
            parts.append(f"{value}{unit}")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return "".join(parts)


# ─── Rows ─────────────────────────────────────────────────────────────────────

def format_row(row: dict) -> str:
    """
    One row as aligned 'key: value' lines. Internal fields (.id, .nextid)
    are left out.
    """
    items = [(k, v) for k, v in row.items() if not k.startswith(".")]
    if not items:
        return ""
    width = max(len(k) for k, _ in items)
    return "\n".join(f"{k.ljust(width)}: {_safe(v)}" for k, v in items)


def format_rows(rows: list[dict]) -> str:
    """Rows as paragraphs separated by a blank line."""
    if not rows:
        return NO_OUTPUT
    blocks = [format_row(r) for r in rows]
    return "\n\n".join(b for b in blocks if b) or NO_OUTPUT


def format_error(command: str, error: Exception) -> str:
    return f"✗ {command}\n  {type(error).__name__}: {error}"


# ─── Status ───────────────────────────────────────────────────────────────────

def fmt_status(status: RouterStatus) -> str:
    mem_pct = int(status.memory_used / status.memory_total * 100) if status.memory_total else 0
    lines = [
        f"{status.name} – {status.model}, RouterOS {status.version}",
        f"  address : {status.ip}{status.subnet}",
        f"  uptime  : {fmt_duration(status.uptime)}",
        f"  cpu     : {status.cpu_load}% ({status.cpu_count}x {status.cpu_architecture})",
        f"  memory  : {mem_pct}% ({fmt_bytes(status.memory_used)}/{fmt_bytes(status.memory_total)})",
    ]
    if status.mac_address:
        lines.append(f"  mac     : {status.mac_address}")
    return "\n".join(lines)


def fmt_interfaces(interfaces: list[NetworkInterface]) -> str:
    if not interfaces:
        return "No interfaces"
    width = max(len(i.name) for i in interfaces)
    lines = []
    for iface in interfaces:
        icon = "▲" if iface.status == "up" else "▼"
        line = (
            f"{icon} {iface.name.ljust(width)}  "
            f"↓ {fmt_bps(iface.rx_rate * 8)}  ↑ {fmt_bps(iface.tx_rate * 8)}"
        )
        if iface.ip_address:
            line += f"  {iface.ip_address}"
        if iface.bridge:
            line += f"  [{iface.bridge}]"
        if iface.comment:
            line += f"  # {iface.comment}"
        lines.append(line)
    return "\n".join(lines)


# ─── Health ───────────────────────────────────────────────────────────────────

def fmt_health(health: HealthStatus) -> str:
    icon = "●" if health.connected else "○"
    lines = [
        f"{icon} {health.router_identity or 'MikroTik'} ({health.host}:{health.port})",
        f"  state    : {health.state}",
    ]
    if health.connected_since:
        lines.append(f"  since    : {health.connected_since}")
    if health.reconnect_attempts:
        lines.append(f"  attempts : {health.reconnect_attempts}")
    if health.last_error:
        lines.append(f"  error    : {health.last_error}")
    return "\n".join(lines)
