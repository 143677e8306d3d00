"""
Configuration – reads from environment variables or .env file.

Router connection (loaded lazily by load_router_config()):
  MIKROTIK_HOST          – Router API host (required)
  MIKROTIK_PORT          – API port (default: 8728, 8729 for API-SSL)
  MIKROTIK_USER          – API username (default: admin)
  MIKROTIK_PASS          – API password
  MIKROTIK_TIMEOUT_MS    – Connect / command timeout in milliseconds (default: 10000)
  MIKROTIK_KEEPALIVE_SEC – Keepalive interval in seconds (default: 30)
  MIKROTIK_USE_SSL=1     – Use API-SSL

Optional:
  LOG_LEVEL              – Logging level: DEBUG | INFO | WARNING | ERROR (default: INFO)
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from core.errors import ConfigurationError

load_dotenv()

log = logging.getLogger("Config")

DEFAULT_PORT = 8728
DEFAULT_SSL_PORT = 8729
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_KEEPALIVE_SEC = 30


def _optional_int(key: str, default: int | None = None) -> int | None:
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"Config: {key}='{raw}' is not a valid integer, using default {default}")
        return default


def _optional_str(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip() or default


def _optional_bool(key: str) -> bool:
    return os.environ.get(key, "").lower() in ("1", "true", "yes")


def _valid_log_level(level: str) -> str:
    if level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        log.warning(f"Config: LOG_LEVEL='{level}' is invalid, defaulting to INFO")
        return "INFO"
    return level.upper()


# ─── Process ──────────────────────────────────────────────────────────────────

LOG_LEVEL: str = _valid_log_level(_optional_str("LOG_LEVEL", "INFO"))


# ─── Router connection ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RouterConfig:
    host: str
    port: int = DEFAULT_PORT
    username: str = "admin"
    password: str = ""
    timeout: float = DEFAULT_TIMEOUT_MS / 1000
    keepalive_interval: float = DEFAULT_KEEPALIVE_SEC
    use_ssl: bool = False

    def describe(self) -> str:
        scheme = "api-ssl" if self.use_ssl else "api"
        return f"{scheme}://{self.username}@{self.host}:{self.port}"


def load_router_config() -> RouterConfig:
    """
    Build RouterConfig from the environment.
    Raises ConfigurationError when no host is configured.
    """
    host = _optional_str("MIKROTIK_HOST")
    if not host:
        raise ConfigurationError(
            "MikroTik host is required: set MIKROTIK_HOST in the environment or .env"
        )

    use_ssl = _optional_bool("MIKROTIK_USE_SSL")
    default_port = DEFAULT_SSL_PORT if use_ssl else DEFAULT_PORT
    port = _optional_int("MIKROTIK_PORT", default_port) or default_port

    timeout_ms = _optional_int("MIKROTIK_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
    if not timeout_ms or timeout_ms <= 0:
        log.warning(f"Config: MIKROTIK_TIMEOUT_MS must be positive, using {DEFAULT_TIMEOUT_MS}")
        timeout_ms = DEFAULT_TIMEOUT_MS

    keepalive = _optional_int("MIKROTIK_KEEPALIVE_SEC", DEFAULT_KEEPALIVE_SEC)
    if not keepalive or keepalive <= 0:
        log.warning(f"Config: MIKROTIK_KEEPALIVE_SEC must be positive, using {DEFAULT_KEEPALIVE_SEC}")
        keepalive = DEFAULT_KEEPALIVE_SEC

    return RouterConfig(
        host=host,
        port=port,
        username=_optional_str("MIKROTIK_USER", "admin"),
        password=os.environ.get("MIKROTIK_PASS", ""),
        timeout=timeout_ms / 1000,
        keepalive_interval=float(keepalive),
        use_ssl=use_ssl,
    )
