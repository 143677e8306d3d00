"""
MikroDash – console front end for the RouterOS connection manager.

  python dashboard.py                               interactive prompt
  python dashboard.py "/ip address print"           one command, then exit

At the prompt, RouterOS console commands go to the router; these are local:
  :status      router summary
  :interfaces  interfaces with live rates
  :health      connection health
  :quit        leave
"""

import asyncio
import logging
import sys

from config import LOG_LEVEL
from core.connection_manager import ConnectionManager
from core.errors import ConfigurationError, RouterError
from ui.formatters import fmt_health, fmt_interfaces, fmt_status, format_error

# ─── Logging ─────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("MikroDash")

HEALTH_TIMEOUT = 2.0
PROMPT = "mikrotik> "


async def run_line(manager: ConnectionManager, line: str) -> str:
    """One prompt line -> text to print."""
    if line == ":status":
        return fmt_status(await manager.get_router_status())
    if line == ":interfaces":
        return fmt_interfaces(await manager.get_interfaces())
    if line == ":health":
        return fmt_health(await manager.health_check(HEALTH_TIMEOUT))
    try:
        return await manager.execute_terminal_command(line)
    except RouterError as e:
        return format_error(line, e)


async def repl(manager: ConnectionManager) -> None:
    while True:
        try:
            line = (await asyncio.to_thread(input, PROMPT)).strip()
        except EOFError:
            break
        if not line:
            continue
        if line in (":quit", ":q", "exit"):
            break
        try:
            print(await run_line(manager, line))
        except RouterError as e:
            print(format_error(line, e))


async def main(argv: list[str]) -> int:
    log.info("Starting MikroDash…")
    manager = ConnectionManager()

    try:
        await manager.start()
    except ConfigurationError as e:
        log.error(str(e))
        return 2

    try:
        print(fmt_health(await manager.health_check(HEALTH_TIMEOUT)))

        if argv:
            command = " ".join(argv)
            output = await run_line(manager, command)
            print(output)
            return 1 if output.startswith("✗") else 0

        await repl(manager)
        return 0
    finally:
        await manager.stop()
        log.info("MikroDash stopped")


def cli() -> None:
    sys.exit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    cli()
