#!/usr/bin/env python3
"""
Kill whatever is listening on the development ports.

Ports come from PORT (frontend, default 3000) and BACKEND_PORT (backend,
default 3005), read from the environment, ./.env and ./backend/.env.

Examples:
  python scripts/kill_ports.py
  BACKEND_PORT=3105 python scripts/kill_ports.py
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from snapadmin.devserver.console_log import Colors, configure_console_logging, log
from snapadmin.devserver.reclaim import PortReclaimer

logger = logging.getLogger("snapadmin.devserver.kill_ports")


def dev_ports() -> list[int]:
    load_dotenv()
    load_dotenv("./backend/.env")
    frontend_port = int(os.getenv("PORT") or 3000)
    backend_port = int(os.getenv("BACKEND_PORT") or 3005)
    return [frontend_port, backend_port]


async def cleanup(ports: list[int]) -> None:
    reclaimer = PortReclaimer(prefix="KILL")
    log(
        logger, "CLEANUP",
        f"Killing processes on development ports ({', '.join(map(str, ports))})...",
        Colors.BRIGHT,
    )
    for port in ports:
        await reclaimer.kill_process_on_port(port)
    log(logger, "CLEANUP", "Port cleanup complete!", Colors.GREEN)


def main() -> int:
    configure_console_logging()
    try:
        asyncio.run(cleanup(dev_ports()))
    except ValueError as e:
        log(logger, "ERROR", f"Error: {e}", Colors.RED, logging.ERROR)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
