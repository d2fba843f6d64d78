"""
Port Reclamation

Best-effort lookup-and-kill of whatever process is listening on a TCP
port. Used before the supervisor binds its ports and again as a backstop
during shutdown, so failures are logged and never propagated.
"""

import asyncio
import logging
import os
import re
import signal
import sys
from abc import ABC, abstractmethod

from snapadmin.devserver.console_log import Colors, log

logger = logging.getLogger(__name__)

SETTLE_DELAY_SECONDS = 1.0


class ReclamationError(Exception):
    """Failure while looking up or killing a port holder."""

    def __init__(self, message: str, port: int, details: dict | None = None):
        super().__init__(message)
        self.port = port
        self.details = details or {}


class PortInspector(ABC):
    """Platform capability: find listeners on a port and kill them."""

    @abstractmethod
    async def list_listeners(self, port: int) -> list[int]:
        """Return PIDs listening on ``port`` (empty when none)."""
        pass

    @abstractmethod
    async def terminate(self, pid: int) -> None:
        """Forcibly terminate ``pid``."""
        pass


async def _run(*args: str) -> tuple[int, str]:
    """Run a command and return (exit code, stdout)."""
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    stdout, _ = await proc.communicate()
    return proc.returncode, stdout.decode(errors="replace")


class PosixPortInspector(PortInspector):
    """lsof for lookup, SIGKILL for termination."""

    async def list_listeners(self, port: int) -> list[int]:
        code, output = await _run("lsof", "-ti", f"tcp:{port}", "-sTCP:LISTEN")
        # lsof exits 1 when nothing matches
        if code != 0:
            return []
        return sorted({int(line) for line in output.split() if line.strip().isdigit()})

    async def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"Process {pid} already gone")


class WindowsPortInspector(PortInspector):
    """netstat for lookup, taskkill for termination."""

    async def list_listeners(self, port: int) -> list[int]:
        _, output = await _run("netstat", "-ano")
        return parse_netstat_listeners(output, port)

    async def terminate(self, pid: int) -> None:
        await _run("taskkill", "/F", "/PID", str(pid))


def parse_netstat_listeners(output: str, port: int) -> list[int]:
    """
    Extract PIDs of LISTENING rows bound to ``port`` from ``netstat -ano``.

    A row matches when it contains ``:<port>`` followed by whitespace and
    the LISTENING state; the owning PID is the last column.
    """
    port_pattern = re.compile(rf":{port}\s", re.IGNORECASE)
    pids: list[int] = []
    for line in output.splitlines():
        if not port_pattern.search(line) or "LISTENING" not in line:
            continue
        parts = line.strip().split()
        if parts and parts[-1].isdigit():
            pid = int(parts[-1])
            if pid not in pids:
                pids.append(pid)
    return pids


def get_port_inspector() -> PortInspector:
    """Pick the inspector for the current platform."""
    if sys.platform == "win32":
        return WindowsPortInspector()
    return PosixPortInspector()


class PortReclaimer:
    """Kills port holders through a :class:`PortInspector`."""

    def __init__(
        self,
        inspector: PortInspector | None = None,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        prefix: str = "CLEANUP",
    ):
        self.inspector = inspector or get_port_inspector()
        self.settle_delay = settle_delay
        self.prefix = prefix

    async def kill_process_on_port(self, port: int) -> None:
        """
        Kill every process listening on ``port``, then wait for the OS to
        release the socket. Never raises.
        """
        try:
            await self._reclaim(port)
        except ReclamationError as e:
            log(logger, "ERROR", f"Failed to check port {port}: {e}", Colors.RED, logging.ERROR)

    async def _reclaim(self, port: int) -> None:
        try:
            pids = await self.inspector.list_listeners(port)
        except Exception as e:
            raise ReclamationError(str(e), port, {"stage": "lookup"}) from e

        if not pids:
            log(logger, self.prefix, f"No process found on port {port}", Colors.GREEN)
            return

        killed = 0
        for pid in pids:
            log(logger, self.prefix, f"Killing process {pid} on port {port}", Colors.YELLOW)
            try:
                await self.inspector.terminate(pid)
            except Exception as e:
                # One stubborn holder must not protect the others
                log(
                    logger, "ERROR",
                    f"Failed to kill process {pid} on port {port}: {e}",
                    Colors.RED, logging.ERROR,
                )
                continue
            killed += 1

        if killed:
            # Give the OS time to release the socket
            await asyncio.sleep(self.settle_delay)
