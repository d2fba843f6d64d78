"""
Development Process Supervisor

Starts the backend proxy and the admin UI on dynamically chosen ports:

    ALLOCATING_PORTS → CLEANING_PORTS → STARTING_BACKEND
    → WAITING_FOR_BACKEND_HEALTH → STARTING_FRONTEND → RUNNING
    → SHUTTING_DOWN → EXITED

The frontend is only started once the backend answers its health check.
SIGINT/SIGTERM tear both children down and reclaim their ports.
"""

import asyncio
import ipaddress
import logging
import os
import signal
import socket
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

import httpx
import psutil
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_fixed

from snapadmin.config import Settings, get_settings
from snapadmin.devserver.console_log import Colors, configure_console_logging, log
from snapadmin.devserver.ports import PortAssignment, find_free_ports
from snapadmin.devserver.reclaim import PortReclaimer
from snapadmin.models import ProcessRole

logger = logging.getLogger(__name__)

ROLE_COLORS = {
    ProcessRole.BACKEND.value: Colors.BLUE,
    ProcessRole.FRONTEND.value: Colors.GREEN,
}

# Reader buffer for child output; longer lines are forwarded in chunks
STREAM_LIMIT = 1024 * 1024


class SupervisorState(str, Enum):
    """Lifecycle of one supervisor run."""
    ALLOCATING_PORTS = "ALLOCATING_PORTS"
    CLEANING_PORTS = "CLEANING_PORTS"
    STARTING_BACKEND = "STARTING_BACKEND"
    WAITING_FOR_BACKEND_HEALTH = "WAITING_FOR_BACKEND_HEALTH"
    STARTING_FRONTEND = "STARTING_FRONTEND"
    RUNNING = "RUNNING"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    EXITED = "EXITED"


class BackendHealthTimeoutError(Exception):
    """The backend never answered its health check."""

    def __init__(self, url: str, attempts: int):
        super().__init__(f"Backend at {url} not healthy after {attempts} attempts")
        self.url = url
        self.attempts = attempts


async def _read_chunk(stream: asyncio.StreamReader) -> bytes:
    """
    Next line from ``stream``, or the buffered part of a line that exceeds
    the reader limit. Returns b"" at EOF.
    """
    try:
        return await stream.readuntil(b"\n")
    except asyncio.IncompleteReadError as e:
        # EOF without a trailing newline
        return e.partial
    except asyncio.LimitOverrunError as e:
        # The oversized data is still buffered; take it as one chunk
        return await stream.read(e.consumed)


class ManagedProcess:
    """A spawned child whose output is forwarded to the console."""

    def __init__(self, role: str, process: asyncio.subprocess.Process):
        self.role = role
        self.process = process
        self._forwarders: list[asyncio.Task] = []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    def start_forwarding(self) -> None:
        self._forwarders = [
            asyncio.create_task(self._forward(self.process.stdout, ROLE_COLORS.get(self.role, Colors.RESET))),
            asyncio.create_task(self._forward(self.process.stderr, Colors.RED)),
        ]

    async def _forward(self, stream: asyncio.StreamReader | None, color: str) -> None:
        if stream is None:
            return
        while True:
            raw = await _read_chunk(stream)
            if not raw:
                break
            message = raw.decode(errors="replace").strip()
            if message:
                log(logger, self.role.upper(), message, color)

    async def terminate(self) -> None:
        """
        Ask the child to stop. On Windows graceful signals are unreliable,
        so the whole process tree is killed right away.
        """
        if self.returncode is not None:
            return
        if sys.platform == "win32":
            killer = await asyncio.create_subprocess_exec(
                "taskkill", "/PID", str(self.pid), "/T", "/F",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await killer.wait()
            return
        try:
            # Children run in their own session, so pgid == pid
            os.killpg(self.pid, signal.SIGTERM)
        except ProcessLookupError:
            pass


Spawner = Callable[[str, str, dict[str, str], str | None], Awaitable[ManagedProcess]]
HealthCheck = Callable[[str], Awaitable[None]]


async def spawn_process(role: str, command: str, env: dict[str, str], cwd: str | None = None) -> ManagedProcess:
    """Start ``command`` through the shell with piped output."""
    extra = {} if sys.platform == "win32" else {"start_new_session": True}
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
        cwd=cwd,
        limit=STREAM_LIMIT,
        **extra,
    )
    managed = ManagedProcess(role, process)
    managed.start_forwarding()
    return managed


async def check_backend_health(url: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
    """
    Single health check. Raises on connection errors and on any status
    >= 400; any other response (redirects included) means the backend
    is ready.
    """
    async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
        response = await client.get(url)
        if response.is_error:
            response.raise_for_status()


def get_network_ips() -> list[str]:
    """Non-loopback IPv4 addresses of this host."""
    ips: list[str] = []
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if ipaddress.ip_address(addr.address).is_loopback:
                continue
            ips.append(addr.address)
    return ips


def build_backend_env(ports: PortAssignment, base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["BACKEND_PORT"] = str(ports.backend_port)
    # Used by the backend to build redirect URLs
    env["FRONT_END_URL"] = f"http://localhost:{ports.frontend_port}"
    return env


def build_frontend_env(ports: PortAssignment, base: dict[str, str] | None = None) -> dict[str, str]:
    backend_url = f"http://localhost:{ports.backend_port}"
    env = dict(os.environ if base is None else base)
    env["PORT"] = str(ports.frontend_port)
    env["BACKEND_PORT"] = str(ports.backend_port)
    env["REACT_APP_BACKEND_URL"] = backend_url
    # Some callers expect the /api-suffixed name
    env["REACT_APP_API_BASE_URL"] = f"{backend_url}/api"
    return env


@dataclass
class SupervisorContext:
    """Everything one supervisor run owns. Ports are written once."""
    ports: PortAssignment | None = None
    processes: dict[str, ManagedProcess] = field(default_factory=dict)
    state: SupervisorState = SupervisorState.ALLOCATING_PORTS
    shutting_down: bool = False
    exit_code: int | None = None

    @property
    def backend_url(self) -> str:
        return f"http://localhost:{self.ports.backend_port}"

    @property
    def frontend_url(self) -> str:
        return f"http://localhost:{self.ports.frontend_port}"


class Supervisor:
    """
    Runs backend and frontend for local development.

    ``run()`` returns the process exit code: 0 after a signal-driven
    shutdown, 1 when startup fails (including the backend never
    becoming healthy).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        reclaimer: PortReclaimer | None = None,
        spawner: Spawner = spawn_process,
        health_check: HealthCheck = check_backend_health,
        install_signals: bool = True,
    ):
        self.settings = settings or get_settings()
        self.reclaimer = reclaimer or PortReclaimer(settle_delay=self.settings.dev_settle_delay)
        self.spawner = spawner
        self.health_check = health_check
        self.install_signals = install_signals
        self.context = SupervisorContext()
        self._startup_task: asyncio.Task | None = None
        self._shutdown_task: asyncio.Task | None = None
        self._stopped: asyncio.Event | None = None

    # ----- public API -----

    async def run(self) -> int:
        self._stopped = asyncio.Event()
        if self.install_signals:
            self._install_signal_handlers()

        self._startup_task = asyncio.create_task(self.start_services())
        try:
            await self._startup_task
        except asyncio.CancelledError:
            if not self.context.shutting_down:
                raise
        except BackendHealthTimeoutError:
            self.context.state = SupervisorState.EXITED
            return 1
        except Exception as e:
            log(logger, "STARTUP", f"Error: {e}", Colors.RED, logging.ERROR)
            for managed in self.context.processes.values():
                await managed.terminate()
            self.context.state = SupervisorState.EXITED
            return 1

        await self._stopped.wait()
        return self.context.exit_code or 0

    async def start_services(self) -> None:
        """Allocate ports, start the backend, gate on health, start the frontend."""
        settings = self.settings
        log(logger, "STARTUP", "Starting SnapTrade Admin Panel...", Colors.BRIGHT)

        self.context.state = SupervisorState.ALLOCATING_PORTS
        self.context.ports = await find_free_ports(
            preferred_backend=settings.dev_preferred_backend_port,
            preferred_frontend=settings.dev_preferred_frontend_port,
            backend_range=(settings.dev_backend_range_start, settings.dev_backend_range_end),
            frontend_range=(settings.dev_frontend_range_start, settings.dev_frontend_range_end),
        )
        ports = self.context.ports

        self.context.state = SupervisorState.CLEANING_PORTS
        log(logger, "CLEANUP", "Checking for existing processes on ports...", Colors.CYAN)
        await self.reclaimer.kill_process_on_port(ports.backend_port)
        await self.reclaimer.kill_process_on_port(ports.frontend_port)
        log(logger, "CLEANUP", "Port cleanup complete", Colors.CYAN)

        self.context.state = SupervisorState.STARTING_BACKEND
        log(logger, "BACKEND", "Starting backend server...", Colors.BLUE)
        backend = await self.spawner(
            ProcessRole.BACKEND.value,
            settings.dev_backend_command,
            build_backend_env(ports),
            settings.dev_backend_cwd,
        )
        self.context.processes[ProcessRole.BACKEND.value] = backend

        self.context.state = SupervisorState.WAITING_FOR_BACKEND_HEALTH
        try:
            await self.wait_for_backend()
        except BackendHealthTimeoutError:
            log(logger, "STARTUP", "Failed to start backend, aborting...", Colors.RED, logging.ERROR)
            await backend.terminate()
            raise

        self.context.state = SupervisorState.STARTING_FRONTEND
        log(logger, "FRONTEND", "Starting frontend...", Colors.GREEN)
        frontend = await self.spawner(
            ProcessRole.FRONTEND.value,
            settings.dev_frontend_command,
            build_frontend_env(ports),
            settings.dev_frontend_cwd,
        )
        self.context.processes[ProcessRole.FRONTEND.value] = frontend

        self.context.state = SupervisorState.RUNNING
        self._log_urls()

    async def wait_for_backend(self) -> None:
        """
        Poll the backend health endpoint until it answers.

        Raises:
            BackendHealthTimeoutError: After the configured number of failed checks
        """
        url = f"{self.context.backend_url}{self.settings.dev_health_path}"
        attempts = self.settings.dev_health_attempts

        def _log_first_failure(retry_state) -> None:
            if retry_state.attempt_number == 1:
                log(logger, "STARTUP", "Waiting for backend to start...", Colors.CYAN)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_fixed(self.settings.dev_health_interval),
                before_sleep=_log_first_failure,
            ):
                with attempt:
                    await self.health_check(url)
        except RetryError as e:
            log(
                logger, "STARTUP",
                f"Backend failed to start within {attempts} attempts",
                Colors.RED, logging.ERROR,
            )
            raise BackendHealthTimeoutError(url, attempts) from e

        log(logger, "STARTUP", "Backend is ready!", Colors.GREEN)

    async def shutdown(self, signal_name: str = "SIGTERM") -> None:
        """Stop both children and release their ports. Runs at most once."""
        if self.context.shutting_down:
            return
        self.context.shutting_down = True
        self.context.state = SupervisorState.SHUTTING_DOWN

        log(logger, "STARTUP", f"Shutting down services ({signal_name})...", Colors.CYAN)

        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()

        for role in (ProcessRole.FRONTEND.value, ProcessRole.BACKEND.value):
            managed = self.context.processes.get(role)
            if managed is not None:
                await managed.terminate()

        # Give processes a moment to exit before forcing port cleanup
        await asyncio.sleep(self.settings.dev_shutdown_grace)

        ports = self.context.ports
        if ports is not None:
            await self.reclaimer.kill_process_on_port(ports.backend_port)
            await self.reclaimer.kill_process_on_port(ports.frontend_port)

        log(logger, "STARTUP", "Shutdown complete. Ports released.", Colors.CYAN)
        self.context.exit_code = 0
        self.context.state = SupervisorState.EXITED
        if self._stopped is not None:
            self._stopped.set()

    # ----- internals -----

    def _on_signal(self, signal_name: str) -> None:
        self._shutdown_task = asyncio.ensure_future(self.shutdown(signal_name))

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig.name)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        self._on_signal, signal.Signals(signum).name
                    ),
                )

    def _log_urls(self) -> None:
        ports = self.context.ports
        network_ips = get_network_ips()

        log(logger, "STARTUP", "Both services are running!", Colors.BRIGHT)
        log(logger, "STARTUP", "Frontend URLs:", Colors.GREEN)
        log(logger, "STARTUP", f"  Local:    {self.context.frontend_url}", Colors.GREEN)
        for ip in network_ips:
            log(logger, "STARTUP", f"  Network:  http://{ip}:{ports.frontend_port}", Colors.GREEN)

        log(logger, "STARTUP", "Backend URLs:", Colors.BLUE)
        log(logger, "STARTUP", f"  Local:    {self.context.backend_url}", Colors.BLUE)
        for ip in network_ips:
            log(logger, "STARTUP", f"  Network:  http://{ip}:{ports.backend_port}", Colors.BLUE)

        log(logger, "STARTUP", "Ports are chosen automatically each run (no .env ports).", Colors.YELLOW)
        log(logger, "STARTUP", f"Frontend will call backend at: {self.context.backend_url}", Colors.YELLOW)
        log(logger, "STARTUP", "Press Ctrl+C to stop both services", Colors.CYAN)


def main() -> None:
    """Entry point for ``snapadmin-dev``."""
    settings = get_settings()
    configure_console_logging(level=settings.log_level)

    sys.exit(asyncio.run(Supervisor(settings).run()))


if __name__ == "__main__":
    main()
