"""
Free Port Discovery

Finds two distinct free TCP ports (backend and frontend) without reading
any static configuration such as .env.

A port is tested by actually binding and listening on it, then releasing
it before returning. Between that release and the child's own bind
another process may grab the port; this window is accepted.
"""

import logging
import socket
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"


class NoFreePortError(Exception):
    """Raised when every port in a range is taken."""

    def __init__(self, range_start: int, range_end: int):
        super().__init__(f"No free port found in range {range_start}-{range_end}")
        self.range_start = range_start
        self.range_end = range_end


@dataclass(frozen=True)
class PortAssignment:
    """Ports chosen for one supervisor run."""
    backend_port: int
    frontend_port: int

    def __post_init__(self):
        if self.backend_port == self.frontend_port:
            raise ValueError(
                f"Backend and frontend cannot share port {self.backend_port}"
            )


async def is_port_free(port: int, host: str = DEFAULT_HOST) -> bool:
    """
    Check whether ``port`` can be bound on ``host``.

    Uses a real bind + listen (not a connect) so ports held by sockets
    that are bound but not accepting are reported as taken.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            # Same semantics as a regular server listen on POSIX
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(1)
        return True
    except OSError:
        return False
    finally:
        sock.close()


async def find_free_port(
    preferred: int | None = None,
    range_start: int = 3000,
    range_end: int = 3999,
    host: str = DEFAULT_HOST,
) -> int:
    """
    Return ``preferred`` if it is free, else the lowest free port in
    ``range_start..range_end`` (inclusive).

    Raises:
        NoFreePortError: If the whole range is taken
    """
    if preferred and await is_port_free(preferred, host):
        return preferred

    for port in range(range_start, range_end + 1):
        if await is_port_free(port, host):
            return port

    raise NoFreePortError(range_start, range_end)


async def find_free_ports(
    preferred_backend: int | None = 3005,
    preferred_frontend: int | None = 3000,
    backend_range: tuple[int, int] = (3001, 3999),
    frontend_range: tuple[int, int] = (3000, 4999),
    host: str = DEFAULT_HOST,
) -> PortAssignment:
    """
    Find two distinct free ports for the backend and the frontend.

    Args:
        preferred_backend: Port to try first for the backend
        preferred_frontend: Port to try first for the frontend
        backend_range: Inclusive (start, end) scanned when the preferred
            backend port is taken
        frontend_range: Inclusive (start, end) scanned for the frontend
        host: Interface to bind on

    Returns:
        PortAssignment with two different ports

    Raises:
        NoFreePortError: If a range has no free port
    """
    backend_port = await find_free_port(
        preferred=preferred_backend,
        range_start=backend_range[0],
        range_end=backend_range[1],
        host=host,
    )

    frontend_port = await find_free_port(
        preferred=preferred_frontend,
        range_start=frontend_range[0],
        range_end=frontend_range[1],
        host=host,
    )

    if frontend_port == backend_port:
        # The backend check released its port, so the frontend scan can land on it
        frontend_port = await find_free_port(
            preferred=None,
            range_start=max(frontend_range[0], backend_port + 1),
            range_end=frontend_range[1],
            host=host,
        )

    logger.debug(f"Ports chosen: backend={backend_port}, frontend={frontend_port}")
    return PortAssignment(backend_port=backend_port, frontend_port=frontend_port)
