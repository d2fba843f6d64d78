"""
Shared fixtures: fast settings, free-port helpers and test doubles for
the supervisor's collaborators.
"""

import socket

import pytest

from snapadmin.config import Settings


def make_settings(**overrides) -> Settings:
    """Settings with no delays and no .env influence."""
    values = {
        "snaptrade_client_id": "test-client",
        "snaptrade_consumer_key": "test-consumer-key",
        "snaptrade_base_url": "https://api.snaptrade.test",
        "front_end_url": "http://localhost:3000",
        "secret_store": "memory",
        "dev_backend_command": "backend-cmd",
        "dev_frontend_command": "frontend-cmd",
        "dev_health_interval": 0,
        "dev_shutdown_grace": 0,
        "dev_settle_delay": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def occupy_port(port: int = 0, host: str = "127.0.0.1") -> socket.socket:
    """Bind and listen; the caller closes the socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind((host, port))
    sock.listen(1)
    return sock


def ephemeral_port() -> int:
    """A port the OS just considered free."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeProcess:
    """Stands in for ManagedProcess without touching the OS."""

    def __init__(self, role: str, pid: int):
        self.role = role
        self.pid = pid
        self.returncode = None
        self.terminate_calls = 0

    async def terminate(self) -> None:
        self.terminate_calls += 1
        self.returncode = -15


class FakeSpawner:
    def __init__(self):
        self.calls: list[dict] = []
        self.processes: dict[str, FakeProcess] = {}

    async def __call__(self, role, command, env, cwd=None):
        self.calls.append({"role": role, "command": command, "env": env, "cwd": cwd})
        process = FakeProcess(role, pid=40000 + len(self.calls))
        self.processes[role] = process
        return process

    @property
    def roles(self) -> list[str]:
        return [call["role"] for call in self.calls]


class FakeReclaimer:
    def __init__(self):
        self.ports: list[int] = []

    async def kill_process_on_port(self, port: int) -> None:
        self.ports.append(port)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def reclaimer() -> FakeReclaimer:
    return FakeReclaimer()
