"""
Port Reclamation Tests

The reclaimer is driven through a fake inspector so no real process is
ever looked up or killed.
"""

import logging
import time

import pytest

from conftest import ephemeral_port
from snapadmin.devserver.reclaim import (
    PortInspector,
    PortReclaimer,
    PosixPortInspector,
    WindowsPortInspector,
    get_port_inspector,
    parse_netstat_listeners,
)


class FakeInspector(PortInspector):
    def __init__(self, listeners=None, lookup_error=None, terminate_error=None, failing_pids=None):
        self.listeners = listeners or {}
        self.lookup_error = lookup_error
        self.terminate_error = terminate_error
        # Empty means every terminate fails when terminate_error is set
        self.failing_pids = set(failing_pids or ())
        self.lookups: list[int] = []
        self.terminated: list[int] = []

    async def list_listeners(self, port: int) -> list[int]:
        self.lookups.append(port)
        if self.lookup_error:
            raise self.lookup_error
        return self.listeners.get(port, [])

    async def terminate(self, pid: int) -> None:
        if self.terminate_error and (not self.failing_pids or pid in self.failing_pids):
            raise self.terminate_error
        self.terminated.append(pid)


NETSTAT_SAMPLE = """
Active Connections

  Proto  Local Address          Foreign Address        State           PID
  TCP    0.0.0.0:135            0.0.0.0:0              LISTENING       1044
  TCP    0.0.0.0:3005           0.0.0.0:0              LISTENING       5120
  TCP    [::]:3005              [::]:0                 LISTENING       5120
  TCP    0.0.0.0:30050          0.0.0.0:0              LISTENING       7777
  TCP    127.0.0.1:3005         127.0.0.1:51515        ESTABLISHED     5120
  TCP    127.0.0.1:51515        127.0.0.1:3005         ESTABLISHED     8888
  TCP    0.0.0.0:3000           0.0.0.0:0              LISTENING       6200
"""


class TestParseNetstatListeners:
    """Tests for netstat -ano parsing."""

    def test_listening_rows_for_port(self):
        assert parse_netstat_listeners(NETSTAT_SAMPLE, 3005) == [5120]

    def test_port_prefix_does_not_match_longer_port(self):
        assert 7777 not in parse_netstat_listeners(NETSTAT_SAMPLE, 3005)

    def test_established_rows_ignored(self):
        assert 8888 not in parse_netstat_listeners(NETSTAT_SAMPLE, 3005)

    def test_other_port(self):
        assert parse_netstat_listeners(NETSTAT_SAMPLE, 3000) == [6200]

    def test_no_listener(self):
        assert parse_netstat_listeners(NETSTAT_SAMPLE, 4999) == []

    def test_empty_output(self):
        assert parse_netstat_listeners("", 3005) == []


class TestPortReclaimer:
    """Tests for kill_process_on_port."""

    def setup_method(self):
        self.inspector = FakeInspector(listeners={3005: [111, 222]})
        self.reclaimer = PortReclaimer(inspector=self.inspector, settle_delay=0)

    @pytest.mark.asyncio
    async def test_kills_every_listener(self):
        await self.reclaimer.kill_process_on_port(3005)

        assert self.inspector.lookups == [3005]
        assert self.inspector.terminated == [111, 222]

    @pytest.mark.asyncio
    async def test_no_listener_is_not_an_error(self, caplog):
        caplog.set_level(logging.INFO, logger="snapadmin.devserver")

        await self.reclaimer.kill_process_on_port(3000)

        assert self.inspector.terminated == []
        assert "No process found on port 3000" in caplog.text

    @pytest.mark.asyncio
    async def test_lookup_failure_is_logged_not_raised(self, caplog):
        caplog.set_level(logging.INFO, logger="snapadmin.devserver")
        inspector = FakeInspector(lookup_error=FileNotFoundError("lsof not found"))

        await PortReclaimer(inspector=inspector, settle_delay=0).kill_process_on_port(3005)

        assert "Failed to check port 3005" in caplog.text
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    @pytest.mark.asyncio
    async def test_terminate_failure_is_logged_not_raised(self, caplog):
        caplog.set_level(logging.INFO, logger="snapadmin.devserver")
        inspector = FakeInspector(
            listeners={3005: [111]},
            terminate_error=PermissionError("Operation not permitted"),
        )

        await PortReclaimer(inspector=inspector, settle_delay=0).kill_process_on_port(3005)

        assert "Operation not permitted" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_kill_does_not_stop_the_rest(self, caplog):
        caplog.set_level(logging.INFO, logger="snapadmin.devserver")
        inspector = FakeInspector(
            listeners={3005: [111, 222]},
            terminate_error=PermissionError("Operation not permitted"),
            failing_pids=[111],
        )
        reclaimer = PortReclaimer(inspector=inspector, settle_delay=0.05)

        started = time.monotonic()
        await reclaimer.kill_process_on_port(3005)

        assert inspector.terminated == [222]
        assert "Failed to kill process 111 on port 3005" in caplog.text
        # Settle delay still applies after the successful kill
        assert time.monotonic() - started >= 0.05

    @pytest.mark.asyncio
    async def test_no_settle_delay_when_every_kill_fails(self):
        inspector = FakeInspector(
            listeners={3005: [111]},
            terminate_error=PermissionError("Operation not permitted"),
        )
        reclaimer = PortReclaimer(inspector=inspector, settle_delay=5)

        started = time.monotonic()
        await reclaimer.kill_process_on_port(3005)

        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_prefix_is_applied_to_records(self, caplog):
        caplog.set_level(logging.INFO, logger="snapadmin.devserver")
        reclaimer = PortReclaimer(inspector=self.inspector, settle_delay=0, prefix="KILL")

        await reclaimer.kill_process_on_port(3005)

        prefixes = {r.prefix for r in caplog.records if r.getMessage().startswith("Killing process")}
        assert prefixes == {"KILL"}

    @pytest.mark.asyncio
    async def test_default_inspector_on_free_port(self):
        """Real platform tools: a free port completes quietly even if the tool is missing."""
        await PortReclaimer(settle_delay=0).kill_process_on_port(ephemeral_port())


class TestGetPortInspector:
    def test_platform_selection(self, monkeypatch):
        monkeypatch.setattr("sys.platform", "win32")
        assert isinstance(get_port_inspector(), WindowsPortInspector)

        monkeypatch.setattr("sys.platform", "linux")
        assert isinstance(get_port_inspector(), PosixPortInspector)
