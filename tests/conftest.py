"""Shared fixtures for EagleDeploy tests."""

import asyncio
import socket

import pytest

from eagledeploy.exceptions import CommandError, ConnectError
from eagledeploy.inventory import InventoryStore
from eagledeploy.ssh import Session, Transport


class FakeTransport(Transport):
    """In-memory transport recording every call.

    Attributes:
        responses: Output per command
        host_responses: Output per (address, command), checked first
        failing_commands: Commands that exit non-zero, mapped to their output
        unreachable: Addresses whose connect fails
        delay: Seconds each remote command takes
    """

    def __init__(self) -> None:
        self.responses: dict[str, str] = {}
        self.host_responses: dict[tuple[str, str], str] = {}
        self.failing_commands: dict[str, str] = {}
        self.unreachable: set[str] = set()
        self.delay = 0.0
        self.default_output = "ok\n"

        self.connects: list[tuple[str, str, str, int]] = []
        self.commands: list[tuple[str, str]] = []
        self.local_commands: list[str] = []
        self.closed = 0
        self.cancelled = 0
        self.active = 0
        self.max_active = 0

    async def connect(self, address, username, password, port=22):
        self.connects.append((address, username, password, port))
        if address in self.unreachable:
            raise ConnectError(f"Failed to connect to {address}:{port}: unreachable", host=address)
        return Session(address=address, port=port, conn=object())

    async def run(self, session, command):
        self.commands.append((session.address, command))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1

        if command in self.failing_commands:
            raise CommandError(
                f"Command failed on {session.address} (exit status 1)",
                output=self.failing_commands[command],
                host=session.address,
                command=command,
            )
        if (session.address, command) in self.host_responses:
            return self.host_responses[(session.address, command)]
        return self.responses.get(command, self.default_output)

    async def close(self, session):
        if session is None:
            return
        self.closed += 1

    async def run_local(self, command):
        self.local_commands.append(command)
        if command in self.failing_commands:
            raise CommandError(
                "Failed to execute local command (exit status 1)",
                output=self.failing_commands[command],
                host="localhost",
                command=command,
            )
        return self.responses.get(command, self.default_output)


@pytest.fixture
def transport():
    """Fresh fake transport."""
    return FakeTransport()


@pytest.fixture
def inventory_path(tmp_path):
    """Path for a per-test inventory file."""
    return tmp_path / "inventory.yaml"


@pytest.fixture
def store(inventory_path):
    """Inventory store backed by a temporary file."""
    return InventoryStore(inventory_path)


@pytest.fixture
def unused_port():
    """A localhost TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
