"""Command transports for EagleDeploy.

Provides the Transport interface used by the OS fingerprinter and the task
executor, an asyncssh-backed implementation for remote hosts, and local
shell execution.

Features:
- Password-authenticated SSH sessions with asyncssh
- Combined stdout+stderr capture for remote commands
- Connect and command timeouts
- Configurable host key policy (trusts any host key unless a known_hosts
  file is given)

There is no retry logic at this layer; failures are raised as ConnectError
or CommandError with host and command context.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import asyncssh

from .exceptions import CommandError, ConnectError
from .logging import StructuredLogger, get_logger


@dataclass
class SSHConfig:
    """SSH connection configuration.

    Attributes:
        hostname: Remote hostname or IP
        port: SSH port (default 22)
        username: SSH username
        password: Password for authentication
        known_hosts: Path to a known_hosts file; None disables host key
            checking and trusts any key presented
        connect_timeout: Connection timeout in seconds
    """

    hostname: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    known_hosts: str | None = None
    connect_timeout: float = 10.0

    @property
    def trusts_any_host_key(self) -> bool:
        """Whether host keys are accepted without verification."""
        return self.known_hosts is None

    def to_asyncssh_options(self) -> dict[str, Any]:
        """Convert to asyncssh.connect() kwargs."""
        options: dict[str, Any] = {
            "host": self.hostname,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
            "known_hosts": self.known_hosts,
        }

        if self.username:
            options["username"] = self.username
        if self.password:
            options["password"] = self.password

        return options


@dataclass
class Session:
    """An open remote command session.

    Attributes:
        address: Host the session is connected to
        port: Port the session is connected to
        conn: Underlying connection object (transport specific)
    """

    address: str
    port: int
    conn: Any = None


class Transport(ABC):
    """Interface for running commands on remote and local machines."""

    @abstractmethod
    async def connect(self, address: str, username: str, password: str, port: int = 22) -> Session:
        """Open an authenticated session.

        Raises:
            ConnectError: If the session cannot be established
        """

    @abstractmethod
    async def run(self, session: Session, command: str) -> str:
        """Run one command and return combined stdout+stderr.

        Raises:
            CommandError: If the command cannot run or exits non-zero
        """

    @abstractmethod
    async def close(self, session: Session | None) -> None:
        """Release a session. None is a no-op."""

    @abstractmethod
    async def run_local(self, command: str) -> str:
        """Run a command through the local shell and return stdout.

        Raises:
            CommandError: If the command exits non-zero; the message
                includes captured stderr
        """


async def run_local_command(
    command: str,
    timeout: float | None = None,
    logger: StructuredLogger | None = None,
) -> str:
    """Execute a command via the local shell.

    Args:
        command: Shell command line
        timeout: Seconds before the process is killed (None waits forever)
        logger: Logger for trace output

    Returns:
        Captured stdout

    Raises:
        CommandError: On non-zero exit, timeout or spawn failure
    """
    logger = logger or get_logger(__name__)
    logger.trace("Running local command", command=command[:100])

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(
            f"Failed to start local command: {e}",
            host="localhost",
            command=command,
        ) from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandError(
            f"Local command timed out after {timeout}s",
            host="localhost",
            command=command,
        ) from None

    stdout = stdout_bytes.decode(errors="replace")
    stderr = stderr_bytes.decode(errors="replace")

    if process.returncode != 0:
        raise CommandError(
            f"Failed to execute local command (exit status {process.returncode})"
            f"\nstderr: {stderr.strip()}",
            output=stdout,
            host="localhost",
            command=command,
            returncode=process.returncode,
        )

    return stdout


class SSHTransport(Transport):
    """Transport backed by asyncssh.

    Each session is one SSH connection; the executor opens a session per
    (task, host) dispatch and always closes it afterwards.

    Example:
        transport = SSHTransport(connect_timeout=5)
        session = await transport.connect("10.0.0.5", "deploy", "hunter2", 22)
        try:
            print(await transport.run(session, "uptime"))
        finally:
            await transport.close(session)
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        command_timeout: float | None = 300.0,
        known_hosts: str | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            connect_timeout: SSH handshake timeout in seconds
            command_timeout: Per-command timeout in seconds (None waits forever)
            known_hosts: known_hosts file; None trusts any host key
            logger: Logger for connection and command events
        """
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.known_hosts = known_hosts
        self.logger = logger or get_logger(__name__)

    async def connect(self, address: str, username: str, password: str, port: int = 22) -> Session:
        config = SSHConfig(
            hostname=address,
            port=port,
            username=username,
            password=password,
            known_hosts=self.known_hosts,
            connect_timeout=self.connect_timeout,
        )
        self.logger.event(
            logging.DEBUG, "SSH", "Connecting",
            host=address, port=port, user=username,
        )
        if config.trusts_any_host_key:
            self.logger.trace("Host key verification disabled", host=address)

        try:
            conn = await asyncssh.connect(**config.to_asyncssh_options())
        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"Timed out connecting to {address}:{port}",
                host=address,
                port=port,
            ) from e
        except (OSError, asyncssh.Error) as e:
            raise ConnectError(
                f"Failed to connect to {address}:{port}: {e}",
                host=address,
                port=port,
            ) from e

        self.logger.event(logging.DEBUG, "SSH", "Connected", host=address, port=port)
        return Session(address=address, port=port, conn=conn)

    async def run(self, session: Session, command: str) -> str:
        self.logger.trace("Running remote command", host=session.address, command=command[:100])

        try:
            result = await asyncio.wait_for(
                session.conn.run(command, check=False, stderr=asyncssh.STDOUT),
                timeout=self.command_timeout,
            )
        except asyncio.TimeoutError:
            raise CommandError(
                f"Command timed out after {self.command_timeout}s on {session.address}",
                host=session.address,
                command=command,
            ) from None
        except (OSError, asyncssh.Error) as e:
            raise CommandError(
                f"Failed to run command on {session.address}: {e}",
                host=session.address,
                command=command,
            ) from e

        output = result.stdout or ""
        if isinstance(output, bytes):
            output = output.decode(errors="replace")

        exit_status = result.exit_status
        if exit_status:
            raise CommandError(
                f"Command failed on {session.address} (exit status {exit_status})\n{output.strip()}",
                output=output,
                host=session.address,
                command=command,
                returncode=exit_status,
            )

        self.logger.trace("Remote command completed", host=session.address, bytes=len(output))
        return output

    async def close(self, session: Session | None) -> None:
        if session is None or session.conn is None:
            return
        session.conn.close()
        try:
            await session.conn.wait_closed()
        except (OSError, asyncssh.Error) as e:
            self.logger.debug("Error while closing session", host=session.address, error=e)
        session.conn = None
        self.logger.event(logging.DEBUG, "SSH", "Disconnected", host=session.address)

    async def run_local(self, command: str) -> str:
        return await run_local_command(command, timeout=self.command_timeout, logger=self.logger)
