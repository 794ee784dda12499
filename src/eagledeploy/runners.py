"""Task runner interfaces and implementations for EagleDeploy.

This module defines the strategy pattern for dispatching one task to one
host: a local runner that executes through the control machine's shell and
a remote runner that executes over an SSH session, selected per dispatch by
TaskRunnerFactory.
"""

import ipaddress
import shlex
import sys
from abc import ABC, abstractmethod

from .exceptions import CommandError, EagleDeployError, PlaybookError
from .logging import StructuredLogger, get_logger
from .playbook import Task
from .ssh import Session, Transport
from .types import Credentials, ExecutionOutcome, Host

LOCAL_NAMES = {"localhost", "localhost.localdomain"}

DEFAULT_WINDOWS_GROUP = "Users"
CHPASSWD_EOF = "EAGLEDEPLOY_EOF"


def is_loopback(address: str) -> bool:
    """Check whether an address names the control machine.

    Example:
        >>> is_loopback("127.0.0.1"), is_loopback("localhost"), is_loopback("10.0.0.5")
        (True, True, False)
    """
    if address.lower() in LOCAL_NAMES:
        return True
    try:
        return ipaddress.ip_address(address).is_loopback
    except ValueError:
        return False


def is_local_target(task: Task, address: str) -> bool:
    """Whether a dispatch runs locally instead of over SSH."""
    return task.local or is_loopback(address)


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_add_user_command(task: Task, windows: bool) -> str:
    """Expand the add_user literal into a concrete shell command.

    Windows targets get PowerShell New-LocalUser plus Add-LocalGroupMember;
    Linux targets get useradd plus chpasswd.

    Raises:
        PlaybookError: If the task has no username or password

    Example:
        >>> task = Task(name="ops", command="add_user", username="ops", password="pw")
        >>> build_add_user_command(task, windows=False)
        "useradd -m -s /bin/bash ops && chpasswd <<'EAGLEDEPLOY_EOF'\\nops:pw\\nEAGLEDEPLOY_EOF"
    """
    if not task.username or not task.password:
        raise PlaybookError(
            f"Task '{task.name}' uses add_user without a username and password",
            task=task.name,
        )

    if windows:
        group = task.group or DEFAULT_WINDOWS_GROUP
        script = (
            f"$pw = ConvertTo-SecureString {_ps_quote(task.password)} -AsPlainText -Force; "
            f"New-LocalUser -Name {_ps_quote(task.username)} -Password $pw; "
            f"Add-LocalGroupMember -Group {_ps_quote(group)} -Member {_ps_quote(task.username)}"
        )
        return 'powershell.exe -NoProfile -Command "' + script.replace('"', '\\"') + '"'

    useradd = ["useradd", "-m", "-s", "/bin/bash"]
    if task.group:
        useradd += ["-G", task.group]
    useradd.append(task.username)
    if "\n" in task.username or "\n" in task.password:
        raise PlaybookError(
            f"Task '{task.name}' has a line break in its username or password",
            task=task.name,
        )
    # The user:password pair reaches chpasswd on stdin, never in argv
    return (
        f"{shlex.join(useradd)} && chpasswd <<'{CHPASSWD_EOF}'\n"
        f"{task.username}:{task.password}\n{CHPASSWD_EOF}"
    )


def resolve_command(task: Task, windows: bool) -> str:
    """Get the command to run for a task on a target."""
    if task.is_add_user:
        return build_add_user_command(task, windows)
    return task.command


class TaskRunner(ABC):
    """Abstract base class for task dispatch strategies.

    Runners turn expected failures (command errors, connection errors,
    malformed add_user tasks) into failed outcomes. Anything else propagates
    to the executor.
    """

    connection = ""

    def __init__(self, transport: Transport, logger: StructuredLogger | None = None) -> None:
        self.transport = transport
        self.logger = logger or get_logger(__name__)

    @abstractmethod
    async def run(
        self,
        task: Task,
        host: Host,
        port: int,
        credentials: Credentials | None = None,
    ) -> ExecutionOutcome:
        """Dispatch one task to one host.

        Args:
            task: Task bound to the target address
            host: Inventory entry for the target
            port: SSH port
            credentials: Resolved credentials (remote dispatch only)

        Returns:
            ExecutionOutcome for the dispatch
        """

    def _failure(self, task: Task, host: Host, error: EagleDeployError) -> ExecutionOutcome:
        outcome = ExecutionOutcome.error_outcome(
            task.name, host.address, str(error), connection=self.connection
        )
        if isinstance(error, CommandError):
            outcome.output = error.output
        return outcome


class LocalTaskRunner(TaskRunner):
    """Runner for tasks executed through the local shell.

    Example:
        >>> runner = LocalTaskRunner(SSHTransport())
        >>> outcome = await runner.run(Task("echo", "echo hi"), Host("127.0.0.1"), 22)
        >>> outcome.output
        'hi\\n'
    """

    connection = "local"

    async def run(
        self,
        task: Task,
        host: Host,
        port: int,
        credentials: Credentials | None = None,
    ) -> ExecutionOutcome:
        try:
            command = resolve_command(task, windows=sys.platform == "win32")
            output = await self.transport.run_local(command)
        except EagleDeployError as e:
            return self._failure(task, host, e)
        return ExecutionOutcome.success_outcome(
            task.name, host.address, output, connection=self.connection
        )


class RemoteTaskRunner(TaskRunner):
    """Runner for tasks executed over SSH.

    Each dispatch opens its own session and always closes it, even when the
    command fails.
    """

    connection = "ssh"

    async def run(
        self,
        task: Task,
        host: Host,
        port: int,
        credentials: Credentials | None = None,
    ) -> ExecutionOutcome:
        if credentials is None or not credentials.is_complete:
            raise ValueError(f"Remote dispatch to {host.address} requires credentials")

        session: Session | None = None
        try:
            command = resolve_command(task, windows=host.is_windows)
            session = await self.transport.connect(
                host.address, credentials.username, credentials.password, port
            )
            output = await self.transport.run(session, command)
        except EagleDeployError as e:
            return self._failure(task, host, e)
        finally:
            await self.transport.close(session)

        self.logger.trace("Remote task output", task=task.name, host=host.address, bytes=len(output))
        return ExecutionOutcome.success_outcome(
            task.name, host.address, output, connection=self.connection
        )


class TaskRunnerFactory:
    """Factory selecting the runner for each dispatch.

    Example:
        >>> factory = TaskRunnerFactory(SSHTransport())
        >>> factory.create_runner(Task("t", "uptime"), "127.0.0.1").connection
        'local'
    """

    def __init__(self, transport: Transport, logger: StructuredLogger | None = None) -> None:
        self.transport = transport
        self.logger = logger or get_logger(__name__)
        self._local_runner: LocalTaskRunner | None = None
        self._remote_runner: RemoteTaskRunner | None = None

    def create_runner(self, task: Task, address: str) -> TaskRunner:
        """Get the runner for a task on an address."""
        if is_local_target(task, address):
            if self._local_runner is None:
                self._local_runner = LocalTaskRunner(self.transport, self.logger)
            return self._local_runner

        if self._remote_runner is None:
            self._remote_runner = RemoteTaskRunner(self.transport, self.logger)
        return self._remote_runner
