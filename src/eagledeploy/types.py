"""Type definitions for EagleDeploy.

This module defines the core data types shared across the inventory,
discovery and execution layers: hosts, credential pairs and per-dispatch
execution outcomes.
"""

from dataclasses import dataclass, field
from typing import Any

UNKNOWN_OS = "Unknown"


@dataclass
class Credentials:
    """A username/password pair used for SSH authentication.

    Attributes:
        username: SSH username
        password: SSH password

    Example:
        >>> creds = Credentials(username="deploy", password="hunter2")
        >>> creds.is_complete
        True
        >>> Credentials(username="deploy").is_complete
        False
    """

    username: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        """Whether both username and password are set."""
        return bool(self.username) and bool(self.password)

    def __repr__(self) -> str:
        masked = "***" if self.password else ""
        return f"Credentials(username={self.username!r}, password={masked!r})"


@dataclass
class Host:
    """A single host in the inventory.

    Attributes:
        address: IP address or hostname, unique within an inventory
        hostname: Reverse-DNS name (empty when unknown)
        os: Free-form operating system label
        ssh_user: Optional per-host SSH username
        ssh_password: Optional per-host SSH password

    Example:
        >>> host = Host(address="10.0.0.5", hostname="web01", os="Linux - Ubuntu 22.04")
        >>> host.is_windows
        False
        >>> host.matches("web01")
        True
    """

    address: str
    hostname: str = ""
    os: str = UNKNOWN_OS
    ssh_user: str = ""
    ssh_password: str = ""

    @property
    def credentials(self) -> Credentials:
        """Per-host credentials (may be incomplete)."""
        return Credentials(username=self.ssh_user, password=self.ssh_password)

    @property
    def is_windows(self) -> bool:
        """Whether the detected OS label names Windows."""
        return "windows" in self.os.lower()

    def matches(self, name: str) -> bool:
        """Check if a name refers to this host by address or hostname."""
        return name == self.address or (bool(self.hostname) and name == self.hostname)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the canonical inventory mapping."""
        result: dict[str, Any] = {
            "address": self.address,
            "hostname": self.hostname,
            "os": self.os,
        }
        if self.ssh_user:
            result["ssh_user"] = self.ssh_user
        if self.ssh_password:
            result["ssh_password"] = self.ssh_password
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Host":
        """Create from a canonical inventory mapping."""
        return cls(
            address=str(data["address"]),
            hostname=str(data.get("hostname") or ""),
            os=str(data.get("os") or UNKNOWN_OS),
            ssh_user=str(data.get("ssh_user") or ""),
            ssh_password=str(data.get("ssh_password") or ""),
        )


@dataclass
class User:
    """A user registered in the inventory for playbook rendering.

    Attributes:
        username: Account name
        password: Account password
        group: Group the account belongs to
    """

    username: str
    password: str = ""
    group: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        result: dict[str, Any] = {"username": self.username, "password": self.password}
        if self.group:
            result["group"] = self.group
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        """Create from dictionary."""
        return cls(
            username=str(data["username"]),
            password=str(data.get("password") or ""),
            group=str(data.get("group") or ""),
        )


@dataclass
class ExecutionOutcome:
    """Result of dispatching one task to one host.

    Attributes:
        task_name: Name of the task that was dispatched
        host: Address the task was dispatched to
        success: Whether the command completed successfully
        output: Captured command output
        error: Error description if the dispatch failed
        connection: Dispatch mode, "ssh" or "local"
        duration: Wall-clock seconds spent on the dispatch

    Example:
        >>> outcome = ExecutionOutcome.success_outcome("uptime", "10.0.0.5", "up 3 days")
        >>> outcome.is_success
        True
    """

    task_name: str
    host: str
    success: bool
    output: str = ""
    error: str | None = None
    connection: str = "ssh"
    duration: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if the dispatch was successful."""
        return self.success

    @property
    def is_failure(self) -> bool:
        """Check if the dispatch failed."""
        return not self.success

    @classmethod
    def success_outcome(
        cls, task_name: str, host: str, output: str, connection: str = "ssh"
    ) -> "ExecutionOutcome":
        """Create a successful outcome."""
        return cls(
            task_name=task_name,
            host=host,
            success=True,
            output=output,
            connection=connection,
        )

    @classmethod
    def error_outcome(
        cls, task_name: str, host: str, error: str, connection: str = "ssh"
    ) -> "ExecutionOutcome":
        """Create a failed outcome."""
        return cls(
            task_name=task_name,
            host=host,
            success=False,
            error=error,
            connection=connection,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "task": self.task_name,
            "host": self.host,
            "success": self.success,
            "connection": self.connection,
            "duration": round(self.duration, 3),
            "output": self.output,
        }
        if self.error:
            result["error"] = self.error
        return result
