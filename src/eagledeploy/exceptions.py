"""EagleDeploy exceptions.

Every error raised by the engine derives from EagleDeployError and carries
a context dict with the host, command or path it relates to, so callers can
log it as structured data.
"""

from typing import Any


class EagleDeployError(Exception):
    """Base class for all EagleDeploy errors.

    Attributes:
        msg: Human-readable error message
        context: Structured data describing where the error happened

    Example:
        raise ConnectError("Connection refused", host="10.0.0.5", port=22)
        # err.context == {"host": "10.0.0.5", "port": 22}
    """

    def __init__(self, msg: str, **context: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        return self.msg


class AddressRangeError(EagleDeployError, ValueError):
    """Raised when an address or address-range expression is malformed."""


class InventoryError(EagleDeployError):
    """Raised when the inventory cannot be read or written."""


class InventoryFormatError(InventoryError, ValueError):
    """Raised when the inventory document does not match the schema."""


class PlaybookError(EagleDeployError, ValueError):
    """Raised when a playbook is unreadable or structurally invalid."""


class RenderError(EagleDeployError):
    """Raised when a playbook template cannot be rendered."""


class CredentialsMissingError(EagleDeployError):
    """Raised when no username/password resolves for a remote task."""

    def __init__(self, host: str, task: str = "") -> None:
        where = f"task '{task}' on host {host}" if task else f"host {host}"
        super().__init__(
            f"SSH credentials missing for {where}",
            host=host,
            task=task,
        )


class TransportError(EagleDeployError):
    """Base class for connection and command failures."""


class ConnectError(TransportError):
    """Raised when a remote session cannot be established."""


class CommandError(TransportError):
    """Raised when a command fails or exits non-zero.

    Attributes:
        output: Output captured before the failure
    """

    def __init__(self, msg: str, output: str = "", **context: Any) -> None:
        super().__init__(msg, **context)
        self.output = output


class DetectionError(EagleDeployError):
    """Raised when every OS detection method fails for a host."""
