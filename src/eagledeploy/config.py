"""Engine configuration for EagleDeploy.

Settings come from three layers, later ones winning: dataclass defaults,
an optional YAML config file, and EAGLEDEPLOY_* environment variables.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".eagledeploy" / "config.yaml"

# Ports whose accept or refuse proves a host is up
DEFAULT_LIVENESS_PORTS = [22, 80, 443, 445, 139, 135, 3389, 5985]

ENV_OVERRIDES = {
    "EAGLEDEPLOY_INVENTORY": ("inventory_path", str),
    "EAGLEDEPLOY_PLAYBOOKS": ("playbooks_dir", str),
    "EAGLEDEPLOY_CONCURRENCY": ("concurrency", int),
    "EAGLEDEPLOY_KNOWN_HOSTS": ("known_hosts", str),
}


@dataclass
class EngineConfig:
    """Runtime settings shared by discovery and execution.

    Attributes:
        inventory_path: Inventory YAML file
        playbooks_dir: Directory searched for playbooks
        concurrency: Maximum concurrent probes or dispatches
        connect_timeout: SSH connection timeout in seconds
        command_timeout: Remote/local command timeout in seconds
        probe_timeout: TCP probe timeout in seconds
        detection_timeout: Overall bound on remote OS detection in seconds
        detection_attempts: Remote OS detection attempts
        detection_retry_delay: Fixed delay between detection attempts
        known_hosts: known_hosts file for host key checking; None trusts any
            host key (insecure default)
        liveness_ports: Ports probed to decide whether a host is alive
    """

    inventory_path: str = "inventory.yaml"
    playbooks_dir: str = "playbooks"
    concurrency: int = 32
    connect_timeout: float = 10.0
    command_timeout: float = 300.0
    probe_timeout: float = 2.0
    detection_timeout: float = 5.0
    detection_attempts: int = 3
    detection_retry_delay: float = 2.0
    known_hosts: str | None = None
    liveness_ports: list[int] = field(default_factory=lambda: list(DEFAULT_LIVENESS_PORTS))

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.detection_attempts < 1:
            raise ValueError(
                f"detection_attempts must be at least 1, got {self.detection_attempts}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(
    config_file: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> EngineConfig:
    """Build the engine configuration.

    Args:
        config_file: Optional YAML file; the default location is used only
            if it exists
        environ: Environment mapping (defaults to os.environ)

    Returns:
        EngineConfig with file values and environment overrides applied

    Raises:
        ValueError: If an explicitly named config file is missing or invalid
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    if path.exists():
        loaded = yaml.safe_load(path.read_text()) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        data.update(loaded)
        logger.debug(f"Loaded config from {path}")
    elif config_file:
        raise ValueError(f"Config file not found: {path}")

    for var, (key, convert) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            try:
                data[key] = convert(value)
            except ValueError as e:
                raise ValueError(f"Invalid value for {var}: {value!r}") from e

    return EngineConfig.from_dict(data)
