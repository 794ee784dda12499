"""Playbook documents for EagleDeploy.

A playbook is a YAML document:

    name: Patch web servers
    version: "1.0"
    hosts: [10.0.0.5, web02]
    tasks:
      - name: Update packages
        command: apt-get update
      - name: Create operator
        command: add_user
        username: ops
        password: opspass
        group: sudo
    settings:
      port: 22

Older documents used capitalised keys, SSHUser/SSHPassword task fields and
a string port; migrate_playbook_data() normalizes them before parsing.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import PlaybookError
from .types import Credentials

ADD_USER_COMMAND = "add_user"

PLAYBOOK_SUFFIXES = (".yaml", ".yml")

TASK_KEY_ALIASES = {
    "name": ("name", "Name"),
    "command": ("command", "Command"),
    "ssh_user": ("ssh_user", "SSHUser", "sshUser"),
    "ssh_password": ("ssh_password", "ssh_pass", "SSHPassword", "SSHPass"),
    "host": ("host", "Host"),
    "port": ("port", "Port"),
    "username": ("username", "Username", "UserName"),
    "password": ("password", "Password", "UserPassword"),
    "group": ("group", "Group"),
    "local": ("local", "Local"),
}


def parse_port(value: Any, where: str = "settings") -> int:
    """Convert a port value given as an int or numeric string.

    Raises:
        PlaybookError: If the value is missing, not numeric or out of range

    Example:
        >>> parse_port("2222")
        2222
    """
    if isinstance(value, bool) or value is None:
        raise PlaybookError(f"No usable port in {where}", value=value)
    if isinstance(value, str):
        if not value.strip().isdigit():
            raise PlaybookError(f"Invalid port in {where}: {value!r}", value=value)
        value = int(value.strip())
    if not isinstance(value, int):
        raise PlaybookError(f"Invalid port in {where}: {value!r}", value=value)
    if not 1 <= value <= 65535:
        raise PlaybookError(f"Port out of range in {where}: {value}", value=value)
    return value


TRUE_STRINGS = {"true", "yes", "1"}
FALSE_STRINGS = {"false", "no", "0", ""}


def parse_flag(value: Any, where: str) -> bool:
    """Convert a YAML boolean, 0/1 or a true/false/yes/no string.

    Raises:
        PlaybookError: For any other value

    Example:
        >>> parse_flag("no", "task 'x'")
        False
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise PlaybookError(f"Invalid boolean in {where}: {value!r}", value=value)


@dataclass
class Task:
    """A single shell task in a playbook.

    Attributes:
        name: Task name
        command: Shell command, or the "add_user" literal
        ssh_user: Task-level SSH username
        ssh_password: Task-level SSH password
        host: Target address, set by the executor per dispatch
        port: Task-level port overriding the playbook port
        username: Account to create for "add_user"
        password: Password of the account to create
        group: Group the new account joins
        local: Run on the control machine instead of over SSH
    """

    name: str
    command: str
    ssh_user: str = ""
    ssh_password: str = ""
    host: str = ""
    port: int | None = None
    username: str = ""
    password: str = ""
    group: str = ""
    local: bool = False

    @property
    def credentials(self) -> Credentials:
        """Task-level SSH credentials (may be incomplete)."""
        return Credentials(username=self.ssh_user, password=self.ssh_password)

    @property
    def is_add_user(self) -> bool:
        """Whether the command is the reserved user-creation literal."""
        return self.command.strip() == ADD_USER_COMMAND

    def for_host(self, address: str) -> "Task":
        """Copy of this task bound to one target address."""
        return replace(self, host=address)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting empty optional fields."""
        result: dict[str, Any] = {"name": self.name, "command": self.command}
        for key in ("ssh_user", "ssh_password", "host", "username", "password", "group"):
            value = getattr(self, key)
            if value:
                result[key] = value
        if self.port is not None:
            result["port"] = self.port
        if self.local:
            result["local"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Create from a canonical task mapping."""
        port = data.get("port")
        return cls(
            name=str(data["name"]),
            command=str(data["command"]),
            ssh_user=str(data.get("ssh_user") or ""),
            ssh_password=str(data.get("ssh_password") or ""),
            host=str(data.get("host") or ""),
            port=parse_port(port, where=f"task '{data['name']}'") if port not in (None, "", 0) else None,
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            group=str(data.get("group") or ""),
            local=parse_flag(data.get("local"), where=f"task '{data['name']}' local"),
        )


@dataclass
class Playbook:
    """A parsed playbook.

    Attributes:
        name: Playbook name
        version: Free-form version string
        hosts: Declared target addresses or hostnames
        tasks: Ordered tasks
        settings: Settings mapping, must yield a port
        path: File the playbook was loaded from, if any
    """

    name: str
    version: str = ""
    hosts: list[str] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    path: Path | None = None

    @property
    def port(self) -> int:
        """Port from the settings mapping.

        Raises:
            PlaybookError: If no usable port is configured
        """
        return parse_port(self.settings.get("port"))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the canonical YAML mapping."""
        return {
            "name": self.name,
            "version": self.version,
            "hosts": list(self.hosts),
            "tasks": [task.to_dict() for task in self.tasks],
            "settings": dict(self.settings),
        }


def _pick(entry: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        if key in entry:
            return entry[key]
    return None


def _host_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise PlaybookError("Playbook 'hosts' must be a list or comma-separated string")


def migrate_playbook_data(data: Any) -> dict[str, Any]:
    """Normalize a playbook mapping to the canonical schema.

    Handles capitalised keys, SSHUser/SSHPassword task fields, a top-level
    port and a comma-separated host string.

    Raises:
        PlaybookError: If the document or its tasks are not mappings
    """
    if not isinstance(data, dict):
        raise PlaybookError("Playbook document must be a mapping")

    raw_tasks = _pick(data, ("tasks", "Tasks")) or []
    if not isinstance(raw_tasks, list):
        raise PlaybookError("Playbook 'tasks' must be a list")

    tasks = []
    for index, entry in enumerate(raw_tasks):
        if not isinstance(entry, dict):
            raise PlaybookError(f"Task {index} must be a mapping", index=index)
        task = {}
        for key, aliases in TASK_KEY_ALIASES.items():
            value = _pick(entry, aliases)
            if value is not None:
                task[key] = value
        tasks.append(task)

    settings = _pick(data, ("settings", "Settings")) or {}
    if not isinstance(settings, dict):
        raise PlaybookError("Playbook 'settings' must be a mapping")
    settings = {str(k).lower(): v for k, v in settings.items()}
    top_level_port = _pick(data, ("port", "Port"))
    if "port" not in settings and top_level_port is not None:
        settings["port"] = top_level_port

    version = _pick(data, ("version", "Version"))
    return {
        "name": str(_pick(data, ("name", "Name")) or ""),
        "version": "" if version is None else str(version),
        "hosts": _host_list(_pick(data, ("hosts", "Hosts"))),
        "tasks": tasks,
        "settings": settings,
    }


def parse_playbook(data: Any, path: Path | None = None) -> Playbook:
    """Build a Playbook from a parsed YAML document.

    Raises:
        PlaybookError: If the document is malformed, has no tasks, a task
            lacks a name or command, or no usable port is configured
    """
    source = str(path) if path else "<playbook>"
    data = migrate_playbook_data(data)

    if not data["tasks"]:
        raise PlaybookError(f"Playbook {source} has no tasks", path=source)

    tasks = []
    for index, entry in enumerate(data["tasks"]):
        if not entry.get("name"):
            raise PlaybookError(f"Task {index} in {source} has no name", index=index)
        if not entry.get("command"):
            raise PlaybookError(
                f"Task '{entry['name']}' in {source} has no command",
                task=entry["name"],
            )
        tasks.append(Task.from_dict(entry))

    playbook = Playbook(
        name=data["name"] or (path.stem if path else ""),
        version=data["version"],
        hosts=data["hosts"],
        tasks=tasks,
        settings=data["settings"],
        path=path,
    )
    parse_port(playbook.settings.get("port"), where=f"{source} settings")
    return playbook


def load_playbook(path: str | Path) -> Playbook:
    """Load and validate a playbook file.

    Raises:
        PlaybookError: If the file cannot be read, parsed or validated
    """
    path = Path(path)
    try:
        content = path.read_text()
    except OSError as e:
        raise PlaybookError(f"Failed to read playbook {path}: {e}", path=str(path)) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise PlaybookError(f"Failed to parse playbook {path}: {e}", path=str(path)) from e

    return parse_playbook(data, path=path)


def list_playbooks(directory: str | Path) -> list[Path]:
    """List YAML files directly inside a directory, sorted by name.

    Raises:
        PlaybookError: If the directory does not exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise PlaybookError(f"Playbook directory not found: {directory}", path=str(directory))
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix in PLAYBOOK_SUFFIXES)


def search_playbooks(directory: str | Path, keyword: str) -> list[Path]:
    """Find YAML files under a directory whose path contains a keyword.

    The match is case-insensitive and applies to the path relative to the
    directory, so folder names match too.

    Raises:
        PlaybookError: If the directory does not exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise PlaybookError(f"Playbook directory not found: {directory}", path=str(directory))

    needle = keyword.lower()
    matches = []
    for path in directory.rglob("*"):
        if not path.is_file() or path.suffix not in PLAYBOOK_SUFFIXES:
            continue
        if needle in str(path.relative_to(directory)).lower():
            matches.append(path)
    return sorted(matches)
