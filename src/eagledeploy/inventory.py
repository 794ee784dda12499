"""Inventory management for EagleDeploy.

The inventory is a YAML document holding the known hosts, a fallback SSH
credential pair and the users registered for playbook rendering. It is the
single source of truth for host and credential data: every operation loads
it fresh from disk and saves it back after any mutation.

Canonical schema:

    hosts:
      - address: 10.0.0.5
        hostname: web01
        os: Linux - Ubuntu 22.04
        ssh_user: admin          # optional
        ssh_password: secret     # optional
    ssh_credentials:
      username: deploy
      password: hunter2
    users:
      - username: ops
        password: opspass
        group: admins

Older documents (``ip``/``IP`` address keys, ``ssh_pass``, capitalised keys,
top-level ``ssh_user``/``ssh_pass``) are migrated on load by
migrate_inventory_data(); saving always writes the canonical form.

Note:
    There is no locking between processes. Two writers saving the same file
    can lose each other's updates.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import InventoryError, InventoryFormatError
from .logging import StructuredLogger, get_logger
from .types import Credentials, Host, User

HOST_KEY_ALIASES = {
    "address": ("address", "ip", "IP", "Address", "Ip"),
    "hostname": ("hostname", "Hostname", "HostName", "host_name"),
    "os": ("os", "OS", "Os"),
    "ssh_user": ("ssh_user", "SSHUser", "sshUser", "username"),
    "ssh_password": ("ssh_password", "ssh_pass", "SSHPassword", "SSHPass", "password"),
}


@dataclass
class Inventory:
    """Typed inventory structure.

    Attributes:
        hosts: Ordered list of hosts, unique by address
        credentials: Fallback SSH credential pair
        users: Registered users, the first one feeds playbook rendering

    Example:
        >>> inventory = Inventory()
        >>> inventory.add_host(Host(address="10.0.0.5", hostname="web01"))
        >>> inventory.find_host("web01").address
        '10.0.0.5'
    """

    hosts: list[Host] = field(default_factory=list)
    credentials: Credentials = field(default_factory=Credentials)
    users: list[User] = field(default_factory=list)

    def addresses(self) -> set[str]:
        """Get the set of known addresses."""
        return {host.address for host in self.hosts}

    def get_host(self, address: str) -> Host | None:
        """Get a host by exact address."""
        for host in self.hosts:
            if host.address == address:
                return host
        return None

    def find_host(self, name: str) -> Host | None:
        """Get a host by address or hostname, address matches first."""
        host = self.get_host(name)
        if host is not None:
            return host
        for host in self.hosts:
            if host.matches(name):
                return host
        return None

    def host_lookup(self) -> dict[str, Host]:
        """Build a mapping from both addresses and hostnames to hosts."""
        lookup: dict[str, Host] = {}
        for host in self.hosts:
            if host.hostname:
                lookup.setdefault(host.hostname, host)
        # Addresses win over hostnames that happen to look the same
        for host in self.hosts:
            lookup[host.address] = host
        return lookup

    def add_host(self, host: Host) -> None:
        """Add a host.

        Raises:
            InventoryError: If a host with the same address already exists
        """
        if self.get_host(host.address) is not None:
            raise InventoryError(
                f"Host {host.address} already exists in inventory",
                address=host.address,
            )
        self.hosts.append(host)

    def update_host(self, address: str, /, **changes: Any) -> Host:
        """Update fields of an existing host.

        Changing the address is allowed as long as it stays unique.

        Raises:
            InventoryError: If the host is not found or the new address is taken
        """
        host = self.get_host(address)
        if host is None:
            raise InventoryError(f"Host {address} not found in inventory", address=address)

        new_address = changes.get("address")
        if new_address and new_address != address and self.get_host(new_address) is not None:
            raise InventoryError(
                f"Host {new_address} already exists in inventory",
                address=new_address,
            )

        editable = {f.name for f in fields(Host)}
        for key in changes:
            if key not in editable:
                raise InventoryError(f"Unknown host field: {key}", field=key)

        for key, value in changes.items():
            if value is not None:
                setattr(host, key, value)
        return host

    def remove_host(self, address: str) -> Host:
        """Remove a host by address.

        Raises:
            InventoryError: If the host is not found
        """
        for index, host in enumerate(self.hosts):
            if host.address == address:
                return self.hosts.pop(index)
        raise InventoryError(f"Host {address} not found in inventory", address=address)

    def merge(self, hosts: list[Host]) -> list[Host]:
        """Add hosts whose addresses are not yet known.

        Returns:
            The hosts that were actually added, in input order
        """
        known = self.addresses()
        added = []
        for host in hosts:
            if host.address in known:
                continue
            self.hosts.append(host)
            known.add(host.address)
            added.append(host)
        return added

    def add_user(self, user: User) -> None:
        """Register a user, replacing any entry with the same username."""
        self.users = [u for u in self.users if u.username != user.username]
        self.users.append(user)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the canonical YAML mapping."""
        return {
            "hosts": [host.to_dict() for host in self.hosts],
            "ssh_credentials": {
                "username": self.credentials.username,
                "password": self.credentials.password,
            },
            "users": [user.to_dict() for user in self.users],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Inventory":
        """Create from a mapping, migrating legacy forms first.

        Raises:
            InventoryFormatError: If the mapping is structurally invalid
        """
        data = migrate_inventory_data(data)

        hosts = []
        seen: set[str] = set()
        for entry in data["hosts"]:
            host = Host.from_dict(entry)
            if host.address in seen:
                raise InventoryFormatError(
                    f"Duplicate host entry: {host.address}",
                    address=host.address,
                )
            seen.add(host.address)
            hosts.append(host)

        creds = data["ssh_credentials"]
        return cls(
            hosts=hosts,
            credentials=Credentials(
                username=str(creds.get("username") or ""),
                password=str(creds.get("password") or ""),
            ),
            users=[User.from_dict(u) for u in data["users"]],
        )


def _pick(entry: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        if key in entry and entry[key] is not None:
            return entry[key]
    return None


def migrate_inventory_data(data: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize an inventory mapping to the canonical schema.

    Args:
        data: Parsed YAML document (None for an empty file)

    Returns:
        Mapping with canonical "hosts", "ssh_credentials" and "users" keys

    Raises:
        InventoryFormatError: If the document is not a mapping, hosts is not
            a list, or a host has no address

    Example:
        >>> migrate_inventory_data({"hosts": [{"ip": "10.0.0.5", "ssh_pass": "x"}]})["hosts"]
        [{'address': '10.0.0.5', 'hostname': '', 'os': 'Unknown', 'ssh_user': '', 'ssh_password': 'x'}]
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InventoryFormatError("Inventory document must be a mapping")

    raw_hosts = data.get("hosts", data.get("Hosts")) or []
    if not isinstance(raw_hosts, list):
        raise InventoryFormatError("Inventory 'hosts' must be a list")

    hosts = []
    for index, entry in enumerate(raw_hosts):
        if isinstance(entry, str):
            entry = {"address": entry}
        if not isinstance(entry, dict):
            raise InventoryFormatError(f"Host entry {index} must be a mapping", index=index)

        address = _pick(entry, HOST_KEY_ALIASES["address"])
        if not address:
            raise InventoryFormatError(f"Host entry {index} has no address", index=index)

        hosts.append({
            "address": str(address),
            "hostname": str(_pick(entry, HOST_KEY_ALIASES["hostname"]) or ""),
            "os": str(_pick(entry, HOST_KEY_ALIASES["os"]) or "Unknown"),
            "ssh_user": str(_pick(entry, HOST_KEY_ALIASES["ssh_user"]) or ""),
            "ssh_password": str(_pick(entry, HOST_KEY_ALIASES["ssh_password"]) or ""),
        })

    creds = data.get("ssh_credentials")
    if not isinstance(creds, dict):
        creds = {
            "username": data.get("ssh_user") or data.get("SSHUser") or "",
            "password": (
                data.get("ssh_password") or data.get("ssh_pass") or data.get("SSHPassword") or ""
            ),
        }

    raw_users = data.get("users", data.get("Users")) or []
    if not isinstance(raw_users, list):
        raise InventoryFormatError("Inventory 'users' must be a list")
    users = []
    for entry in raw_users:
        if not isinstance(entry, dict):
            raise InventoryFormatError("User entries must be mappings")
        username = entry.get("username", entry.get("Username"))
        if not username:
            raise InventoryFormatError("User entry has no username")
        users.append({
            "username": username,
            "password": entry.get("password", entry.get("Password", "")),
            "group": entry.get("group", entry.get("Group", "")),
        })

    return {"hosts": hosts, "ssh_credentials": creds, "users": users}


def load_inventory(inventory_file: str | Path, missing_ok: bool = True) -> Inventory:
    """Load an inventory from a YAML file.

    Args:
        inventory_file: Path to the inventory file
        missing_ok: If True (default), a missing file yields an empty
            inventory; discovery starts from nothing

    Returns:
        Inventory with typed hosts and credentials

    Raises:
        InventoryError: If the file cannot be read or parsed
        InventoryFormatError: If the document does not match the schema
    """
    path = Path(inventory_file)

    if not path.exists():
        if missing_ok:
            return Inventory()
        raise InventoryError(f"Inventory file not found: {path}", path=str(path))

    try:
        content = path.read_text()
    except OSError as e:
        raise InventoryError(f"Failed to read inventory {path}: {e}", path=str(path)) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise InventoryFormatError(f"Failed to parse inventory {path}: {e}", path=str(path)) from e

    return Inventory.from_dict(data)


def save_inventory(inventory: Inventory, inventory_file: str | Path) -> None:
    """Write an inventory to a YAML file, replacing its content.

    Raises:
        InventoryError: If the file cannot be written
    """
    path = Path(inventory_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            yaml.safe_dump(inventory.to_dict(), f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise InventoryError(f"Failed to write inventory {path}: {e}", path=str(path)) from e


def validate_inventory(inventory: Inventory) -> tuple[list[str], list[str]]:
    """Check an inventory for problems.

    Returns:
        Tuple of (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []
    seen: set[str] = set()

    for host in inventory.hosts:
        if not host.address:
            errors.append("Host with empty address")
            continue
        if host.address in seen:
            errors.append(f"{host.address}: Duplicate host entry")
        seen.add(host.address)

        if not host.credentials.is_complete and not inventory.credentials.is_complete:
            warnings.append(f"{host.address}: No SSH credentials configured")
        if host.os == "Unknown":
            warnings.append(f"{host.address}: Operating system unknown")

    return errors, warnings


class InventoryStore:
    """File-backed inventory with load-mutate-save operations.

    Each mutating method loads the file, applies the change and saves it
    back, so edits made by other tools between operations are visible.

    Example:
        >>> store = InventoryStore("inventory.yaml")
        >>> store.add_host(Host(address="10.0.0.5"))
        >>> store.load().find_host("10.0.0.5")
        Host(address='10.0.0.5', ...)
    """

    def __init__(
        self,
        path: str | Path,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.path = Path(path)
        self.logger = logger or get_logger(__name__)

    def load(self) -> Inventory:
        """Load the current inventory from disk."""
        inventory = load_inventory(self.path)
        self.logger.debug("Inventory loaded", path=self.path, hosts=len(inventory.hosts))
        return inventory

    def save(self, inventory: Inventory) -> None:
        """Persist the inventory to disk."""
        save_inventory(inventory, self.path)
        self.logger.event(
            logging.INFO, "Inventory", "Inventory saved",
            path=self.path, hosts=len(inventory.hosts),
        )

    def add_host(self, host: Host) -> Host:
        """Add a host and persist."""
        inventory = self.load()
        inventory.add_host(host)
        self.save(inventory)
        self.logger.event(logging.INFO, "Inventory", "Host added", address=host.address)
        return host

    def update_host(self, address: str, /, **changes: Any) -> Host:
        """Update a host and persist."""
        inventory = self.load()
        host = inventory.update_host(address, **changes)
        self.save(inventory)
        self.logger.event(
            logging.INFO, "Inventory", "Host updated",
            address=address, fields=",".join(k for k, v in changes.items() if v is not None),
        )
        return host

    def delete_host(self, address: str) -> Host:
        """Delete a host and persist."""
        inventory = self.load()
        host = inventory.remove_host(address)
        self.save(inventory)
        self.logger.event(logging.INFO, "Inventory", "Host deleted", address=address)
        return host

    def merge_hosts(self, hosts: list[Host]) -> list[Host]:
        """Merge hosts, skipping known addresses, and persist once."""
        inventory = self.load()
        added = inventory.merge(hosts)
        self.save(inventory)
        self.logger.event(
            logging.INFO, "Inventory", "Hosts merged",
            offered=len(hosts), added=len(added),
        )
        return added

    def find_host(self, name: str) -> Host | None:
        """Look up a host by address or hostname."""
        return self.load().find_host(name)

    def get_credentials(self) -> Credentials:
        """Get the fallback SSH credentials."""
        return self.load().credentials

    def set_credentials(self, credentials: Credentials) -> None:
        """Replace the fallback SSH credentials and persist."""
        inventory = self.load()
        inventory.credentials = credentials
        self.save(inventory)
        self.logger.event(
            logging.INFO, "Inventory", "Fallback credentials updated",
            username=credentials.username,
        )

    def get_users(self) -> list[User]:
        """Get the registered users."""
        return self.load().users

    def add_user(self, user: User) -> None:
        """Register a user and persist."""
        inventory = self.load()
        inventory.add_user(user)
        self.save(inventory)
        self.logger.event(logging.INFO, "Inventory", "User registered", username=user.username)
