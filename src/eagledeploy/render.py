"""Playbook template rendering.

Templates are Jinja2 documents rendered against the inventory. The context
exposes:

- ``Hosts``: list of inventory addresses
- ``HostEntries``: full host records (address, hostname, os)
- ``Credentials.UserName`` / ``Credentials.UserPassword``, also available
  top-level as ``UserName`` / ``UserPassword``

and the functions ``env(name, default="")``, ``lower(s)`` and
``contains(s, sub)``. Undefined variables are errors.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

from .exceptions import InventoryError, RenderError
from .inventory import Inventory, InventoryStore
from .logging import StructuredLogger, get_logger
from .types import Credentials, User

PROCESSED_PREFIX = "processed_"


def default_output_path(template_path: str | Path) -> Path:
    """Path a rendered playbook is written to when none is given.

    Example:
        >>> default_output_path("playbooks/setup.yaml")
        PosixPath('playbooks/processed_setup.yaml')
    """
    template_path = Path(template_path)
    return template_path.with_name(f"{PROCESSED_PREFIX}{template_path.name}")


def _contains(value: Any, sub: Any) -> bool:
    return str(sub) in str(value)


def _lower(value: Any) -> str:
    return str(value).lower()


class PlaybookRenderer:
    """Render playbook templates against the inventory.

    Credentials come from the first registered inventory user. When the
    inventory has no users, explicit credentials must be passed; they are
    registered in the inventory so later renders reuse them. The renderer
    never prompts.

    Example:
        renderer = PlaybookRenderer(InventoryStore("inventory.yaml"))
        output = renderer.render("playbooks/setup.yaml")
    """

    def __init__(
        self,
        store: InventoryStore,
        environ: Mapping[str, str] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.store = store
        self.environ = os.environ if environ is None else environ
        self.logger = logger or get_logger(__name__)
        self.jinja = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
        self.jinja.globals.update(env=self._env, lower=_lower, contains=_contains)
        self.jinja.filters["contains"] = _contains

    def _env(self, name: str, default: str = "") -> str:
        return self.environ.get(name, default)

    def resolve_credentials(
        self,
        inventory: Inventory,
        credentials: Credentials | None = None,
    ) -> Credentials:
        """Pick the credentials exposed to the template.

        Nothing is persisted here; render() registers supplied credentials
        only once the output has been written.

        Raises:
            RenderError: If no user is registered and none were supplied
        """
        if inventory.users:
            user = inventory.users[0]
            return Credentials(username=user.username, password=user.password)

        if credentials is None or not credentials.is_complete:
            raise RenderError(
                "No users registered in the inventory; "
                "pass a username and password to render this playbook"
            )
        return credentials

    def _load_inventory(self) -> Inventory:
        try:
            return self.store.load()
        except InventoryError as e:
            raise RenderError(f"Failed to load inventory for rendering: {e}") from e

    def build_context(
        self,
        credentials: Credentials | None = None,
        inventory: Inventory | None = None,
    ) -> dict[str, Any]:
        """Build the template context from the inventory.

        Raises:
            RenderError: If the inventory cannot be loaded or no credentials resolve
        """
        if inventory is None:
            inventory = self._load_inventory()
        creds = self.resolve_credentials(inventory, credentials)

        credential_block = {"UserName": creds.username, "UserPassword": creds.password}
        return {
            "Hosts": [host.address for host in inventory.hosts],
            "HostEntries": [host.to_dict() for host in inventory.hosts],
            "Credentials": credential_block,
            **credential_block,
        }

    def render_text(self, template_text: str, context: dict[str, Any], name: str = "<template>") -> str:
        """Render template text and check the result is a YAML document.

        Raises:
            RenderError: On template syntax errors, undefined variables or
                output that is not valid YAML
        """
        try:
            rendered = self.jinja.from_string(template_text).render(**context)
        except TemplateError as e:
            raise RenderError(f"Failed to render {name}: {e}", template=name) from e

        try:
            yaml.safe_load(rendered)
        except yaml.YAMLError as e:
            raise RenderError(f"Rendered {name} is not valid YAML: {e}", template=name) from e

        return rendered

    def render(
        self,
        template_path: str | Path,
        output_path: str | Path | None = None,
        credentials: Credentials | None = None,
    ) -> Path:
        """Render a playbook template to a new file.

        Args:
            template_path: Template to render
            output_path: Destination (default: processed_<name> beside the template)
            credentials: Credentials to register when the inventory has no users

        Returns:
            Path of the rendered playbook

        Raises:
            RenderError: If any step fails; nothing is written in that case
        """
        template_path = Path(template_path)
        output = Path(output_path) if output_path else default_output_path(template_path)

        try:
            template_text = template_path.read_text()
        except OSError as e:
            raise RenderError(
                f"Failed to read template {template_path}: {e}",
                template=str(template_path),
            ) from e

        inventory = self._load_inventory()
        context = self.build_context(credentials, inventory)
        rendered = self.render_text(template_text, context, name=str(template_path))

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(rendered)
        except OSError as e:
            raise RenderError(f"Failed to write {output}: {e}", output=str(output)) from e

        if not inventory.users:
            user = User(username=context["UserName"], password=context["UserPassword"])
            try:
                self.store.add_user(user)
            except InventoryError as e:
                output.unlink(missing_ok=True)
                raise RenderError(f"Failed to register user {user.username}: {e}") from e

        self.logger.event(
            logging.INFO, "Render", "Playbook rendered",
            template=template_path, output=output, hosts=len(context["Hosts"]),
        )
        return output
