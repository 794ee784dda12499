"""Credential resolution for remote tasks.

Precedence, highest first:

1. Environment override (EAGLEDEPLOY_SSH_USER / EAGLEDEPLOY_SSH_PASSWORD,
   or the older USER_1_USERNAME / USER_1_PASSWORD pair)
2. Task-level ssh_user / ssh_password from the playbook
3. Per-host credentials stored in the inventory
4. The inventory's fallback credential pair

A source only counts when both its username and password are set. When no
source resolves, CredentialsMissingError is raised rather than attempting
an unauthenticated connection.
"""

import os
from collections.abc import Mapping

from .exceptions import CredentialsMissingError
from .types import Credentials

ENV_USER_VARS = ("EAGLEDEPLOY_SSH_USER", "USER_1_USERNAME")
ENV_PASSWORD_VARS = ("EAGLEDEPLOY_SSH_PASSWORD", "USER_1_PASSWORD")


def credentials_from_env(environ: Mapping[str, str] | None = None) -> Credentials:
    """Read the override credential pair from the environment.

    Each variable pair is tried in order; the first complete pair wins.
    """
    environ = os.environ if environ is None else environ
    for user_var, password_var in zip(ENV_USER_VARS, ENV_PASSWORD_VARS):
        creds = Credentials(
            username=environ.get(user_var, ""),
            password=environ.get(password_var, ""),
        )
        if creds.is_complete:
            return creds
    return Credentials()


class CredentialResolver:
    """Resolve the effective SSH credentials for a task on a host.

    Example:
        >>> resolver = CredentialResolver(environ={})
        >>> resolver.resolve(
        ...     host="10.0.0.5",
        ...     task_creds=Credentials(),
        ...     host_creds=Credentials("admin", "secret"),
        ...     fallback=Credentials("deploy", "hunter2"),
        ... )
        Credentials(username='admin', password='***')
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        override: Credentials | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            environ: Environment mapping (defaults to os.environ)
            override: Explicit override pair; takes the place of the
                environment pair when given
        """
        self.environ = os.environ if environ is None else environ
        self.override = override

    def override_credentials(self) -> Credentials:
        """Get the highest-precedence override pair (may be incomplete)."""
        if self.override is not None:
            return self.override
        return credentials_from_env(self.environ)

    def candidates(
        self,
        task_creds: Credentials | None,
        host_creds: Credentials | None,
        fallback: Credentials | None,
    ) -> list[tuple[str, Credentials]]:
        """List every credential source in precedence order."""
        return [
            ("environment", self.override_credentials()),
            ("task", task_creds or Credentials()),
            ("host", host_creds or Credentials()),
            ("inventory", fallback or Credentials()),
        ]

    def resolve_with_source(
        self,
        host: str,
        task_creds: Credentials | None = None,
        host_creds: Credentials | None = None,
        fallback: Credentials | None = None,
        task_name: str = "",
    ) -> tuple[str, Credentials]:
        """Resolve credentials and report which source supplied them.

        Raises:
            CredentialsMissingError: If no source is complete
        """
        for source, creds in self.candidates(task_creds, host_creds, fallback):
            if creds.is_complete:
                return source, creds
        raise CredentialsMissingError(host=host, task=task_name)

    def resolve(
        self,
        host: str,
        task_creds: Credentials | None = None,
        host_creds: Credentials | None = None,
        fallback: Credentials | None = None,
        task_name: str = "",
    ) -> Credentials:
        """Resolve credentials for a remote task.

        Raises:
            CredentialsMissingError: If no source is complete
        """
        _, creds = self.resolve_with_source(
            host, task_creds, host_creds, fallback, task_name=task_name
        )
        return creds
