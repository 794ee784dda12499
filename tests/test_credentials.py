"""Tests for credential resolution precedence."""

import pytest

from eagledeploy.credentials import CredentialResolver, credentials_from_env
from eagledeploy.exceptions import CredentialsMissingError
from eagledeploy.types import Credentials

TASK = Credentials("task-user", "task-pw")
HOST = Credentials("host-user", "host-pw")
FALLBACK = Credentials("inv-user", "inv-pw")


class TestCredentialsFromEnv:
    """Tests for the environment override pair."""

    def test_primary_names(self):
        """Test the EAGLEDEPLOY_* pair."""
        env = {"EAGLEDEPLOY_SSH_USER": "env-user", "EAGLEDEPLOY_SSH_PASSWORD": "env-pw"}
        assert credentials_from_env(env) == Credentials("env-user", "env-pw")

    def test_legacy_names(self):
        """Test the USER_1_* pair."""
        env = {"USER_1_USERNAME": "old", "USER_1_PASSWORD": "oldpw"}
        assert credentials_from_env(env) == Credentials("old", "oldpw")

    def test_incomplete_pair_is_ignored(self):
        """Test a half-set pair falls through to the next one."""
        env = {"EAGLEDEPLOY_SSH_USER": "env-user", "USER_1_USERNAME": "old", "USER_1_PASSWORD": "oldpw"}
        assert credentials_from_env(env) == Credentials("old", "oldpw")

    def test_empty_environment(self):
        """Test nothing set yields incomplete credentials."""
        assert not credentials_from_env({}).is_complete


class TestCredentialResolver:
    """Tests for the precedence chain."""

    def test_environment_wins(self):
        """Test the environment pair beats every other source."""
        resolver = CredentialResolver(
            environ={"EAGLEDEPLOY_SSH_USER": "env-user", "EAGLEDEPLOY_SSH_PASSWORD": "env-pw"}
        )
        source, creds = resolver.resolve_with_source("10.0.0.5", TASK, HOST, FALLBACK)
        assert source == "environment"
        assert creds == Credentials("env-user", "env-pw")

    def test_task_beats_host(self):
        """Test task credentials beat host and inventory credentials."""
        resolver = CredentialResolver(environ={})
        assert resolver.resolve("10.0.0.5", TASK, HOST, FALLBACK) == TASK

    def test_host_beats_fallback(self):
        """Test host credentials beat the inventory pair."""
        resolver = CredentialResolver(environ={})
        assert resolver.resolve("10.0.0.5", Credentials(), HOST, FALLBACK) == HOST

    def test_fallback(self):
        """Test the inventory pair is the last resort."""
        resolver = CredentialResolver(environ={})
        source, creds = resolver.resolve_with_source("10.0.0.5", None, None, FALLBACK)
        assert source == "inventory"
        assert creds == FALLBACK

    def test_partial_source_is_skipped(self):
        """Test a source with only a username does not count."""
        resolver = CredentialResolver(environ={})
        creds = resolver.resolve("10.0.0.5", Credentials("task-user", ""), Credentials("", "pw"), FALLBACK)
        assert creds == FALLBACK

    def test_explicit_override(self):
        """Test an explicit override replaces the environment pair."""
        resolver = CredentialResolver(
            environ={"EAGLEDEPLOY_SSH_USER": "env-user", "EAGLEDEPLOY_SSH_PASSWORD": "env-pw"},
            override=Credentials("cli-user", "cli-pw"),
        )
        assert resolver.resolve("10.0.0.5", TASK) == Credentials("cli-user", "cli-pw")

    def test_nothing_resolves(self):
        """Test the chain ends in CredentialsMissingError."""
        resolver = CredentialResolver(environ={})
        with pytest.raises(CredentialsMissingError) as exc_info:
            resolver.resolve("10.0.0.5", Credentials(), Credentials(), Credentials(), task_name="uptime")
        assert "uptime" in str(exc_info.value)
        assert exc_info.value.context["host"] == "10.0.0.5"


def test_credentials_repr_masks_password():
    """Test the password never appears in repr."""
    assert "hunter2" not in repr(Credentials("deploy", "hunter2"))
