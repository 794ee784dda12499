"""Tests for EagleDeploy type definitions."""

from eagledeploy.types import UNKNOWN_OS, Credentials, ExecutionOutcome, Host, User


class TestCredentials:
    """Tests for Credentials."""

    def test_completeness(self):
        """Test a pair counts only when both parts are set."""
        assert Credentials("deploy", "pw").is_complete
        assert not Credentials("deploy", "").is_complete
        assert not Credentials("", "pw").is_complete
        assert not Credentials().is_complete

    def test_repr_masks_password(self):
        """Test the password never appears in repr."""
        assert "hunter2" not in repr(Credentials("deploy", "hunter2"))


class TestHost:
    """Tests for Host."""

    def test_defaults(self):
        """Test a bare address gets the Unknown OS label."""
        host = Host(address="10.0.0.5")
        assert host.os == UNKNOWN_OS
        assert host.hostname == ""
        assert not host.credentials.is_complete

    def test_is_windows(self):
        """Test Windows detection from the free-form label."""
        assert Host(address="a", os="Windows Server 2019").is_windows
        assert not Host(address="a", os="Linux - Ubuntu").is_windows

    def test_matches(self):
        """Test matching by address or hostname, never by empty hostname."""
        host = Host(address="10.0.0.5", hostname="web01")
        assert host.matches("10.0.0.5")
        assert host.matches("web01")
        assert not Host(address="10.0.0.5").matches("")

    def test_dict_round_trip_with_credentials(self):
        """Test per-host credentials are only written when set."""
        assert "ssh_user" not in Host(address="10.0.0.5").to_dict()
        host = Host(address="10.0.0.5", ssh_user="admin", ssh_password="pw")
        assert Host.from_dict(host.to_dict()) == host

    def test_from_dict_null_fields(self):
        """Test null YAML fields fall back to defaults."""
        host = Host.from_dict({"address": "10.0.0.5", "hostname": None, "os": None})
        assert host.hostname == ""
        assert host.os == UNKNOWN_OS


class TestUser:
    """Tests for User."""

    def test_group_omitted_when_empty(self):
        """Test the group key is optional."""
        assert User(username="ops", password="pw").to_dict() == {"username": "ops", "password": "pw"}
        assert User.from_dict({"username": "ops", "group": "wheel"}).group == "wheel"


class TestExecutionOutcome:
    """Tests for ExecutionOutcome."""

    def test_success(self):
        """Test a successful outcome."""
        outcome = ExecutionOutcome.success_outcome("uptime", "10.0.0.5", "up\n", connection="local")
        assert outcome.is_success
        assert not outcome.is_failure
        assert "error" not in outcome.to_dict()
        assert outcome.to_dict()["connection"] == "local"

    def test_error(self):
        """Test a failed outcome carries its error."""
        outcome = ExecutionOutcome.error_outcome("uptime", "10.0.0.5", "Connection refused")
        assert outcome.is_failure
        assert outcome.to_dict()["error"] == "Connection refused"
