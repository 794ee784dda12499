"""Tests for playbook parsing, loading and listing."""

import pytest

from eagledeploy.exceptions import PlaybookError
from eagledeploy.playbook import (
    Task,
    list_playbooks,
    load_playbook,
    migrate_playbook_data,
    parse_playbook,
    parse_port,
    search_playbooks,
)

PLAYBOOK_YAML = """\
name: Patch web servers
version: 1.0
hosts:
  - 10.0.0.5
  - web02
tasks:
  - name: Update packages
    command: apt-get update
    ssh_user: admin
    ssh_password: secret
  - name: Create operator
    command: add_user
    username: ops
    password: opspass
    group: sudo
  - name: Local note
    command: echo done
    local: true
settings:
  port: 22
"""


class TestParsePort:
    """Tests for port values."""

    @pytest.mark.parametrize("value,expected", [(22, 22), ("2222", 2222), (" 22 ", 22)])
    def test_valid(self, value, expected):
        """Test ints and numeric strings are accepted."""
        assert parse_port(value) == expected

    @pytest.mark.parametrize("value", [None, "ssh", 0, 70000, True, 22.5])
    def test_invalid(self, value):
        """Test unusable values are rejected."""
        with pytest.raises(PlaybookError):
            parse_port(value)


class TestLocalFlag:
    """Tests for the task-level local flag."""

    @pytest.mark.parametrize(
        "value,expected",
        [(True, True), (False, False), ("false", False), ("No", False), ("yes", True), (1, True), (0, False)],
    )
    def test_accepted_values(self, value, expected):
        """Test booleans, 0/1 and true/false/yes/no strings."""
        playbook = parse_playbook({
            "tasks": [{"name": "t", "command": "ls", "local": value}],
            "settings": {"port": 22},
        })
        assert playbook.tasks[0].local is expected

    def test_missing_means_remote(self):
        """Test a task without the flag is remote."""
        assert Task.from_dict({"name": "t", "command": "ls"}).local is False

    @pytest.mark.parametrize("value", ["maybe", "{{ flag }}", 2, 1.5, ["yes"]])
    def test_rejected_values(self, value):
        """Test anything else is an error rather than a local run."""
        with pytest.raises(PlaybookError, match="Invalid boolean"):
            parse_playbook({
                "tasks": [{"name": "t", "command": "ls", "local": value}],
                "settings": {"port": 22},
            })


class TestLoadPlaybook:
    """Tests for load_playbook."""

    def test_load(self, tmp_path):
        """Test a canonical playbook loads completely."""
        path = tmp_path / "patch.yaml"
        path.write_text(PLAYBOOK_YAML)
        playbook = load_playbook(path)

        assert playbook.name == "Patch web servers"
        assert playbook.version == "1.0"
        assert playbook.hosts == ["10.0.0.5", "web02"]
        assert playbook.port == 22
        assert [t.name for t in playbook.tasks] == ["Update packages", "Create operator", "Local note"]

        update, create, note = playbook.tasks
        assert update.credentials.is_complete
        assert create.is_add_user
        assert create.group == "sudo"
        assert note.local

    def test_missing_file(self, tmp_path):
        """Test a missing file raises PlaybookError."""
        with pytest.raises(PlaybookError):
            load_playbook(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test unparseable YAML raises PlaybookError."""
        path = tmp_path / "bad.yaml"
        path.write_text("tasks: [\n")
        with pytest.raises(PlaybookError):
            load_playbook(path)


class TestParsePlaybook:
    """Tests for validation rules."""

    def test_no_tasks(self):
        """Test a playbook without tasks is rejected."""
        with pytest.raises(PlaybookError, match="no tasks"):
            parse_playbook({"name": "empty", "hosts": ["a"], "settings": {"port": 22}})

    def test_no_port(self):
        """Test a playbook without a port is rejected."""
        with pytest.raises(PlaybookError, match="port"):
            parse_playbook({"name": "p", "tasks": [{"name": "t", "command": "ls"}]})

    def test_task_without_command(self):
        """Test a task must have a command."""
        with pytest.raises(PlaybookError, match="no command"):
            parse_playbook({"tasks": [{"name": "t"}], "settings": {"port": 22}})

    def test_task_port_override(self):
        """Test a task may carry its own port."""
        playbook = parse_playbook({
            "tasks": [{"name": "t", "command": "ls", "port": "2222"}],
            "settings": {"port": 22},
        })
        assert playbook.tasks[0].port == 2222

    def test_legacy_document(self):
        """Test capitalised keys, SSHUser fields and a string port."""
        playbook = parse_playbook({
            "Name": "legacy",
            "Hosts": "10.0.0.1, 10.0.0.2",
            "Tasks": [{"Name": "t", "Command": "uptime", "SSHUser": "u", "SSHPassword": "p"}],
            "Settings": {"Port": "22"},
        })
        assert playbook.name == "legacy"
        assert playbook.hosts == ["10.0.0.1", "10.0.0.2"]
        assert playbook.tasks[0].ssh_user == "u"
        assert playbook.port == 22

    def test_top_level_port(self):
        """Test a top-level port is moved into settings."""
        data = migrate_playbook_data({"tasks": [], "port": 2200})
        assert data["settings"] == {"port": 2200}

    def test_not_a_mapping(self):
        """Test a non-mapping document is rejected."""
        with pytest.raises(PlaybookError):
            parse_playbook(["not", "a", "playbook"])


class TestTask:
    """Tests for Task helpers."""

    def test_for_host(self):
        """Test binding a task to a host leaves the original untouched."""
        task = Task(name="t", command="uptime")
        bound = task.for_host("10.0.0.5")
        assert bound.host == "10.0.0.5"
        assert task.host == ""

    def test_to_dict_omits_empty(self):
        """Test optional fields are omitted when empty."""
        assert Task(name="t", command="ls").to_dict() == {"name": "t", "command": "ls"}


class TestListing:
    """Tests for playbook listing and search."""

    def test_list_and_search(self, tmp_path):
        """Test listing and keyword search."""
        (tmp_path / "web_patch.yaml").write_text(PLAYBOOK_YAML)
        (tmp_path / "db.yml").write_text(PLAYBOOK_YAML)
        (tmp_path / "notes.txt").write_text("not a playbook")
        (tmp_path / "windows").mkdir()
        (tmp_path / "windows" / "users.yaml").write_text(PLAYBOOK_YAML)

        assert [p.name for p in list_playbooks(tmp_path)] == ["db.yml", "web_patch.yaml"]
        assert [p.name for p in search_playbooks(tmp_path, "WEB")] == ["web_patch.yaml"]
        assert [p.name for p in search_playbooks(tmp_path, "windows")] == ["users.yaml"]
        assert search_playbooks(tmp_path, "nothing") == []

    def test_missing_directory(self, tmp_path):
        """Test a missing directory raises PlaybookError."""
        with pytest.raises(PlaybookError):
            list_playbooks(tmp_path / "missing")
