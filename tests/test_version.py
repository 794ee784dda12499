"""Test package version and basic imports."""

import eagledeploy


def test_version():
    """Verify package version is set."""
    assert eagledeploy.__version__ == "0.1.0"


def test_public_api():
    """Verify the main entry points are exported."""
    for name in ("HostDiscoverer", "InventoryStore", "PlaybookRenderer", "TaskExecutor"):
        assert hasattr(eagledeploy, name)
