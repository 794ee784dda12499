"""EagleDeploy - lightweight host discovery and playbook execution.

Discovers hosts in an address range, fingerprints their operating system,
keeps them in a YAML inventory and runs shell-task playbooks across them
concurrently over SSH.

Quick Start:
    from eagledeploy import InventoryStore, SSHTransport, TaskExecutor, load_playbook

    playbook = load_playbook("playbooks/patch.yaml")
    executor = TaskExecutor(InventoryStore("inventory.yaml"), SSHTransport())
    summary = await executor.run_playbook(playbook)
"""

__version__ = "0.1.0"

from eagledeploy.discovery import HostDiscoverer
from eagledeploy.executor import RunSummary, TaskExecutor
from eagledeploy.fingerprint import OSFingerprinter
from eagledeploy.inventory import InventoryStore
from eagledeploy.playbook import load_playbook
from eagledeploy.render import PlaybookRenderer
from eagledeploy.ssh import SSHTransport

__all__ = [
    "__version__",
    "HostDiscoverer",
    "InventoryStore",
    "OSFingerprinter",
    "PlaybookRenderer",
    "RunSummary",
    "SSHTransport",
    "TaskExecutor",
    "load_playbook",
]
