"""Host discovery for EagleDeploy.

Expands an address range, checks which candidates are alive, fingerprints
the live ones and merges the newcomers into the inventory.

Liveness is a TCP-connect heuristic: a host is up if any liveness port
either accepts or actively refuses a connection. Only silence (timeout,
unreachable network) counts as down.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass, field
from typing import Any

from .config import DEFAULT_LIVENESS_PORTS
from .fingerprint import DetectionResult, OSFingerprinter
from .host_range import parse_range
from .inventory import InventoryStore
from .logging import StructuredLogger, get_logger
from .types import Credentials, Host


@dataclass
class DiscoveryReport:
    """Summary of one discovery run.

    Attributes:
        expression: Range expression that was scanned
        candidates: Every address in the expanded range, in order
        alive: Hosts that answered the liveness check
        added: Hosts newly merged into the inventory
        already_known: Live addresses that were already in the inventory
        errors: Per-address errors raised while probing
    """

    expression: str
    candidates: list[str] = field(default_factory=list)
    alive: list[Host] = field(default_factory=list)
    added: list[Host] = field(default_factory=list)
    already_known: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "expression": self.expression,
            "candidates": len(self.candidates),
            "alive": [host.to_dict() for host in self.alive],
            "added": [host.address for host in self.added],
            "already_known": self.already_known,
            "errors": self.errors,
        }


class HostDiscoverer:
    """Scan an address range and record live hosts in the inventory.

    Example:
        store = InventoryStore("inventory.yaml")
        discoverer = HostDiscoverer(store, OSFingerprinter(SSHTransport()))
        report = await discoverer.discover("192.168.1.1-254")
        print(f"{len(report.added)} new hosts")
    """

    def __init__(
        self,
        store: InventoryStore,
        fingerprinter: OSFingerprinter,
        concurrency: int = 32,
        liveness_ports: list[int] | None = None,
        probe_timeout: float = 2.0,
        resolve_names: bool = True,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the discoverer.

        Args:
            store: Inventory the discovered hosts are merged into
            fingerprinter: OS fingerprinter used for live hosts
            concurrency: Maximum candidates probed at once
            liveness_ports: Ports knocked on to decide liveness
            probe_timeout: Timeout for each liveness connection
            resolve_names: Whether to look up reverse DNS names
            logger: Logger for discovery events
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.store = store
        self.fingerprinter = fingerprinter
        self.concurrency = concurrency
        self.liveness_ports = list(liveness_ports or DEFAULT_LIVENESS_PORTS)
        self.probe_timeout = probe_timeout
        self.resolve_names = resolve_names
        self.logger = logger or get_logger(__name__)

    async def _knock(self, address: str, port: int) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port), timeout=self.probe_timeout
            )
        except ConnectionRefusedError:
            return True
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def is_alive(self, address: str) -> bool:
        """Check whether any liveness port accepts or refuses a connection."""
        answers = await asyncio.gather(*(self._knock(address, port) for port in self.liveness_ports))
        return any(answers)

    async def resolve_hostname(self, address: str) -> str:
        """Best-effort reverse DNS lookup; empty string when unresolvable."""
        if not self.resolve_names:
            return ""
        loop = asyncio.get_running_loop()
        try:
            name, _, _ = await loop.run_in_executor(None, socket.gethostbyaddr, address)
        except OSError:
            return ""
        return name

    async def probe(self, address: str, credentials: Credentials | None = None) -> Host | None:
        """Probe one candidate.

        Returns:
            A Host with hostname and OS filled in, or None if the address is down
        """
        if not await self.is_alive(address):
            self.logger.trace("Host did not answer", host=address)
            return None

        hostname = await self.resolve_hostname(address)
        detection: DetectionResult = await self.fingerprinter.detect(address, credentials)
        host = Host(address=address, hostname=hostname, os=detection.os)

        self.logger.event(
            logging.INFO, "Discovery", "Host found",
            host=address, hostname=hostname or "-", os=host.os,
        )
        if detection.error:
            self.logger.debug("OS detection inconclusive", host=address, error=detection.error)
        return host

    async def discover(self, expression: str) -> DiscoveryReport:
        """Discover hosts in an address range and merge them into the inventory.

        Args:
            expression: Single address or range, e.g. "10.0.0.1-20"

        Returns:
            DiscoveryReport for the run

        Raises:
            AddressRangeError: If the expression is invalid (before any probing)
            InventoryError: If the inventory cannot be loaded or saved
        """
        candidates = parse_range(expression)
        inventory = self.store.load()
        known = inventory.addresses()
        credentials = inventory.credentials

        self.logger.event(
            logging.INFO, "Discovery", "Starting discovery",
            range=expression, candidates=len(candidates), concurrency=self.concurrency,
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded_probe(address: str) -> Host | None:
            async with semaphore:
                return await self.probe(address, credentials)

        results = await asyncio.gather(
            *(bounded_probe(address) for address in candidates),
            return_exceptions=True,
        )

        report = DiscoveryReport(expression=expression, candidates=candidates)
        for address, result in zip(candidates, results):
            if isinstance(result, Exception):
                self.logger.event(
                    logging.ERROR, "Discovery", "Probe failed",
                    host=address, error=repr(result),
                )
                report.errors[address] = str(result)
            elif isinstance(result, BaseException):
                raise result
            elif result is not None:
                report.alive.append(result)
                if address in known:
                    report.already_known.append(address)

        if report.alive:
            # Reloads inside merge_hosts so edits made during the scan survive
            report.added = self.store.merge_hosts(report.alive)

        self.logger.event(
            logging.INFO, "Discovery", "Discovery complete",
            range=expression, alive=len(report.alive), added=len(report.added),
        )
        return report
