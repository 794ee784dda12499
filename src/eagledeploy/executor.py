"""Concurrent task execution engine for EagleDeploy.

Fans out one dispatch per (task, host) pair through a bounded semaphore and
collects every outcome. A failing host never cancels its siblings; the run
summary reports successes and failures side by side.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .credentials import CredentialResolver
from .exceptions import CredentialsMissingError, PlaybookError
from .inventory import InventoryStore
from .logging import StructuredLogger, get_logger
from .playbook import Playbook, Task
from .runners import TaskRunnerFactory, is_loopback
from .ssh import Transport
from .types import Credentials, ExecutionOutcome, Host


@dataclass
class RunSummary:
    """Aggregated result of one execution run.

    Attributes:
        outcomes: One outcome per dispatched (task, host) pair
        skipped: Requested hosts that were not found in the inventory
    """

    outcomes: list[ExecutionOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if o.is_success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.is_failure)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and not self.skipped

    def failures(self) -> list[ExecutionOutcome]:
        """Get the failed outcomes."""
        return [o for o in self.outcomes if o.is_failure]

    def for_host(self, address: str) -> list[ExecutionOutcome]:
        """Get the outcomes for one host."""
        return [o for o in self.outcomes if o.host == address]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class TaskExecutor:
    """Execute tasks across inventory hosts concurrently.

    The inventory is loaded fresh for every run. Each (task, host) pair is
    dispatched as its own unit: remote units resolve credentials and go
    through the transport (connect, run, close), local units run through the
    local shell.

    Example:
        executor = TaskExecutor(InventoryStore("inventory.yaml"), SSHTransport())
        summary = await executor.execute(playbook.tasks, ["web01", "10.0.0.6"], 22)
        print(f"{summary.successful} succeeded, {summary.failed} failed")
    """

    def __init__(
        self,
        store: InventoryStore,
        transport: Transport,
        resolver: CredentialResolver | None = None,
        concurrency: int = 32,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Inventory the targets are resolved against
            transport: Transport for remote and local commands
            resolver: Credential resolver (default reads the environment)
            concurrency: Maximum concurrent dispatches
            logger: Logger for dispatch events
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.store = store
        self.transport = transport
        self.resolver = resolver or CredentialResolver()
        self.concurrency = concurrency
        self.logger = logger or get_logger(__name__)
        self.runner_factory = TaskRunnerFactory(transport, self.logger)

    def resolve_targets(self, hosts: list[str], lookup: dict[str, Host]) -> tuple[list[Host], list[str]]:
        """Match requested names to inventory hosts.

        Loopback names that are not in the inventory still resolve, since
        they run locally.

        Returns:
            Tuple of (targets without duplicates, names that were skipped)
        """
        targets: list[Host] = []
        skipped: list[str] = []
        seen: set[str] = set()

        for name in hosts:
            host = lookup.get(name)
            if host is None and is_loopback(name):
                host = Host(address=name)
            if host is None:
                self.logger.event(
                    logging.WARNING, "Execution", "Host not found in inventory, skipping",
                    host=name,
                )
                skipped.append(name)
                continue
            if host.address in seen:
                continue
            seen.add(host.address)
            targets.append(host)

        return targets, skipped

    async def _dispatch(
        self,
        task: Task,
        host: Host,
        port: int,
        fallback: Credentials,
    ) -> ExecutionOutcome:
        runner = self.runner_factory.create_runner(task, host.address)
        port = task.port or port
        start = time.monotonic()

        self.logger.event(
            logging.INFO, "Execution", "Dispatching task",
            task=task.name, host=host.address, connection=runner.connection,
        )

        credentials = None
        outcome = None
        if runner.connection == "ssh":
            try:
                source, credentials = self.resolver.resolve_with_source(
                    host.address,
                    task_creds=task.credentials,
                    host_creds=host.credentials,
                    fallback=fallback,
                    task_name=task.name,
                )
                self.logger.debug(
                    "Credentials resolved", host=host.address, source=source,
                    user=credentials.username,
                )
            except CredentialsMissingError as e:
                outcome = ExecutionOutcome.error_outcome(task.name, host.address, str(e))

        if outcome is None:
            outcome = await runner.run(task, host, port, credentials)
        outcome.duration = time.monotonic() - start

        if outcome.is_success:
            self.logger.event(
                logging.INFO, "Execution", "Task succeeded",
                task=task.name, host=host.address, duration=f"{outcome.duration:.2f}s",
            )
        else:
            self.logger.event(
                logging.ERROR, "Execution", "Task failed",
                task=task.name, host=host.address, error=outcome.error,
            )
        return outcome

    async def execute(self, tasks: list[Task], hosts: list[str], port: int) -> RunSummary:
        """Run every task on every host.

        Args:
            tasks: Tasks in playbook order
            hosts: Target addresses or hostnames
            port: Default SSH port

        Returns:
            RunSummary once every dispatch has finished

        Raises:
            InventoryError: If the inventory cannot be loaded
        """
        inventory = self.store.load()
        lookup = inventory.host_lookup()
        targets, skipped = self.resolve_targets(hosts, lookup)

        units = [(task.for_host(host.address), host) for task in tasks for host in targets]
        self.logger.event(
            logging.INFO, "Execution", "Starting run",
            tasks=len(tasks), hosts=len(targets), units=len(units), concurrency=self.concurrency,
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded_dispatch(task: Task, host: Host) -> ExecutionOutcome:
            async with semaphore:
                return await self._dispatch(task, host, port, inventory.credentials)

        with self.logger.performance("Execution run", units=len(units)):
            results = await asyncio.gather(
                *(bounded_dispatch(task, host) for task, host in units),
                return_exceptions=True,
            )

        summary = RunSummary(skipped=skipped)
        for (task, host), result in zip(units, results):
            if isinstance(result, Exception):
                self.logger.error(
                    "Unexpected error during dispatch",
                    task=task.name, host=host.address, error=repr(result),
                )
                summary.outcomes.append(
                    ExecutionOutcome.error_outcome(task.name, host.address, str(result))
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                summary.outcomes.append(result)

        self.logger.event(
            logging.INFO, "Execution", "Run complete",
            successful=summary.successful, failed=summary.failed, skipped=len(skipped),
        )
        return summary

    async def run_playbook(self, playbook: Playbook, target_hosts: list[str] | None = None) -> RunSummary:
        """Run a parsed playbook.

        Args:
            playbook: Playbook to run
            target_hosts: Hosts replacing the playbook's own host list

        Raises:
            PlaybookError: If the playbook has no tasks, no port or no hosts
        """
        if not playbook.tasks:
            raise PlaybookError(f"Playbook '{playbook.name}' has no tasks")
        hosts = list(target_hosts) if target_hosts else list(playbook.hosts)
        if not hosts:
            raise PlaybookError(f"Playbook '{playbook.name}' has no target hosts")
        return await self.execute(playbook.tasks, hosts, playbook.port)
