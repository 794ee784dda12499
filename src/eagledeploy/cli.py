"""Command-line interface for EagleDeploy."""

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from eagledeploy import __version__
from eagledeploy.config import EngineConfig, load_config
from eagledeploy.credentials import CredentialResolver
from eagledeploy.discovery import DiscoveryReport, HostDiscoverer
from eagledeploy.exceptions import EagleDeployError
from eagledeploy.executor import RunSummary, TaskExecutor
from eagledeploy.fingerprint import OSFingerprinter
from eagledeploy.inventory import InventoryStore, validate_inventory
from eagledeploy.logging import configure_logging, get_level_from_verbosity, get_logger
from eagledeploy.playbook import list_playbooks, load_playbook, search_playbooks
from eagledeploy.render import PlaybookRenderer
from eagledeploy.retry import RetryConfig
from eagledeploy.ssh import SSHTransport
from eagledeploy.types import Credentials, Host, User

logger = get_logger("eagledeploy.cli")


def _config(ctx: click.Context) -> EngineConfig:
    return ctx.find_object(EngineConfig) or EngineConfig()


def _store(ctx: click.Context) -> InventoryStore:
    return InventoryStore(_config(ctx).inventory_path, logger=get_logger("eagledeploy.inventory"))


def _transport(config: EngineConfig) -> SSHTransport:
    return SSHTransport(
        connect_timeout=config.connect_timeout,
        command_timeout=config.command_timeout,
        known_hosts=config.known_hosts,
        logger=get_logger("eagledeploy.ssh"),
    )


def _credentials(username: str | None, password: str | None) -> Credentials | None:
    if not username and not password:
        return None
    if not username or not password:
        raise click.UsageError("--username and --password must be given together")
    return Credentials(username=username, password=password)


def format_discovery_table(report: DiscoveryReport) -> Table:
    """Build a table of the live hosts found by discovery."""
    table = Table(title=f"Discovery: {report.expression}")
    table.add_column("Address")
    table.add_column("Hostname")
    table.add_column("OS")
    table.add_column("Status")

    added = {host.address for host in report.added}
    for host in report.alive:
        status = "new" if host.address in added else "known"
        table.add_row(host.address, host.hostname or "-", host.os, status)
    return table


def format_hosts_table(hosts: list[Host]) -> Table:
    """Build a table of inventory hosts."""
    table = Table(title="Inventory")
    table.add_column("Address")
    table.add_column("Hostname")
    table.add_column("OS")
    table.add_column("SSH user")
    for host in hosts:
        table.add_row(host.address, host.hostname or "-", host.os, host.ssh_user or "-")
    return table


def format_summary_text(summary: RunSummary) -> str:
    """Format a run summary as one line per dispatch plus the totals."""
    lines = []
    for outcome in sorted(summary.outcomes, key=lambda o: (o.task_name, o.host)):
        if outcome.is_success:
            lines.append(f"[OK] {outcome.task_name} on {outcome.host} ({outcome.connection})")
            if outcome.output.strip():
                for line in outcome.output.rstrip().splitlines():
                    lines.append(f"    {line}")
        else:
            lines.append(f"[FAILED] {outcome.task_name} on {outcome.host}: {outcome.error}")
    for name in summary.skipped:
        lines.append(f"[SKIPPED] {name}: not in inventory")

    lines.append("")
    lines.append(
        f"{summary.successful} succeeded, {summary.failed} failed, "
        f"{len(summary.skipped)} skipped"
    )
    return "\n".join(lines)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v info, -vv debug, -vvv trace)")
@click.option("--log-file", type=click.Path(), help="Also write debug logs to this file")
@click.option("--config", "config_file", type=click.Path(), help="Engine config file (YAML)")
@click.option("--inventory", "-i", "inventory_path", help="Inventory file (overrides config)")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    verbose: int,
    log_file: str | None,
    config_file: str | None,
    inventory_path: str | None,
) -> None:
    """EagleDeploy - discover hosts and run playbooks across them."""
    if version:
        click.echo(f"eagledeploy {__version__}")
        ctx.exit(0)

    configure_logging(
        level=get_level_from_verbosity(verbose),
        log_file=log_file,
        file_level=logging.DEBUG if log_file else None,
    )

    try:
        config = load_config(config_file)
    except ValueError as e:
        raise click.ClickException(str(e))
    if inventory_path:
        config.inventory_path = inventory_path
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("address_range")
@click.option("--concurrency", "-c", type=int, help="Maximum hosts probed at once")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_context
def discover(ctx: click.Context, address_range: str, concurrency: int | None, output_format: str) -> None:
    """Scan ADDRESS_RANGE and add live hosts to the inventory.

    ADDRESS_RANGE is a single address, a full range (10.0.0.1-10.0.0.20)
    or a range ending in a bare octet (10.0.0.1-20).
    """
    config = _config(ctx)
    transport = _transport(config)
    fingerprinter = OSFingerprinter(
        transport,
        probe_timeout=config.probe_timeout,
        retry_config=RetryConfig(
            max_attempts=config.detection_attempts,
            initial_delay=config.detection_retry_delay,
        ),
        detection_timeout=config.detection_timeout,
        logger=get_logger("eagledeploy.fingerprint"),
    )
    try:
        discoverer = HostDiscoverer(
            _store(ctx),
            fingerprinter,
            concurrency=concurrency or config.concurrency,
            liveness_ports=config.liveness_ports,
            probe_timeout=config.probe_timeout,
            logger=get_logger("eagledeploy.discovery"),
        )
        report = asyncio.run(discoverer.discover(address_range))
    except (EagleDeployError, ValueError) as e:
        raise click.ClickException(str(e))

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    if report.alive:
        Console().print(format_discovery_table(report))
    click.echo(
        f"Scanned {len(report.candidates)} address(es): {len(report.alive)} alive, "
        f"{len(report.added)} added to {_config(ctx).inventory_path}"
    )


# Inventory subcommand group
@cli.group()
def inventory() -> None:
    """Inventory management commands."""
    pass


@inventory.command("list")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_context
def inventory_list(ctx: click.Context, output_format: str) -> None:
    """List hosts in the inventory."""
    try:
        inv = _store(ctx).load()
    except EagleDeployError as e:
        raise click.ClickException(str(e))

    if output_format == "json":
        click.echo(json.dumps([host.to_dict() for host in inv.hosts], indent=2))
        return

    if not inv.hosts:
        click.echo("No hosts in inventory")
        return
    Console().print(format_hosts_table(inv.hosts))


@inventory.command("validate")
@click.pass_context
def inventory_validate(ctx: click.Context) -> None:
    """Check the inventory for errors and warnings."""
    path = _config(ctx).inventory_path
    try:
        inv = _store(ctx).load()
    except EagleDeployError as e:
        raise click.ClickException(str(e))

    click.echo(f"\nInventory: {path}")
    click.echo(f"Loaded {len(inv.hosts)} host(s), {len(inv.users)} user(s)\n")

    errors, warnings = validate_inventory(inv)
    click.echo("Validation:")
    if not errors and not warnings:
        click.echo("  All checks passed")
    else:
        for warning in warnings:
            click.echo(f"  Warning: {warning}")
        for error in errors:
            click.echo(f"  Error: {error}")

    if errors:
        raise click.ClickException(f"{len(errors)} validation error(s) found")


@inventory.command("add")
@click.argument("address")
@click.option("--hostname", default="", help="Host name")
@click.option("--os", "os_label", default="Unknown", help="Operating system label")
@click.option("--ssh-user", default="", help="Per-host SSH username")
@click.option("--ssh-password", default="", help="Per-host SSH password")
@click.pass_context
def inventory_add(
    ctx: click.Context,
    address: str,
    hostname: str,
    os_label: str,
    ssh_user: str,
    ssh_password: str,
) -> None:
    """Add a host to the inventory."""
    host = Host(
        address=address,
        hostname=hostname,
        os=os_label,
        ssh_user=ssh_user,
        ssh_password=ssh_password,
    )
    try:
        _store(ctx).add_host(host)
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Added host {address}")


@inventory.command("update")
@click.argument("address")
@click.option("--address", "new_address", help="New address")
@click.option("--hostname", help="Host name")
@click.option("--os", "os_label", help="Operating system label")
@click.option("--ssh-user", help="Per-host SSH username")
@click.option("--ssh-password", help="Per-host SSH password")
@click.pass_context
def inventory_update(
    ctx: click.Context,
    address: str,
    new_address: str | None,
    hostname: str | None,
    os_label: str | None,
    ssh_user: str | None,
    ssh_password: str | None,
) -> None:
    """Update fields of the host at ADDRESS."""
    changes = {
        "address": new_address,
        "hostname": hostname,
        "os": os_label,
        "ssh_user": ssh_user,
        "ssh_password": ssh_password,
    }
    if all(value is None for value in changes.values()):
        raise click.UsageError("Nothing to update")
    try:
        host = _store(ctx).update_host(address, **changes)
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Updated host {host.address}")


@inventory.command("delete")
@click.argument("address")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def inventory_delete(ctx: click.Context, address: str, yes: bool) -> None:
    """Delete the host at ADDRESS."""
    if not yes and not click.confirm(f"Delete host {address}?"):
        click.echo("Cancelled")
        return
    try:
        _store(ctx).delete_host(address)
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted host {address}")


@inventory.command("creds")
@click.option("--show-password", is_flag=True, help="Print the password in clear text")
@click.pass_context
def inventory_creds(ctx: click.Context, show_password: bool) -> None:
    """Show the fallback SSH credentials."""
    try:
        creds = _store(ctx).get_credentials()
    except EagleDeployError as e:
        raise click.ClickException(str(e))

    if not creds.username and not creds.password:
        click.echo("No fallback SSH credentials set")
        return
    password = creds.password if show_password else ("*" * 8 if creds.password else "")
    click.echo(f"Username: {creds.username}")
    click.echo(f"Password: {password}")


@inventory.command("set-creds")
@click.option("--username", "-u", required=True, help="SSH username")
@click.option("--password", "-p", prompt=True, hide_input=True, help="SSH password")
@click.pass_context
def inventory_set_creds(ctx: click.Context, username: str, password: str) -> None:
    """Set the fallback SSH credentials."""
    try:
        _store(ctx).set_credentials(Credentials(username=username, password=password))
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Fallback SSH credentials set for {username}")


@inventory.command("users")
@click.pass_context
def inventory_users(ctx: click.Context) -> None:
    """List users registered for playbook rendering."""
    try:
        users = _store(ctx).get_users()
    except EagleDeployError as e:
        raise click.ClickException(str(e))

    if not users:
        click.echo("No users registered")
        return

    table = Table(title="Users")
    table.add_column("Username")
    table.add_column("Group")
    for user in users:
        table.add_row(user.username, user.group or "-")
    Console().print(table)


@inventory.command("add-user")
@click.argument("username")
@click.option("--password", "-p", prompt=True, hide_input=True, help="Account password")
@click.option("--group", "-g", default="", help="Account group")
@click.pass_context
def inventory_add_user(ctx: click.Context, username: str, password: str, group: str) -> None:
    """Register USERNAME for playbook rendering."""
    try:
        _store(ctx).add_user(User(username=username, password=password, group=group))
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Registered user {username}")


@cli.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Output file (default: processed_<name>)")
@click.option("--username", help="Credentials to register if the inventory has no users")
@click.option("--password", help="Password for --username")
@click.pass_context
def render(
    ctx: click.Context,
    template: str,
    output: str | None,
    username: str | None,
    password: str | None,
) -> None:
    """Render a playbook TEMPLATE against the inventory."""
    renderer = PlaybookRenderer(_store(ctx), logger=get_logger("eagledeploy.render"))
    try:
        path = renderer.render(template, output, credentials=_credentials(username, password))
    except EagleDeployError as e:
        raise click.ClickException(str(e))
    click.echo(f"Rendered {template} -> {path}")


@cli.command()
@click.argument("playbook_file", metavar="PLAYBOOK", type=click.Path(exists=True, dir_okay=False))
@click.option("--hosts", "hosts_option", help="Comma-separated hosts replacing the playbook's hosts")
@click.option("--template", "-t", is_flag=True, help="Render PLAYBOOK as a template first")
@click.option("--username", help="Credentials to register when rendering with no users")
@click.option("--password", help="Password for --username")
@click.option("--concurrency", "-c", type=int, help="Maximum concurrent dispatches")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_context
def run(
    ctx: click.Context,
    playbook_file: str,
    hosts_option: str | None,
    template: bool,
    username: str | None,
    password: str | None,
    concurrency: int | None,
    output_format: str,
) -> None:
    """Run a PLAYBOOK across its hosts.

    Individual host failures are reported but do not change the exit
    status; only inventory, template or playbook errors do.
    """
    config = _config(ctx)
    store = _store(ctx)

    try:
        path = Path(playbook_file)
        if template:
            renderer = PlaybookRenderer(store, logger=get_logger("eagledeploy.render"))
            path = renderer.render(path, credentials=_credentials(username, password))
            logger.info("Rendered playbook", path=path)

        playbook = load_playbook(path)
        target_hosts = None
        if hosts_option:
            target_hosts = [h.strip() for h in hosts_option.split(",") if h.strip()]

        executor = TaskExecutor(
            store,
            _transport(config),
            resolver=CredentialResolver(),
            concurrency=concurrency or config.concurrency,
            logger=get_logger("eagledeploy.executor", playbook=playbook.name),
        )
        summary = asyncio.run(executor.run_playbook(playbook, target_hosts))
    except (EagleDeployError, ValueError) as e:
        raise click.ClickException(str(e))

    if output_format == "json":
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        click.echo(format_summary_text(summary))


@cli.command()
@click.argument("keyword", required=False)
@click.option("--dir", "-d", "directory", type=click.Path(), help="Playbook directory")
@click.pass_context
def playbooks(ctx: click.Context, keyword: str | None, directory: str | None) -> None:
    """List playbooks, or search them for KEYWORD."""
    root = Path(directory or _config(ctx).playbooks_dir)
    try:
        found = search_playbooks(root, keyword) if keyword else list_playbooks(root)
    except EagleDeployError as e:
        raise click.ClickException(str(e))

    if not found:
        click.echo("No playbooks found")
        return
    for path in found:
        click.echo(str(path.relative_to(root)))


def main() -> None:
    """Entry point for the eagledeploy command."""
    cli()


if __name__ == "__main__":
    main()
