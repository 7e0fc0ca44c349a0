"""Main CLI entry point for the n8n backup tool.

Provides commands to back up an n8n deployment (workflows and PostgreSQL
database) running in Docker, verify and list backup sets, restore one, and
run an end-to-end backup/restore cycle test.
"""

import logging
from typing import Any, List, Optional

import click

from n8nbackup import __version__
from n8nbackup.backup import BackupManager, BackupStorage, BackupVerifier, RestoreManager
from n8nbackup.backup.storage import new_timestamp
from n8nbackup.backup.verify import FAILED, MISSING, OK, WARNING
from n8nbackup.config import BackupConfig, ConfigManager
from n8nbackup.config.manager import DEFAULT_CONFIG_FILENAME
from n8nbackup.cycle import CycleTester
from n8nbackup.utils.errors import BackupInterrupted, BackupNotFoundError, ErrorHandler
from n8nbackup.utils.files import human_size
from n8nbackup.utils.logging import setup_logging

logger = logging.getLogger(__name__)

STATUS_SYMBOLS = {OK: "✓", FAILED: "✗", MISSING: "✗", WARNING: "⚠"}


def _load_config(ctx: click.Context, **overrides: Any) -> BackupConfig:
    """Resolve configuration once for this invocation."""
    manager = ConfigManager(ctx.obj["config_path"])
    return manager.load_config(overrides)


def _echo_available(timestamps: List[str]) -> None:
    if not timestamps:
        click.echo("No backups available.", err=True)
        return
    click.echo("Available backups:", err=True)
    for timestamp in timestamps:
        click.echo(f"  {timestamp}", err=True)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool) -> None:
    """n8n-backup - Backup and restore for Docker-hosted n8n.

    A backup set is the workflow export, the compressed PostgreSQL dump and a
    manifest, all sharing one timestamp key (YYYYMMDD_HHMMSS).
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose)


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Show detailed progress")
@click.option("--test", "-t", "dry_run", is_flag=True, help="Run pre-flight checks only, create nothing")
@click.option("--keep", "-k", type=click.IntRange(min=1), help="Number of backup sets to retain")
@click.pass_context
def backup(ctx: click.Context, verbose: bool, dry_run: bool, keep: Optional[int]) -> None:
    """Create a new backup set.

    Runs pre-flight checks, exports all workflows, dumps the database,
    writes a manifest, publishes the set and removes sets beyond the
    retention window.
    """
    verbose = verbose or ctx.obj["verbose"]
    error_handler = ErrorHandler(verbose=verbose)

    try:
        config = _load_config(ctx, retention=keep)
        manager = BackupManager(config)
        timestamp = new_timestamp()

        manager.setup_directories()
        setup_logging(verbose=verbose, log_file=str(manager.session_log_path(timestamp)))

        result = manager.run(timestamp, dry_run=dry_run)
    except KeyboardInterrupt as e:
        logger.error("Backup interrupted")
        error_handler.exit_with_error(e, "Backup", exit_code=130)
    except BackupInterrupted as e:
        logger.error("Backup interrupted by SIGTERM")
        error_handler.exit_with_error(e, "Backup", exit_code=143)
    except Exception as e:
        logger.error("Backup failed: %s", e)
        error_handler.exit_with_error(e, "Backup")

    click.echo(manager.format_summary(result))


@cli.command()
@click.pass_context
def verify(ctx: click.Context) -> None:
    """Check the integrity of every backup set.

    Exits nonzero only when no backups exist; broken sets are reported.
    """
    try:
        config = _load_config(ctx)
        reports = BackupVerifier(BackupStorage(config.backup_dir)).verify_all()
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Backup verification")

    click.echo(f"Verifying backups in {config.backup_dir}")

    for report in reports:
        click.echo(f"\nBackup: {report.timestamp}")
        for check in (report.workflows, report.database, report.manifest):
            click.echo(f"  {STATUS_SYMBOLS[check.status]} {check.detail}")

    valid = sum(1 for report in reports if report.ok)
    click.echo(f"\n{valid}/{len(reports)} backup sets valid")


@cli.command()
@click.argument("timestamp", required=False)
@click.pass_context
def restore(ctx: click.Context, timestamp: Optional[str]) -> None:
    """Restore workflows and database from backup TIMESTAMP.

    Asks for confirmation; only the exact answer 'yes' proceeds. The n8n
    container is not restarted.
    """
    error_handler = ctx.obj["error_handler"]

    try:
        config = _load_config(ctx)
        manager = RestoreManager(config)
        backup_set = manager.resolve_set(timestamp)
    except BackupNotFoundError as e:
        error_handler.handle_error(e, "Restore")
        click.echo("\nUsage: n8n-backup restore TIMESTAMP", err=True)
        _echo_available(e.available)
        ctx.exit(1)
    except Exception as e:
        error_handler.exit_with_error(e, "Restore")

    click.echo(f"Restoring backup: {backup_set.timestamp}")
    click.echo(f"  Workflows: {backup_set.workflows}")
    click.echo(f"  Database:  {backup_set.database}")
    click.echo(click.style("⚠ WARNING: This will overwrite current n8n data!", fg="yellow"))

    reply = click.prompt("Are you sure you want to continue? (yes/no)", default="", show_default=False)
    if not manager.is_confirmed(reply):
        click.echo("Restore cancelled.")
        return

    try:
        manager.restore(backup_set)
    except Exception as e:
        logger.error("Restore failed: %s", e)
        error_handler.exit_with_error(e, "Restore")

    click.echo(f"✓ Restore of {backup_set.timestamp} completed")
    click.echo("Restart n8n to load the restored data:")
    click.echo(f"  {manager.restart_hint()}")


@cli.command("list")
@click.pass_context
def list_backups(ctx: click.Context) -> None:
    """List backup sets, oldest first."""
    try:
        config = _load_config(ctx)
        storage = BackupStorage(config.backup_dir)
        timestamps = storage.list_timestamps()
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Listing backups")

    if not timestamps:
        click.echo(f"No backups found in {config.backup_dir}")
        return

    click.echo(f"Backups in {config.backup_dir}:")
    for timestamp in timestamps:
        backup_set = storage.get_set(timestamp)
        workflows = human_size(backup_set.workflows.stat().st_size)
        database = human_size(backup_set.database.stat().st_size) if backup_set.has_database else "missing"
        manifest = "yes" if backup_set.has_manifest else "no"
        click.echo(f"  {timestamp}  workflows: {workflows}  database: {database}  manifest: {manifest}")

    click.echo(f"\n{len(timestamps)} backup set(s), {human_size(storage.total_size())} total")


@cli.command("cycle-test")
@click.option("--restart-wait", type=click.IntRange(min=0), help="Seconds to wait after restarting n8n")
@click.pass_context
def cycle_test(ctx: click.Context, restart_wait: Optional[int]) -> None:
    """Run a live backup -> modify -> restore cycle.

    Adds a throwaway workflow after backing up, restores the backup, restarts
    n8n and checks the workflow count is back to its original value.
    """
    setup_logging(verbose=True)

    try:
        config = _load_config(ctx, restart_wait=restart_wait)
        result = CycleTester(config).run()
    except (Exception, BackupInterrupted) as e:
        ctx.obj["error_handler"].exit_with_error(e, "Cycle test")

    click.echo("=" * 50)
    click.echo("RESULTS")
    click.echo("=" * 50)
    click.echo(f"Backup used:              {result['timestamp']}")
    click.echo(f"Workflows before:         {result['before']}")
    click.echo(f"After adding test:        {result['after_add']}")
    click.echo(f"After restore:            {result['final']}")

    if result["passed"]:
        click.echo(click.style("✓ SUCCESS: backup/restore cycle works", fg="green"))
    else:
        click.echo(click.style("✗ FAILURE: workflow count does not match", fg="red"), err=True)
        ctx.exit(1)


@cli.group("config")
def config_group() -> None:
    """Manage the configuration file."""
    pass


@config_group.command("init")
@click.option("--output", "-o", default=DEFAULT_CONFIG_FILENAME, help="Where to write the configuration file")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx: click.Context, output: str, force: bool) -> None:
    """Write a configuration file with the default settings."""
    try:
        path = ConfigManager().initialize_config(output_path=output, force=force)
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration initialization")

    click.echo(f"✓ Configuration written to {path}")


if __name__ == "__main__":
    cli()
