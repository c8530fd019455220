"""CLI for backups, restores, integrity reports and cascade-delete tests.

Usage:
    db-safety connect local
    db-safety status
    db-safety profiles
    db-safety backup table orders --schema public
    db-safety backup table order_items --schema public --where order_id=42
    db-safety validate
    db-safety report --exclude-transient
    db-safety restore table orders --dry-run
    db-safety restore table orders --confirm
    db-safety drift table orders
    db-safety cascade-test scenarios.toml --confirm

Commands:
    connect       - Test a profile's connection and make it the active profile
    status        - Show the active profile
    profiles      - List available profiles
    backup        - Back up one object
    validate      - Re-score stored backups against the current rules
    report        - Integrity report over every stored backup
    restore       - Restore one object from its stored backup
    drift         - Compare a stored backup with the live object
    cascade-test  - Run cascade-delete scenarios from a TOML or JSON file
"""

import argparse
import asyncio
import json
import logging
import sys
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_safety.backup.models import BackupObject, ObjectReference
from db_safety.cascade import CascadeDeleteTest, CascadeTestRunner
from db_safety.config.loader import load_db_config
from db_safety.errors import SafetyError
from db_safety.factory import (
    ProfileNotFoundError,
    connect,
    create_framework,
    get_active_profile_name,
    get_adapter,
    read_profile_lock,
)
from db_safety.framework import BackupIntegrityFramework

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _parse_filters(pairs: list[str] | None) -> dict[str, Any] | None:
    """Turn ``col=value`` pairs into a filter dict.

    Values are read as JSON when possible (``42``, ``true``), else as text.

    Raises:
        ValueError: If a pair has no ``=``.
    """
    if not pairs:
        return None
    filters: dict[str, Any] = {}
    for pair in pairs:
        column, sep, raw = pair.partition("=")
        if not sep or not column:
            raise ValueError(f"Invalid filter '{pair}', expected column=value")
        try:
            filters[column] = json.loads(raw)
        except ValueError:
            filters[column] = raw
    return filters


def _reference(args: argparse.Namespace) -> ObjectReference:
    return ObjectReference(
        type=args.object_type,
        name=args.name,
        schema_name=args.schema or "",
        database_name=args.database or "",
        filters=_parse_filters(getattr(args, "where", None)),
    )


def _framework(args: argparse.Namespace) -> BackupIntegrityFramework:
    return create_framework(env_prefix=args.env_prefix)


def _load_backup(framework: BackupIntegrityFramework, args: argparse.Namespace) -> BackupObject:
    return framework.store.load(framework.provider_type, args.object_type, args.name)


def load_scenarios(path: str | Path) -> list[CascadeDeleteTest]:
    """Read cascade-delete scenarios from a ``.toml`` or ``.json`` file.

    Both formats hold a top-level ``tests`` list.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file cannot be parsed or a scenario is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")

    if path.suffix == ".json":
        data = json.loads(path.read_text())
    else:
        with open(path, "rb") as f:
            data = tomllib.load(f)

    tests = data.get("tests", []) if isinstance(data, dict) else data
    if not tests:
        raise ValueError(f"No tests found in {path.name}")
    return [CascadeDeleteTest.model_validate(t) for t in tests]


def _print_backup(backup: BackupObject) -> None:
    status = backup.validation_status
    table = Table(title=f"Backup {backup.id}", show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Object", f"{backup.object_type} {backup.object_name}")
    table.add_row("Row count", "unknown" if backup.row_count is None else str(backup.row_count))
    table.add_row("Data checksum", backup.data_checksum or "-")
    table.add_row("Dependencies", ", ".join(backup.dependencies) or "-")
    if backup.rows is not None:
        table.add_row("Snapshot rows", str(len(backup.rows)))
    table.add_row("Score", f"{status.validation_score:.0f}")
    table.add_row(
        "Valid",
        "[green]yes[/green]" if status.is_valid else "[red]no[/red]",
    )
    console.print(table)
    for error in backup.validation_errors:
        console.print(f"  [red]x[/red] {error}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")
    result = await connect(profile_name=args.profile, env_prefix=args.env_prefix)

    if not result.success:
        console.print()
        console.print(f"[bold red]x[/bold red] {result.error}")
        return 1

    console.print()
    console.print(
        f"[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan] ({result.provider})"
    )
    if previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


async def _async_backup(args: argparse.Namespace) -> int:
    framework = _framework(args)
    ref = _reference(args)
    adapter = await get_adapter(env_prefix=args.env_prefix)
    try:
        backup = await framework.backup_object(adapter, ref)
    finally:
        await adapter.close()

    path = framework.store.path_for(backup.provider_type, backup.object_type, backup.object_name)
    console.print(f"Saved [cyan]{path}[/cyan]")
    _print_backup(backup)
    return 0 if backup.validation_status.is_valid else 1


async def _async_restore(args: argparse.Namespace) -> int:
    if not args.dry_run and not args.confirm:
        console.print("[yellow]Restore writes to the database.[/yellow]")
        console.print("[dim]Pass[/dim] [cyan]--confirm[/cyan] [dim]or[/dim] [cyan]--dry-run[/cyan]")
        return 1

    framework = _framework(args)
    backup = _load_backup(framework, args)
    # Re-score so a backup that aged out of the rules is refused
    framework.validate_backup_integrity(backup)

    adapter = await get_adapter(env_prefix=args.env_prefix)
    try:
        summary = await framework.restore_object(adapter, backup, dry_run=args.dry_run)
    finally:
        await adapter.close()

    prefix = "[dim](dry run)[/dim] " if args.dry_run else ""
    console.print(
        f"{prefix}[bold green]v[/bold green] Restored {summary.object_type} "
        f"[bold]{summary.object_name}[/bold]: {summary.rows_inserted} inserted, "
        f"{summary.rows_skipped} skipped, {summary.rows_failed} failed"
    )
    return 0 if summary.ok else 1


async def _async_drift(args: argparse.Namespace) -> int:
    framework = _framework(args)
    backup = _load_backup(framework, args)

    adapter = await get_adapter(env_prefix=args.env_prefix)
    try:
        drift = await framework.detect_drift(adapter, backup)
    finally:
        await adapter.close()

    table = Table(title=f"Drift: {drift.object_type} {drift.object_name}", show_header=False)
    table.add_column("Check", style="dim")
    table.add_column("Result")
    table.add_row("Definition changed", str(drift.definition_changed))
    table.add_row("Data changed", str(drift.data_changed))
    table.add_row("Rows (backup / now)", f"{drift.row_count_before} / {drift.row_count_now}")
    table.add_row("Data loss", f"{drift.data_loss:.1%}")
    console.print(table)
    for error in drift.errors:
        console.print(f"  [yellow]![/yellow] {error}")
    return 1 if drift.has_drift else 0


async def _async_cascade_test(args: argparse.Namespace) -> int:
    if not args.confirm:
        console.print(
            "[yellow]Cascade tests delete and restore live objects.[/yellow]"
        )
        console.print("[dim]Pass[/dim] [cyan]--confirm[/cyan] [dim]to run them.[/dim]")
        return 1

    tests = load_scenarios(args.scenario_file)
    framework = _framework(args)
    runner = CascadeTestRunner(framework)

    adapter = await get_adapter(env_prefix=args.env_prefix)
    try:
        await runner.run_all(adapter, tests)
    finally:
        await adapter.close()

    report = runner.generate_report()

    table = Table(title="Cascade Delete Tests", show_header=True, header_style="bold")
    table.add_column("Test")
    table.add_column("Result")
    table.add_column("Cascaded")
    table.add_column("Orphans", justify="right")
    table.add_column("Violations", justify="right")
    for result in report.test_results:
        outcome = "[green]PASS[/green]" if result.success else "[red]FAIL[/red]"
        table.add_row(
            result.test_name,
            outcome,
            "yes" if result.cascade_executed else "no",
            str(result.orphaned_resource_count),
            str(len(result.integrity_violations)),
        )
    console.print(table)

    for result in report.test_results:
        if result.error:
            console.print(f"  [red]x[/red] {result.test_name}: {result.error}")
        for violation in result.integrity_violations:
            console.print(f"  [red]x[/red] {result.test_name}: {violation}")

    console.print(f"\nSuccess rate: [bold]{report.success_rate:.0f}%[/bold]")
    for recommendation in report.recommendations:
        console.print(f"  - {recommendation}")

    if args.output:
        Path(args.output).write_text(report.model_dump_json(indent=2))
        console.print(f"\nReport written to [cyan]{args.output}[/cyan]")

    return 0 if report.metrics.failed_tests == 0 else 1


async def _async_report(args: argparse.Namespace) -> int:
    config = load_db_config()
    framework = create_framework(env_prefix=args.env_prefix, config=config)
    include_transient = config.backup.include_transient and not args.exclude_transient
    report = await framework.generate_integrity_report(include_transient=include_transient)

    if args.json:
        console.print_json(report.model_dump_json())
        return 0 if not report.errors else 1

    table = Table(title="Backup Integrity Report", show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value")
    table.add_row("Provider", report.provider_type)
    table.add_row("Backups", str(report.total_backups))
    table.add_row("Valid", f"[green]{report.valid_backups}[/green]")
    table.add_row("Invalid", f"[red]{report.invalid_backups}[/red]")
    table.add_row("Total data size", f"{report.total_data_size} bytes")
    table.add_row("Integrity score", f"{report.integrity_score:.1f}%")
    console.print(table)

    for failure in report.validation_failures:
        console.print(
            f"  [red]x[/red] {failure.object_type} {failure.object_name} "
            f"(score {failure.score:.0f}): {'; '.join(failure.errors)}"
        )
    for error in report.errors:
        console.print(f"[red]Error: {error}[/red]")
    for recommendation in report.recommendations:
        console.print(f"  - {recommendation}")

    return 0 if not report.errors else 1


# ============================================================================
# Sync command handlers
# ============================================================================


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, turning expected failures into exit code 1."""
    try:
        return asyncio.run(coro_fn(args))
    except (SafetyError, FileNotFoundError, KeyError, ValueError, ValidationError) as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1


def cmd_connect(args: argparse.Namespace) -> int:
    """Test a profile's connection and lock it as the active profile."""
    return _run(_async_connect, args)


def cmd_backup(args: argparse.Namespace) -> int:
    """Back up one object and print its validation result."""
    return _run(_async_backup, args)


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore one object from its stored backup."""
    return _run(_async_restore, args)


def cmd_drift(args: argparse.Namespace) -> int:
    """Compare a stored backup with the live object."""
    return _run(_async_drift, args)


def cmd_cascade_test(args: argparse.Namespace) -> int:
    """Run cascade-delete scenarios from a file."""
    return _run(_async_cascade_test, args)


def cmd_report(args: argparse.Namespace) -> int:
    """Print the integrity report.  Reads only local files."""
    return _run(_async_report, args)


def cmd_validate(args: argparse.Namespace) -> int:
    """Re-score every stored backup and save the updated status.

    Reads only local files -- no database calls.

    Returns:
        0 if every backup is valid, 1 otherwise.
    """
    try:
        framework = _framework(args)
        backups = framework.store.load_all()
    except (SafetyError, FileNotFoundError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title="Stored Backups", show_header=True, header_style="bold")
    table.add_column("Object")
    table.add_column("Purpose", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Valid")
    table.add_column("Errors")

    invalid = 0
    for backup in backups:
        status = framework.validate_backup_integrity(backup)
        framework.store.save(backup)
        if not status.is_valid:
            invalid += 1
        table.add_row(
            f"{backup.object_type} {backup.object_name}",
            backup.purpose,
            f"{status.validation_score:.0f}",
            "[green]yes[/green]" if status.is_valid else "[red]no[/red]",
            "; ".join(backup.validation_errors),
        )

    console.print(table)
    return 1 if invalid else 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show the active profile.  Reads only local files."""
    try:
        profile_name = get_active_profile_name(env_prefix=args.env_prefix)
    except ProfileNotFoundError:
        console.print("[yellow]No active profile.[/yellow]")
        console.print("[dim]Run:[/dim] [cyan]db-safety connect <profile>[/cyan]")
        return 0

    table = Table(title="Current Status", show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Profile", f"[bold cyan]{profile_name}[/bold cyan]")

    try:
        config = load_db_config()
        profile = config.profiles.get(profile_name)
        if profile:
            table.add_row("Provider", profile.provider)
            if profile.description:
                table.add_row("Description", profile.description)
        table.add_row("Backup directory", config.backup.directory)
    except FileNotFoundError:
        table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.  Reads only local files."""
    try:
        config = load_db_config()
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = current profile")
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _add_object_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("object_type", help="Object type: table, view, function, index")
    parser.add_argument("name", help="Object name")
    parser.add_argument("--schema", help="Schema name (PostgreSQL)")
    parser.add_argument("--database", help="Database name (MySQL)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-safety",
        description="Backup integrity and cascade-delete safety toolkit",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_connect = subparsers.add_parser("connect", help="Test a profile and make it active")
    p_connect.add_argument("profile", nargs="?", help="Profile name from db.toml")
    p_connect.set_defaults(func=cmd_connect)

    p_status = subparsers.add_parser("status", help="Show the active profile")
    p_status.set_defaults(func=cmd_status)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_backup = subparsers.add_parser("backup", help="Back up one object")
    _add_object_arguments(p_backup)
    p_backup.add_argument(
        "--where",
        action="append",
        metavar="COLUMN=VALUE",
        help="Row scope for tables (repeatable)",
    )
    p_backup.set_defaults(func=cmd_backup)

    p_validate = subparsers.add_parser(
        "validate", help="Re-score stored backups against the current rules"
    )
    p_validate.set_defaults(func=cmd_validate)

    p_report = subparsers.add_parser("report", help="Integrity report over stored backups")
    p_report.add_argument(
        "--exclude-transient",
        action="store_true",
        help="Leave out backups taken by cascade tests",
    )
    p_report.add_argument("--json", action="store_true", help="Print the report as JSON")
    p_report.set_defaults(func=cmd_report)

    p_restore = subparsers.add_parser("restore", help="Restore one object from its backup")
    _add_object_arguments(p_restore)
    p_restore.add_argument(
        "--dry-run", action="store_true", help="Show what would be restored"
    )
    p_restore.add_argument(
        "--confirm", action="store_true", help="Actually perform the restore"
    )
    p_restore.set_defaults(func=cmd_restore)

    p_drift = subparsers.add_parser("drift", help="Compare a backup with the live object")
    _add_object_arguments(p_drift)
    p_drift.set_defaults(func=cmd_drift)

    p_cascade = subparsers.add_parser(
        "cascade-test", help="Run cascade-delete scenarios from a file"
    )
    p_cascade.add_argument("scenario_file", help="TOML or JSON file with a 'tests' list")
    p_cascade.add_argument(
        "--confirm", action="store_true", help="Required: tests delete live objects"
    )
    p_cascade.add_argument("--output", "-o", help="Write the JSON report to this path")
    p_cascade.set_defaults(func=cmd_cascade_test)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
