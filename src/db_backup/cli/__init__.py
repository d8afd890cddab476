"""CLI for generating database backups.

Usage:
    DB_PROFILE=prod db-backup tables
    db-backup generate --format sql
    db-backup generate --scope selective --tables users,posts --from 2024-01-01 --to 2024-01-31
    db-backup generate --no-data --rls --triggers --indexes --extensions --output schema.sql
    db-backup profiles

Commands:
    tables    - List tables a full backup would include
    generate  - Generate a backup file
    profiles  - List available profiles
"""

import argparse
import asyncio
import logging
import sys
import tomllib
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from db_backup.adapters.base import CatalogQueryError, InvalidIdentifierError
from db_backup.backup.assembler import (
    TableDiscoveryError,
    generate_backup,
    list_backup_tables,
)
from db_backup.backup.models import BackupConfig, BackupOptions
from db_backup.backup.serializer import backup_filename, serialize_backup
from db_backup.backup.validation import BackupConfigError
from db_backup.config.loader import load_db_config
from db_backup.config.models import BackupSettings
from db_backup.diagnostics import BackupDiagnostics
from db_backup.factory import ProfileNotFoundError, get_adapter, read_profile_lock

console = Console()

# A db.toml that exists but cannot be read into the config models
CONFIG_ERRORS = (ValidationError, tomllib.TOMLDecodeError)

# Everything get_adapter raises before a client exists
ADAPTER_ERRORS = (ProfileNotFoundError, FileNotFoundError, ImportError, *CONFIG_ERRORS)


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _load_settings(args: argparse.Namespace) -> BackupSettings:
    """Backup settings from db.toml, or defaults if there is no db.toml.

    Raises:
        pydantic.ValidationError: If the file has an invalid section.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    try:
        return load_db_config(_config_path(args)).backup
    except FileNotFoundError:
        return BackupSettings()


def _print_error(error: Exception) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")


def _split_tables(value: str | None) -> list[str]:
    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


def _build_config(args: argparse.Namespace) -> BackupConfig:
    """Translate generate arguments into a ``BackupConfig``."""
    return BackupConfig(
        scope=args.scope,
        tables=_split_tables(args.tables),
        options=BackupOptions(
            include_structure=not args.no_structure,
            include_data=not args.no_data,
            include_rls=args.rls,
            include_triggers=args.triggers,
            include_indexes=args.indexes,
            include_extensions=args.extensions,
        ),
        date_from=args.date_from,
        date_to=args.date_to,
        format=args.format,
    )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_tables(args: argparse.Namespace) -> int:
    """Async implementation for tables command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        settings = _load_settings(args)
        client = await get_adapter(
            env_prefix=args.env_prefix,
            database_url=args.database_url,
            config_path=_config_path(args),
        )
    except ADAPTER_ERRORS as e:
        _print_error(e)
        return 1

    try:
        tables = await list_backup_tables(
            client, settings.schema_name, frozenset(settings.excluded_tables)
        )
    except TableDiscoveryError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1
    finally:
        await client.close()

    table = Table(
        title=f"Tables in {settings.schema_name}", show_header=True, header_style="bold"
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Table")
    for i, name in enumerate(tables, start=1):
        table.add_row(str(i), name)

    console.print(table)
    console.print(f"\n{len(tables)} table(s) available for backup")
    return 0


async def _async_generate(args: argparse.Namespace) -> int:
    """Async implementation for generate command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        settings = _load_settings(args)
        config = _build_config(args)
        client = await get_adapter(
            env_prefix=args.env_prefix,
            database_url=args.database_url,
            config_path=_config_path(args),
        )
    except ADAPTER_ERRORS as e:
        _print_error(e)
        return 1

    diagnostics = BackupDiagnostics()
    console.print(f"Generating {config.scope} backup...", style="dim")

    try:
        data = await generate_backup(
            client,
            config,
            args.requested_by,
            schema_name=settings.schema_name,
            timestamp_column=settings.timestamp_column,
            extra_excluded=frozenset(settings.excluded_tables),
            max_concurrency=settings.max_concurrency,
            diagnostics=diagnostics,
        )
    except BackupConfigError as e:
        console.print("[bold red]x[/bold red] Invalid backup configuration:")
        for error in e.errors:
            console.print(f"  - {error}")
        return 1
    except (TableDiscoveryError, InvalidIdentifierError, CatalogQueryError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1
    finally:
        await client.close()

    artifact = serialize_backup(data)

    if args.output:
        output = Path(args.output)
    else:
        output = Path(settings.output_dir) / backup_filename(
            settings.file_prefix, artifact.format
        )
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(artifact.content)

    console.print()
    console.print(f"[bold green]v[/bold green] Backup written to [cyan]{output}[/cyan]")

    summary = Table(show_header=False)
    summary.add_column("Key", style="dim")
    summary.add_column("Value")
    summary.add_row("Format", artifact.format)
    summary.add_row("Tables", str(artifact.table_count))
    summary.add_row("Size", f"{artifact.size_mb} MB ({artifact.size_bytes} bytes)")
    if diagnostics.fallback_tables:
        summary.add_row(
            "Unfiltered", ", ".join(diagnostics.fallback_tables)
        )
    console.print(summary)

    if diagnostics.skipped_tables:
        console.print()
        console.print("[yellow]Skipped tables:[/yellow]")
        for table_name, reason in sorted(diagnostics.skipped_tables.items()):
            console.print(f"  [yellow]{table_name}[/yellow]: {reason}")

    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_tables(args: argparse.Namespace) -> int:
    """List backup-eligible tables."""
    return asyncio.run(_async_tables(args))


def cmd_generate(args: argparse.Namespace) -> int:
    """Generate a backup file."""
    return asyncio.run(_async_generate(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if db.toml is missing or invalid.
    """
    try:
        config = load_db_config(_config_path(args))
    except (FileNotFoundError, *CONFIG_ERRORS) as e:
        _print_error(e)
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


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for ``db-backup``."""
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="Generate structure and data backups of a PostgreSQL schema",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Connect to this URL directly instead of using a profile",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_tables = subparsers.add_parser(
        "tables",
        help="List tables a full backup would include",
    )
    p_tables.set_defaults(func=cmd_tables)

    p_generate = subparsers.add_parser(
        "generate",
        help="Generate a backup file",
    )
    p_generate.add_argument(
        "--scope",
        choices=["full", "selective"],
        default="full",
        help="Back up every table, or only --tables",
    )
    p_generate.add_argument(
        "--tables",
        default=None,
        help="Comma-separated list of tables (selective scope)",
    )
    p_generate.add_argument(
        "--format",
        choices=["sql", "json"],
        default="json",
        help="Output format",
    )
    p_generate.add_argument(
        "--from",
        dest="date_from",
        default=None,
        help="Only rows created on or after this ISO date",
    )
    p_generate.add_argument(
        "--to",
        dest="date_to",
        default=None,
        help="Only rows created on or before this ISO date",
    )
    p_generate.add_argument("--no-structure", action="store_true", help="Skip table structure")
    p_generate.add_argument("--no-data", action="store_true", help="Skip row data")
    p_generate.add_argument("--rls", action="store_true", help="Include RLS policies")
    p_generate.add_argument(
        "--triggers", action="store_true", help="Include triggers and functions"
    )
    p_generate.add_argument("--indexes", action="store_true", help="Include indexes")
    p_generate.add_argument(
        "--extensions", action="store_true", help="Include extension list"
    )
    p_generate.add_argument(
        "--requested-by",
        default="cli",
        help="Identity recorded in the backup metadata",
    )
    p_generate.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: <output_dir>/<prefix>_backup_<timestamp>.<format>)",
    )
    p_generate.set_defaults(func=cmd_generate)

    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
