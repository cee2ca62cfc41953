"""
Contribution vault maintenance CLI.

Usage:
    contribution-vault generate-key
    contribution-vault init-schema
    contribution-vault reencrypt
    contribution-vault export --output report.csv [--status paid|unpaid]

Or run directly:
    python -m contribution_vault.cli <command>

Configuration comes from the environment or a .env file (see
contribution_vault.config).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional
from uuid import UUID

import asyncpg
import structlog

from .config import Settings, load_settings
from .crypto import FieldCipher
from .directory import DirectoryResolver
from .errors import VaultError
from .export import CsvReportRenderer, ExportGateway, export_filename
from .filters import ContributionFilter, PaymentStatus
from .keys import generate_key_material, key_provider_from_settings
from .log import configure_logging
from .models import Caller
from .postgres import PostgresRecordStore, create_schema
from .record_codec import ContributionCodec, LoginAuditCodec
from .repository import ContributionRepository
from .rotation import reencrypt_all

log = structlog.get_logger(__name__)

# Maintenance commands act with administrator scope
MAINTENANCE_CALLER = Caller(user_id=UUID(int=0), is_admin=True)


async def _connect(settings: Settings) -> asyncpg.Pool:
    if not settings.database_url:
        print("ERROR: DATABASE_URL must be set in environment or .env file")
        sys.exit(1)

    pool = await asyncpg.create_pool(settings.database_url)
    if pool is None:
        print("ERROR: Failed to create connection pool")
        sys.exit(1)
    return pool


async def run_init_schema(settings: Settings) -> None:
    """Create tables on DATABASE_URL."""
    pool = await _connect(settings)
    try:
        await create_schema(pool)
        print("Schema ready")
    finally:
        await pool.close()


async def run_reencrypt(settings: Settings) -> None:
    """Re-encrypt every row under the active key."""
    cipher = FieldCipher(key_provider_from_settings(settings))
    pool = await _connect(settings)
    try:
        store = PostgresRecordStore(pool)
        result = await reencrypt_all(store, ContributionCodec(cipher), LoginAuditCodec(cipher))
        print(f"Re-encryption finished: {result}")
    finally:
        await pool.close()


async def run_export(settings: Settings, output: Optional[Path], status: PaymentStatus) -> None:
    """Write a CSV report of all contributions."""
    cipher = FieldCipher(key_provider_from_settings(settings))
    pool = await _connect(settings)
    try:
        store = PostgresRecordStore(pool)
        repository = ContributionRepository(
            store, ContributionCodec(cipher), DirectoryResolver(store)
        )
        gateway = ExportGateway(repository)
        renderer = CsvReportRenderer()

        views = ContributionFilter(status=status).apply(
            await repository.list(MAINTENANCE_CALLER)
        )
        target = output or Path(export_filename(renderer, date.today()))
        target.write_bytes(gateway.export(views, renderer))

        totals = gateway.totals(views)
        print(f"Exported {totals.count} contributions to {target}")
        print(f"  Total:  {totals.total:.2f}")
        print(f"  Paid:   {totals.paid:.2f}")
        print(f"  Unpaid: {totals.unpaid:.2f}")
    finally:
        await pool.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contribution-vault",
        description="Maintenance commands for encrypted contribution records",
    )
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("generate-key", help="Print fresh base64 key material")
    sub.add_parser("init-schema", help="Create database tables")
    sub.add_parser("reencrypt", help="Re-encrypt stored PII under the active key")

    export = sub.add_parser("export", help="Export contributions to CSV")
    export.add_argument("--output", type=Path, default=None, help="Output file")
    export.add_argument(
        "--status",
        choices=[s.value for s in PaymentStatus],
        default=PaymentStatus.ALL.value,
        help="Only export paid or unpaid contributions",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the contribution-vault console script."""
    args = build_parser().parse_args(argv)

    if args.command == "generate-key":
        print(generate_key_material())
        return

    try:
        settings = load_settings(args.env_file)
        configure_logging(settings.log_level, settings.log_format)

        if args.command == "init-schema":
            asyncio.run(run_init_schema(settings))
        elif args.command == "reencrypt":
            asyncio.run(run_reencrypt(settings))
        elif args.command == "export":
            asyncio.run(run_export(settings, args.output, PaymentStatus(args.status)))
    except VaultError as e:
        log.error("command_failed", command=args.command, error=str(e))
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
