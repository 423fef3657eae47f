"""Payroll reconciler command line interface.

Provides operational tools for:
- Schema creation for local databases
- Import file validation (read-only)
- Timesheet import
- Payroll calculation
- Mandate statistics refresh

Usage:
    python -m payroll_reconciler.cli init-db
    python -m payroll_reconciler.cli validate export.csv --mandate-id X
    python -m payroll_reconciler.cli import export.csv --mandate-id X --default-rate 25
    python -m payroll_reconciler.cli calculate --start 2024-01-01 --end 2024-01-31
    python -m payroll_reconciler.cli refresh-stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncEngine

from payroll_reconciler.config import Settings, get_settings
from payroll_reconciler.database import get_engine, make_session_factory
from payroll_reconciler.importing.normalizer import CsvRecordNormalizer
from payroll_reconciler.logging_config import configure_logging
from payroll_reconciler.models import Base
from payroll_reconciler.services.import_validation import ImportValidationService
from payroll_reconciler.services.mandate_stats import MandateStatsService
from payroll_reconciler.services.payroll_service import InvalidPeriodError, PayrollCalculationService
from payroll_reconciler.services.reconciler import ImportReconciler
from payroll_reconciler.services.repository import FatalPreconditionError


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_amount(s: str) -> Decimal:
    """Parse a non-negative decimal amount."""
    try:
        value = Decimal(s.replace(",", "."))
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {s!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError("amount cannot be negative")
    return value


class ReconcilerCli:
    """Payroll reconciler command line interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_reconciler.cli",
            description="Payroll reconciliation tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Log level (default: $LOG_LEVEL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "init-db",
            help="Create the database tables",
        )

        # validate and import share the file options
        for name, help_text in (
            ("validate", "Validate an import file without writing anything"),
            ("import", "Import a timesheet file"),
        ):
            cmd = subparsers.add_parser(name, help=help_text)
            cmd.add_argument("file", type=Path, help="Semicolon-separated export file")
            cmd.add_argument(
                "--mandate-id",
                type=parse_uuid,
                required=True,
                help="Mandate to import into",
            )
            cmd.add_argument(
                "--tenant-id",
                type=parse_uuid,
                help="Check that the mandate belongs to this tenant",
            )
            cmd.add_argument(
                "--default-rate",
                type=parse_amount,
                help="Hourly rate for employees without one",
            )
            cmd.add_argument(
                "--delimiter",
                type=str,
                default=";",
                help="Field delimiter (default: ';')",
            )
            cmd.add_argument(
                "--encoding",
                type=str,
                default="utf-8",
                help="File encoding (default: utf-8)",
            )

        calculate = subparsers.add_parser(
            "calculate",
            help="Calculate payroll for a date range",
        )
        calculate.add_argument("--start", type=parse_date, required=True, help="First day (ISO)")
        calculate.add_argument("--end", type=parse_date, required=True, help="Last day (ISO)")
        calculate.add_argument(
            "--period-type",
            type=str,
            choices=["WEEKLY", "MONTHLY"],
            default="MONTHLY",
            help="Period granularity (default: MONTHLY)",
        )
        calculate.add_argument(
            "--mandate-id",
            type=parse_uuid,
            help="Single mandate (default: all active mandates)",
        )
        calculate.add_argument("--tenant-id", type=parse_uuid, help="Restrict to a tenant")
        calculate.add_argument(
            "--recalculate",
            action="store_true",
            help="Recompute locked entries too",
        )

        refresh = subparsers.add_parser(
            "refresh-stats",
            help="Recompute mandate revenue statistics",
        )
        refresh.add_argument(
            "--mandate-id",
            type=parse_uuid,
            action="append",
            help="Mandate to refresh (repeatable; default: all)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level or self.settings.log_level)

        handlers: dict[str, Callable[..., Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "validate": self._cmd_validate,
            "import": self._cmd_import,
            "calculate": self._cmd_calculate,
            "refresh-stats": self._cmd_refresh_stats,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._with_database(handler, parsed))
        except (FatalPreconditionError, InvalidPeriodError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    async def _with_database(
        self,
        handler: Callable[..., Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        engine = get_engine(args.database_url or self.settings.database_url)
        try:
            return await handler(args, engine)
        finally:
            await engine.dispose()

    async def _cmd_init_db(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> int:
        """Create all tables."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("Database tables created.")
        return 0

    def _read_rows(self, args: argparse.Namespace):
        normalizer = CsvRecordNormalizer(delimiter=args.delimiter, encoding=args.encoding)
        return normalizer.normalize(args.file.read_bytes())

    async def _cmd_validate(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> int:
        """Validate an import file."""
        session_factory = make_session_factory(engine)
        rows = self._read_rows(args)
        async with session_factory() as session:
            service = ImportValidationService(session, self.settings.imports, self.settings.payroll)
            report = await service.validate(
                rows,
                args.mandate_id,
                args.default_rate,
                tenant_id=args.tenant_id,
                filename=args.file.name,
            )

        print(f"Validation of {args.file.name}")
        print("=" * 60)
        for e in report.employees:
            flag = "REVIEW" if e.needs_review else "ok"
            print(
                f"  {e.identity.first_name} {e.identity.last_name:<20} "
                f"{e.total_hours:>8}h  {e.match_type.value:<8} {e.match_confidence:>3}  "
                f"{e.proposed_hourly_rate:>7} ({e.rate_source})  [{flag}]"
            )
            for issue in e.issues:
                print(f"      - {issue}")
        for error in report.errors:
            print(f"  {error}")

        stats = report.statistics
        print("=" * 60)
        print(f"Employees:       {stats.total_employees}")
        print(f"Exact / partial / none: {stats.exact_matches} / {stats.partial_matches} / {stats.no_matches}")
        print(f"Needs review:    {stats.needs_review}")
        print(f"Total hours:     {stats.total_hours}")
        print(f"Estimated cost:  {stats.estimated_total_cost:,.2f}")
        print(f"Can proceed:     {'yes' if report.can_proceed else 'no'}")
        return 0 if report.can_proceed else 3

    async def _cmd_import(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> int:
        """Import a timesheet file."""
        session_factory = make_session_factory(engine)
        rows = self._read_rows(args)
        reconciler = ImportReconciler(session_factory, self.settings.imports, self.settings.payroll)
        result = await reconciler.reconcile(
            rows,
            args.mandate_id,
            args.default_rate,
            tenant_id=args.tenant_id,
            filename=args.file.name,
        )

        print(f"Import {result.import_history_id}: {result.status.value}")
        print(f"  Rows:     {result.total_rows}")
        print(f"  Created:  {result.created}")
        print(f"  Updated:  {result.updated}")
        print(f"  Skipped:  {result.skipped}")
        print(f"  Review:   {result.needs_review}")
        if result.errors:
            print("\nErrors:")
            for error in result.errors:
                print(f"  {error}")
        return 0 if not result.errors else 3

    async def _cmd_calculate(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> int:
        """Calculate and persist payroll."""
        session_factory = make_session_factory(engine)
        async with session_factory() as session:
            service = PayrollCalculationService(session, self.settings.payroll)
            result = await service.calculate(
                args.start,
                args.end,
                args.period_type,
                mandate_id=args.mandate_id,
                recalculate=args.recalculate,
                tenant_id=args.tenant_id,
            )
            await session.commit()

        print(f"Payroll {result.period_type.value} {result.period_start} .. {result.period_end}")
        print("=" * 60)
        for mandate in result.mandates:
            print(f"{mandate.mandate_name}: {mandate.totals.total_employees} employees, "
                  f"cost {mandate.totals.total_cost:,.2f}")
            for employee in mandate.employees:
                for p in employee.periods:
                    locked = " (locked)" if p.is_locked else ""
                    print(
                        f"  {employee.employee_name:<25} {p.period.start}..{p.period.end} "
                        f"{p.figures.regular_hours:>7}/{p.figures.overtime_hours:<6} "
                        f"{p.figures.total_cost:>12,.2f}{locked}"
                    )
        print("=" * 60)
        print(f"Total hours:  {result.totals.total_hours}")
        print(f"Total gross:  {result.totals.total_gross_pay:,.2f}")
        print(f"Total cost:   {result.totals.total_cost:,.2f}")
        return 0

    async def _cmd_refresh_stats(
        self, args: argparse.Namespace, engine: AsyncEngine
    ) -> int:
        """Recompute mandate statistics."""
        session_factory = make_session_factory(engine)
        service = MandateStatsService(session_factory, self.settings.imports)
        if args.mandate_id:
            count = await service.refresh_mandates(args.mandate_id)
        else:
            count = await service.refresh_all()
        print(f"Refreshed statistics of {count} mandates.")
        return 0


def main() -> int:
    """CLI entry point."""
    return ReconcilerCli().run()


if __name__ == "__main__":
    sys.exit(main())
