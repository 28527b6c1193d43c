#!/usr/bin/env python
"""Recurra command line entry point.

Fronts the engine's operations for cron jobs and manual use:

    recurra generate [--start DATE] [--end DATE]
    recurra set-status OCCURRENCE_ID {pending,completed,skipped}
    recurra list --start DATE --end DATE [--expense ID]
    recurra reminders [--today DATE]
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Optional
from uuid import UUID

from recurra.app import EngineContext
from recurra.domain.errors import RecurraError
from recurra.domain.models import DateRange, OccurrenceStatus
from recurra.state.persistence import SettingsStore


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date (YYYY-MM-DD): {value}")


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a valid ID: {value}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per engine operation."""
    parser = argparse.ArgumentParser(
        prog="recurra",
        description="Recurring expense occurrence engine",
    )
    parser.add_argument("--db", type=Path, help="Database file (default: configured path)")
    parser.add_argument("--settings", type=Path, help="Settings JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate missing occurrences for all recurring expenses")
    gen.add_argument("--start", type=_parse_date, help="Window start (default: today)")
    gen.add_argument("--end", type=_parse_date, help="Window end (default: start + horizon)")

    status = sub.add_parser("set-status", help="Change an occurrence's status")
    status.add_argument("occurrence_id", type=_parse_uuid)
    status.add_argument("status", choices=[s.value for s in OccurrenceStatus])

    lst = sub.add_parser("list", help="List occurrences due in a window")
    lst.add_argument("--start", type=_parse_date, required=True)
    lst.add_argument("--end", type=_parse_date, required=True)
    lst.add_argument("--expense", type=_parse_uuid, help="Only this recurring expense")

    rem = sub.add_parser("reminders", help="Show reminders due today")
    rem.add_argument("--today", type=_parse_date, help="Reference day (default: today)")

    return parser


def _window(start: date, end: date) -> Optional[DateRange]:
    if end < start:
        print(f"error: --end {end.isoformat()} is before --start {start.isoformat()}", file=sys.stderr)
        return None
    return DateRange(start, end)


async def _run_command(ctx: EngineContext, args: argparse.Namespace) -> int:
    if args.command == "generate":
        start = args.start or date.today()
        end = args.end or start + timedelta(days=ctx.settings.generation.horizon_days)
        window = _window(start, end)
        if window is None:
            return 2
        result = await ctx.generate_occurrences(window)
        for occurrence in result.generated:
            print(f"{occurrence.occurrence_date.isoformat()}  {occurrence.parent_expense_id}  {occurrence.id}")
        for error in result.errors:
            print(f"error: {error.expense_id}: {error.error}", file=sys.stderr)
        print(f"Generated {len(result.generated)} occurrence(s)")
        return 0 if result.ok else 1

    if args.command == "set-status":
        result = await ctx.set_occurrence_status(args.occurrence_id, args.status)
        print(result.summary)
        if result.linked_expense_id:
            print(f"Linked expense: {result.linked_expense_id}")
        return 0

    if args.command == "list":
        window = _window(args.start, args.end)
        if window is None:
            return 2
        occurrences = await ctx.list_occurrences(window, args.expense)
        for occurrence in occurrences:
            linked = f"  -> {occurrence.linked_expense_id}" if occurrence.linked_expense_id else ""
            print(
                f"{occurrence.occurrence_date.isoformat()}  {occurrence.status.value:<9}  "
                f"{occurrence.id}{linked}"
            )
        return 0

    if args.command == "reminders":
        for reminder in await ctx.upcoming_reminders(args.today):
            print(reminder.message)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def async_main(args: argparse.Namespace) -> int:
    """Open the engine, run one command and close it again."""
    store = SettingsStore(args.settings) if args.settings else SettingsStore()
    ctx = EngineContext(db_path=args.db, settings_store=store)
    await ctx.initialize()
    try:
        return await _run_command(ctx, args)
    except RecurraError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    finally:
        await ctx.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, configure logging and run the command."""
    args = build_parser().parse_args(argv)

    level = "DEBUG" if args.verbose else None
    if level is None:
        settings_store = SettingsStore(args.settings) if args.settings else SettingsStore()
        level = settings_store.load().logging.level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    return asyncio.run(async_main(args))


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
