#!/usr/bin/env python3
"""CLI tools for the Lead CRM.

Usage:
    python -m lead_crm.cli init-db                         # Create tables
    python -m lead_crm.cli seed-timeslots --days 7         # Create slots
    python -m lead_crm.cli reconcile --file rows.json      # Realtime pass
    python -m lead_crm.cli reconcile --file rows.json --mode end_of_day
    python -m lead_crm.cli sweep-missed --threshold 2.5    # Elapsed-time rule
    python -m lead_crm.cli list-missed --day 2024-05-10    # Missed report
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from lead_crm.config import get_settings
from lead_crm.core.clock import Clock
from lead_crm.core.exceptions import LeadCrmError
from lead_crm.core.logging import get_logger, setup_logging

log = get_logger(__name__)


def _clock() -> Clock:
    settings = get_settings()
    return Clock(settings.clock.utc_offset_hours, settings.clock.timezone_label)


def _parse_day(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _load_rows(path: str) -> list[dict[str, Any]]:
    """Read feed rows from a JSON file (a list, or an object with feed_rows/rows)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("feed_rows") or data.get("rows") or []
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of feed rows")
    return data


async def _init_db() -> None:
    from lead_crm.db import close_db, init_db

    await init_db()
    await close_db()


async def _seed_timeslots(args: argparse.Namespace) -> int:
    from lead_crm.db import close_db, get_db_context, init_db
    from lead_crm.db.models import TimeslotModel
    from lead_crm.db.repositories import TimeslotRepository

    first_day = _parse_day(args.start) or _clock().today()
    opening = time.fromisoformat(args.open)
    closing = time.fromisoformat(args.close)
    step = timedelta(minutes=args.minutes)

    await init_db()
    created = 0
    async with get_db_context() as session:
        slots = TimeslotRepository(session)
        for offset in range(args.days):
            day = first_day + timedelta(days=offset)
            if await slots.list_for_day(day):
                continue
            cursor = datetime.combine(day, opening)
            closing_at = datetime.combine(day, closing)
            while cursor + step <= closing_at:
                await slots.create(
                    TimeslotModel(
                        date=day,
                        start_time=cursor.time(),
                        end_time=(cursor + step).time(),
                        max_capacity=args.capacity,
                    )
                )
                created += 1
                cursor += step
    await close_db()

    _print_json({"start": first_day.isoformat(), "days": args.days, "created": created})
    return 0


async def _reconcile(args: argparse.Namespace) -> int:
    from lead_crm.db import close_db, get_db_context
    from lead_crm.services.notifications import RejectionNotifier
    from lead_crm.services.reconciliation import ReconciliationEngine

    settings = get_settings()
    clock = _clock()
    rows = _load_rows(args.file)
    if not rows:
        print(f"No feed rows in {args.file}", file=sys.stderr)
        return 1

    async with RejectionNotifier(
        settings.notifications.rejection_webhook_url,
        clock=clock,
        timeout=settings.notifications.timeout_seconds,
    ) as notifier:
        async with get_db_context() as session:
            engine = ReconciliationEngine(session, clock, settings, notifier=notifier)
            result = await engine.run(
                rows,
                mode=args.mode,
                threshold_hours=args.threshold,
                actor_id=args.actor,
                day=_parse_day(args.day),
            )
    await close_db()

    _print_json(result.to_dict())
    return 1 if result.errors else 0


async def _sweep_missed(args: argparse.Namespace) -> int:
    from lead_crm.db import close_db, get_db_context
    from lead_crm.services.reconciliation import ReconciliationEngine

    settings = get_settings()
    async with get_db_context() as session:
        engine = ReconciliationEngine(session, _clock(), settings)
        result = await engine.sweep_missed(
            threshold_hours=args.threshold,
            actor_id=args.actor,
            day=_parse_day(args.day),
        )
    await close_db()

    _print_json(result.to_dict())
    return 1 if result.errors else 0


async def _list_missed(args: argparse.Namespace) -> int:
    from lead_crm.db import close_db, get_db_context
    from lead_crm.services.reconciliation import ReconciliationEngine

    settings = get_settings()
    clock = _clock()
    day = _parse_day(args.day) or clock.today()
    async with get_db_context() as session:
        items = await ReconciliationEngine(session, clock, settings).list_missed(day)
    await close_db()

    _print_json({"day": day.isoformat(), "total": len(items), "appointments": items})
    return 0


def init_db(args: argparse.Namespace) -> int:
    """Create all database tables."""
    asyncio.run(_init_db())
    print("[OK] Database initialized")
    return 0


def seed_timeslots(args: argparse.Namespace) -> int:
    """Create timeslots for consecutive days."""
    return asyncio.run(_seed_timeslots(args))


def reconcile(args: argparse.Namespace) -> int:
    """Run a reconciliation pass over a feed file."""
    return asyncio.run(_reconcile(args))


def sweep_missed(args: argparse.Namespace) -> int:
    """Apply the elapsed-time rule without a feed."""
    return asyncio.run(_sweep_missed(args))


def list_missed(args: argparse.Namespace) -> int:
    """Print the missed appointments of a day."""
    return asyncio.run(_list_missed(args))


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Lead CRM CLI Tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-db
    subparsers.add_parser("init-db", help="Create database tables")

    # seed-timeslots
    seed_parser = subparsers.add_parser("seed-timeslots", help="Create timeslots")
    seed_parser.add_argument("--start", type=str, help="First day, YYYY-MM-DD (default: today)")
    seed_parser.add_argument("--days", type=int, default=7, help="Number of days (default: 7)")
    seed_parser.add_argument("--open", type=str, default="10:00", help="First slot start (HH:MM)")
    seed_parser.add_argument("--close", type=str, default="19:00", help="Last slot end (HH:MM)")
    seed_parser.add_argument("--minutes", type=int, default=60, help="Slot length in minutes")
    seed_parser.add_argument("--capacity", type=int, default=3, help="Seats per slot")

    # reconcile
    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile a feed file")
    reconcile_parser.add_argument("--file", type=str, required=True, help="JSON file of feed rows")
    reconcile_parser.add_argument(
        "--mode", choices=["realtime", "end_of_day"], default="realtime",
        help="Reconciliation mode (default: realtime)",
    )
    reconcile_parser.add_argument("--threshold", type=float, help="Missed threshold in hours")
    reconcile_parser.add_argument("--actor", type=str, help="Actor recorded on changes")
    reconcile_parser.add_argument("--day", type=str, help="Target day, YYYY-MM-DD")

    # sweep-missed
    sweep_parser = subparsers.add_parser("sweep-missed", help="Mark overdue appointments missed")
    sweep_parser.add_argument("--threshold", type=float, help="Missed threshold in hours")
    sweep_parser.add_argument("--actor", type=str, help="Actor recorded on changes")
    sweep_parser.add_argument("--day", type=str, help="Target day, YYYY-MM-DD")

    # list-missed
    missed_parser = subparsers.add_parser("list-missed", help="Show missed appointments")
    missed_parser.add_argument("--day", type=str, help="Day, YYYY-MM-DD (default: today)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    commands = {
        "init-db": init_db,
        "seed-timeslots": seed_timeslots,
        "reconcile": reconcile,
        "sweep-missed": sweep_missed,
        "list-missed": list_missed,
    }

    try:
        return commands[args.command](args)
    except LeadCrmError as e:
        log.error("Command failed", command=args.command, error=e.message, error_code=e.error_code)
        _print_json(e.to_dict())
        return 1


if __name__ == "__main__":
    sys.exit(main())
