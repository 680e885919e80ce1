#!/usr/bin/env python
# backend/dateplanner/commands/scheduling.py
"""
Scheduling management commands.

Usage:
    python -m dateplanner.commands.scheduling init-db
    python -m dateplanner.commands.scheduling conflicts OWNER 2025-03-01 18:00 20:00
    python -m dateplanner.commands.scheduling stats OWNER 2025-03-01 2025-03-31
"""

import argparse
from datetime import date
import json
import logging
import sys
from typing import List, Optional

from ..core.config import Settings
from ..core.exceptions import DomainException
from ..core.logging_config import configure_logging
from ..database import create_db_engine, create_session_factory, init_db
from ..services.notification_service import NullNotifier
from ..services.scheduling_orchestrator import SchedulingOrchestrator

logger = logging.getLogger(__name__)


class SchedulingCommand:
    """Scheduling management command handler."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.engine = create_db_engine(settings)
        self.session_factory = create_session_factory(self.engine)

    def init_db(self) -> None:
        init_db(self.engine)
        logger.info(f"Scheduling tables created on {self.engine.url.render_as_string()}")

    def _orchestrator(self, db) -> SchedulingOrchestrator:
        return SchedulingOrchestrator(db, settings=self.settings, notifier=NullNotifier())

    def conflicts(self, owner_user_id: str, check_date: str, start: str, end: str) -> List[dict]:
        with self.session_factory() as db:
            found = self._orchestrator(db).check_conflicts(owner_user_id, check_date, start, end)
            return [c.model_dump(mode="json") for c in found]

    def stats(self, owner_user_id: str, start: date, end: date) -> dict:
        with self.session_factory() as db:
            result = self._orchestrator(db).get_availability_stats(owner_user_id, start, end)
            return result.model_dump(mode="json")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Date scheduling management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m dateplanner.commands.scheduling init-db
  python -m dateplanner.commands.scheduling conflicts 01J... 2025-03-01 18:00 20:00
  python -m dateplanner.commands.scheduling stats 01J... 2025-03-01 2025-03-31
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create scheduling tables")

    conflicts_parser = subparsers.add_parser("conflicts", help="List slots overlapping a range")
    conflicts_parser.add_argument("owner", help="Slot owner user id")
    conflicts_parser.add_argument("date", help="Date, YYYY-MM-DD")
    conflicts_parser.add_argument("start", help="Start time, HH:MM")
    conflicts_parser.add_argument("end", help="End time, HH:MM")

    stats_parser = subparsers.add_parser("stats", help="Availability statistics for an owner")
    stats_parser.add_argument("owner", help="Slot owner user id")
    stats_parser.add_argument("start", type=date.fromisoformat, help="First date, YYYY-MM-DD")
    stats_parser.add_argument("end", type=date.fromisoformat, help="Last date, YYYY-MM-DD")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the scheduling command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings)
    cmd = SchedulingCommand(settings)

    try:
        if args.command == "init-db":
            cmd.init_db()
            print("Scheduling tables created")
        elif args.command == "conflicts":
            found = cmd.conflicts(args.owner, args.date, args.start, args.end)
            if not found:
                print("No conflicts")
            else:
                print(json.dumps(found, indent=2))
        elif args.command == "stats":
            print(json.dumps(cmd.stats(args.owner, args.start, args.end), indent=2))
        else:
            parser.print_help()
            return 1
    except DomainException as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
