"""Run birthday jobs by hand, outside the API server.

Usage:
    python birthday_job.py generate 2025            # Create missing records for 2025
    python birthday_job.py send                     # Send today's due notifications
    python birthday_job.py send --date 2025-06-15   # Send as if today were 2025-06-15
    python birthday_job.py tick                     # Generate + send, like the scheduler
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from api.core.config import get_settings
from api.core.dependencies import build_birthday_jobs, close_whatsapp_api
from api.core.logging import setup_logging
from api.services import birthday_tick
from shared.database import DatabaseManager, PoolConfig


async def main() -> None:
    parser = argparse.ArgumentParser(description="Birthday notification jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate notification records for a year")
    gen.add_argument("year", type=int)

    for name in ("send", "tick"):
        p = sub.add_parser(name)
        p.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings)

    db = DatabaseManager(
        settings.database_url, PoolConfig.for_service("script", ssl=settings.database_ssl)
    )
    await db.connect()

    try:
        jobs = build_birthday_jobs(db.pool)
        if args.command == "generate":
            summary = await jobs.generation.generate_for_year(args.year)
            print(
                f"[{summary.year}] created={summary.created} "
                f"existing={summary.existing} skipped={summary.skipped}"
            )
        else:
            if args.command == "tick":
                result = await birthday_tick(jobs, args.date)
            else:
                result = await jobs.dispatcher.send_due_now(args.date)
            if result.skipped_reason:
                print(f"Skipped: {result.skipped_reason}")
            else:
                print(
                    f"[{result.as_of}] attempted={result.attempted} "
                    f"sent={result.sent} failed={result.failed} "
                    f"unconfirmed={result.unconfirmed} interrupted={result.interrupted}"
                )
    finally:
        await close_whatsapp_api()
        await db.disconnect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
