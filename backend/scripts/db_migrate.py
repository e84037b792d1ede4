"""Apply the birthday notification schema migrations.

Usage:
    python db_migrate.py          # Apply all pending migrations
    python db_migrate.py --dry    # List pending migrations, apply nothing
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# backend/ on sys.path so api.* and shared.* resolve when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pydantic import ValidationError

from api.core.config import get_settings
from shared.database import DatabaseManager, PoolConfig
from shared.migrations.runner import MigrationRunner

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


async def main(dry_run: bool) -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]).upper() for err in e.errors())
        print(f"ERROR: invalid configuration ({missing}). Set it in api/.env or the environment.")
        return 1

    db = DatabaseManager(
        settings.database_url, PoolConfig.for_service("script", ssl=settings.database_ssl)
    )
    await db.connect()
    try:
        runner = MigrationRunner(db.pool)
        if dry_run:
            pending = await runner.pending()
            print(f"Pending: {len(pending)}")
            for version in pending:
                print(f"  -> {version}")
        else:
            applied = await runner.run_pending()
            print(f"Applied {len(applied)} migration(s)." if applied else "Nothing to apply.")
    finally:
        await db.disconnect()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Apply database migrations")
    parser.add_argument("--dry", action="store_true", help="only list pending migrations")
    sys.exit(asyncio.run(main(parser.parse_args().dry)))
