from __future__ import annotations

import argparse
import asyncio

from novel_orchestrator.config.settings import get_settings
from novel_orchestrator.storage.postgres import PostgresTaskQueue
from novel_orchestrator.storage.postgres_novel import PostgresNovelStore


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create the task queue and novel-promotion tables in PostgreSQL."
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="PostgreSQL connection URL (default: NOVEL_ORCHESTRATOR_DATABASE_URL or DATABASE_URL).",
    )
    parser.add_argument(
        "--queue-only",
        action="store_true",
        help="Only create the task queue table.",
    )
    return parser.parse_args()


async def migrate(*, database_url: str, queue_only: bool) -> list[str]:
    migrated = ["queue"]
    await PostgresTaskQueue(database_url).migrate()
    if not queue_only:
        await PostgresNovelStore(database_url).migrate()
        migrated.append("novel")
    return migrated


def main() -> None:
    args = _parse_args()
    database_url = args.database_url or get_settings().resolved_database_url()
    if not database_url:
        raise SystemExit("Missing database URL. Pass --database-url or set DATABASE_URL.")
    migrated = asyncio.run(migrate(database_url=database_url, queue_only=args.queue_only))
    print(f"Migrated schema(s): {', '.join(migrated)}")


if __name__ == "__main__":
    main()
