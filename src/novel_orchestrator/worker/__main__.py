"""Worker process entrypoint: ``python -m novel_orchestrator.worker``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from novel_orchestrator.config.model_config import StoreModelConfigResolver
from novel_orchestrator.config.settings import Settings, get_settings
from novel_orchestrator.llm.client import OpenAICompatibleClient
from novel_orchestrator.storage.postgres import PostgresTaskQueue
from novel_orchestrator.storage.postgres_novel import PostgresNovelStore
from novel_orchestrator.worker.audit import LoggingAuditLogger
from novel_orchestrator.worker.context import HandlerContext
from novel_orchestrator.worker.pool import WorkerPool
from novel_orchestrator.worker.progress import TaskChannel


def _parse_args(settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Claim and run story-to-script and script-to-storyboard tasks."
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.worker_concurrency,
        help="Number of jobs processed in parallel by this process.",
    )
    parser.add_argument(
        "--migrate",
        action="store_true",
        help="Create missing tables before starting.",
    )
    return parser.parse_args()


def build_pool(settings: Settings, *, concurrency: int) -> WorkerPool:
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set NOVEL_ORCHESTRATOR_DATABASE_URL "
            "or DATABASE_URL before starting the worker."
        )
    queue = PostgresTaskQueue(database_url)
    store = PostgresNovelStore(database_url)
    context = HandlerContext(
        store=store,
        channel=TaskChannel(queue),
        llm=OpenAICompatibleClient(
            api_key=settings.resolved_llm_api_key(),
            base_url=settings.llm_base_url,
            timeout_s=settings.llm_timeout_s,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        ),
        audit=LoggingAuditLogger(),
        model_config=StoreModelConfigResolver(store),
        settings=settings,
    )
    return WorkerPool(
        queue,
        context,
        concurrency=concurrency,
        poll_interval_s=settings.poll_interval_s,
        error_backoff_s=settings.worker_error_backoff_s,
    )


async def _run(pool: WorkerPool, *, migrate: bool) -> None:
    if migrate:
        await pool.queue.migrate()
        await pool.context.store.migrate()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, pool.stop)
    await pool.run()


def main() -> None:
    settings = get_settings()
    args = _parse_args(settings)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    pool = build_pool(settings, concurrency=args.concurrency)
    asyncio.run(_run(pool, migrate=args.migrate))


if __name__ == "__main__":
    main()
