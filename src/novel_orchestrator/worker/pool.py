"""Fixed-size asyncio worker pool that drains the task queue."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping

from novel_orchestrator.errors import TaskTerminatedError
from novel_orchestrator.handlers import TASK_HANDLERS, TaskHandler
from novel_orchestrator.storage.base import TaskQueue
from novel_orchestrator.storage.models import TaskJob
from novel_orchestrator.worker.context import HandlerContext

logger = logging.getLogger(__name__)


class WorkerPool:
    """Runs ``concurrency`` claim loops; each job is handled by exactly one loop."""

    def __init__(
        self,
        queue: TaskQueue,
        context: HandlerContext,
        *,
        concurrency: int,
        poll_interval_s: float,
        error_backoff_s: float,
        handlers: Mapping[str, TaskHandler] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.queue = queue
        self.context = context
        self.concurrency = concurrency
        self.poll_interval_s = poll_interval_s
        self.error_backoff_s = error_backoff_s
        self.handlers = dict(handlers if handlers is not None else TASK_HANDLERS)
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        """Stop claiming new jobs; running jobs finish."""
        self._stopping.set()

    async def run(self) -> None:
        loops = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"novel-worker-{worker_id}")
            for worker_id in range(1, self.concurrency + 1)
        ]
        await asyncio.gather(*loops)
        logger.info("worker_pool event=stopped concurrency=%d", self.concurrency)

    async def run_once(self) -> bool:
        """Claim and process at most one job; return whether one was found."""
        job = await self.queue.claim()
        if job is None:
            return False
        await self.process_job(job)
        return True

    async def process_job(self, job: TaskJob) -> None:
        data = job.data
        handler = self.handlers.get(data.type)
        if handler is None:
            logger.error(
                "worker event=failed job_id=%s task_id=%s type=%s error=unsupported task type",
                job.id,
                data.task_id,
                data.type,
            )
            await self.queue.fail(data.task_id, f"Unsupported task type: {data.type}")
            return

        started = time.perf_counter()
        logger.info(
            "task_run event=start job_id=%s task_id=%s type=%s episode_id=%s",
            job.id,
            data.task_id,
            data.type,
            data.episode_id,
        )
        try:
            result = await handler(job, self.context)
        except TaskTerminatedError as exc:
            logger.info(
                "task_run event=terminated job_id=%s task_id=%s type=%s reason=%s checkpoint=%s",
                job.id,
                data.task_id,
                data.type,
                exc.reason,
                exc.checkpoint,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "worker event=failed job_id=%s task_id=%s type=%s error=%s",
                job.id,
                data.task_id,
                data.type,
                exc,
            )
            await self.queue.fail(data.task_id, str(exc) or type(exc).__name__)
        else:
            await self.queue.complete(data.task_id, result)
            logger.info(
                "task_run event=completed job_id=%s task_id=%s type=%s duration_ms=%d",
                job.id,
                data.task_id,
                data.type,
                int((time.perf_counter() - started) * 1000),
            )
        finally:
            self.context.channel.forget(job)

    async def _worker_loop(self, worker_id: int) -> None:
        logger.info("worker event=ready worker_id=%d", worker_id)
        while not self._stopping.is_set():
            try:
                processed = await self.run_once()
            except Exception as exc:  # noqa: BLE001
                logger.error("worker event=error worker_id=%d error=%s", worker_id, exc)
                await self._sleep(self.error_backoff_s)
                continue
            if not processed:
                await self._sleep(self.poll_interval_s)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass
