import asyncio
import logging
from typing import List, Optional

from . import events, metrics
from .config import Settings
from .events import EventBus
from .runner import JobRunner
from .schemas import CLAIMABLE_STATUSES, AggregatedResult, HookStatus
from .store import JobStore

logger = logging.getLogger(__name__)


class BatchScheduler:
    """Polls the store every ``interval`` seconds and runs due hooks in batches.

    A tick is skipped while any hook claimed within ``stale_after`` is still
    in ``processing`` so a slow batch never overlaps the next one. Older
    processing hooks are presumed lost and are picked up again.
    ``stop()`` is cooperative: it prevents the next tick but lets the current
    one finish.
    """

    def __init__(self, store: JobStore, runner: JobRunner, settings: Settings, bus: EventBus):
        self.store = store
        self.runner = runner
        self.settings = settings
        self.bus = bus
        self._stopping: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> List[Optional[AggregatedResult]]:
        """Run one poll cycle. Returns the outcome of every job it dispatched."""
        stale_before = self.store.clock() - self.settings.stale_after
        if self.settings.backpressure:
            outstanding = await self.store.count_status(HookStatus.PROCESSING, since=stale_before)
            if outstanding > 0:
                logger.debug("%d hook(s) still processing; not fetching a new batch", outstanding)
                return []

        jobs = await self.store.find_due(
            CLAIMABLE_STATUSES,
            self.settings.batch_size,
            names=self.runner.registry.names(),
            max_attempts=self.settings.max_retries,
            stale_before=stale_before,
        )
        self.bus.emit(events.CLAIM_BATCH_QUERIED, count=len(jobs), ids=[job.id for job in jobs])
        if not jobs:
            return []

        limit = self.settings.concurrency or len(jobs)
        semaphore = asyncio.Semaphore(limit)

        async def run_one(job):
            async with semaphore:
                return await self.runner.run(job)

        outcomes = await asyncio.gather(*(run_one(job) for job in jobs), return_exceptions=True)
        results = []
        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, Exception):
                self._report(outcome, job_id=job.id)
                results.append(None)
            else:
                results.append(outcome)
        return results

    def _report(self, exc: BaseException, **context) -> None:
        metrics.scheduler_errors_total.inc()
        self.bus.emit(events.SCHEDULER_ERROR, error=f"{type(exc).__name__}: {exc}", **context)

    async def run(self, stopping: asyncio.Event) -> None:
        """Poll until ``stopping`` is set. Tick errors are reported, never raised."""
        while not stopping.is_set():
            try:
                await self.tick()
            except Exception as exc:
                self._report(exc)
            if stopping.is_set():
                break
            try:
                await asyncio.wait_for(stopping.wait(), self.settings.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Hook scheduler stopped")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stopping))
        logger.info("Hook scheduler started (interval=%ss)", self.settings.interval)
        return self._task

    async def stop(self, drain: bool = False) -> None:
        """Stop scheduling new ticks.

        Returns as soon as the loop is committed to not ticking again; the
        current tick keeps running unless ``drain`` is set, in which case
        this waits for it to finish.
        """
        if self._stopping is None:
            return
        self._stopping.set()
        if drain and self._task is not None:
            await self._task
