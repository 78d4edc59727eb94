import logging
import time
from typing import Callable, Optional

from . import events, metrics
from .config import Settings
from .errors import StoreUnavailable
from .events import EventBus
from .executor import ActionExecutor
from .registry import ActionRegistry
from .schemas import CLAIMABLE_STATUSES, AggregatedResult, HookStatus, Job
from .store import JobStore

logger = logging.getLogger(__name__)


class JobRunner:
    """Drives one hook through waiting|failed -> processing -> complete|failed."""

    def __init__(
        self,
        store: JobStore,
        registry: ActionRegistry,
        executor: ActionExecutor,
        settings: Settings,
        bus: EventBus,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.registry = registry
        self.executor = executor
        self.settings = settings
        self.bus = bus
        self.clock = clock

    def backoff(self, attempts: int) -> float:
        return self.settings.backoff_base ** attempts

    async def run(self, job: Job) -> Optional[AggregatedResult]:
        """Claim ``job`` and execute it. Returns None if it was not claimed."""
        if not self.registry.has(job.name):
            # left queued so it runs again once the name is configured
            logger.warning("No actions registered for hook '%s' (%s); skipping", job.name, job.id)
            return None
        now = self.clock()
        try:
            claimed = await self.store.claim(
                job.id,
                statuses=CLAIMABLE_STATUSES,
                max_attempts=self.settings.max_retries,
                due_before=now,
                stale_before=now - self.settings.stale_after,
            )
        except StoreUnavailable as exc:
            logger.error("Could not claim hook %s: %s", job.id, exc)
            return None
        if claimed is None:
            logger.debug("Hook %s was claimed elsewhere or is no longer due", job.id)
            return None
        metrics.hooks_claimed_total.inc()
        if job.status == HookStatus.PROCESSING:
            logger.warning("Hook %s never recorded an outcome; running it again", job.id)
        return await self.execute(claimed)

    async def execute(self, job: Job) -> AggregatedResult:
        """Run the actions of an already-claimed job and persist the outcome."""
        self.bus.emit(events.EXECUTION_STARTED, id=job.id, name=job.name, attempts=job.attempts, data=job.data)
        metrics.hooks_in_flight.inc()
        start = time.time()
        try:
            result = await self.executor.run(
                self.registry.actions_for(job.name), job.data, self.settings.timeout
            )
        finally:
            metrics.hooks_in_flight.dec()
            metrics.execution_latency_seconds.observe(time.time() - start)

        now = self.clock()
        update = {
            "results": result.results,
            "status": result.status,
            "completed_at": now,
        }
        if result.failed:
            if job.attempts < self.settings.max_retries:
                update["run_after"] = now + self.backoff(job.attempts)
            else:
                update["run_after"] = None
        await self.store.update(job.id, update)
        metrics.hooks_executed_total.labels(status=result.status.value).inc()

        self.bus.emit(
            events.EXECUTION_COMPLETED,
            id=job.id,
            name=job.name,
            status=result.status.value,
            results=result.results,
            attempts=job.attempts,
        )
        return result
