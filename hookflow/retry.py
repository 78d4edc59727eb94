import logging

from .config import Settings
from .errors import ActionResolutionError, JobNotFound, RetryExhausted
from .runner import JobRunner
from .schemas import AggregatedResult
from .store import JobStore

logger = logging.getLogger(__name__)


class RetryController:
    """Re-runs a single hook on operator request, whatever its status."""

    def __init__(self, store: JobStore, runner: JobRunner, settings: Settings):
        self.store = store
        self.runner = runner
        self.settings = settings

    async def retry(self, job_id: str) -> AggregatedResult:
        claimed = None
        while claimed is None:
            job = await self.store.find_one(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.attempts >= self.settings.max_retries:
                raise RetryExhausted(job_id, job.attempts, self.settings.max_retries)
            if not self.runner.registry.has(job.name):
                raise ActionResolutionError(f"no actions registered for hook '{job.name}'")
            # None means another writer got in between; re-check and try again
            claimed = await self.store.claim(job_id, max_attempts=self.settings.max_retries)

        logger.info("Re-running hook %s (%s), attempt %d", job_id, job.name, claimed.attempts)
        return await self.runner.execute(claimed)
