import logging
import time
from typing import Any, Callable, Dict, Optional

from . import events, metrics
from .config import Settings
from .errors import StoreUnavailable
from .events import EventBus
from .executor import ActionExecutor
from .registry import ActionRegistry
from .retry import RetryController
from .runner import JobRunner
from .scheduler import BatchScheduler
from .schemas import AggregatedResult
from .store import JobStore, get_redis

logger = logging.getLogger(__name__)


class Hooks:
    """Everything a host application needs: enqueue, retry, start and stop.

    Usage:
        hooks = await Hooks.connect(Settings.from_env(), methods=my_methods)
        hooks.start()
        await hooks.hook("welcome", {"user_id": 42})
        ...
        await hooks.stop()
    """

    def __init__(
        self,
        settings: Settings,
        redis_client,
        methods: Any = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.redis = redis_client
        self.bus = bus or EventBus(verbose=settings.log)
        self.store = JobStore(redis_client, prefix=settings.store.collection_name, clock=clock)
        self.registry = ActionRegistry(settings.actions, methods)
        self.executor = ActionExecutor(self.registry)
        self.runner = JobRunner(self.store, self.registry, self.executor, settings, self.bus, clock=clock)
        self.scheduler = BatchScheduler(self.store, self.runner, settings, self.bus)
        self.retries = RetryController(self.store, self.runner, settings)

    @classmethod
    async def connect(cls, settings: Settings, methods: Any = None, **kwargs) -> "Hooks":
        redis_client = await get_redis(settings.store.connection)
        return cls(settings, redis_client, methods=methods, **kwargs)

    async def hook(self, name: str, data: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Enqueue a hook. Unknown names and store errors are logged, never raised."""
        if not self.registry.has(name):
            metrics.hooks_rejected_total.inc()
            logger.debug("Ignoring hook '%s': no actions registered", name)
            return None
        try:
            job = await self.store.insert(name, data or {})
        except StoreUnavailable as exc:
            logger.error("Could not enqueue hook '%s': %s", name, exc)
            return None
        metrics.hooks_enqueued_total.inc()
        self.bus.emit(events.HOOK_ENQUEUED, id=job.id, name=name, data=job.data)
        return job.id

    async def retry_hook(self, job_id: str) -> AggregatedResult:
        return await self.retries.retry(job_id)

    def start(self):
        return self.scheduler.start()

    async def stop(self, drain: bool = False) -> None:
        await self.scheduler.stop(drain=drain)

    async def close(self) -> None:
        await self.stop(drain=True)
        await self.redis.aclose()
