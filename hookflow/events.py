import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

HOOK_ENQUEUED = "hook-enqueued"
CLAIM_BATCH_QUERIED = "hook-claim-batch-queried"
EXECUTION_STARTED = "hook-execution-started"
EXECUTION_COMPLETED = "hook-execution-completed"
SCHEDULER_ERROR = "scheduler-error"

EVENTS = (
    HOOK_ENQUEUED,
    CLAIM_BATCH_QUERIED,
    EXECUTION_STARTED,
    EXECUTION_COMPLETED,
    SCHEDULER_ERROR,
)

Listener = Callable[[str, Dict[str, Any]], Any]


class EventBus:
    """Named lifecycle events for the host application.

    Every event is also written to the ``hookflow.events`` logger: errors
    always, everything else at debug level when ``verbose`` is set.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        if event != "*" and event not in EVENTS:
            raise ValueError(f"unknown event '{event}'")
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def emit(self, event: str, **payload: Any) -> None:
        if event == SCHEDULER_ERROR:
            logger.error("%s: %s", event, payload.get("error"))
        elif self.verbose:
            logger.debug("%s %s", event, payload)

        for listener in self._listeners.get(event, []) + self._listeners.get("*", []):
            try:
                listener(event, payload)
            except Exception:
                # listeners never influence hook state
                logger.exception("Listener for '%s' failed", event)
