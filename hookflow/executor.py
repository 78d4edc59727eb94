import asyncio
import inspect
import logging
from typing import Any, Dict, List, Optional

from . import metrics
from .config import ActionConfig
from .errors import ActionResolutionError, ActionTimeout
from .registry import ActionRegistry
from .schemas import AggregatedResult, HookStatus

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> Dict[str, str]:
    return {"type": type(exc).__name__, "message": str(exc)}


def _failure_reason(exc: BaseException) -> str:
    if isinstance(exc, ActionTimeout):
        return "timeout"
    if isinstance(exc, ActionResolutionError):
        return "resolution"
    return "error"


class ActionExecutor:
    """Runs every action of one hook concurrently and aggregates the outcomes."""

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    async def run(
        self,
        actions: List[ActionConfig],
        payload: Optional[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> AggregatedResult:
        # gather keeps declaration order whatever order the actions finish in
        results = await asyncio.gather(
            *(self._run_action(action, payload, timeout) for action in actions)
        )
        failed = any("error" in result for result in results)
        return AggregatedResult(
            status=HookStatus.FAILED if failed else HookStatus.COMPLETE,
            results=list(results),
        )

    async def _run_action(
        self, action: ActionConfig, payload: Optional[Dict[str, Any]], timeout: Optional[float]
    ) -> Dict[str, Any]:
        try:
            call = self.registry.bind(action, payload)
            if timeout:
                try:
                    output = await asyncio.wait_for(self._invoke(call), timeout)
                except asyncio.TimeoutError:
                    # a sync handler keeps running in its thread; only observation stops
                    raise ActionTimeout(action.method, timeout) from None
            else:
                output = await self._invoke(call)
        except Exception as exc:
            metrics.action_failures_total.labels(reason=_failure_reason(exc)).inc()
            logger.warning("Action '%s' failed: %s: %s", action.method, type(exc).__name__, exc)
            return {"action": action.method, "error": describe_error(exc)}
        return {"action": action.method, "output": output}

    @staticmethod
    async def _invoke(call) -> Any:
        target = getattr(call, "func", call)
        if inspect.iscoroutinefunction(target):
            return await call()
        result = await asyncio.to_thread(call)
        if inspect.isawaitable(result):
            result = await result
        return result
