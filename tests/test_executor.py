import asyncio
import time

import pytest

from hookflow.executor import ActionExecutor
from hookflow.registry import ActionRegistry
from hookflow.schemas import HookStatus


def make_executor(methods, actions):
    registry = ActionRegistry({"job": actions}, methods)
    return ActionExecutor(registry), registry.actions_for("job")


@pytest.mark.asyncio
async def test_all_actions_succeed(methods):
    executor, actions = make_executor(methods, ["sendEmail", "logAudit"])
    result = await executor.run(actions, {"userId": 42}, timeout=1.0)

    assert result.status == HookStatus.COMPLETE
    assert result.results == [
        {"action": "sendEmail", "output": {"sent_to": 42}},
        {"action": "logAudit", "output": "logged"},
    ]


@pytest.mark.asyncio
async def test_results_keep_declaration_order(methods):
    finished = []

    async def first(data):
        await asyncio.sleep(0.05)
        finished.append("first")
        return 1

    async def second(data):
        finished.append("second")
        return 2

    executor, actions = make_executor({"first": first, "second": second}, ["first", "second"])
    result = await executor.run(actions, {}, timeout=None)

    assert finished == ["second", "first"]
    assert [r["action"] for r in result.results] == ["first", "second"]


@pytest.mark.asyncio
async def test_timeout_fails_only_the_slow_action(methods):
    executor, actions = make_executor(methods, ["slow", "logAudit"])
    result = await executor.run(actions, {"delay": 1.0}, timeout=0.03)

    assert result.status == HookStatus.FAILED
    assert result.results[0]["action"] == "slow"
    assert result.results[0]["error"]["type"] == "ActionTimeout"
    assert result.results[1] == {"action": "logAudit", "output": "logged"}


@pytest.mark.asyncio
async def test_falsy_timeout_is_unbounded(methods):
    executor, actions = make_executor(methods, ["slow"])
    result = await executor.run(actions, {"delay": 0.05}, timeout=0)
    assert result.results == [{"action": "slow", "output": "late"}]


@pytest.mark.asyncio
async def test_exception_identity_is_preserved(methods):
    executor, actions = make_executor(methods, ["boom", "sendEmail"])
    result = await executor.run(actions, {"userId": 1}, timeout=1.0)

    assert result.status == HookStatus.FAILED
    assert result.results[0] == {
        "action": "boom",
        "error": {"type": "ValueError", "message": "mailbox full"},
    }
    assert result.results[1]["output"] == {"sent_to": 1}


@pytest.mark.asyncio
async def test_unknown_action_is_a_per_action_failure(methods):
    executor, actions = make_executor(methods, ["nosuch", "logAudit"])
    result = await executor.run(actions, {}, timeout=1.0)

    assert result.results[0]["error"]["type"] == "ActionResolutionError"
    assert result.results[1]["output"] == "logged"


@pytest.mark.asyncio
async def test_sync_handlers_do_not_block_the_loop():
    def blocking(data):
        time.sleep(0.1)
        return "done"

    ticks = []

    async def ticker(data):
        for _ in range(3):
            ticks.append(time.monotonic())
            await asyncio.sleep(0.01)
        return len(ticks)

    executor, actions = make_executor({"blocking": blocking, "ticker": ticker}, ["blocking", "ticker"])
    result = await executor.run(actions, {}, timeout=1.0)

    assert result.status == HookStatus.COMPLETE
    assert result.results[0]["output"] == "done"
    assert result.results[1]["output"] == 3


@pytest.mark.asyncio
async def test_call_expression_action(methods):
    executor, actions = make_executor(methods, ["audit.record('signup', userId, level=1)"])
    result = await executor.run(actions, {"userId": 5}, timeout=1.0)
    assert result.results == [
        {"action": "audit.record('signup', userId, level=1)", "output": "signup:5:1"}
    ]


@pytest.mark.asyncio
async def test_empty_action_list_completes(methods):
    executor, _ = make_executor(methods, [])
    result = await executor.run([], {}, timeout=1.0)
    assert result.status == HookStatus.COMPLETE
    assert result.results == []
