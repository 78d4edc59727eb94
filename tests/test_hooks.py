import pytest
from unittest.mock import AsyncMock

from hookflow import events
from hookflow.errors import StoreUnavailable
from hookflow.schemas import HookStatus


@pytest.mark.asyncio
async def test_unregistered_name_persists_nothing(hooks, redis_client):
    assert await hooks.hook("nobody-listens", {"x": 1}) is None
    assert await redis_client.keys("*") == []


@pytest.mark.asyncio
async def test_enqueue_persists_waiting_hook_and_emits(hooks):
    seen = []
    hooks.bus.on(events.HOOK_ENQUEUED, lambda e, p: seen.append(p))

    job_id = await hooks.hook("welcome", {"userId": 42})

    doc = await hooks.store.find_one(job_id)
    assert doc.status == HookStatus.WAITING
    assert doc.data == {"userId": 42}
    assert seen == [{"id": job_id, "name": "welcome", "data": {"userId": 42}}]


@pytest.mark.asyncio
async def test_enqueue_swallows_store_errors(hooks, monkeypatch):
    monkeypatch.setattr(hooks.store, "insert", AsyncMock(side_effect=StoreUnavailable("down")))
    assert await hooks.hook("welcome", {}) is None


def test_unknown_event_names_are_rejected(hooks):
    with pytest.raises(ValueError):
        hooks.bus.on("hook-exploded", lambda e, p: None)


@pytest.mark.asyncio
async def test_object_actions_merge_defaults(settings, redis_client, methods, clock):
    from hookflow.hooks import Hooks

    settings.actions["greet"] = [{"method": "sendEmail", "data": {"userId": 0, "template": "hi"}}]
    hooks = Hooks(settings, redis_client, methods=methods, clock=clock)

    job_id = await hooks.hook("greet", {"userId": 5})
    await hooks.scheduler.tick()

    assert methods.calls == [("sendEmail", {"userId": 5, "template": "hi"})]
    assert (await hooks.store.find_one(job_id)).data == {"userId": 5}


@pytest.mark.asyncio
async def test_removed_listener_is_not_called(hooks):
    seen = []

    def listener(event, payload):
        seen.append(payload["name"])

    hooks.bus.on(events.HOOK_ENQUEUED, listener)
    await hooks.hook("welcome", {})
    hooks.bus.off(events.HOOK_ENQUEUED, listener)
    await hooks.hook("shout", {"text": "x"})
    assert seen == ["welcome"]
