import asyncio

import pytest

from hookflow.hooks import Hooks
from hookflow.schemas import HookStatus


@pytest.mark.asyncio
async def test_enqueued_hooks_complete_end_to_end(settings, redis_client, methods):
    """Runs the real poll loop against the store and waits for hooks to settle."""
    settings.batch_size = 2
    hooks = Hooks(settings, redis_client, methods=methods)

    ok = [await hooks.hook("welcome", {"userId": n}) for n in range(3)]
    bad = await hooks.hook("fragile", {})
    assert await hooks.hook("unknown", {}) is None

    hooks.start()
    try:
        done = False
        for _ in range(100):
            await asyncio.sleep(0.05)
            docs = [await hooks.store.find_one(job_id) for job_id in ok]
            if all(d.status == HookStatus.COMPLETE for d in docs):
                done = True
                break
        assert done, "hooks did not complete in time"
    finally:
        await hooks.stop(drain=True)

    for doc in docs:
        assert [r["action"] for r in doc.results] == ["sendEmail", "logAudit"]
        assert doc.completed_at is not None

    failed = await hooks.store.find_one(bad)
    assert failed.status == HookStatus.FAILED
    assert failed.results[0]["error"]["type"] == "ValueError"
