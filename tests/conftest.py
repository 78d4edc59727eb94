import asyncio

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient

from hookflow.config import Settings
from hookflow.hooks import Hooks
from hookflow.main import create_app


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Methods:
    """Host method table used across the tests; records every call."""

    def __init__(self):
        self.calls = []
        self.audit = {"record": self.record}

    async def sendEmail(self, data):
        self.calls.append(("sendEmail", data))
        return {"sent_to": data.get("userId")}

    async def logAudit(self, data):
        self.calls.append(("logAudit", data))
        return "logged"

    async def slow(self, data):
        await asyncio.sleep(data.get("delay", 1.0))
        return "late"

    async def boom(self, data):
        raise ValueError("mailbox full")

    def upper(self, data):
        # plain function; runs in a worker thread
        return data["text"].upper()

    def record(self, kind, user, level=0):
        self.calls.append(("audit.record", (kind, user, level)))
        return f"{kind}:{user}:{level}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def methods():
    return Methods()


@pytest.fixture
async def redis_client():
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def settings():
    return Settings(
        timeout=1.0,
        interval=0.05,
        max_retries=3,
        actions={
            "welcome": ["sendEmail", "logAudit"],
            "shout": ["upper"],
            "fragile": ["boom"],
        },
    )


@pytest.fixture
def hooks(settings, redis_client, methods, clock):
    return Hooks(settings, redis_client, methods=methods, clock=clock)


@pytest.fixture
async def client(hooks):
    app = create_app(hooks=hooks, run_scheduler=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
