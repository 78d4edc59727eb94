import json
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from .config import REDIS_URL
from .errors import StoreUnavailable
from .schemas import HookStatus, Job

NEVER = float("inf")

logger = logging.getLogger(__name__)


async def get_redis(url: str = REDIS_URL):
    return redis.Redis.from_url(url, decode_responses=True)


@contextmanager
def _store_errors():
    try:
        yield
    except RedisError as exc:
        raise StoreUnavailable(str(exc)) from exc


def _encode(fields: Dict[str, Any]) -> Dict[str, str]:
    out = {}
    for key, value in fields.items():
        if isinstance(value, HookStatus):
            value = value.value
        out[key] = json.dumps(value, default=str)
    return out


def _decode(job_id: str, raw: Dict[str, str]) -> Job:
    doc = {k: json.loads(v) for k, v in raw.items()}
    doc["id"] = job_id
    return Job.model_validate(doc)


def _score(run_after: Optional[float]) -> float:
    return NEVER if run_after is None else run_after


class JobStore:
    """Redis-backed hook documents.

    Each hook is a hash at ``<prefix>:job:<id>`` whose fields are JSON-encoded,
    so partial updates only rewrite the fields they name. One sorted set per
    status (``<prefix>:status:<status>``) holds the ids scored by ``run_after``,
    except processing, which is scored by claim time. The indexes answer the
    "due" and "outstanding" queries.
    """

    def __init__(self, redis_client, prefix: str = "hookflow", clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self.prefix = prefix
        self.clock = clock

    def job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def status_key(self, status) -> str:
        return f"{self.prefix}:status:{HookStatus(status).value}"

    async def ping(self) -> bool:
        with _store_errors():
            return bool(await self.redis.ping())

    async def insert(self, name: str, data: Dict[str, Any]) -> Job:
        now = self.clock()
        job = Job(
            id=str(uuid.uuid4()),
            name=name,
            data=data or {},
            status=HookStatus.WAITING,
            added_at=now,
            run_after=now,
        )
        fields = job.model_dump(exclude={"id"})
        with _store_errors():
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hset(self.job_key(job.id), mapping=_encode(fields))
                pipe.zadd(self.status_key(job.status), {job.id: _score(job.run_after)})
                await pipe.execute()
        return job

    async def find_one(self, job_id: str) -> Optional[Job]:
        with _store_errors():
            raw = await self.redis.hgetall(self.job_key(job_id))
        if not raw:
            return None
        return _decode(job_id, raw)

    async def find_due(
        self,
        statuses: Iterable,
        limit: Optional[int] = None,
        names: Optional[Iterable[str]] = None,
        max_attempts: Optional[int] = None,
        stale_before: Optional[float] = None,
    ) -> List[Job]:
        """Jobs in ``statuses`` whose run_after has passed, oldest first.

        ``names`` and ``max_attempts`` are applied to the documents before
        ``limit``, so hooks the caller could never run do not take a slot in
        the batch. With ``stale_before`` set, processing hooks claimed at or
        before that time are returned too.
        """
        now = self.clock()
        limit = limit or None
        statuses = [HookStatus(s) for s in statuses]
        names = set(names) if names is not None else None
        filtered = names is not None or max_attempts is not None

        ranges = [(self.status_key(status), now) for status in statuses]
        if stale_before is not None and HookStatus.PROCESSING not in statuses:
            ranges.append((self.status_key(HookStatus.PROCESSING), stale_before))

        candidates = []
        with _store_errors():
            for key, upper in ranges:
                if limit and not filtered:
                    pairs = await self.redis.zrangebyscore(
                        key, "-inf", upper, start=0, num=limit, withscores=True
                    )
                else:
                    pairs = await self.redis.zrangebyscore(key, "-inf", upper, withscores=True)
                candidates.extend(pairs)
            candidates.sort(key=lambda pair: pair[1])

            jobs = []
            for job_id, _ in candidates:
                if limit and len(jobs) >= limit:
                    break
                raw = await self.redis.hgetall(self.job_key(job_id))
                # the hash may have been removed by an external cleanup
                if not raw:
                    continue
                job = _decode(job_id, raw)
                if names is not None and job.name not in names:
                    logger.warning("Hook %s has no registered actions for '%s'; leaving it queued", job_id, job.name)
                    continue
                if max_attempts is not None and job.attempts >= max_attempts:
                    continue
                jobs.append(job)
        return jobs

    async def count_status(self, status, since: Optional[float] = None) -> int:
        """Number of hooks in ``status``; with ``since``, only index scores after it."""
        with _store_errors():
            if since is None:
                return await self.redis.zcard(self.status_key(status))
            return await self.redis.zcount(self.status_key(status), f"({since}", "+inf")

    async def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        """Partial update of ``fields``; keeps the status index in step."""
        key = self.job_key(job_id)
        with _store_errors():
            async with self.redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        current = await pipe.hmget(key, ["status", "run_after"])
                        if current[0] is None:
                            # removed externally; never resurrect a partial document
                            return
                        old_status = HookStatus(json.loads(current[0]))
                        run_after = fields.get(
                            "run_after", json.loads(current[1]) if current[1] else None
                        )
                        new_status = HookStatus(fields.get("status", old_status))

                        pipe.multi()
                        pipe.hset(key, mapping=_encode(fields))
                        if "status" in fields or "run_after" in fields:
                            if old_status != new_status:
                                pipe.zrem(self.status_key(old_status), job_id)
                            if new_status != HookStatus.PROCESSING:
                                pipe.zadd(self.status_key(new_status), {job_id: _score(run_after)})
                            elif old_status != new_status:
                                # processing entries are scored by claim time
                                pipe.zadd(self.status_key(new_status), {job_id: self.clock()})
                        await pipe.execute()
                        return
                    except WatchError:
                        # another writer touched the document; re-read and reapply
                        continue

    async def claim(
        self,
        job_id: str,
        statuses: Optional[Iterable] = None,
        max_attempts: Optional[int] = None,
        due_before: Optional[float] = None,
        stale_before: Optional[float] = None,
    ) -> Optional[Job]:
        """Atomically move a job to processing if it still matches the conditions.

        A job already in processing also matches when it was claimed at or
        before ``stale_before``: its previous run never recorded an outcome.
        Returns the claimed job, or None when it no longer matches or another
        writer changed it between the read and the write (lost the race).
        """
        key = self.job_key(job_id)
        processing_key = self.status_key(HookStatus.PROCESSING)
        allowed = {HookStatus(s) for s in statuses} if statuses is not None else None
        with _store_errors():
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.hgetall(key)
                    if not raw:
                        return None
                    job = _decode(job_id, raw)
                    if allowed is not None and job.status not in allowed:
                        if job.status != HookStatus.PROCESSING or stale_before is None:
                            return None
                        claimed_at = await pipe.zscore(processing_key, job_id)
                        if claimed_at is None or claimed_at > stale_before:
                            return None
                    if max_attempts is not None and job.attempts >= max_attempts:
                        return None
                    if due_before is not None and (job.run_after is None or job.run_after > due_before):
                        return None

                    claimed = job.model_copy(update={
                        "status": HookStatus.PROCESSING,
                        "attempts": job.attempts + 1,
                        "results": [],
                        "completed_at": None,
                    })
                    pipe.multi()
                    pipe.hset(key, mapping=_encode({
                        "status": claimed.status,
                        "attempts": claimed.attempts,
                        "results": claimed.results,
                        "completed_at": None,
                    }))
                    pipe.zrem(self.status_key(job.status), job_id)
                    pipe.zadd(processing_key, {job_id: self.clock()})
                    await pipe.execute()
                    return claimed
                except WatchError:
                    return None
