#!/usr/bin/env python3
"""Runs the hook poll loop without the HTTP control plane.

Usage:
  REDIS_URL=redis://localhost:6379/0 HOOKS_ACTIONS_FILE=hooks.json HOOKS_METHODS=myapp.methods \
      python scripts/scheduler.py

Environment variables:
- REDIS_URL, HOOKS_COLLECTION
- HOOKS_ACTIONS (JSON) or HOOKS_ACTIONS_FILE (path to JSON)
- HOOKS_METHODS (importable module holding the action methods)
- HOOKS_INTERVAL, HOOKS_BATCH_SIZE, HOOKS_CONCURRENCY, HOOKS_TIMEOUT,
  HOOKS_MAX_RETRIES, HOOKS_BACKOFF_BASE, HOOKS_BACKPRESSURE, HOOKS_STALE_AFTER,
  HOOKS_LOG
"""
import asyncio
import logging
import signal

from hookflow.config import Settings, load_methods
from hookflow.hooks import Hooks

logger = logging.getLogger("scheduler")


async def run_scheduler(settings: Settings = None, methods=None):
    settings = settings or Settings.from_env()
    if settings.log:
        logging.getLogger("hookflow").setLevel(logging.DEBUG)
    hooks = await Hooks.connect(settings, methods=methods if methods is not None else load_methods())
    logger.info("scheduler: connected, hooks=%s", ", ".join(hooks.registry.names()) or "<none>")

    loop = asyncio.get_running_loop()
    stopping = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopping.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    hooks.start()
    try:
        await stopping.wait()
        logger.info("scheduler: stop requested, waiting for the current batch")
    finally:
        await hooks.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        logger.info("scheduler: exiting")
