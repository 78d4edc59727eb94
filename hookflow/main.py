import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from .api import hooks as hooks_api
from .config import Settings, load_methods
from .errors import StoreUnavailable
from .hooks import Hooks
from .metrics import metrics_response, request_latency_seconds


def create_app(hooks: Optional[Hooks] = None, run_scheduler: bool = True) -> FastAPI:
    """Build the control plane.

    When ``hooks`` is not supplied it is built from the environment at
    startup. The scheduler starts with the app and is told to stop before
    shutdown; in-flight hooks are allowed to finish.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.hooks is None
        if owned:
            app.state.hooks = await Hooks.connect(Settings.from_env(), methods=load_methods())
        if run_scheduler:
            app.state.hooks.start()
        try:
            yield
        finally:
            if owned:
                await app.state.hooks.close()
            else:
                await app.state.hooks.stop(drain=True)

    app = FastAPI(title="hookflow control plane", lifespan=lifespan)
    app.state.hooks = hooks
    app.include_router(hooks_api.router)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        try:
            response = await call_next(request)
            return response
        finally:
            request_latency_seconds.observe(time.time() - start)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request):
        try:
            ready = await request.app.state.hooks.store.ping()
        except StoreUnavailable:
            ready = False
        return {"ready": ready, "scheduler": request.app.state.hooks.scheduler.running}

    @app.get("/metrics")
    async def metrics():
        return metrics_response()

    return app


app = create_app()
