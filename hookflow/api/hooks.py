import json

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..auth import require_api_key
from ..errors import ActionResolutionError, JobNotFound, RetryExhausted, StoreUnavailable
from ..hooks import Hooks
from ..schemas import AggregatedResult, HookAccepted, HookCreate, HookResponse, HookStatus

router = APIRouter(prefix="/hooks", tags=["hooks"])


def get_hooks(request: Request) -> Hooks:
    return request.app.state.hooks


@router.post("", response_model=HookAccepted, status_code=202)
async def create_hook(body: HookCreate, hooks: Hooks = Depends(get_hooks), authorized: bool = Depends(require_api_key)):
    if not hooks.registry.has(body.name):
        raise HTTPException(status_code=404, detail=f"no actions registered for hook '{body.name}'")
    job_id = await hooks.hook(body.name, body.data)
    if job_id is None:
        raise HTTPException(status_code=503, detail="hook store unavailable")
    return HookAccepted(id=job_id, name=body.name, status=HookStatus.WAITING)


@router.get("/{job_id}", response_model=HookResponse)
async def get_hook(job_id: str, hooks: Hooks = Depends(get_hooks)):
    try:
        job = await hooks.store.find_one(job_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if job is None:
        raise HTTPException(status_code=404, detail="hook not found")
    return HookResponse(**job.model_dump())


@router.post("/{job_id}/retry", response_model=AggregatedResult)
async def retry_hook(job_id: str, hooks: Hooks = Depends(get_hooks), authorized: bool = Depends(require_api_key)):
    try:
        result = await hooks.retry_hook(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="hook not found")
    except RetryExhausted as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ActionResolutionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    # same fallback the store uses, so outputs read back as they were saved
    return JSONResponse(content=json.loads(json.dumps(result.model_dump(), default=str)))
