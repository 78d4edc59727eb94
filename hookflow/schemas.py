from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class HookStatus(str, Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


CLAIMABLE_STATUSES = (HookStatus.WAITING, HookStatus.FAILED)


class Job(BaseModel):
    id: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    status: HookStatus = HookStatus.WAITING
    # each entry is {"action", "output"} or {"action", "error"}
    results: List[Dict[str, Any]] = Field(default_factory=list)
    added_at: float
    completed_at: Optional[float] = None
    run_after: Optional[float] = None
    attempts: int = 0


class AggregatedResult(BaseModel):
    status: HookStatus
    results: List[Dict[str, Any]]

    @property
    def failed(self) -> bool:
        return self.status == HookStatus.FAILED


class HookCreate(BaseModel):
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)


class HookAccepted(BaseModel):
    id: str
    name: str
    status: HookStatus


class HookResponse(BaseModel):
    id: str
    name: str
    status: HookStatus
    data: Dict[str, Any]
    results: List[Dict[str, Any]]
    attempts: int
    added_at: float
    completed_at: Optional[float] = None
    run_after: Optional[float] = None
