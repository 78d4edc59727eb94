import importlib
import json
import os
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
DEFAULT_COLLECTION = "hookflow"


class ActionConfig(BaseModel):
    method: str
    data: Dict[str, Any] = Field(default_factory=dict)


# An action is a bare identifier or {"method": ..., "data": {...}}
Action = Union[str, ActionConfig]


class StoreSettings(BaseModel):
    connection: str = REDIS_URL
    collection_name: str = DEFAULT_COLLECTION


class Settings(BaseModel):
    store: StoreSettings = Field(default_factory=StoreSettings)
    # per-action deadline in seconds; 0/None disables it
    timeout: Optional[float] = 30.0
    interval: float = Field(default=300.0, gt=0)
    batch_size: int = Field(default=0, ge=0)
    concurrency: int = Field(default=5, ge=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=2.0, ge=1)
    backpressure: bool = True
    # processing hooks claimed longer ago than this are presumed lost
    stale_after: float = Field(default=3600.0, gt=0)
    log: bool = False
    actions: Dict[str, List[Action]] = Field(default_factory=dict)

    @field_validator("timeout", mode="before")
    @classmethod
    def _disable_timeout(cls, value):
        if value in (None, False, 0, "", "0", "false", "False", "none"):
            return None
        return value

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        values: Dict[str, Any] = {
            "store": {
                "connection": os.getenv("REDIS_URL", REDIS_URL),
                "collection_name": os.getenv("HOOKS_COLLECTION", DEFAULT_COLLECTION),
            },
            "actions": load_actions(),
        }
        env_fields = {
            "timeout": "HOOKS_TIMEOUT",
            "interval": "HOOKS_INTERVAL",
            "batch_size": "HOOKS_BATCH_SIZE",
            "concurrency": "HOOKS_CONCURRENCY",
            "max_retries": "HOOKS_MAX_RETRIES",
            "backoff_base": "HOOKS_BACKOFF_BASE",
            "backpressure": "HOOKS_BACKPRESSURE",
            "stale_after": "HOOKS_STALE_AFTER",
            "log": "HOOKS_LOG",
        }
        for field, var in env_fields.items():
            raw = os.getenv(var)
            if raw is not None and raw != "":
                values[field] = raw
        values.update(overrides)
        return cls.model_validate(values)


def load_actions() -> Dict[str, Any]:
    """Read the hook -> actions table from HOOKS_ACTIONS (JSON) or HOOKS_ACTIONS_FILE."""
    raw = os.getenv("HOOKS_ACTIONS")
    if raw:
        return json.loads(raw)
    path = os.getenv("HOOKS_ACTIONS_FILE")
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    return {}


def load_methods(module_path: Optional[str] = None) -> Any:
    """Import the host method table named by HOOKS_METHODS.

    The module may expose a ``methods`` attribute (mapping or object); otherwise
    the module itself is the table and its attributes are the methods.
    """
    module_path = module_path or os.getenv("HOOKS_METHODS")
    if not module_path:
        return {}
    module = importlib.import_module(module_path)
    return getattr(module, "methods", module)
