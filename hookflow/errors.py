class HookflowError(Exception):
    """Base class for every error raised by hookflow."""


class StoreUnavailable(HookflowError):
    """Redis could not be reached or rejected a query."""


class ActionResolutionError(HookflowError):
    """An action identifier did not resolve to a callable."""


class ActionTimeout(HookflowError):
    def __init__(self, action: str, timeout: float):
        super().__init__(f"action '{action}' timed out after {timeout}s")
        self.action = action
        self.timeout = timeout


class JobNotFound(HookflowError):
    def __init__(self, job_id: str):
        super().__init__(f"hook {job_id} not found")
        self.job_id = job_id


class RetryExhausted(HookflowError):
    def __init__(self, job_id: str, attempts: int, max_retries: int):
        super().__init__(
            f"hook {job_id} already ran {attempts} time(s), max_retries={max_retries}"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.max_retries = max_retries
