from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Keep metrics module-level singletons
hooks_enqueued_total = Counter("hooks_enqueued_total", "Hooks persisted via hook()")
hooks_rejected_total = Counter("hooks_rejected_total", "hook() calls for names with no registered actions")
request_latency_seconds = Histogram("request_latency_seconds", "HTTP request latency seconds")

# Scheduler / execution metrics
hooks_claimed_total = Counter("hooks_claimed_total", "Hooks moved to processing")
hooks_executed_total = Counter("hooks_executed_total", "Hooks that reached a terminal status", ["status"])
action_failures_total = Counter("action_failures_total", "Failed actions", ["reason"])
execution_latency_seconds = Histogram("execution_latency_seconds", "Time to run all actions of one hook")
scheduler_errors_total = Counter("scheduler_errors_total", "Errors raised by a poll tick")
hooks_in_flight = Gauge("hooks_in_flight", "Hooks currently executing in this process")


def metrics_response():
    # Return prometheus metrics as a Response
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
