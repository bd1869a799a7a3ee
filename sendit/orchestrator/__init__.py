"""
Job lifecycle: backoff, circuit breaking, events, orchestration and admission.
"""

from .backoff import BackoffPolicy, CancelToken, sleep_or_cancel
from .breaker import CircuitBreaker, CircuitState
from .events import EventChannel, EventTypes, JobEvent, NdjsonEventSink, read_events
from .orchestrator import DeploymentOrchestrator, JobHandle
from .queue import Admission, DeploymentQueue, logical_key

__all__ = [
    "Admission",
    "BackoffPolicy",
    "CancelToken",
    "CircuitBreaker",
    "CircuitState",
    "DeploymentOrchestrator",
    "DeploymentQueue",
    "EventChannel",
    "EventTypes",
    "JobEvent",
    "JobHandle",
    "NdjsonEventSink",
    "logical_key",
    "read_events",
    "sleep_or_cancel",
]
