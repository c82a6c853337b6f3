r"""Request execution engine: state, classification, lifecycle callbacks
and the executor state machine."""

from __future__ import annotations

__all__ = [
    "AttemptCounters",
    "CancellationToken",
    "Outcome",
    "RequestExecutor",
    "RequestState",
    "ResponseClassifier",
    "WorkingRequest",
]

from apiary.engine.classifier import Outcome, ResponseClassifier
from apiary.engine.executor import RequestExecutor
from apiary.engine.state import AttemptCounters, CancellationToken, RequestState, WorkingRequest
