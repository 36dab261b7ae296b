"""
Core acquisition engine.

The `AcquisitionOrchestrator` drives one request through its state machine,
delegating segment retrieval to the `BatchScheduler`.
"""

from .orchestrator import AcquisitionOrchestrator, AcquisitionState
from .scheduler import BatchResult, BatchScheduler, FailurePolicy

__all__ = [
    "AcquisitionOrchestrator",
    "AcquisitionState",
    "BatchResult",
    "BatchScheduler",
    "FailurePolicy",
]
