"""
produce_batch.services -- stores, bill orchestration, lifecycle and scheduling.

Session-bound services never commit; BatchLifecycle, BatchJobs and
BatchScheduler own their transactions through a session factory.
"""

from produce_batch.services.batch_jobs import BatchJobs
from produce_batch.services.batch_store import BatchStore
from produce_batch.services.bill_archive import BillArchive
from produce_batch.services.bill_orchestrator import (
    BillOrchestrator,
    DocumentRenderer,
    PassthroughRenderer,
)
from produce_batch.services.lifecycle import BatchLifecycle
from produce_batch.services.notifier import (
    LoggingNotifier,
    Notifier,
    NullNotifier,
    RecordingNotifier,
)
from produce_batch.services.order_intake import OrderIntake
from produce_batch.services.order_store import OrderStore
from produce_batch.services.scheduler import BatchScheduler

__all__ = [
    "BatchJobs",
    "BatchLifecycle",
    "BatchScheduler",
    "BatchStore",
    "BillArchive",
    "BillOrchestrator",
    "DocumentRenderer",
    "LoggingNotifier",
    "Notifier",
    "NullNotifier",
    "OrderIntake",
    "OrderStore",
    "PassthroughRenderer",
    "RecordingNotifier",
]
