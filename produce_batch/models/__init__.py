"""
produce_batch.models -- ORM models for batches, orders and job logs.

Architecture: produce_batch/models. Imports from produce_kernel.db.base only.
"""

from produce_batch.models.batch import BatchModel, JobLogModel
from produce_batch.models.order import OrderLineModel, OrderModel

__all__ = [
    "BatchModel",
    "JobLogModel",
    "OrderLineModel",
    "OrderModel",
]
