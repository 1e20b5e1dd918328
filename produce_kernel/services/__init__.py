"""Kernel services -- session-bound infrastructure used by the batching domain."""

from produce_kernel.services.counter_service import Counter, CounterService, SequenceCounter

__all__ = ["Counter", "CounterService", "SequenceCounter"]
