"""
Pure kernel domain layer.

No ORM, no database, no I/O.  SystemClock is the one sanctioned boundary.
"""

from produce_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "DeterministicClock", "SystemClock"]
