"""
Produce Kernel -- shared infrastructure for the produce batching engine.

- Typed exceptions with machine-readable codes
- Structured JSON logging with contextvars propagation
- Injectable clocks
- SQLAlchemy base classes, engine and session scopes
- Race-safe named counters
"""

__version__ = "0.1.0"
