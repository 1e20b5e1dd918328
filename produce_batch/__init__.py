"""
produce_batch -- order batching and batch lifecycle engine.

Groups incoming orders into time-windowed procurement batches, confirms
each batch (scheduled at the 1st cutoff, or manually), and issues delivery
bills once a batch locks.

Architecture:
    produce_batch/ is a top-level package built on produce_kernel.
    Nothing in produce_kernel imports from produce_batch except the
    table-creation helpers in produce_kernel.db.engine.

    domain/      pure time windows, assignment policy, firms, triggers, DTOs
    models/      SQLAlchemy ORM models
    services/    session-bound stores and the transaction-owning lifecycle,
                 jobs and scheduler
    orchestrator.py  composition root
"""

__version__ = "0.1.0"
