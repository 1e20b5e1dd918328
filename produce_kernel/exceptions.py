"""
Typed Exception Hierarchy for the produce kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (request handlers, the scheduler, operator tooling) must react to
errors precisely: a state conflict means "re-fetch and show the current
state", a transient store error means "retry later", a validation error
means "fix the input".  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        lifecycle.confirm(batch_id, actor_id=user_id, generate_bills=True)
    except BatchStateConflictError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProduceKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidIdentifierError
    |   +-- InvalidDateError
    |   +-- BillDataError
    |   +-- UnsafeBillPathError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- StateConflictError
    |   +-- BatchStateConflictError
    |   +-- OrderLockedError
    |
    +-- BillStageIncompleteError
    |
    +-- TransientStoreError
    |
    +-- CounterError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                    | When Raised
-------------|-------------------------|--------------------------------------
Validation   | INVALID_IDENTIFIER      | Malformed batch / order id
             | INVALID_DATE            | Unparseable calendar date
             | BILL_DATA_INVALID       | Order data cannot be printed on a bill
             | UNSAFE_BILL_PATH        | Bill filename escapes the archive root
-------------|-------------------------|--------------------------------------
Not found    | BATCH_NOT_FOUND         | Batch id does not exist
             | ORDER_NOT_FOUND         | Order id does not exist
-------------|-------------------------|--------------------------------------
Conflict     | BATCH_STATE_CONFLICT    | Batch is not open (already confirmed)
             | ORDER_LOCKED            | Order's batch is already locked
-------------|-------------------------|--------------------------------------
Bills        | BILL_STAGE_INCOMPLETE   | Some orders of a batch got no bill
-------------|-------------------------|--------------------------------------
Store        | TRANSIENT_STORE_ERROR   | Database unavailable / connection lost
             | COUNTER_ERROR           | Counter returned an invalid value
-------------|-------------------------|--------------------------------------
Config       | CONFIGURATION_ERROR     | Invalid batching configuration
"""


class ProduceKernelError(Exception):
    """
    Base exception for all produce kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PRODUCE_KERNEL_ERROR"


# Validation errors -- surfaced immediately, never retried


class ValidationError(ProduceKernelError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"


class InvalidIdentifierError(ValidationError):
    """An identifier could not be parsed."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, kind: str, value: object):
        self.kind = kind
        self.value = str(value)
        super().__init__(f"Invalid {kind} ID: {value!r}")


class InvalidDateError(ValidationError):
    """A calendar date could not be parsed."""

    code: str = "INVALID_DATE"

    def __init__(self, value: object):
        self.value = str(value)
        super().__init__(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


class BillDataError(ValidationError):
    """Order data cannot be rendered on a delivery bill."""

    code: str = "BILL_DATA_INVALID"

    def __init__(self, order_number: str, reason: str):
        self.order_number = order_number
        self.reason = reason
        super().__init__(
            f"Cannot generate bill for order {order_number}: {reason}. "
            "Fix the order data before generating bills."
        )


class UnsafeBillPathError(ValidationError):
    """Requested bill filename is not allowed."""

    code: str = "UNSAFE_BILL_PATH"

    def __init__(self, filename: object):
        self.filename = str(filename)
        super().__init__(f"Invalid bill filename: {filename!r}")


# Not-found errors


class NotFoundError(ProduceKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# State conflicts -- surfaced, not retried; caller must re-fetch


class StateConflictError(ProduceKernelError):
    """Base exception for transitions refused by the current state."""

    code: str = "STATE_CONFLICT"


class BatchStateConflictError(StateConflictError):
    """Batch is not in the state the transition requires."""

    code: str = "BATCH_STATE_CONFLICT"

    def __init__(self, batch_id: str, current_status: str, detail: str | None = None):
        self.batch_id = batch_id
        self.current_status = current_status
        message = f"Batch is already {current_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class OrderLockedError(StateConflictError):
    """Order belongs to a batch that has already been locked."""

    code: str = "ORDER_LOCKED"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order {order_id} is locked in a confirmed batch (status: {status})"
        )


# Bill stage


class BillStageIncompleteError(ProduceKernelError):
    """A bill run finished but some orders in the batch still have no bill."""

    code: str = "BILL_STAGE_INCOMPLETE"

    def __init__(self, batch_number: str, failed_orders: list[str]):
        self.batch_number = batch_number
        self.failed_orders = failed_orders
        super().__init__(
            f"Bills missing for {len(failed_orders)} order(s) in batch "
            f"{batch_number}: {', '.join(failed_orders)}"
        )


# Store errors


class TransientStoreError(ProduceKernelError):
    """The store failed in a way that may succeed on retry."""

    code: str = "TRANSIENT_STORE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store operation '{operation}' failed: {reason}")


class CounterError(ProduceKernelError):
    """Counter produced an invalid value."""

    code: str = "COUNTER_ERROR"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Counter operation failed for '{name}': {reason}")


# Configuration


class ConfigurationError(ProduceKernelError):
    """Batching configuration is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Configuration error: {reason}")
