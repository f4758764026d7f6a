"""
Typed Exception Hierarchy for the Logistics Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Logistics writes race each other constantly: a technician's tablet retries a
stock transfer, two office users save the same purchase order, a backfill
runs while a job is being edited. Callers must react differently to each
failure, so every error:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        gate.assert_version("Job", job_id, version)
    except Exception as e:
        if "version" in str(e):  # FRAGILE - message might change
            ask_user_to_refresh()

Example - RIGHT way (what this module enables):
    try:
        gate.assert_version("Job", job_id, version)
    except StaleWriteError as e:
        ask_user_to_refresh(current=e.current_version)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LogisticsKernelError:

    LogisticsKernelError (base)
    |
    +-- ValidationError
    |   +-- InsufficientStockError
    |   +-- ConsumptionExceedsAllocationError
    |   +-- InactiveLocationError
    |
    +-- TransitionError
    |
    +-- NotFoundError
    |
    +-- ConcurrencyError
        +-- StaleWriteError
        +-- SequenceContentionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                           | When Raised
----------------|--------------------------------|--------------------------------------
Validation      | VALIDATION_ERROR               | Payload fails a precondition
                | INSUFFICIENT_STOCK             | Source location holds too little
                | CONSUMPTION_EXCEEDS_ALLOCATION | Consumption > remaining allocation
                | INACTIVE_LOCATION              | Movement touches an inactive location
----------------|--------------------------------|--------------------------------------
Transition      | INVALID_TRANSITION             | Status edge not in the allowed set
----------------|--------------------------------|--------------------------------------
Lookup          | NOT_FOUND                      | Referenced id does not resolve
----------------|--------------------------------|--------------------------------------
Concurrency     | STALE_WRITE                    | Caller's write_version is out of date
                | SEQUENCE_CONTENTION            | Counter increment kept losing races

===============================================================================
HANDLING PATTERNS
===============================================================================

1. STALE WRITES ARE USER-FACING:

    except StaleWriteError as e:
        return {"error": e.code, "message": "Someone else changed this, please refresh"}

2. VALIDATION AND TRANSITION ERRORS NEVER PARTIALLY APPLY:
   Nothing has been written when one of these is raised; the caller may
   correct the input and resubmit.

3. REGRESSION BLOCKS ARE NOT EXCEPTIONS:
   The regression guard strips the offending field and logs it; see
   logistics_kernel.domain.regression.
"""


class LogisticsKernelError(Exception):
    """
    Base exception for all logistics kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LOGISTICS_KERNEL_ERROR"


# Validation exceptions


class ValidationError(LogisticsKernelError):
    """Payload failed a precondition. Nothing was written."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, reason: str, violations: list[str] | None = None):
        self.reason = reason
        self.violations = list(violations or [])
        super().__init__(reason)


class InsufficientStockError(ValidationError):
    """Source location does not hold enough stock for the movement."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, location_id: str, item_key: str, available: str, requested: str):
        self.location_id = location_id
        self.item_key = item_key
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock of {item_key} at location {location_id}: "
            f"available {available}, requested {requested}"
        )


class ConsumptionExceedsAllocationError(ValidationError):
    """Requested consumption exceeds what is left on the allocation."""

    code: str = "CONSUMPTION_EXCEEDS_ALLOCATION"

    def __init__(self, allocation_id: str, remaining: str, requested: str):
        self.allocation_id = allocation_id
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"Insufficient qty on allocation {allocation_id} "
            f"(available: {remaining}, requested: {requested})"
        )


class InactiveLocationError(ValidationError):
    """Inventory location is deactivated and cannot take part in movements."""

    code: str = "INACTIVE_LOCATION"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Inventory location {location_id} is inactive")


# Status transition exceptions


class TransitionError(LogisticsKernelError):
    """Requested status change is not in the allowed edge set."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        current: str,
        requested: str,
        allowed: tuple[str, ...] | list[str],
    ):
        self.entity_type = entity_type
        self.current = current
        self.requested = requested
        self.allowed = tuple(allowed)
        allowed_text = ", ".join(self.allowed) or "none (terminal)"
        super().__init__(
            f"Invalid {entity_type} status transition: {current} -> {requested}. "
            f"Allowed: {allowed_text}"
        )


# Lookup exceptions


class NotFoundError(LogisticsKernelError):
    """Referenced id does not resolve in the store."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Concurrency exceptions


class ConcurrencyError(LogisticsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleWriteError(ConcurrencyError):
    """
    Caller's expected write_version no longer matches the stored record.

    Intended to surface to the end user as "someone else changed this,
    please refresh" rather than as a generic failure.
    """

    code: str = "STALE_WRITE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int,
        current_version: int,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            f"STALE_WRITE: {entity_type} {entity_id} was modified by another "
            f"writer (expected version {expected_version}, "
            f"current version {current_version})"
        )


class SequenceContentionError(ConcurrencyError):
    """Counter increment lost the conditional update too many times."""

    code: str = "SEQUENCE_CONTENTION"

    def __init__(self, counter_key: str, attempts: int):
        self.counter_key = counter_key
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a sequence number for {counter_key} "
            f"after {attempts} attempts"
        )
