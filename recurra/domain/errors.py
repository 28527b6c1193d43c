"""Exceptions raised by the occurrence engine.

Every error is recoverable at the call site. Batch generation collects them
per expense instead of aborting the run.
"""

from datetime import date
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from recurra.domain.recurrence import ValidationError


class RecurraError(Exception):
    """Base class for all engine errors."""

    pass


class InvalidPatternError(RecurraError):
    """Raised when a recurrence pattern fails validation."""

    def __init__(self, errors: list["ValidationError"]):
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors) or "invalid pattern"
        super().__init__(f"Invalid recurrence pattern: {details}")


class OutOfRangeError(RecurraError):
    """Raised when the next occurrence would fall after the pattern's end date.

    Callers treat this as "no further occurrences", not as a failure.
    """

    def __init__(self, end_date: date, candidate: Optional[date] = None):
        self.end_date = end_date
        self.candidate = candidate
        if candidate:
            message = f"Next occurrence {candidate.isoformat()} is after end date {end_date.isoformat()}"
        else:
            message = f"Next occurrence is after end date {end_date.isoformat()}"
        super().__init__(message)


class InvalidTransitionError(RecurraError):
    """Raised when a status change is not reachable from the current status."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change occurrence status from {current} to {requested}")


class NotFoundError(RecurraError):
    """Raised when a referenced occurrence or expense does not exist."""

    def __init__(self, entity: str, id: object):
        self.entity = entity
        self.id = id
        super().__init__(f"{entity} not found: {id}")


class DuplicateCompletionError(RecurraError):
    """Raised internally when another caller linked the occurrence first.

    Never surfaced to callers: the lifecycle manager recovers by returning
    the existing link.
    """

    def __init__(self, occurrence_id: object):
        self.occurrence_id = occurrence_id
        super().__init__(f"Occurrence {occurrence_id} already has a linked expense")
