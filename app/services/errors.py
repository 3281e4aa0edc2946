"""Exception taxonomy for the progress engine.

Routers translate these into HTTP responses; nothing below the API layer
knows about status codes.

  ProgressValidationError  caller data breaks a rule; nothing was written
  ProgressNotFoundError    referenced catalog entity does not exist
  ConsistencyError         orphaned ancestor during roll-up; never surfaced
  TransientError           storage failure or timeout; safe to retry
  IdempotencyConflictError key reused with a different payload
"""

from __future__ import annotations

import enum


class ValidationReason(str, enum.Enum):
    OUT_OF_RANGE = "out_of_range"
    NOT_INTEGER = "not_integer"
    MANUAL_PROGRESS_NOT_ALLOWED = "manual_progress_not_allowed"
    NOTE_TOO_LONG = "note_too_long"
    INVALID_RANGE = "invalid_range"
    INVALID_GRANULARITY = "invalid_granularity"


class NotFoundReason(str, enum.Enum):
    MATERIAL_NOT_FOUND = "material_not_found"
    LESSON_NOT_FOUND = "lesson_not_found"
    COURSE_NOT_FOUND = "course_not_found"


class ProgressError(Exception):
    code = "progress_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProgressValidationError(ProgressError, ValueError):
    code = "validation_error"

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ProgressNotFoundError(ProgressError, LookupError):
    code = "not_found"

    def __init__(self, reason: NotFoundReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ConsistencyError(ProgressError):
    code = "consistency_error"

    def __init__(self, level: str, entity_id: int, message: str) -> None:
        super().__init__(message)
        self.level = level
        self.entity_id = entity_id


class TransientError(ProgressError):
    code = "transient_error"


class IdempotencyConflictError(ProgressError):
    code = "idempotency_conflict"
