"""Translate engine exceptions into HTTP responses.

The engine never knows about status codes; routers wrap their calls in
`progress_errors()` and get a consistent detail body:

    {"code": "validation_error", "reason": "out_of_range", "message": "..."}
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

from fastapi import HTTPException, status

from app.services.errors import (
    IdempotencyConflictError,
    ProgressError,
    ProgressNotFoundError,
    ProgressValidationError,
    TransientError,
)

RETRY_AFTER_SECONDS = 1


def to_http_exception(exc: ProgressError) -> HTTPException:
    reason = getattr(exc, "reason", None)
    detail = {
        "code": exc.code,
        "reason": reason.value if reason is not None else exc.code,
        "message": exc.message,
    }
    if isinstance(exc, ProgressValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(exc, ProgressNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    if isinstance(exc, IdempotencyConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, TransientError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
    )


@contextlib.contextmanager
def progress_errors() -> Iterator[None]:
    try:
        yield
    except ProgressError as exc:
        raise to_http_exception(exc) from exc
