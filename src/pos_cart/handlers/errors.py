"""Translation of reported errors into HTTP exceptions."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from pos_cart.errors import (
    ConflictError,
    DegradedError,
    InternalError,
    NotFoundError,
    PosError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_CATEGORY: list[tuple[type[PosError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DegradedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (InternalError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: PosError) -> int:
    for category, code in _STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: PosError) -> HTTPException:
    return HTTPException(status_code=status_for(exc), detail=exc.to_dict())


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Turn reported errors into HTTPException; anything else becomes a 500.

    Args:
        operation: Name used in the log line and the fallback message
    """
    try:
        yield
    except HTTPException:
        raise
    except PosError as e:
        if isinstance(e, InternalError):
            logger.error("%s failed: %s", operation, e.message)
        raise to_http_exception(e) from e
    except Exception as e:
        logger.error("%s failed unexpectedly: %s", operation, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": InternalError.code, "message": f"Failed to {operation}: {e}"},
        ) from e
