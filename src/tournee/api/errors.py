"""Translation of service exceptions into HTTP errors."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from ..models.errors import (
    AuthError,
    AuthErrorKind,
    FetchError,
    FetchErrorKind,
    IntegrationError,
    OptimizeError,
    OptimizeErrorKind,
    PipelineError,
)

logger = logging.getLogger(__name__)


def _integration_status(exc: IntegrationError) -> int:
    if isinstance(exc, AuthError) and exc.kind is AuthErrorKind.INVALID_CREDENTIALS:
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, FetchError):
        if exc.kind is FetchErrorKind.UNAUTHORIZED:
            return status.HTTP_401_UNAUTHORIZED
        if exc.kind is FetchErrorKind.NOT_FOUND:
            return status.HTTP_404_NOT_FOUND
    if isinstance(exc, OptimizeError):
        if exc.kind is OptimizeErrorKind.TIMEOUT:
            return status.HTTP_504_GATEWAY_TIMEOUT
        if exc.kind is OptimizeErrorKind.ALL_DROPPED:
            return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_502_BAD_GATEWAY


def http_error(exc: Exception, action: str) -> HTTPException:
    """Build the ``HTTPException`` for a failure raised while ``action``."""
    if isinstance(exc, PipelineError):
        if exc.timed_out:
            code = status.HTTP_504_GATEWAY_TIMEOUT
        elif exc.cause is not None:
            code = _integration_status(exc.cause)
        else:
            code = status.HTTP_502_BAD_GATEWAY
        logger.warning(f"Failed to {action} at stage {exc.stage.value}: {exc.message}")
        return HTTPException(
            status_code=code,
            detail={"code": exc.code, "message": exc.message, "stage": exc.stage.value},
        )
    if isinstance(exc, IntegrationError):
        logger.warning(f"Failed to {action}: {exc}")
        return HTTPException(status_code=_integration_status(exc), detail={"code": exc.code, "message": exc.message})
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"code": "BAD_REQUEST", "message": str(exc)})
    logger.exception(f"Error while trying to {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "INTERNAL_ERROR", "message": f"Failed to {action}: {exc}"},
    )
