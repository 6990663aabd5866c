"""
core/errors.py -- Domain exception taxonomy for Storekeep.

Every service-layer failure is raised as an AppError subclass. Each class
carries the HTTP status it maps to by default and a stable machine-readable
error_code. api/main.py registers a single exception handler that turns any
AppError into the ErrorResponse envelope, so services never import FastAPI.

Routes override status_code only where the public HTTP contract differs from
the default mapping (e.g. POST /auth/verify-otp answers 405 for an unknown
email, POST /auth/get-access-token answers 400 for every failure).

Layer rule: core/ is the kernel. No imports from api/, auth/ or catalog/.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base class for all Storekeep domain errors."""

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail

    def with_status(self, status_code: int) -> "AppError":
        """Return a copy of this error carrying a different HTTP status."""
        return type(self)(
            self.message,
            status_code=status_code,
            error_code=self.error_code,
            detail=self.detail,
        )


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 422
    error_code = "validation_error"


class ExpiredTokenError(ValidationError):
    """A signed token was structurally valid but past its expiry."""

    status_code = 401
    error_code = "token_expired"


class ConflictError(AppError):
    """Duplicate resource, e.g. an email that is already registered."""

    status_code = 405
    error_code = "conflict"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class UnauthorizedError(AppError):
    """Missing or invalid credentials."""

    status_code = 401
    error_code = "unauthorized"


class InvalidTokenError(UnauthorizedError):
    """Bad signature, malformed token, or missing identity claims."""

    error_code = "invalid_token"


class ForbiddenError(AppError):
    """Role not permitted, or a protected-target rule was violated."""

    status_code = 403
    error_code = "forbidden"


class InvalidCodeError(AppError):
    """The submitted one-time code does not match the derived code."""

    status_code = 403
    error_code = "invalid_code"


class ServerError(AppError):
    """Store or external dependency failure."""

    status_code = 500
    error_code = "server_error"
