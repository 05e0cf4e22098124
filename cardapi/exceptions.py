"""
Custom exception classes and FastAPI exception handlers.

The service and model layers raise these domain errors without importing
any HTTP concepts. register_exception_handlers() translates them into
HTTP responses with a consistent body: {"detail": ..., "error_type": ...}

Exception hierarchy:
    CardAPIError (base)
    ├── InvalidCredentialsError  — login rejected (401)
    ├── InvalidTokenError        — bad/expired/rotated-out token pair (401)
    ├── ForbiddenError           — resource belongs to another user (403)
    ├── ValidationError          — malformed entity input (422)
    ├── InvalidStateError        — illegal status transition (409)
    ├── CardNotFoundError        — card missing or disabled (404)
    ├── TransactionNotFoundError — transaction missing (404)
    ├── DuplicateUsernameError   — username already registered (409)
    └── DuplicateCardTokenError  — payment token already on file (409)

Authentication errors carry fixed messages. The specific reason a login or
refresh failed is logged server-side and never returned to the client, so
responses cannot be used to enumerate usernames or inspect refresh state.
"""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


logger = logging.getLogger("cardapi.api")


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class CardAPIError(Exception):
    """Base exception for all Card API domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class InvalidCredentialsError(CardAPIError):
    """Raised when login credentials are incorrect or the account is disabled."""

    def __init__(self):
        super().__init__("Invalid username or password")


class InvalidTokenError(CardAPIError):
    """
    Raised when an access token or refresh secret cannot be accepted.

    The `reason` is for server logs only; `detail` is always the same.
    """

    def __init__(self, reason: str = "invalid token"):
        self.reason = reason
        super().__init__("Invalid or expired token")


# ---------------------------------------------------------------------------
# Resource rules
# ---------------------------------------------------------------------------

class ForbiddenError(CardAPIError):
    """Raised when a user attempts to access a resource they don't own."""

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class ValidationError(CardAPIError):
    """Raised when an entity is constructed from malformed input."""

    def __init__(self, field: str, detail: str):
        self.field = field
        super().__init__(detail)


class InvalidStateError(CardAPIError):
    """Raised when a status transition is not allowed from the current state."""


class CardNotFoundError(CardAPIError):
    """Raised when a card does not exist or has been disabled."""

    def __init__(self, card_id: uuid.UUID):
        self.card_id = card_id
        super().__init__(f"Card {card_id} not found")


class TransactionNotFoundError(CardAPIError):
    """Raised when a transaction does not exist."""

    def __init__(self, transaction_id: uuid.UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class DuplicateUsernameError(CardAPIError):
    """Raised when attempting to register a username that's already in use."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username {username} is already registered")


class DuplicateCardTokenError(CardAPIError):
    """Raised when a payment token is already attached to some card."""

    def __init__(self):
        super().__init__("This payment token is already registered")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error(status_code: int, exc: CardAPIError, error_type: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "error_type": error_type},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Called once during app construction in main.py.
    """

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return _error(
            status.HTTP_401_UNAUTHORIZED, exc, "invalid_credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(InvalidTokenError)
    async def invalid_token_handler(
        request: Request, exc: InvalidTokenError
    ) -> JSONResponse:
        return _error(
            status.HTTP_401_UNAUTHORIZED, exc, "invalid_token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ForbiddenError)
    async def forbidden_handler(request: Request, exc: ForbiddenError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, exc, "forbidden")

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "detail": exc.detail,
                "error_type": "validation_error",
                "field": exc.field,
            },
        )

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "invalid_state")

    @app.exception_handler(CardNotFoundError)
    async def card_not_found_handler(request: Request, exc: CardNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, "not_found")

    @app.exception_handler(TransactionNotFoundError)
    async def transaction_not_found_handler(
        request: Request, exc: TransactionNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, "not_found")

    @app.exception_handler(DuplicateUsernameError)
    async def duplicate_username_handler(
        request: Request, exc: DuplicateUsernameError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "duplicate_username")

    @app.exception_handler(DuplicateCardTokenError)
    async def duplicate_card_token_handler(
        request: Request, exc: DuplicateCardTokenError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "duplicate_card_token")

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        # The traceback goes to the log only; clients get a generic message
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred", "error_type": "internal_error"},
        )
