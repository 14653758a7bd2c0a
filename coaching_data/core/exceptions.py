"""
Unified exception handling for the coaching data layer.

Every error leaving the API has the same body::

    {"success": false, "error": {"code": ..., "message": ..., "field": ..., "details": ...}}

Services raise the classes below; the handlers registered by
``register_exception_handlers`` turn them (and FastAPI's own errors) into
that shape.
"""

from __future__ import annotations

from typing import Any, Optional, Dict
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


def _error_json(
    status_code: int,
    code: str,
    message: str,
    field: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, field=field, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump())


# =============================================================================
# Custom Exception Classes
# =============================================================================

class DataLayerException(Exception):
    """
    Base exception carrying its own HTTP status and machine-readable code.

    Subclasses only pick defaults; anything raised from a route is rendered
    by ``data_layer_exception_handler``.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.field = field

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorDetail(code=self.code, message=self.message, field=self.field, details=self.details)
        )


# --- Lookup / state errors ---

class NotFoundError(DataLayerException):
    """A coach, client, credential or pending entry does not exist."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} with ID '{resource_id}' not found" if resource_id else f"{resource} not found"
        super().__init__(
            message=message,
            code="RESOURCE_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(DataLayerException):
    """The operation clashes with current state, e.g. a pending entry already assigned."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(
            message=message,
            code="RESOURCE_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource} if resource else None,
        )


class LedgerWriteConflict(ConflictError):
    """A sync ledger row for this meeting was written by a concurrent run."""

    def __init__(self, meeting_id: str):
        super().__init__(
            message=f"Sync ledger already has an entry for meeting '{meeting_id}'",
            resource="sync_ledger",
        )
        self.meeting_id = meeting_id


# --- Upstream service errors ---

class ServiceError(DataLayerException):
    """An external dependency failed or is not configured."""

    def __init__(
        self,
        service: str,
        message: str = "Service temporarily unavailable",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{service}: {message}",
            code="SERVICE_ERROR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"service": service, **(details or {})},
        )


class ProviderError(ServiceError):
    """Fireflies returned a non-200 response or a GraphQL error payload."""

    def __init__(
        self,
        message: str = "Transcript provider request failed",
        http_status: Optional[int] = None,
    ):
        super().__init__(
            service="fireflies",
            message=message,
            details={"http_status": http_status} if http_status else None,
        )
        self.code = "PROVIDER_ERROR"
        self.http_status = http_status


class ProviderRateLimitError(ProviderError):
    """Fireflies rate limit hit (HTTP 429)."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message=message, http_status=status.HTTP_429_TOO_MANY_REQUESTS)
        self.code = "PROVIDER_RATE_LIMITED"


class EmbeddingError(ServiceError):
    def __init__(self, message: str = "Embedding service temporarily unavailable"):
        super().__init__(service="embeddings", message=message)


class NotificationError(ServiceError):
    def __init__(self, message: str = "Notification delivery failed"):
        super().__init__(service="slack", message=message)


# --- Ingestion errors ---

class IngestionError(DataLayerException):
    """Ingestion of one meeting failed."""

    def __init__(self, message: str, transcript_id: Optional[str] = None):
        super().__init__(
            message=message,
            code="INGESTION_ERROR",
            details={"transcript_id": transcript_id} if transcript_id else None,
        )


class ChunkPersistenceError(IngestionError):
    """A single chunk could not be embedded or stored."""

    def __init__(self, transcript_id: str, chunk_index: int, reason: str):
        super().__init__(
            message=f"Chunk {chunk_index} of {transcript_id} failed: {reason}",
            transcript_id=transcript_id,
        )
        self.code = "CHUNK_PERSISTENCE_ERROR"
        self.chunk_index = chunk_index


class CredentialError(DataLayerException):
    """A Fireflies credential could not be used for a whole sync pass."""

    def __init__(self, credential_label: str, reason: str):
        super().__init__(
            message=f"Credential '{credential_label}' failed: {reason}",
            code="CREDENTIAL_ERROR",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"credential": credential_label},
        )
        self.credential_label = credential_label


# --- Webhook errors ---

class WebhookError(DataLayerException):
    """Webhook body could not be parsed or validated."""

    def __init__(self, message: str, event_type: Optional[str] = None):
        super().__init__(
            message=message,
            code="WEBHOOK_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"event_type": event_type} if event_type else None,
        )


class WebhookSignatureError(DataLayerException):
    def __init__(self):
        super().__init__(
            message="Invalid webhook signature",
            code="INVALID_SIGNATURE",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


# =============================================================================
# Exception Handlers for FastAPI
# =============================================================================

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
}


async def data_layer_exception_handler(request: Request, exc: DataLayerException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_json(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "UNKNOWN_ERROR"),
        str(exc.detail),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first invalid field; the full list goes in ``details``."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    return _error_json(
        422,
        "VALIDATION_ERROR",
        first.get("msg", "Invalid request"),
        field=".".join(loc) or None,
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}", exc_info=True)
    return _error_json(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app):
    app.add_exception_handler(DataLayerException, data_layer_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
