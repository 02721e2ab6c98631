"""
Custom exception classes and error handling.

Services raise these directly; FastAPI turns them into consistent
{"detail", "errorCode"} responses via api_exception_handler.
"""
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.context = context or {}


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Malformed or out-of-range input. Never retried automatically."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
            context={"field": field} if field else None,
        )
        self.field = field


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """Access denied. The message stays generic so it does not reveal other members' data."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """Resource conflict (active enrollment collision, idempotency-key mismatch)."""

    def __init__(self, detail: str, existing_enrollment_id: Optional[Any] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT",
            context=(
                {"existingEnrollmentId": str(existing_enrollment_id)}
                if existing_enrollment_id else None
            ),
        )
        self.existing_enrollment_id = existing_enrollment_id


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Render APIException subclasses with their error code and context."""
    content: Dict[str, Any] = {"detail": exc.detail, "errorCode": exc.error_code}
    content.update(exc.context)
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)
