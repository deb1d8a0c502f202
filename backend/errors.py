"""Error taxonomy shared by the services and the HTTP layer.

Every error is an ``HTTPException`` so routers and dependencies can raise it
directly; ``server.py`` renders it as ``{"code", "message", "detail", ...}``.
"""
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "REQUEST_ERROR"
    message: str = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.message
        self.extra = extra or {}
        super().__init__(status_code=self.status_code, detail=self.message, headers=headers)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message, "detail": self.message}
        payload.update(self.extra)
        return payload


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"
    message = "Not authenticated"

    def __init__(self, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class Unauthorized(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "UNAUTHORIZED"
    message = "Unauthorized"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    message = "Not found"


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"
    message = "Invalid request data"

    def __init__(self, message: Optional[str] = None, *, errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        extra["errors"] = errors or []
        super().__init__(message, extra=extra, **kwargs)


class DuplicateRegistration(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_REGISTERED"
    message = "Already registered for this event"


class EventFull(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "EVENT_FULL"
    message = "This event has reached maximum capacity"


class RegistrationClosed(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "REGISTRATION_CLOSED"
    message = "Registration is closed for this event"


class ProfileIncomplete(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INCOMPLETE_PROFILE"
    message = "Please complete your profile before registering for events"


class InvalidTeamSize(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TEAM_SIZE"
    message = "Invalid team size"


class InvalidTeamMember(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TEAM_MEMBER"
    message = "Every team member needs a name, USN and phone number"


class CapacityExceeded(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "CAPACITY_EXCEEDED"
    message = "User identifier space is exhausted"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    message = "Conflicting record already exists"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    message = "Rate limit exceeded"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_SERVER_ERROR"
    message = "An unexpected error occurred"
