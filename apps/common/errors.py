from __future__ import annotations

from typing import Any


class ApiError(Exception):
    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.extra = extra

    def as_dict(self) -> dict[str, Any]:
        data = {"success": False, "error": self.message, "code": self.code}
        data.update(self.extra)
        return data


class ValidationFailed(ApiError):
    status = 400
    code = "VALIDATION_ERROR"

    def __init__(self, details: list[dict[str, str]], message: str = "Validation failed"):
        super().__init__(message, details=details)


class AuthenticationFailed(ApiError):
    status = 401
    code = "AUTH_REQUIRED"


class PermissionDenied(ApiError):
    status = 403
    code = "FORBIDDEN"


class NotFound(ApiError):
    status = 404
    code = "NOT_FOUND"


class Conflict(ApiError):
    status = 409
    code = "CONFLICT"


class BusinessRuleViolation(ApiError):
    status = 400
    code = "BUSINESS_RULE"


class RateLimited(ApiError):
    status = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str, *, wait_seconds: int, **extra: Any):
        super().__init__(message, wait_seconds=int(wait_seconds), **extra)
        self.wait_seconds = int(wait_seconds)


class UpstreamFailure(ApiError):
    status = 502
    code = "UPSTREAM_ERROR"
