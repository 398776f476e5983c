"""Application exception types."""

from datagate.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class ValidationError(ApiError):
    """Malformed client input; never retried."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=400, code="VALIDATION_ERROR", message=message, details=details)


class AuthError(ApiError):
    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(status_code=401, code="UNAUTHORIZED", message=message)


class NotFoundError(ApiError):
    """Missing resource, also raised for resources owned by another subject."""

    def __init__(self) -> None:
        super().__init__(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class UpstreamUnavailableError(ApiError):
    def __init__(self, message: str = "Processing worker is not reachable") -> None:
        super().__init__(status_code=503, code="WORKER_UNAVAILABLE", message=message)


class UpstreamFailureError(ApiError):
    def __init__(self, message: str = "Processing worker error", details: dict | None = None) -> None:
        super().__init__(status_code=502, code="WORKER_ERROR", message=message, details=details)


__all__ = [
    "ApiError",
    "AuthError",
    "NotFoundError",
    "UpstreamFailureError",
    "UpstreamUnavailableError",
    "ValidationError",
]
