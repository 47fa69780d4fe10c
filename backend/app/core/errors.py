"""Domain errors and their HTTP mapping."""

from fastapi import Request
from fastapi.responses import JSONResponse


class EngineError(Exception):
    """Base for errors surfaced to API callers."""

    code = "error"
    status_code = 400

    def __init__(self, message: str = "", *, errors: list[str] | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.errors = errors or []


class ValidationError(EngineError):
    code = "validation_error"
    status_code = 422


class InvalidPreferences(ValidationError):
    """Preferences cannot be planned (frequency, quiet times or timezone)."""

    code = "invalid_preferences"


class NotEntitled(EngineError):
    code = "not_entitled"
    status_code = 403


class NotFound(EngineError):
    code = "not_found"
    status_code = 404


class Conflict(EngineError):
    code = "conflict"
    status_code = 409


class NoEligibleContent(Exception):
    """No affirmation can fill a slot; recorded as a skipped entry, never raised to clients."""


class DeliveryError(Exception):
    """Push gateway failure. error_code is what lands in sent_logs."""

    def __init__(self, error_code: str, message: str = ""):
        super().__init__(message or error_code)
        self.error_code = error_code


class TransientDeliveryError(DeliveryError):
    """Retryable: gateway unreachable, rate limited, timed out."""


class PermanentDeliveryError(DeliveryError):
    """Token rejected by the gateway; no retry, token gets deactivated."""


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    body: dict = {"detail": exc.message, "code": exc.code}
    if exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)
