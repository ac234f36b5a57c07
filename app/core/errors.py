"""
Error taxonomy shared by services and routes.

Every error carries a stable ``kind`` and an HTTP status so the handlers in
``register_exception_handlers`` can render it without knowing the caller.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("projectdrop.errors")


class AppError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationError(AppError):
    """Malformed input the caller can correct."""
    status_code = 400
    kind = "validation_error"


class AuthenticationError(AppError):
    """Missing, invalid or expired credential."""
    status_code = 401
    kind = "authentication_error"


class AuthorizationError(AppError):
    """Valid identity without the rights for the action."""
    status_code = 403
    kind = "authorization_error"


class NotFoundError(AppError):
    """Entity absent, or not visible to the caller."""
    status_code = 404
    kind = "not_found"


class ConflictError(AppError):
    status_code = 409
    kind = "conflict"


class GoneError(AppError):
    """Entity existed but is no longer usable (shares only)."""
    status_code = 410
    kind = "gone"


async def app_error_handler(request: Request, exc: AppError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"error": ValidationError.kind, "detail": "; ".join(parts) or "Invalid request"},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=AppError().to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
