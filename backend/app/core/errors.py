"""Domain errors and structured error responses.

Services raise the domain errors below; the API layer renders every error,
domain or otherwise, in one consistent JSON format.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("pacekeeper.errors")


class AgentError(Exception):
    """Base class for guardrail engine errors."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ConsentError(AgentError):
    """Cycle-level block: consent missing or withdrawn. Nothing was captured."""

    status_code = status.HTTP_403_FORBIDDEN


class AthleteNotFoundError(AgentError):
    status_code = status.HTTP_404_NOT_FOUND


class ActionNotFoundError(AgentError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransitionError(AgentError):
    """Attempt to move an action out of a terminal status."""

    status_code = status.HTTP_409_CONFLICT


class ActionExpiredError(AgentError):
    status_code = status.HTTP_409_CONFLICT


class BoundsExceededError(AgentError):
    """Action falls outside the athlete's configured numeric bounds."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ActionBlockedError(AgentError):
    """A guardrail verdict with violations cannot become an action."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class StorageFailure(AgentError):
    """Persistence failed; the enclosing operation was aborted."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ProviderUnavailableError(AgentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def _error_body(request: Request, status_code: int, detail, **extra) -> dict:
    body = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "request_id": getattr(request.state, "request_id", None),
    }
    body.update(extra)
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AgentError)
    async def agent_error_handler(request: Request, exc: AgentError):
        if exc.status_code >= 500:
            logger.error("agent error path=%s detail=%s", request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request, exc.status_code, exc.detail, error_type=type(exc).__name__
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(
                request, 422, "Validation error", errors=jsonable_errors(exc)
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error path=%s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, 500, "Internal server error"),
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic error contexts may carry exception instances
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
