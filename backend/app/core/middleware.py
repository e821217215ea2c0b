"""Middleware: request ID injection, structured access logging."""

import hashlib
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("pacekeeper.access")

_ATHLETE_PATH = re.compile(r"^/athletes/([^/]+)")
_REQUEST_ID = re.compile(r"[A-Za-z0-9._-]{1,128}")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate a well-formed caller X-Request-ID, otherwise mint one."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", "")
        if not _REQUEST_ID.fullmatch(request_id):
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Structured access log: request_id, athlete (hashed), endpoint, status."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        request_id = getattr(request.state, "request_id", "-")
        match = _ATHLETE_PATH.match(request.url.path)
        athlete = hash_subject_id(match.group(1)) if match else "-"

        logger.info(
            "request_id=%s athlete=%s method=%s status=%d elapsed_ms=%.1f",
            request_id,
            athlete,
            request.method,
            response.status_code,
            elapsed_ms,
        )
        return response


def hash_subject_id(subject_id: str) -> str:
    """Hash a subject ID for log privacy: first 12 chars of SHA-256."""
    return hashlib.sha256(str(subject_id).encode()).hexdigest()[:12]
