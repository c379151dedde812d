"""Request id, timing and access logging for the pricing API."""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tradesphere.services.logging_config import request_id_var

logger = logging.getLogger("tradesphere-api.middleware")

# Probe endpoints, not worth an access line each
QUIET_PATHS = frozenset({"/health"})

MAX_REQUEST_ID_LENGTH = 128


def resolve_request_id(incoming: str) -> str:
    """Honour a caller-supplied X-Request-ID when it is sane, else mint a uuid4."""
    incoming = (incoming or "").strip()
    if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH and incoming.isprintable():
        return incoming
    return str(uuid.uuid4())


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (``request.state.request_id`` and the
    logging context), returns it as ``X-Request-ID`` together with
    ``X-Process-Time`` in ms, and writes one access line per request.
    Server errors are logged at WARNING.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID", ""))
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            request_id_var.reset(token)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(elapsed_ms)

        if request.url.path in QUIET_PATHS:
            return response
        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)",
            extra={
                "event": "http.request",
                "http_method": request.method,
                "http_path": request.url.path,
                "http_status": response.status_code,
                "request_id": request_id,
                "duration_ms": elapsed_ms,
            },
        )
        return response
