"""HTTP middleware: body limit, request logging, error wrapping, rate limit and auth."""

import hmac
import logging
import threading
import time
from collections import OrderedDict
from typing import Iterable, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers

from nlu_studio.server.models import ErrorResponse

logger = logging.getLogger(__name__)

POWERED_BY = "NLU Studio"


def _error(status_code: int, message: str, error_code: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, error_code=error_code).model_dump(mode="json"),
        headers=headers,
    )


class BodyLimitMiddleware:
    """Rejects request bodies over ``limit_bytes`` with 413.

    A declared ``Content-Length`` is checked up front. Bodies without one
    (chunked uploads) are read here, counted as they stream in and replayed
    to the application once complete.
    """

    def __init__(self, app, limit_bytes: int) -> None:
        self.app = app
        self.limit_bytes = limit_bytes

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            try:
                too_large = int(content_length) > self.limit_bytes
            except ValueError:
                await _error(400, "Invalid Content-Length header", "INVALID_INPUT")(scope, receive, send)
                return
            if too_large:
                await self._reject(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.limit_bytes:
                await self._reject(scope, receive, send)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        replayed = False

        async def replay_receive():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)

    async def _reject(self, scope, receive, send) -> None:
        response = _error(413, f"Request body exceeds {self.limit_bytes} bytes", "PAYLOAD_TOO_LARGE")
        await response(scope, receive, send)


def install_body_limit_middleware(app, *, limit_bytes: int) -> None:
    app.add_middleware(BodyLimitMiddleware, limit_bytes=limit_bytes)


def install_request_logging_middleware(app) -> None:
    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):  # type: ignore[no-redef]
        client_host = request.client.host if request.client else "unknown"
        logger.debug(f"incoming {request.url.path} from {client_host}")
        response = await call_next(request)
        response.headers["X-Powered-By"] = POWERED_BY
        return response


def install_error_middleware(app, *, debug: bool = False) -> None:
    @app.middleware("http")
    async def unexpected_error_middleware(request: Request, call_next):  # type: ignore[no-redef]
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception on {request.method} {request.url.path}: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="An unexpected error occurred.",
                    error_code="INTERNAL_SERVER_ERROR",
                    detail=str(e) if debug else None,
                ).model_dump(mode="json"),
            )


class _Window:
    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self.hits = 0


class FixedWindowRateLimiter:
    """Allows ``limit`` requests per client during each ``window`` seconds."""

    def __init__(self, limit: int, window: float, max_entries: int = 10_000) -> None:
        self._limit = limit
        self._window = window
        self._max_entries = max_entries
        self._windows: OrderedDict[str, _Window] = OrderedDict()
        self._lock = threading.Lock()

    def allow(self, key: str) -> Tuple[bool, float]:
        now = time.monotonic()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self._window:
                window = _Window(started_at=now)
                self._windows[key] = window
            self._windows.move_to_end(key)
            if len(self._windows) > self._max_entries:
                self._windows.popitem(last=False)
            if window.hits < self._limit:
                window.hits += 1
                return True, 0.0
            return False, max(0.0, self._window - (now - window.started_at))


def install_rate_limit_middleware(app, *, rate_limiter: FixedWindowRateLimiter) -> None:
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):  # type: ignore[no-redef]
        client_host = request.client.host if request.client else "unknown"
        allowed, retry_after = rate_limiter.allow(client_host)
        if not allowed:
            return _error(
                429,
                "Too many requests, please slow down",
                "RATE_LIMITED",
                headers={"Retry-After": f"{int(retry_after) + 1}"},
            )
        return await call_next(request)


def install_auth_middleware(app, *, tokens: Iterable[Optional[str]]) -> None:
    accepted = [token for token in tokens if token]

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):  # type: ignore[no-redef]
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            return _error(401, "Unauthorized", "UNAUTHORIZED")
        token = auth.split(" ", 1)[1].strip()
        if not any(hmac.compare_digest(token.encode(), candidate.encode()) for candidate in accepted):
            logger.warning(f"Rejected request to {request.url.path} with an invalid token")
            return _error(401, "Unauthorized", "UNAUTHORIZED")
        return await call_next(request)
