from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 80 * 1024 * 1024


class BodyGuardMiddleware(BaseHTTPMiddleware):
    """Reject API requests whose body exceeds ``max_bytes`` before JSON parsing."""

    WATCH_PATH_PREFIXES = ("/api/",)

    def __init__(self, app, *, max_bytes: int | None = None, **_: Any) -> None:  # type: ignore[override]
        self.max_bytes = self._normalise_limit(max_bytes, DEFAULT_MAX_BODY_BYTES)
        super().__init__(app)

    @staticmethod
    def _normalise_limit(candidate: int | None, fallback: int) -> int | None:
        if candidate is None:
            candidate = fallback
        if candidate <= 0:
            return None
        return candidate

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_bytes is None:
            return False
        if content_length and content_length > self.max_bytes:
            return True
        return body_len > self.max_bytes

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.WATCH_PATH_PREFIXES):
            return await call_next(request)

        rid = getattr(request.state, "trace_id", None) or request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        if self._too_large(content_length, 0):
            body = b""
        else:
            body = await request.body()
        size = len(body)

        if self._too_large(content_length, size):
            logger.warning(
                "[guard] rid=%s path=%s rejected cl=%s size=%s limit=%s",
                rid,
                path,
                content_length_header,
                size,
                self.max_bytes,
            )
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "error": "REQUEST_BODY_TOO_LARGE",
                    "message": f"Request body exceeds {self.max_bytes} bytes",
                },
            )

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        logger.info(
            "[guard] rid=%s path=%s status=%s size=%s dur_ms=%s",
            rid,
            path,
            response.status_code,
            size,
            int((time.time() - start) * 1000),
        )
        return response


__all__ = ["BodyGuardMiddleware"]
