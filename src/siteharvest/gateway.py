# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Request-ID middleware: propagate ``X-Request-ID`` and bind log context.

Pure ASGI (no BaseHTTPMiddleware, no body buffering). Each HTTP request
gets a request ID, taken from a well-formed incoming ``X-Request-ID``
header or generated, which is:

- stored in ``scope["state"]["request_id"]``
- bound into ``structlog.contextvars`` for every log line of the request
- echoed back in the ``X-Request-ID`` response header
"""

from __future__ import annotations

import logging
import re
import uuid

import structlog

logger = logging.getLogger(__name__)

# Log-injection guard: only [a-zA-Z0-9._-]{1,128} is accepted from clients.
_REQUEST_ID_RE = re.compile(r"^[a-zA-Z0-9._\-]{1,128}$")


def _sanitize_request_id(raw: str | None) -> str:
    """Validate and return request ID, or generate a new one."""
    if raw and _REQUEST_ID_RE.match(raw):
        return raw
    return uuid.uuid4().hex[:12]


def _get_header(raw_headers: list[tuple[bytes, bytes]], name: bytes) -> str | None:
    """Get the first header value by lowercase name."""
    for hdr_name, hdr_value in raw_headers:
        if hdr_name.lower() == name:
            return hdr_value.decode("latin-1").strip()
    return None


class RequestIdMiddleware:
    """Assign a request ID and scope structlog context to the request."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope.setdefault("state", {})
        request_id = _sanitize_request_id(_get_header(scope.get("headers", []), b"x-request-id"))
        scope["state"]["request_id"] = request_id

        _rid_injected = False

        async def _send_with_request_id(message) -> None:
            nonlocal _rid_injected
            if message["type"] == "http.response.start" and not _rid_injected:
                _rid_injected = True
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=scope.get("path", ""))
        try:
            await self.app(scope, receive, _send_with_request_id)
        finally:
            structlog.contextvars.clear_contextvars()
