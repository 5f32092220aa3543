# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for HTTP APIs.

Maps SiteHarvest exceptions (and raw Chromium / resolver error messages) to
standardised problem detail objects. Near-leaf dependency (stdlib +
errors.py + starlette lazy) so it can be imported safely from any layer.

Key public API:

- ``ProblemType``: 6-member StrEnum error taxonomy.
- ``ProblemDetail``: frozen dataclass (→ JSON / Starlette response / CLI text).
- ``sanitize_detail()``: scrub secrets & paths from error messages.
- ``from_exception()`` / ``from_validation()``: factories.
- ``classify_network_error()`` / ``is_resolution_failure()``: message
  classifiers shared with the browser session and the fetcher.

Every serialized problem also carries an ``error`` member holding the
human-readable message, for clients that only look for that key.

Type URI namespace: ``https://www.retio.ai/siteharvest/errors/{slug}``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# ── Constants ────────────────────────────────────────────────────────

_ERROR_BASE = "https://www.retio.ai/siteharvest/errors"

MAX_DETAIL_LENGTH = 200

HOST_UNREACHABLE_MESSAGE = "Unable to reach the website. Please check the URL."
TIMEOUT_MESSAGE = "Request timed out. The website took too long to respond."
GENERIC_FAILURE_MESSAGE = "Failed to extract content from the website."

# ── ProblemType taxonomy ─────────────────────────────────────────────


class ProblemType(StrEnum):
    """Error taxonomy for SiteHarvest."""

    INVALID_URL = "invalid-url"
    HOST_UNREACHABLE = "host-unreachable"
    PAGE_TIMEOUT = "page-timeout"
    UPSTREAM_STATUS = "upstream-status"
    BROWSER_UNAVAILABLE = "browser-unavailable"
    EXTRACTION_FAILED = "extraction-failed"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


# ── Per-type metadata: (status, title) ───────────────────────────────

_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.INVALID_URL: (400, "Invalid URL"),
    ProblemType.HOST_UNREACHABLE: (400, "Host Unreachable"),
    ProblemType.PAGE_TIMEOUT: (408, "Page Timed Out"),
    ProblemType.UPSTREAM_STATUS: (502, "Upstream Error Status"),
    ProblemType.BROWSER_UNAVAILABLE: (503, "Browser Unavailable"),
    ProblemType.EXTRACTION_FAILED: (500, "Extraction Failed"),
}

# ── Secret sanitization patterns ─────────────────────────────────────

_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"sk-[a-zA-Z0-9_-]{8,}"), "<redacted>"),
    (re.compile(r"Bearer\s+\S+"), "Bearer <redacted>"),
    (
        re.compile(
            r"(?:API_KEY|SECRET|TOKEN|PASSWORD|CREDENTIAL)\s*[=:]\s*\S+",
            re.IGNORECASE,
        ),
        "<redacted>",
    ),
    (re.compile(r"Basic\s+[A-Za-z0-9+/=]{8,}"), "Basic <redacted>"),
    (re.compile(r"://[^@\s/]+@"), "://<redacted>@"),
    (re.compile(r"AKIA[0-9A-Z]{16}"), "<redacted>"),
]

_PATH_PATTERN = re.compile(
    r"(/(?:Users|home|tmp|var|etc|opt|root|srv|proc|sys|usr|Library"
    r"|Applications|private|snap|mnt|media|nix)/[\w./-]+"
    r"|[A-Z]:\\[\w.\\-]+)"
)

# ── Network error classification ─────────────────────────────────────

_NET_ERR_RE = re.compile(r"net::ERR_(\w+)")

# Resolver failures as reported by Chromium, Node-style errno names and glibc.
_RESOLUTION_RE = re.compile(
    r"ERR_NAME_NOT_RESOLVED|ENOTFOUND|EAI_AGAIN|Name or service not known"
    r"|nodename nor servname|getaddrinfo failed|Temporary failure in name resolution",
    re.IGNORECASE,
)
_TIMEOUT_RE = re.compile(r"ETIMEDOUT|ERR_TIMED_OUT|ERR_CONNECTION_TIMED_OUT", re.IGNORECASE)

_CONNECTION_CODES = {
    "CONNECTION_REFUSED",
    "CONNECTION_CLOSED",
    "CONNECTION_RESET",
    "ADDRESS_UNREACHABLE",
    "INTERNET_DISCONNECTED",
}

_HOSTNAME_RE = re.compile(r"https?://([^/:\s]+)")


def is_resolution_failure(message: str) -> bool:
    """True when *message* reports a host that could not be resolved."""
    return bool(_RESOLUTION_RE.search(message))


def classify_network_error(exc_message: str) -> tuple[ProblemType, str] | None:
    """Classify a raw network error message into a ProblemType + human message.

    Returns ``None`` if *exc_message* carries no recognisable network code.
    """
    if is_resolution_failure(exc_message):
        return ProblemType.HOST_UNREACHABLE, HOST_UNREACHABLE_MESSAGE
    if _TIMEOUT_RE.search(exc_message):
        return ProblemType.PAGE_TIMEOUT, TIMEOUT_MESSAGE

    m = _NET_ERR_RE.search(exc_message)
    if m is None:
        return None
    code = m.group(1)

    if code in _CONNECTION_CODES:
        return ProblemType.HOST_UNREACHABLE, HOST_UNREACHABLE_MESSAGE

    hm = _HOSTNAME_RE.search(exc_message)
    hostname = hm.group(1) if hm else ""
    if "CERT" in code or "SSL" in code:
        host_part = f" for '{hostname}'" if hostname else ""
        return ProblemType.EXTRACTION_FAILED, f"SSL/TLS error{host_part}"

    return ProblemType.EXTRACTION_FAILED, f"Navigation failed (net::ERR_{code})"


# ── CLI-specific recovery hints ──────────────────────────────────────

_CLI_HINTS: dict[str, str] = {
    ProblemType.INVALID_URL.uri: "Provide an absolute http:// or https:// URL.",
    ProblemType.HOST_UNREACHABLE.uri: "Check the URL spelling and ensure the domain exists.",
    ProblemType.PAGE_TIMEOUT.uri: "Try again, or use --timeout-profile extended for slow sites.",
    ProblemType.BROWSER_UNAVAILABLE.uri: "Ensure Chromium is installed: playwright install chromium",
    ProblemType.UPSTREAM_STATUS.uri: "The site refused the request. Try --mode rendered.",
}


def sanitize_detail(text: str) -> str:
    """Scrub secrets and filesystem paths from *text*.

    Applies ``_SECRET_PATTERNS`` and ``_PATH_PATTERN``, then truncates
    to ``MAX_DETAIL_LENGTH`` characters.
    """
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    text = _PATH_PATTERN.sub("<path>", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


def _sanitize_extensions(extensions: dict[str, Any]) -> dict[str, Any]:
    """Sanitize string values in extensions dict."""
    result: dict[str, Any] = {}
    for key, value in extensions.items():
        if isinstance(value, str):
            result[key] = sanitize_detail(value)
        else:
            result[key] = value
    return result


# ── ProblemDetail dataclass ──────────────────────────────────────────

# Standard RFC 9457 fields (plus ``error``) that extensions must never shadow.
_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance", "error"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    # -- Serialisation --

    def to_dict(self) -> dict[str, Any]:
        """RFC 9457 JSON dict.  Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        d["error"] = self.detail or self.title or "Internal error"
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_json(self) -> str:
        """JSON string (``ensure_ascii=False``)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self):
        """Starlette ``JSONResponse`` with RFC 9457 headers."""
        from starlette.responses import JSONResponse

        headers: dict[str, str] = {
            "Cache-Control": "no-store",
            "Content-Language": "en",
        }
        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers=headers,
        )

    def to_cli_text(self) -> str:
        """Human-friendly CLI error message.

        Format::

            Error: <detail>
            Hint: <hint>
        """
        hint = _CLI_HINTS.get(self.type, "")
        lines = [f"Error: {self.detail or self.title}"]
        if hint:
            lines.append(f"Hint: {hint}")
        return "\n".join(lines)


def _build(
    problem_type: ProblemType,
    detail: str,
    *,
    status: int | None = None,
    instance: str = "",
    extensions: dict[str, Any] | None = None,
) -> ProblemDetail:
    default_status, title = _TYPE_METADATA[problem_type]
    return ProblemDetail(
        type=problem_type.uri,
        title=title,
        status=status if status is not None else default_status,
        detail=sanitize_detail(detail),
        instance=instance,
        extensions=_sanitize_extensions(extensions or {}),
    )


# ── Factory functions ────────────────────────────────────────────────


def from_exception(
    exc: BaseException,
    *,
    instance: str = "",
    extensions: dict[str, Any] | None = None,
) -> ProblemDetail:
    """Build a ProblemDetail from an exception.

    Known SiteHarvest exception types map to a specific ProblemType. Any
    other exception is classified by its message (Chromium ``net::ERR_*``
    codes, resolver errno names) and otherwise becomes a 500.
    """
    from .errors import BrowserError, InputError, NetworkError, UpstreamStatusError

    ext = dict(extensions) if extensions else {}

    if isinstance(exc, InputError):
        ext.setdefault("field", exc.field_name)
        return _build(ProblemType.INVALID_URL, str(exc), instance=instance, extensions=ext)

    if isinstance(exc, NetworkError):
        return _build(ProblemType.HOST_UNREACHABLE, HOST_UNREACHABLE_MESSAGE, instance=instance, extensions=ext)

    # PageTimeoutError, asyncio deadlines and httpx/Playwright timeouts translated upstream
    if isinstance(exc, TimeoutError):
        return _build(ProblemType.PAGE_TIMEOUT, TIMEOUT_MESSAGE, instance=instance, extensions=ext)

    if isinstance(exc, UpstreamStatusError):
        ext.setdefault("upstream_status", exc.status_code)
        status = exc.status_code if 400 <= exc.status_code <= 599 else None
        return _build(
            ProblemType.UPSTREAM_STATUS,
            f"Failed to fetch page: HTTP {exc.status_code}",
            status=status,
            instance=instance,
            extensions=ext,
        )

    if isinstance(exc, BrowserError):
        return _build(ProblemType.BROWSER_UNAVAILABLE, str(exc), instance=instance, extensions=ext)

    net_result = classify_network_error(str(exc))
    if net_result is not None:
        problem_type, human_msg = net_result
        return _build(problem_type, human_msg, instance=instance, extensions=ext)

    from .errors import SiteHarvestError

    if isinstance(exc, SiteHarvestError):
        return _build(ProblemType.EXTRACTION_FAILED, str(exc), instance=instance, extensions=ext)

    # Unknown exceptions: fixed message, internal state never leaks.
    return _build(ProblemType.EXTRACTION_FAILED, GENERIC_FAILURE_MESSAGE, instance=instance, extensions=ext)


def from_validation(
    detail: str,
    *,
    field_name: str = "url",
    instance: str = "",
) -> ProblemDetail:
    """Build a 400 ProblemDetail for request validation errors."""
    ext: dict[str, Any] = {}
    if field_name:
        ext["field"] = field_name
    return _build(ProblemType.INVALID_URL, detail, instance=instance, extensions=ext)
