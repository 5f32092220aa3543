# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Runtime configuration: readiness deadlines, fetch limits, server settings.

Leaf module: no siteharvest imports. All values are immutable; callers
build a new instance with ``dataclasses.replace`` to tune a single field.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True, slots=True)
class ReadinessTimeouts:
    """Deadlines (seconds) for each step of the rendered-page state machine.

    ``navigation`` is fatal when exceeded. ``body`` and ``challenge`` are not:
    the controller continues, applying ``challenge_grace`` after a persistent
    challenge. ``settle`` is an unconditional delay before harvesting.
    """

    navigation: float = 60.0
    body: float = 30.0
    challenge: float = 45.0
    challenge_grace: float = 5.0
    settle: float = 2.0
    poll_interval: float = 0.25
    wait_until: str = "domcontentloaded"


CONTENT_TIMEOUTS = ReadinessTimeouts()
SCREENSHOT_TIMEOUTS = ReadinessTimeouts(challenge_grace=3.0, settle=1.0, wait_until="networkidle")
EXTENDED_TIMEOUTS = ReadinessTimeouts(navigation=90.0, body=60.0, challenge=60.0)

TIMEOUT_PROFILES: dict[str, ReadinessTimeouts] = {
    "content": CONTENT_TIMEOUTS,
    "screenshot": SCREENSHOT_TIMEOUTS,
    "extended": EXTENDED_TIMEOUTS,
}


@dataclass(frozen=True, slots=True)
class FetchConfig:
    """Direct-fetch limits."""

    document_timeout: float = 20.0
    stylesheet_timeout: float = 10.0
    max_stylesheets: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """HTTP server settings (CLI flags > env vars > defaults)."""

    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: tuple[str, ...] = ("*",)
    headless: bool = True
    timeout_profile: str = "content"
    fetch: FetchConfig = field(default_factory=FetchConfig)
    log_level: str = "INFO"

    @property
    def readiness(self) -> ReadinessTimeouts:
        return TIMEOUT_PROFILES.get(self.timeout_profile, CONTENT_TIMEOUTS)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from ``SITEHARVEST_*`` environment variables.

        Unparseable numeric values are ignored (default kept).
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        host = env.get("SITEHARVEST_HOST", "").strip()
        if host:
            kwargs["host"] = host

        port = env.get("SITEHARVEST_PORT", "").strip() or env.get("PORT", "").strip()
        if port:
            with suppress(ValueError):
                kwargs["port"] = int(port)

        cors = env.get("SITEHARVEST_CORS_ORIGIN", "").strip()
        if cors:
            kwargs["cors_origins"] = tuple(o.strip() for o in cors.split(",") if o.strip())

        headless = env.get("SITEHARVEST_HEADLESS", "").strip().lower()
        if headless:
            kwargs["headless"] = headless in _TRUTHY

        profile = env.get("SITEHARVEST_TIMEOUT_PROFILE", "").strip().lower()
        if profile:
            if profile in TIMEOUT_PROFILES:
                kwargs["timeout_profile"] = profile
            else:
                logger.warning("Unknown timeout profile %r, using 'content'", profile)

        fetch_kwargs: dict = {}
        doc_timeout = env.get("SITEHARVEST_FETCH_TIMEOUT", "").strip()
        if doc_timeout:
            with suppress(ValueError):
                fetch_kwargs["document_timeout"] = float(doc_timeout)
        css_timeout = env.get("SITEHARVEST_STYLESHEET_TIMEOUT", "").strip()
        if css_timeout:
            with suppress(ValueError):
                fetch_kwargs["stylesheet_timeout"] = float(css_timeout)
        if fetch_kwargs:
            kwargs["fetch"] = FetchConfig(**fetch_kwargs)

        level = env.get("SITEHARVEST_LOG_LEVEL", "").strip()
        if level:
            kwargs["log_level"] = level.upper()

        return cls(**kwargs)
