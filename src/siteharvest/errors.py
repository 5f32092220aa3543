# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SiteHarvest exception hierarchy.

All SiteHarvest-specific errors inherit from SiteHarvestError, allowing
callers to catch the base class for any extraction failure or specific
subclasses for targeted handling.

Only InputError, NetworkError, PageTimeoutError and UpstreamStatusError are
meant to reach the caller. Partial-data conditions (a stylesheet that failed
to load, an unresolved CSS variable, a challenge page that never cleared)
are absorbed where they happen and never raised.
"""

from __future__ import annotations


class SiteHarvestError(Exception):
    """Base exception for all SiteHarvest errors."""


class InputError(SiteHarvestError):
    """Missing or malformed request input (raised before any network I/O)."""

    def __init__(self, message: str, *, field_name: str = "url") -> None:
        super().__init__(message)
        self.field_name = field_name


class BrowserError(SiteHarvestError):
    """Browser session launch or teardown failure."""


class NavigationError(SiteHarvestError):
    """Navigation to the target URL failed.

    ``diagnostics`` holds the stage-timing report when the failure happened
    inside the readiness state machine.
    """

    def __init__(self, message: str, *, url: str = "", diagnostics: dict | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.diagnostics = diagnostics


class NetworkError(NavigationError):
    """Target host could not be resolved or reached."""


class PageTimeoutError(NavigationError, TimeoutError):
    """A fatal deadline (navigation, primary fetch) elapsed."""


class UpstreamStatusError(SiteHarvestError):
    """Primary document fetch returned a non-2xx status."""

    def __init__(self, message: str, *, status_code: int, url: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
