# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import siteharvest  # noqa: F401
except ImportError:
    raise ImportError("siteharvest is not installed. Run: pip install -e '.[dev]'") from None

import pytest


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Rendered-mode tests pass a fake ``session_factory`` (see
    ``tests/_fakes.py``). Tests that forget to will get a clear error
    instead of silently trying to launch Chromium.

    Tests that really need a browser can opt out with::

        @pytest.mark.allow_real_browser
    """
    if "allow_real_browser" in request.keywords:
        return

    async def _no_real_browser(self):
        raise RuntimeError("Test tried to launch a real browser. Pass a fake session_factory in your test.")

    monkeypatch.setattr("siteharvest.browser_session.BrowserSession.start", _no_real_browser)
