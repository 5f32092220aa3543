# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session for rendered-mode extraction.

One session per request: Chromium is launched with a fixed realistic
identity, used for a single navigation and always closed afterwards.
Playwright errors are translated into SiteHarvest navigation errors here so
that callers never depend on Playwright exception types.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from playwright.async_api import Browser, BrowserContext, Dialog, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from . import StylesheetSource
from .config import DEFAULT_ACCEPT_LANGUAGE, DEFAULT_USER_AGENT
from .errors import BrowserError, NavigationError, NetworkError, PageTimeoutError
from .problem_details import is_resolution_failure

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
CONTENT_VIEWPORT = (1366, 768)
SCREENSHOT_VIEWPORT = (1920, 1080)


@dataclass(frozen=True)
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    viewport_width: int = CONTENT_VIEWPORT[0]
    viewport_height: int = CONTENT_VIEWPORT[1]
    device_scale_factor: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE


def screenshot_config(headless: bool = True) -> BrowserConfig:
    return BrowserConfig(
        headless=headless,
        viewport_width=SCREENSHOT_VIEWPORT[0],
        viewport_height=SCREENSHOT_VIEWPORT[1],
    )


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds (Chromium ~140MB download)


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium' …")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    """Chromium flags for containerized, low-fingerprint headless runs."""
    return [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-blink-features=AutomationControlled",
        f"--window-size={config.viewport_width},{config.viewport_height}",
        f"--lang={config.locale}",
        "--no-first-run",
        "--disable-extensions",
        "--disable-breakpad",
        "--noerrdialogs",
    ]


# ── Page-side scripts (static, no interpolation) ─────────────────

_CHALLENGE_PROBE_JS = """() => [
    document.body ? (document.body.innerText || "") : "",
    document.title || ""
]"""

_STYLESHEETS_JS = """() => Array.from(document.styleSheets).map(sheet => {
    let text = null;
    try {
        text = Array.from(sheet.cssRules).map(rule => rule.cssText).join("\\n");
    } catch (e) {
        text = null;
    }
    return { href: sheet.href, text: text };
})"""


class BrowserSession:
    """A single-use Playwright Chromium session."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._page

    async def _launch_browser(self) -> None:
        """Launch Chromium, auto-installing on first 'executable not found' error."""
        args = chromium_launch_args(self.config)
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless, args=args)
        except Exception as exc:
            if "executable doesn't exist" in str(exc).lower():
                if await _auto_install_chromium():
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.config.headless,
                        args=args,
                    )
                else:
                    raise BrowserError(
                        "Chromium is not installed and auto-install failed. Please run: playwright install chromium"
                    ) from exc
            else:
                raise BrowserError(f"Chromium launch failed: {exc}") from exc

    async def start(self) -> None:
        """Launch browser and create the page with the fixed identity."""
        self._playwright = await async_playwright().start()
        await self._launch_browser()
        self._context = await self._browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            device_scale_factor=self.config.device_scale_factor,
            locale=self.config.locale,
            user_agent=self.config.user_agent,
            accept_downloads=False,
            extra_http_headers={"Accept-Language": self.config.accept_language},
        )
        self._context.on("dialog", self._on_dialog)
        self._page = await self._context.new_page()
        logger.info("Browser session started (headless=%s)", self.config.headless)

    async def stop(self) -> None:
        """Close everything. Safe to call on a crashed or half-started session."""
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        self._page = None
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def _on_dialog(self, dialog: Dialog) -> None:
        """Accept alert/beforeunload, dismiss confirm/prompt. Must always answer."""
        try:
            if dialog.type in ("alert", "beforeunload"):
                await dialog.accept()
            else:
                await dialog.dismiss()
            logger.info("JS dialog auto-handled: type=%s message=%.100s", dialog.type, dialog.message)
        except Exception:
            logger.warning("JS dialog handler failed, attempting dismiss fallback", exc_info=True)
            with suppress(Exception):
                await dialog.dismiss()

    # ── Renderer operations used by the readiness controller ─────

    async def goto(self, url: str, *, wait_until: str, timeout_s: float) -> int | None:
        """Navigate; return the HTTP status of the main response (if any)."""
        try:
            response = await self.page.goto(url, wait_until=wait_until, timeout=timeout_s * 1000)
        except PlaywrightTimeoutError as exc:
            raise PageTimeoutError(f"Navigation timed out after {timeout_s:g}s", url=url) from exc
        except PlaywrightError as exc:
            message = str(exc)
            if is_resolution_failure(message):
                raise NetworkError(f"Unable to resolve host for {url}", url=url) from exc
            raise NavigationError(f"Navigation failed: {message.splitlines()[0] if message else exc}", url=url) from exc
        return response.status if response else None

    async def wait_for_body(self, timeout_s: float) -> bool:
        """True once a body element exists, False if the deadline passed."""
        try:
            await self.page.wait_for_selector("body", state="attached", timeout=timeout_s * 1000)
            return True
        except PlaywrightTimeoutError:
            return False

    async def challenge_probe(self) -> tuple[str, str]:
        """Current (body text, title) pair for challenge detection."""
        text, title = await self.page.evaluate(_CHALLENGE_PROBE_JS)
        return text or "", title or ""

    async def content(self) -> str:
        return await self.page.content()

    async def url(self) -> str:
        return self.page.url

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        return await self.page.screenshot(full_page=full_page, type="png")

    async def stylesheets(self) -> tuple[list[StylesheetSource], list[str]]:
        """CSSOM text of readable sheets, plus hrefs of cross-origin ones."""
        readable: list[StylesheetSource] = []
        unreadable: list[str] = []
        try:
            sheets = await self.page.evaluate(_STYLESHEETS_JS)
        except PlaywrightError:
            logger.debug("Stylesheet enumeration failed", exc_info=True)
            return readable, unreadable
        for sheet in sheets or []:
            href = sheet.get("href")
            text = sheet.get("text")
            if not href:
                continue  # embedded <style>, already part of the HTML
            if text is not None:
                readable.append(StylesheetSource(url=href, text=text))
            else:
                unreadable.append(href)
        return readable, unreadable


@asynccontextmanager
async def create_session(config: BrowserConfig | None = None) -> AsyncGenerator[BrowserSession, None]:
    """Context manager to create and always tear down a browser session."""
    session = BrowserSession(config)
    try:
        await session.start()
        yield session
    finally:
        await session.stop()
