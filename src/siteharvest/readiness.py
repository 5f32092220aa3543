# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Challenge-aware page readiness state machine.

Rendered pages go through a fixed sequence of stages::

    LAUNCH → NAVIGATE → AWAIT_BODY → AWAIT_CHALLENGE_CLEAR → SETTLE → HARVEST

Only navigation failures are fatal. Every other bounded wait reports a
``WaitOutcome`` and the machine moves on, so a page stuck behind a
bot-challenge interstitial still yields whatever it rendered.

The controller talks to the renderer through the small ``PageDriver``
protocol; ``BrowserSession`` implements it, tests use fakes.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from .config import CONTENT_TIMEOUTS, ReadinessTimeouts
from .errors import NavigationError, PageTimeoutError
from .pipeline_timer import PipelineTimer

logger = logging.getLogger(__name__)


class WaitOutcome(StrEnum):
    MET = "met"
    TIMED_OUT_CONTINUE = "timed_out_continue"
    TIMED_OUT_FAIL = "timed_out_fail"


class Stage(StrEnum):
    LAUNCH = "launch"
    NAVIGATE = "navigate"
    AWAIT_BODY = "await_body"
    AWAIT_CHALLENGE_CLEAR = "await_challenge_clear"
    SETTLE = "settle"
    HARVEST = "harvest"


# What a deadline means at each bounded stage.
TIMEOUT_POLICY: dict[Stage, WaitOutcome] = {
    Stage.NAVIGATE: WaitOutcome.TIMED_OUT_FAIL,
    Stage.AWAIT_BODY: WaitOutcome.TIMED_OUT_CONTINUE,
    Stage.AWAIT_CHALLENGE_CLEAR: WaitOutcome.TIMED_OUT_CONTINUE,
}

# Interstitial markers (Cloudflare and similar), matched against body text and title.
CHALLENGE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"just a moment",
        r"checking your browser",
        r"attention required",
        r"verify you are human",
        r"access denied",
        r"cloudflare",
    )
)


def matches_challenge(
    body_text: str,
    title: str,
    patterns: Iterable[re.Pattern[str]] = CHALLENGE_PATTERNS,
) -> bool:
    """True when the body text or the title looks like a challenge page."""
    return any(p.search(body_text) or p.search(title) for p in patterns)


class PageDriver(Protocol):
    async def goto(self, url: str, *, wait_until: str, timeout_s: float) -> int | None: ...

    async def wait_for_body(self, timeout_s: float) -> bool: ...

    async def challenge_probe(self) -> tuple[str, str]: ...

    async def content(self) -> str: ...

    async def url(self) -> str: ...

    async def screenshot(self, *, full_page: bool = True) -> bytes: ...


@dataclass
class ReadinessReport:
    """Result of one pass through the state machine."""

    url: str
    final_url: str = ""
    status: int | None = None
    outcomes: dict[str, WaitOutcome] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)
    html: str = ""
    screenshot: bytes | None = None

    @property
    def challenge_cleared(self) -> bool:
        return self.outcomes.get(Stage.AWAIT_CHALLENGE_CLEAR) == WaitOutcome.MET


class ReadinessController:
    """Drive a page from navigation to a harvestable state."""

    def __init__(
        self,
        driver: PageDriver,
        timeouts: ReadinessTimeouts = CONTENT_TIMEOUTS,
        *,
        patterns: Iterable[re.Pattern[str]] = CHALLENGE_PATTERNS,
        timer: PipelineTimer | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.driver = driver
        self.timeouts = timeouts
        self.patterns = tuple(patterns)
        self.timer = timer or PipelineTimer()
        self._sleep = sleep

    async def navigate(self, url: str) -> int | None:
        """Load *url*. Raises NetworkError / PageTimeoutError (fatal)."""
        return await self.driver.goto(
            url,
            wait_until=self.timeouts.wait_until,
            timeout_s=self.timeouts.navigation,
        )

    async def await_body(self) -> WaitOutcome:
        if await self.driver.wait_for_body(self.timeouts.body):
            return WaitOutcome.MET
        logger.warning("No <body> after %.0fs, continuing", self.timeouts.body)
        return TIMEOUT_POLICY[Stage.AWAIT_BODY]

    async def await_challenge_clear(self) -> WaitOutcome:
        """Poll until no challenge marker is visible.

        Bounded both by wall-clock deadline and by poll count. On timeout
        the grace delay is applied once before moving on.
        """
        interval = max(self.timeouts.poll_interval, 0.01)
        max_polls = max(1, math.ceil(self.timeouts.challenge / interval))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeouts.challenge

        for attempt in range(max_polls + 1):
            remaining = max(deadline - loop.time(), interval)
            try:
                body_text, title = await asyncio.wait_for(self.driver.challenge_probe(), remaining)
            except Exception:
                # Challenge pages often navigate mid-probe; treat as still pending.
                logger.debug("Challenge probe failed (attempt %d)", attempt, exc_info=True)
                body_text, title = "", "just a moment"
            if not matches_challenge(body_text, title, self.patterns):
                if attempt:
                    logger.info("Challenge cleared after %d polls", attempt)
                return WaitOutcome.MET
            if attempt == max_polls or loop.time() >= deadline:
                break
            await self._sleep(interval)

        logger.warning(
            "Challenge still present after %.0fs, waiting %.0fs grace and continuing",
            self.timeouts.challenge,
            self.timeouts.challenge_grace,
        )
        await self._sleep(self.timeouts.challenge_grace)
        return TIMEOUT_POLICY[Stage.AWAIT_CHALLENGE_CLEAR]

    async def settle(self) -> None:
        await self._sleep(self.timeouts.settle)

    async def harvest(self, report: ReadinessReport, *, screenshot: bool = False) -> None:
        report.final_url = await self.driver.url()
        if screenshot:
            report.screenshot = await self.driver.screenshot(full_page=True)
        else:
            report.html = await self.driver.content()

    async def run(self, url: str, *, screenshot: bool = False) -> ReadinessReport:
        """Navigate, wait out the page, and harvest HTML (or a screenshot)."""
        report = ReadinessReport(url=url)
        timer = self.timer
        try:
            timer.stage(Stage.NAVIGATE)
            try:
                report.status = await self.navigate(url)
            except PageTimeoutError as exc:
                report.outcomes[Stage.NAVIGATE] = TIMEOUT_POLICY[Stage.NAVIGATE]
                exc.diagnostics = timer.timeout_report()
                raise
            except NavigationError as exc:
                exc.diagnostics = {"failed_stage": Stage.NAVIGATE.value, **timer.elapsed_per_stage()}
                raise
            report.outcomes[Stage.NAVIGATE] = WaitOutcome.MET

            timer.stage(Stage.AWAIT_BODY)
            report.outcomes[Stage.AWAIT_BODY] = await self.await_body()

            timer.stage(Stage.AWAIT_CHALLENGE_CLEAR)
            report.outcomes[Stage.AWAIT_CHALLENGE_CLEAR] = await self.await_challenge_clear()

            timer.stage(Stage.SETTLE)
            await self.settle()

            timer.stage(Stage.HARVEST)
            await self.harvest(report, screenshot=screenshot)
        finally:
            timer.finalize()
            report.timings = timer.elapsed_per_stage()

        logger.info(
            "Page ready: status=%s challenge=%s total=%.0fms",
            report.status,
            report.outcomes[Stage.AWAIT_CHALLENGE_CLEAR].value,
            timer.total_ms(),
        )
        return report
