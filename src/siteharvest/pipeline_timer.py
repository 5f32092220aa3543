# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stage timer for the rendered-page readiness state machine.

Created before the session is launched so it survives a fatal navigation
error and can still report where the time went. Durations are reported
in milliseconds, rounded to 0.1.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

# Keyed by readiness stage value; stages without an entry get a generic hint.
STAGE_HINTS: dict[str, str] = {
    "launch": "Chromium failed to start in time. Check the browser installation.",
    "navigate": "The website took too long to respond.",
    "harvest": "The rendered page is very large or unresponsive.",
}


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 1)


@dataclass(slots=True)
class Span:
    name: str
    started: float
    ended: float | None = None

    def duration(self, now: float) -> float:
        return (self.ended if self.ended is not None else now) - self.started


class PipelineTimer:
    """Record readiness stage transitions. At most one stage is open."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._spans: list[Span] = []
        self._origin = clock()

    @property
    def _open(self) -> Span | None:
        if self._spans and self._spans[-1].ended is None:
            return self._spans[-1]
        return None

    def stage(self, name: str) -> None:
        """Close the open stage, if any, and open *name*."""
        now = self._clock()
        if (span := self._open) is not None:
            span.ended = now
        self._spans.append(Span(str(name), now))

    def finalize(self) -> None:
        """Close the open stage. Safe to call more than once."""
        if (span := self._open) is not None:
            span.ended = self._clock()

    @property
    def current_stage(self) -> str | None:
        span = self._open
        return span.name if span else None

    def elapsed_per_stage(self) -> dict[str, float]:
        """``{stage: ms}`` in start order, the open stage included."""
        now = self._clock()
        return {span.name: _ms(span.duration(now)) for span in self._spans}

    def total_ms(self) -> float:
        return _ms(self._clock() - self._origin)

    def timeout_report(self) -> dict:
        """Structured diagnostic for a fatal deadline.

        The stage blamed is the open one, else the last one closed.
        """
        now = self._clock()
        open_span = self._open
        closed = [s for s in self._spans if s is not open_span]
        if open_span is not None:
            blamed, blamed_ms = open_span.name, _ms(open_span.duration(now))
        else:
            blamed, blamed_ms = (closed[-1].name if closed else "unknown"), 0
        return {
            "error": "timeout",
            "completed_stages": [{"stage": s.name, "ms": _ms(s.duration(now))} for s in closed],
            "timed_out_at": blamed,
            "timed_out_stage_ms": blamed_ms,
            "total_ms": _ms(now - self._origin),
            "hint": self.hint_for_stage(blamed),
        }

    @staticmethod
    def hint_for_stage(stage: str) -> str:
        return STAGE_HINTS.get(stage, f"Timed out during '{stage}' stage.")
