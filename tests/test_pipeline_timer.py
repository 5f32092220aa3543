# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PipelineTimer stage bookkeeping and timeout diagnostics."""

from __future__ import annotations

from siteharvest.pipeline_timer import PipelineTimer
from siteharvest.readiness import Stage


class TestPipelineTimer:
    def test_stages_in_order(self):
        timer = PipelineTimer()
        for stage in (Stage.LAUNCH, Stage.NAVIGATE, Stage.AWAIT_BODY):
            timer.stage(stage)
        timer.finalize()
        stages = timer.elapsed_per_stage()
        assert list(stages) == ["launch", "navigate", "await_body"]
        assert all(v >= 0 for v in stages.values())
        assert timer.current_stage is None

    def test_open_stage_reported(self):
        timer = PipelineTimer()
        timer.stage("settle")
        assert timer.current_stage == "settle"
        assert "settle" in timer.elapsed_per_stage()

    def test_timeout_report(self):
        timer = PipelineTimer()
        timer.stage(Stage.LAUNCH)
        timer.stage(Stage.NAVIGATE)
        report = timer.timeout_report()
        assert report["error"] == "timeout"
        assert report["timed_out_at"] == "navigate"
        assert [s["stage"] for s in report["completed_stages"]] == ["launch"]
        assert report["hint"] == "The website took too long to respond."
        assert report["total_ms"] >= report["timed_out_stage_ms"]

    def test_timeout_report_after_finalize_names_last_stage(self):
        timer = PipelineTimer()
        timer.stage(Stage.HARVEST)
        timer.finalize()
        report = timer.timeout_report()
        assert report["timed_out_at"] == "harvest"
        assert report["timed_out_stage_ms"] == 0

    def test_timeout_report_without_stages(self):
        report = PipelineTimer().timeout_report()
        assert report["timed_out_at"] == "unknown"
        assert report["completed_stages"] == []

    def test_hints(self):
        assert "Chromium" in PipelineTimer.hint_for_stage("launch")
        assert PipelineTimer.hint_for_stage("await_body") == "Timed out during 'await_body' stage."

    def test_durations_from_injected_clock(self):
        ticks = iter([0.0, 0.0, 0.25, 1.75, 2.0])
        timer = PipelineTimer(clock=lambda: next(ticks))
        timer.stage(Stage.NAVIGATE)
        timer.stage(Stage.SETTLE)
        report = timer.timeout_report()
        assert report["completed_stages"] == [{"stage": "navigate", "ms": 250.0}]
        assert report["timed_out_at"] == "settle"
        assert report["timed_out_stage_ms"] == 1500.0
        assert report["total_ms"] == 1750.0

    def test_finalize_twice_is_harmless(self):
        timer = PipelineTimer()
        timer.stage(Stage.LAUNCH)
        timer.finalize()
        timer.finalize()
        assert list(timer.elapsed_per_stage()) == ["launch"]
