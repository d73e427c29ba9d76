"""Tests for studio_producer/agent/progress.py -- stage bands, monotonic overall %, run tracking."""

import pytest

from studio_producer.agent.progress import (
    STAGE_BANDS,
    ProgressEmitter,
    RunTracker,
    calculate_overall_percentage,
    emit_progress,
    stage_for_event,
)
from studio_producer.models import ProgressEvent, SubagentName


# ---------------------------------------------------------------------------
# calculate_overall_percentage
# ---------------------------------------------------------------------------

class TestOverallPercentage:

    @pytest.mark.parametrize("stage", list(SubagentName))
    def test_stays_inside_band(self, stage):
        offset, weight = STAGE_BANDS[stage]
        for local in (0, 25, 50, 99, 100):
            pct = calculate_overall_percentage(stage, local)
            assert offset <= pct <= offset + weight

    @pytest.mark.parametrize("stage", list(SubagentName))
    def test_monotonic_in_local(self, stage):
        values = [calculate_overall_percentage(stage, p) for p in range(0, 101, 5)]
        assert values == sorted(values)

    def test_out_of_range_is_clamped(self):
        assert calculate_overall_percentage(SubagentName.MEDIA, -20) == 40
        assert calculate_overall_percentage(SubagentName.MEDIA, 250) == 80

    def test_band_edges(self):
        assert calculate_overall_percentage(SubagentName.IMPORT, 0) == 0
        assert calculate_overall_percentage(SubagentName.CONTENT, 50) == 25
        assert calculate_overall_percentage(SubagentName.ENHANCEMENT_EXPORT, 100) == 100

    def test_accepts_plain_stage_string(self):
        assert calculate_overall_percentage("content", 100) == 40

    def test_bands_cover_whole_scale(self):
        ordered = sorted(STAGE_BANDS.values())
        assert ordered[0][0] == 0
        for (off_a, w_a), (off_b, _) in zip(ordered, ordered[1:]):
            assert off_a + w_a == off_b
        assert ordered[-1][0] + ordered[-1][1] == 100


class TestStageForEvent:

    def test_resolves_suffixed_tags(self):
        assert stage_for_event("media_tool_call") == SubagentName.MEDIA
        assert stage_for_event("content_starting") == SubagentName.CONTENT
        assert stage_for_event("enhancement_export_complete") == SubagentName.ENHANCEMENT_EXPORT
        assert stage_for_event("import") == SubagentName.IMPORT

    def test_unknown_tags(self):
        assert stage_for_event("supervisor_processing") is None
        assert stage_for_event("production_complete") is None
        assert stage_for_event("mediafile") is None


# ---------------------------------------------------------------------------
# ProgressEmitter
# ---------------------------------------------------------------------------

class TestProgressEmitter:

    def test_sets_overall_progress_on_events(self):
        seen = []
        emitter = ProgressEmitter(seen.append)
        emitter(ProgressEvent(stage="content_starting", message="start"))
        emitter(ProgressEvent(stage="content_processing", message="work", iteration=3, max_iterations=6))
        emitter(ProgressEvent(stage="content_complete", message="done"))
        assert [e.progress for e in seen] == [10.0, 25.0, 40.0]

    def test_never_goes_backwards_on_retry(self):
        emitter = ProgressEmitter()
        emitter(ProgressEvent(stage="media_starting", message="a"))
        emitter(ProgressEvent(stage="media_processing", message="b", iteration=8, max_iterations=10))
        high = emitter.overall
        # retry attempt starts the stage over
        emitter(ProgressEvent(stage="media_starting", message="retry"))
        emitter(ProgressEvent(stage="media_processing", message="c", iteration=1, max_iterations=10))
        assert emitter.overall == high
        progresses = [e.progress for e in emitter.events]
        assert progresses == sorted(progresses)

    def test_processing_never_reports_full_stage(self):
        emitter = ProgressEmitter()
        emitter(ProgressEvent(stage="import_processing", message="x", iteration=10, max_iterations=10))
        assert emitter.overall < 10

    def test_explicit_progress_is_kept(self):
        emitter = ProgressEmitter()
        event = ProgressEvent(stage="production_complete", message="done", progress=100.0)
        emitter(event)
        assert event.progress == 100.0

    def test_events_without_stage_keep_current_overall(self):
        emitter = ProgressEmitter()
        emitter(ProgressEvent(stage="content_complete", message="done"))
        event = ProgressEvent(stage="supervisor_tool_call", message="delegating")
        emitter(event)
        assert event.progress == 40.0

    def test_failing_callback_is_swallowed(self):
        def broken(event):
            raise RuntimeError("ui disconnected")

        emitter = ProgressEmitter(broken)
        emitter(ProgressEvent(stage="media_starting", message="a"))
        assert len(emitter.events) == 1


def test_emit_progress_with_no_callback():
    emit_progress(None, ProgressEvent(stage="x", message="y"))


# ---------------------------------------------------------------------------
# RunTracker
# ---------------------------------------------------------------------------

class TestRunTracker:

    def test_records_stage_outcomes_from_events(self):
        tracker = RunTracker()
        tracker.start_run()
        tracker(ProgressEvent(stage="content_starting", message="a"))
        tracker(ProgressEvent(stage="content_complete", message="b"))
        tracker(ProgressEvent(stage="media_starting", message="c"))
        tracker(ProgressEvent(stage="media_fallback", message="d"))
        tracker(ProgressEvent(stage="enhancement_export_starting", message="e"))
        tracker(ProgressEvent(stage="enhancement_export_failed", message="f"))
        outcomes = [(c["stage"], c["success"], c["fallback"]) for c in tracker.completed]
        assert outcomes == [
            (SubagentName.CONTENT, True, False),
            (SubagentName.MEDIA, False, True),
            (SubagentName.ENHANCEMENT_EXPORT, False, False),
        ]

    def test_retry_start_does_not_reset_timer(self):
        tracker = RunTracker()
        tracker.stage_started(SubagentName.MEDIA)
        first = tracker._stage_start[SubagentName.MEDIA]
        tracker.stage_started(SubagentName.MEDIA)
        assert tracker._stage_start[SubagentName.MEDIA] == first

    def test_ignores_non_stage_events(self):
        tracker = RunTracker()
        tracker(ProgressEvent(stage="supervisor_processing", message="thinking"))
        tracker(ProgressEvent(stage="media_tool_call", message="tool"))
        assert tracker.completed == []

    def test_summary_lists_stages(self):
        tracker = RunTracker()
        tracker.start_run()
        tracker.stage_started(SubagentName.CONTENT)
        tracker.stage_finished(SubagentName.CONTENT, success=True)
        lines = tracker.summary_lines()
        assert any("PRODUCTION SUMMARY" in line for line in lines)
        assert any("Content Planning" in line and "ok" in line for line in lines)
