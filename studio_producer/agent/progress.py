"""
studio_producer/agent/progress.py — Progress aggregation and run tracking.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from studio_producer.models import ProgressCallback, ProgressEvent, SubagentName

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stage bands: (offset, weight) of the overall 0-100 scale
# ---------------------------------------------------------------------------
STAGE_BANDS: Dict[SubagentName, Tuple[float, float]] = {
    SubagentName.IMPORT: (0, 10),
    SubagentName.CONTENT: (10, 30),
    SubagentName.MEDIA: (40, 40),
    SubagentName.ENHANCEMENT_EXPORT: (80, 20),
}

STAGE_METADATA = {
    SubagentName.IMPORT: {
        'name': 'Import',
        'description': 'Importing transcript from YouTube or an audio file',
        'required': False,
    },
    SubagentName.CONTENT: {
        'name': 'Content Planning',
        'description': 'Scene plan, narration and quality check',
        'required': True,
    },
    SubagentName.MEDIA: {
        'name': 'Media Generation',
        'description': 'Scene visuals and optional sound effects',
        'required': True,
    },
    SubagentName.ENHANCEMENT_EXPORT: {
        'name': 'Enhancement & Export',
        'description': 'Image enhancement, audio mix, subtitles and final render',
        'required': True,
    },
}


def calculate_overall_percentage(stage: SubagentName, local_pct: float) -> float:
    """Map a stage-local percentage onto the overall 0-100 scale.

    ``local_pct`` is clamped to [0, 100]; the result always lies inside the
    stage's [offset, offset + weight] band and is monotonic in ``local_pct``.
    """
    offset, weight = STAGE_BANDS[SubagentName(stage)]
    clamped = max(0.0, min(100.0, float(local_pct)))
    return round(offset + weight * clamped / 100.0, 2)


def stage_for_event(event_stage: str) -> Optional[SubagentName]:
    """Resolve event stage tags like ``media_tool_call`` to their SubagentName."""
    # Longest name first so that no shorter value shadows a longer one
    for name in sorted(SubagentName, key=lambda n: len(n.value), reverse=True):
        if event_stage == name.value or event_stage.startswith(name.value + "_"):
            return name
    return None


def _local_percentage(event: ProgressEvent) -> Optional[float]:
    if event.stage.endswith("_starting"):
        return 0.0
    if event.stage.endswith(("_complete", "_fallback")) or event.is_complete:
        return 100.0
    if event.iteration and event.max_iterations:
        return min(99.0, 100.0 * event.iteration / event.max_iterations)
    return None


def emit_progress(callback: Optional[ProgressCallback], event: ProgressEvent) -> None:
    """Fire-and-forget delivery; a failing consumer never breaks the pipeline."""
    if callback is None:
        return
    try:
        callback(event)
    except Exception as e:
        logger.warning(f"[Progress] Callback raised {type(e).__name__}: {e}")


class ProgressEmitter:
    """Decorates events with the overall percentage, then forwards them.

    The reported overall percentage never goes backwards within a run, even
    when a stage is retried.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.overall = 0.0
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        stage = stage_for_event(event.stage)
        local = _local_percentage(event)
        if stage is not None and local is not None:
            self.overall = max(self.overall, calculate_overall_percentage(stage, local))
        if event.progress is None:
            event.progress = self.overall
        self.events.append(event)
        emit_progress(self.callback, event)


class RunTracker:
    """Stage start/finish bookkeeping for the end-of-run summary."""

    def __init__(self, stage_metadata: dict = None):
        self.stage_metadata = stage_metadata or STAGE_METADATA
        self.start_time = None
        self._stage_start: Dict[SubagentName, float] = {}
        self.completed: List[dict] = []

    def start_run(self):
        self.start_time = time.time()
        logger.info("=" * 70)
        logger.info("PRODUCTION STARTED")
        logger.info("=" * 70)

    def stage_started(self, stage: SubagentName):
        if stage in self._stage_start:
            # Retry attempt; duration counts from the first attempt
            return
        self._stage_start[stage] = time.time()
        meta = self.stage_metadata[stage]
        logger.info("-" * 70)
        logger.info(f"STAGE: {meta['name'].upper()}  ({meta['description']})")

    def stage_finished(self, stage: SubagentName, success: bool, fallback: bool = False):
        started = self._stage_start.pop(stage, time.time())
        elapsed = time.time() - started
        self.completed.append({
            'stage': stage,
            'duration': elapsed,
            'success': success,
            'fallback': fallback,
        })
        mark = "✓" if success else ("~" if fallback else "✗")
        logger.info(f"{mark} {self.stage_metadata[stage]['name']} finished in {elapsed:.1f}s")

    def __call__(self, event: ProgressEvent) -> None:
        """Usable as a progress callback: starts/finishes stages from stage events."""
        stage = stage_for_event(event.stage)
        if stage is None:
            return
        suffix = event.stage[len(stage.value) + 1:]
        if suffix == "starting":
            self.stage_started(stage)
        elif suffix == "complete":
            self.stage_finished(stage, success=True)
        elif suffix == "fallback":
            self.stage_finished(stage, success=False, fallback=True)
        elif suffix == "failed":
            self.stage_finished(stage, success=False)

    def summary_lines(self) -> List[str]:
        total = time.time() - self.start_time if self.start_time else 0.0
        lines = [
            "=" * 70,
            " " * 24 + "PRODUCTION SUMMARY",
            "=" * 70,
            f"Total Execution Time: {total/60:.1f} minutes ({total:.0f} seconds)",
        ]
        for i, info in enumerate(self.completed, 1):
            name = self.stage_metadata[info['stage']]['name']
            status = "ok" if info['success'] else ("fallback" if info['fallback'] else "failed")
            lines.append(f"{i}. {name:<30} {info['duration']:>7.1f} s  {status}")
        lines.append("=" * 70)
        return lines

    def log_summary(self):
        for line in self.summary_lines():
            logger.info(line)
