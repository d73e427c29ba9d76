"""
Command-line entry point: run one production and print a JSON summary.

    python -m studio_producer "Make a 60 second cinematic video about coral reefs"
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from studio_producer import config
from studio_producer.agent.progress import RunTracker
from studio_producer.agent.supervisor import build_supervisor
from studio_producer.logging_setup import setup_logging
from studio_producer.models import ProgressEvent
from studio_producer.session_store import InMemorySessionStore, JsonFileSessionStore

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="studio_producer",
        description="Turn a topic, YouTube URL or audio file into a finished video production.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m studio_producer "60 second documentary about honey bees, with subtitles"
  python -m studio_producer "Summarize https://youtu.be/dQw4w9WgXcQ as a vertical video" --json

Environment variables:
  export STUDIO_REQUEST="your request here"
  python -m studio_producer
        """
    )
    parser.add_argument(
        'request',
        nargs='?',
        help='What to produce (falls back to STUDIO_REQUEST)'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Print only the JSON result (no progress lines)'
    )
    parser.add_argument(
        '--log-dir',
        type=str,
        default=config.STUDIO_LOG_DIR or None,
        help='Directory for pipeline.log'
    )
    parser.add_argument(
        '--session-dir',
        type=str,
        default=config.STUDIO_SESSION_DIR or None,
        help='Persist sessions as JSON files in this directory'
    )
    return parser.parse_args(argv)


def print_progress(event: ProgressEvent):
    pct = f"{event.progress:5.1f}%" if event.progress is not None else "   -  "
    tool = f" [{event.tool}]" if event.tool else ""
    print(f"[{pct}] {event.stage}{tool}: {event.message}", flush=True)


def main(argv=None) -> int:
    args = parse_arguments(argv)
    request = args.request or os.getenv("STUDIO_REQUEST")
    if not request:
        print("ERROR: no production request given (argument or STUDIO_REQUEST)", file=sys.stderr)
        return 2

    setup_logging(Path(args.log_dir) if args.log_dir else None,
                  level=logging.WARNING if args.json else logging.INFO)

    if not args.json:
        print(f"\n{'='*70}")
        print("STUDIO PRODUCER")
        print(f"{'='*70}")
        print(f"Request: {request}")
        print(f"Model:   {config.MODEL_NAME} @ {config.LLM_BASE_URL}")
        print(f"{'='*70}\n")

    store = JsonFileSessionStore(args.session_dir) if args.session_dir else InMemorySessionStore()
    supervisor = build_supervisor(store=store)
    tracker = RunTracker()

    def on_progress(event: ProgressEvent):
        tracker(event)
        if not args.json:
            print_progress(event)

    async def produce():
        try:
            return await supervisor.run(request, on_progress=on_progress)
        finally:
            await supervisor.aclose()

    tracker.start_run()
    try:
        result = asyncio.run(produce())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Production failed: {type(e).__name__}: {e}")
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        return 1
    finally:
        tracker.log_summary()

    summary = result.to_dict()
    if result.session_id and result.session_id in store:
        summary["session"] = store.require(result.session_id).summary()
    print(json.dumps(summary, indent=2, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
