"""
clipmerge CLI - thin entrypoint for operator commands.

Design Principles:
==================
- CLI is a dispatcher only
- No execution logic inside CLI
- Surface errors verbatim from the execution layer
- Exit non-zero on failure
- No interactive prompts

Exit Codes:
===========
- 0: Success
- 1: Validation error
- 2: Execution error
- 3: Partial completion
- 4: System error (tools missing, preferences unreadable)
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, NoReturn, Optional

from ..execution.cancellation import CancellationToken
from ..execution.errors import ToolNotFoundError
from ..execution.ffmpeg import MergeExecutor
from ..execution.progress import ProgressEvent
from ..execution.tools import resolve_tool_paths
from ..jobs.engine import BatchEngine, BatchSummary
from ..jobs.models import MergeJob, Quality
from ..persistence.errors import PersistenceError
from ..persistence.preferences import PreferencesStore
from ..settings import EngineSettings, load_settings
from .commands import (
    analyze_paths,
    classify_text,
    clear_failed_operations,
    describe_progress,
    list_failed_operations,
    merge_paths,
    retry_failed_operation,
)
from .errors import ValidationError

EXIT_SUCCESS = 0
EXIT_VALIDATION = 1
EXIT_EXECUTION = 2
EXIT_PARTIAL = 3
EXIT_SYSTEM = 4


def _settings() -> EngineSettings:
    return load_settings()


def _store(settings: EngineSettings) -> PreferencesStore:
    return PreferencesStore(settings.preferences_path, journal_capacity=settings.journal_capacity)


def _engine(settings: EngineSettings, store: PreferencesStore) -> BatchEngine:
    """
    Raises:
        ToolNotFoundError: If ffmpeg or ffprobe is missing
    """
    tools = resolve_tool_paths()
    return BatchEngine(MergeExecutor(tools, settings), store, settings)


def _print_progress(index: int, total: int, job: MergeJob, event: ProgressEvent) -> None:
    sys.stderr.write(
        f"\r[{index + 1}/{total}] Session {job.session_id}: {describe_progress(event)}   "
    )
    sys.stderr.flush()


def _exit_code_for(summary: BatchSummary) -> int:
    if summary.failed == 0 and not summary.cancelled:
        return EXIT_SUCCESS
    if summary.succeeded > 0:
        return EXIT_PARTIAL
    return EXIT_EXECUTION


class _InterruptToCancel:
    """Route Ctrl-C to a CancellationToken while a merge runs."""

    def __init__(self, token: CancellationToken):
        self.token = token
        self._previous = None

    def _handle(self, signum, frame) -> None:
        sys.stderr.write("\nCancelling...\n")
        self.token.cancel()

    def __enter__(self) -> "_InterruptToCancel":
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def __exit__(self, *exc) -> None:
        if self._previous is not None:
            signal.signal(signal.SIGINT, self._previous)


# =============================================================================
# Commands
# =============================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    """
    Show how the given paths would be grouped.

    Exit codes:
        0: At least one merge job found
        1: Nothing mergeable
    """
    try:
        jobs = analyze_paths(args.paths)
    except ValidationError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return EXIT_VALIDATION

    if args.json:
        print(json.dumps([job.model_dump() for job in jobs], indent=2))
        return EXIT_SUCCESS

    print(f"{len(jobs)} merge job(s):")
    for job in jobs:
        print(f"  {job.summary()}")
        for path in job.input_files:
            print(f"    - {path}")
    return EXIT_SUCCESS


def cmd_merge(args: argparse.Namespace) -> int:
    """
    Group and merge.

    Exit codes:
        0: Every job succeeded
        1: Nothing mergeable
        2: No job succeeded
        3: Some jobs failed or the batch was cancelled
        4: Tools missing
    """
    settings = _settings()
    store = _store(settings)
    try:
        engine = _engine(settings, store)
    except ToolNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    token = CancellationToken()
    try:
        with _InterruptToCancel(token):
            summary = merge_paths(
                args.paths,
                engine,
                quality=Quality(args.quality),
                output_dir=args.output_dir,
                on_progress=None if args.quiet else _print_progress,
                cancel_token=token,
            )
    except ValidationError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return EXIT_VALIDATION

    if not args.quiet:
        sys.stderr.write("\n")

    for report in summary.reports:
        status = report.result.status.value if report.result else "skipped"
        line = f"{status.upper():<10} {report.job.session_id} -> {report.output_path}"
        if report.error is not None:
            line += f" ({report.error.user_message})"
        print(line)
    print(summary.summary())
    return _exit_code_for(summary)


def cmd_failed_list(args: argparse.Namespace) -> int:
    """List journaled failures, newest first."""
    try:
        operations = list_failed_operations(_store(_settings()))
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    if args.json:
        print(json.dumps([op.to_document() for op in operations], indent=2))
        return EXIT_SUCCESS

    if not operations:
        print("No failed operations.")
        return EXIT_SUCCESS

    for op in operations:
        print(f"Session {op.session_id} -> {op.output_path} (retries: {op.retry_count})")
        print(f"  files: {len(op.files)}")
        last_line = op.error.strip().splitlines()[-1] if op.error.strip() else ""
        print(f"  error: {last_line}")
    return EXIT_SUCCESS


def cmd_failed_clear(args: argparse.Namespace) -> int:
    """Remove every journaled failure."""
    try:
        count = clear_failed_operations(_store(_settings()))
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SYSTEM
    print(f"Cleared {count} failed operation(s).")
    return EXIT_SUCCESS


def cmd_failed_retry(args: argparse.Namespace) -> int:
    """
    Retry one journaled failure.

    Exit codes:
        0: Merge succeeded (entry removed from the journal)
        1: No such entry
        2: Merge failed again
        4: Tools missing or preferences unreadable
    """
    settings = _settings()
    store = _store(settings)
    try:
        engine = _engine(settings, store)
    except ToolNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    token = CancellationToken()
    try:
        with _InterruptToCancel(token):
            report = retry_failed_operation(
                engine,
                args.session_id,
                args.output_path,
                quality=Quality(args.quality),
                cancel_token=token,
            )
    except ValidationError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return EXIT_VALIDATION
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    print(report.result.summary())
    if report.error is not None:
        print(f"  {report.error.user_message}: {report.error.suggestion}")
    return EXIT_SUCCESS if report.result.succeeded else EXIT_EXECUTION


def cmd_classify(args: argparse.Namespace) -> int:
    """Explain a raw failure message."""
    try:
        info = classify_text(args.text)
    except ValidationError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return EXIT_VALIDATION

    if args.json:
        print(info.model_dump_json(indent=2))
        return EXIT_SUCCESS

    print(f"[{info.code.value}] {info.user_message}")
    print(f"Category: {info.category.value}")
    print(f"Suggestion: {info.suggestion}")
    for number, step in enumerate(info.remediation_steps, 1):
        print(f"  {number}. {step}")
    return EXIT_SUCCESS


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP control API."""
    import uvicorn

    from ..main import create_app

    print(f"Starting clipmerge API on {args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port)
    return EXIT_SUCCESS


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipmerge",
        description="Merge action-camera chapter files into one video per recording session",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")
    quality_choices = [q.value for q in Quality]

    # Analyze command
    parser_analyze = subparsers.add_parser(
        "analyze",
        help="Show how files and folders would be grouped into merge jobs",
    )
    parser_analyze.add_argument("paths", nargs="+", help="Files or folders")
    parser_analyze.add_argument("--json", action="store_true", help="Print jobs as JSON")
    parser_analyze.set_defaults(func=cmd_analyze)

    # Merge command
    parser_merge = subparsers.add_parser(
        "merge",
        help="Group files by session and merge each group",
    )
    parser_merge.add_argument("paths", nargs="+", help="Files or folders")
    parser_merge.add_argument(
        "--quality",
        choices=quality_choices,
        default=Quality.PASSTHROUGH.value,
        help="Merge quality (default: passthrough, no re-encoding)",
    )
    parser_merge.add_argument(
        "--output-dir",
        default=None,
        help="Output folder (default: merged_videos beside the source clips)",
    )
    parser_merge.add_argument("--quiet", action="store_true", help="Do not print progress")
    parser_merge.set_defaults(func=cmd_merge)

    # Failed-operation commands
    parser_failed = subparsers.add_parser("failed", help="Inspect or retry failed merges")
    failed_sub = parser_failed.add_subparsers(dest="failed_command", required=True)

    parser_list = failed_sub.add_parser("list", help="List failed merges, newest first")
    parser_list.add_argument("--json", action="store_true", help="Print entries as JSON")
    parser_list.set_defaults(func=cmd_failed_list)

    parser_clear = failed_sub.add_parser("clear", help="Forget every failed merge")
    parser_clear.set_defaults(func=cmd_failed_clear)

    parser_retry = failed_sub.add_parser("retry", help="Retry one failed merge")
    parser_retry.add_argument("session_id", help="4-digit session id")
    parser_retry.add_argument("output_path", help="Output path recorded for the failure")
    parser_retry.add_argument(
        "--quality",
        choices=quality_choices,
        default=Quality.PASSTHROUGH.value,
        help="Merge quality (default: passthrough)",
    )
    parser_retry.set_defaults(func=cmd_failed_retry)

    # Classify command
    parser_classify = subparsers.add_parser("classify", help="Explain a raw failure message")
    parser_classify.add_argument("text", help="Raw error text")
    parser_classify.add_argument("--json", action="store_true", help="Print as JSON")
    parser_classify.set_defaults(func=cmd_classify)

    # Serve command
    parser_serve = subparsers.add_parser("serve", help="Run the HTTP control API")
    parser_serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser_serve.add_argument("--port", type=int, default=8085, help="Port (default: 8085)")
    parser_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        sys.exit(args.func(args))
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)


if __name__ == "__main__":
    main()
