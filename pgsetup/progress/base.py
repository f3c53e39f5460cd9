"""
Base classes for progress tracking.

Provides the ProgressTracker protocol and SimpleProgressTracker implementation.
"""

from __future__ import annotations

import sys
import time
from typing import Any, Protocol, TextIO, runtime_checkable

from pgsetup.events import Event, EventKind


@runtime_checkable
class ProgressTracker(Protocol):
    """
    Protocol for progress trackers.

    Trackers receive step events from :func:`pgsetup.procedure.run_setup`
    and are used as context managers for setup/teardown of the display.
    """

    completed: int
    failed: int
    skipped: int

    def __call__(self, event: Event) -> None:
        """Handle a step event."""
        ...

    def __enter__(self) -> ProgressTracker:
        """Enter the context (start display)."""
        ...

    def __exit__(self, *args: Any) -> None:
        """Exit the context (cleanup display)."""
        ...


class SimpleProgressTracker:
    """
    Plain text progress tracker.

    Prints one line per step event, suitable for logs and non-interactive
    terminals.

    Example:
        with SimpleProgressTracker() as tracker:
            run_setup(config, on_event=tracker)
    """

    def __init__(self, title: str = "pgsetup", stream: TextIO | None = None) -> None:
        self.title = title
        self.stream = stream or sys.stdout
        self.completed = 0
        self.failed = 0
        self.skipped = 0
        self.start_time = time.time()

    def _print(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def __call__(self, event: Event) -> None:
        prefix = f"[{event.index}/{event.total}] {event.step}"

        if event.kind == EventKind.STEP_STARTED:
            description = event.payload.get("description", "")
            self._print(f"{prefix}: {description}" if description else prefix)

        elif event.kind == EventKind.STEP_FINISHED:
            self.completed += 1
            duration = event.payload.get("duration_s", 0.0)
            self._print(f"{prefix} done ({duration:.1f}s)")

        elif event.kind == EventKind.STEP_FAILED:
            self.failed += 1
            error = event.payload.get("error", "unknown").splitlines()[0]
            self._print(f"{prefix} FAILED: {error}")

        elif event.kind == EventKind.STEP_SKIPPED:
            self.skipped += 1
            self._print(f"{prefix} skipped")

    def __enter__(self) -> SimpleProgressTracker:
        self.start_time = time.time()
        return self

    def __exit__(self, *args: Any) -> None:
        elapsed = time.time() - self.start_time
        aborted = bool(args) and args[0] is not None
        status = "failed" if self.failed or aborted else "complete"
        self._print(
            f"{self.title} {status} in {elapsed:.1f}s: "
            f"{self.completed} done, {self.failed} failed, {self.skipped} skipped"
        )
