"""
Factory function for creating progress trackers.
"""

from __future__ import annotations

import sys
from typing import Literal

from pgsetup.progress.base import ProgressTracker, SimpleProgressTracker
from pgsetup.progress.rich import RichProgressTracker


def create_progress_tracker(
    title: str = "pgsetup",
    style: Literal["auto", "rich", "simple"] = "auto",
) -> ProgressTracker:
    """
    Create a progress tracker.

    Args:
        title: Title for the progress display.
        style: Progress style to use:
            - "auto": rich when stdout is a terminal, otherwise simple
            - "rich": live rich table
            - "simple": one plain line per event

    Raises:
        ValueError: If *style* is not one of the above.
    """
    if style == "simple":
        return SimpleProgressTracker(title=title)
    if style == "rich":
        return RichProgressTracker(title=title)
    if style == "auto":
        if sys.stdout.isatty():
            return RichProgressTracker(title=title)
        return SimpleProgressTracker(title=title)
    raise ValueError(f"Unknown progress style: {style!r}")
