"""
Progress display for the setup procedure.

Example:
    from pgsetup.progress import create_progress_tracker

    with create_progress_tracker(style="auto") as tracker:
        run_setup(config, on_event=tracker)
"""

from pgsetup.progress.base import ProgressTracker, SimpleProgressTracker
from pgsetup.progress.factory import create_progress_tracker
from pgsetup.progress.rich import RichProgressTracker

__all__ = [
    "ProgressTracker",
    "RichProgressTracker",
    "SimpleProgressTracker",
    "create_progress_tracker",
]
