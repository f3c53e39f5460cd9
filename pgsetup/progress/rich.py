"""
Rich progress tracker: a live step table for interactive terminals.
"""

from __future__ import annotations

import time
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pgsetup.events import Event, EventKind


class RichProgressTracker:
    """
    Live-updating table with one row per step.

    Rows show a status marker, the step name, the command being run and the
    elapsed time once a step has finished.

    Example:
        with RichProgressTracker() as tracker:
            run_setup(config, on_event=tracker)
    """

    def __init__(self, title: str = "pgsetup", console: Console | None = None) -> None:
        self.title = title
        self.console = console or Console()
        self.completed = 0
        self.failed = 0
        self.skipped = 0
        # step name -> (status, description, details)
        self.rows: dict[str, tuple[str, str, str]] = {}
        self.start_time = time.time()
        self.live: Live | None = None

    def _make_display(self) -> Group:
        """Create the rich display layout."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Status", width=8)
        table.add_column("Step", style="bold")
        table.add_column("Command", style="dim", overflow="ellipsis")
        table.add_column("Details", justify="right")

        for step, (status, description, details) in self.rows.items():
            if status == "done":
                status_text = Text("✓ done", style="green")
            elif status == "failed":
                status_text = Text("✗ fail", style="red")
            elif status == "skip":
                status_text = Text("→ skip", style="yellow")
            else:
                status_text = Text("● run", style="blue")
            table.add_row(status_text, step, description, details)

        return Group(
            Panel(table, title=f"[bold]{self.title}[/bold]", border_style="blue")
        )

    def __call__(self, event: Event) -> None:
        _, description, _ = self.rows.get(event.step, ("", "", ""))

        if event.kind == EventKind.STEP_STARTED:
            description = event.payload.get("description", "")
            self.rows[event.step] = ("run", description, "")

        elif event.kind == EventKind.STEP_FINISHED:
            self.completed += 1
            duration = event.payload.get("duration_s", 0.0)
            self.rows[event.step] = ("done", description, f"{duration:.1f}s")

        elif event.kind == EventKind.STEP_FAILED:
            self.failed += 1
            error = event.payload.get("error", "unknown").splitlines()[0][:60]
            self.rows[event.step] = ("failed", description, error)

        elif event.kind == EventKind.STEP_SKIPPED:
            self.skipped += 1
            self.rows[event.step] = ("skip", description, "")

        if self.live is not None:
            self.live.update(self._make_display())

    def __enter__(self) -> RichProgressTracker:
        """Start the live display."""
        self.start_time = time.time()
        self.live = Live(
            self._make_display(),
            console=self.console,
            refresh_per_second=10,
            transient=False,
        )
        self.live.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        """Stop the live display and print a summary."""
        if self.live is not None:
            self.live.__exit__(*args)
            self.live = None

        elapsed = time.time() - self.start_time
        aborted = bool(args) and args[0] is not None
        if self.failed or aborted:
            headline = "[red]✗ Setup failed[/red]"
            border = "red"
        else:
            headline = "[green]✓ Setup complete[/green]"
            border = "green"
        self.console.print(Panel(
            f"{headline} in [bold]{elapsed:.1f}s[/bold]\n"
            f"  Done: [green]{self.completed}[/green]\n"
            f"  Failed: [red]{self.failed}[/red]\n"
            f"  Skipped: [yellow]{self.skipped}[/yellow]",
            border_style=border,
        ))
