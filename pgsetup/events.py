"""
Events system: Step events for progress display.

Ordering guarantees:
- Synchronous emission: Events are emitted inline (callback blocks the step)
- Best-effort delivery: If callback raises, exception is logged but setup continues
- Per-step ordering: step_started precedes step_finished / step_failed
- Crash behavior: Events before the failure are delivered; nothing is buffered
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Types of events emitted by the setup procedure."""

    STEP_STARTED = "step_started"
    STEP_FINISHED = "step_finished"
    STEP_FAILED = "step_failed"
    STEP_SKIPPED = "step_skipped"


@dataclass(frozen=True)
class Event:
    """
    An event emitted while the procedure runs.

    Attributes:
        kind: The type of event.
        step: Name of the step this event relates to.
        index: 1-based position of the step.
        total: Number of steps in the procedure.
        timestamp: When the event occurred.
        payload: Event-specific data.
    """

    kind: EventKind
    step: str
    index: int
    total: int
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def step_started(
        cls, step: str, index: int, total: int, description: str = ""
    ) -> Event:
        """Create a step_started event."""
        return cls(
            kind=EventKind.STEP_STARTED,
            step=step,
            index=index,
            total=total,
            timestamp=datetime.now(),
            payload={"description": description},
        )

    @classmethod
    def step_finished(
        cls, step: str, index: int, total: int, duration_s: float
    ) -> Event:
        """Create a step_finished event."""
        return cls(
            kind=EventKind.STEP_FINISHED,
            step=step,
            index=index,
            total=total,
            timestamp=datetime.now(),
            payload={"duration_s": duration_s},
        )

    @classmethod
    def step_failed(cls, step: str, index: int, total: int, error: str) -> Event:
        """Create a step_failed event."""
        return cls(
            kind=EventKind.STEP_FAILED,
            step=step,
            index=index,
            total=total,
            timestamp=datetime.now(),
            payload={"error": error},
        )

    @classmethod
    def step_skipped(
        cls, step: str, index: int, total: int, reason: str = "aborted"
    ) -> Event:
        """Create a step_skipped event."""
        return cls(
            kind=EventKind.STEP_SKIPPED,
            step=step,
            index=index,
            total=total,
            timestamp=datetime.now(),
            payload={"reason": reason},
        )


# Type alias for event callbacks
EventCallback = Callable[[Event], None]


def emit_event(callback: EventCallback | None, event: Event) -> None:
    """
    Emit an event to a callback, with best-effort delivery.

    If the callback raises an exception, it is logged and the procedure
    continues.
    """
    if callback is None:
        return

    try:
        callback(event)
    except Exception as e:
        logger.warning(f"Event callback failed for {event.kind}: {e}")
