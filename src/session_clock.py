"""
Session clock and performance rating.

The clock starts with the first unit counted, not when the document is
opened, so time spent waiting for the truck does not count against the
operator. It freezes once finalization is confirmed.
"""

import time
from typing import Callable, Optional

LIGHTNING = "LIGHTNING"
EXCELLENT = "EXCELLENT"
GOOD_PACE = "GOOD_PACE"
COMPLETED = "COMPLETED"


class SessionClock:
    """
    Attributes:
        start_time (float | None): Time source reading at start
        finalized (bool): Elapsed time is frozen
    """

    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        self._now = time_source
        self.start_time: Optional[float] = None
        self.finalized = False
        self._frozen_elapsed: Optional[float] = None
        self._offset = 0.0

    @property
    def started(self) -> bool:
        return self.start_time is not None

    def start(self):
        """Start the clock; no-op when already running or frozen."""
        if self.start_time is None and not self.finalized:
            self.start_time = self._now()

    def stop(self) -> float:
        """Freeze elapsed time and return it."""
        if not self.finalized:
            self._frozen_elapsed = self.elapsed_seconds
            self.finalized = True
        return self._frozen_elapsed

    @property
    def elapsed_seconds(self) -> float:
        if self._frozen_elapsed is not None:
            return self._frozen_elapsed
        if self.start_time is None:
            return self._offset
        return self._offset + (self._now() - self.start_time)

    def resume_from(self, elapsed_seconds: float):
        """Continue a restored draft; the saved elapsed time is carried over."""
        self._offset = max(float(elapsed_seconds), 0.0)
        self.start_time = self._now() if self._offset > 0 else None


def rate_performance(elapsed_seconds: float, line_count: int) -> str:
    """
    Rate a finished session by seconds spent per line.

    < 3 s LIGHTNING, < 6 s EXCELLENT, < 10 s GOOD_PACE, otherwise COMPLETED.
    """
    if line_count <= 0:
        return COMPLETED
    per_line = elapsed_seconds / line_count
    if per_line < 3:
        return LIGHTNING
    if per_line < 6:
        return EXCELLENT
    if per_line < 10:
        return GOOD_PACE
    return COMPLETED


def format_elapsed(seconds: float) -> str:
    """Render seconds as M:SS, or H:MM:SS from one hour on."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
