"""Progress simulation math.

Percentages are derived from elapsed time against the last successful duration.
While a task runs the reported value stops at 99; only the fast-forward sequence
after completion renders 100.
"""

from __future__ import annotations

MAX_RUNNING_PROGRESS = 99
COMPLETE_PROGRESS = 100


def elapsed_ms(start_time: float, now: float) -> int:
    """Whole milliseconds between two scheduler timestamps."""

    return max(0, round((now - start_time) * 1000))


def known_tick_interval_seconds(expected_duration_ms: int) -> float:
    """One tick per percentage point of the expected duration."""

    return max(expected_duration_ms, 1) / 100 / 1000


def running_progress(*, elapsed: int, expected_duration_ms: int, floor: int = 0) -> int:
    """Floored percentage of elapsed ms, never below floor, never above 99."""

    percent = elapsed * 100 // max(expected_duration_ms, 1)
    return min(max(percent, floor, 0), MAX_RUNNING_PROGRESS)


def next_frame(frame_index: int, frame_count: int) -> int:
    return (frame_index + 1) % frame_count
