"""Domain models for the single-flight task orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runbar.orchestrator.scheduling import TimerHandle


class RunPhase(str, Enum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHING = "finishing"


class RunRequestOutcome(str, Enum):
    """What a run request turned into."""

    STARTED = "started"
    KILL_REQUESTED = "kill_requested"
    IGNORED = "ignored"


@dataclass(slots=True, frozen=True)
class TaskIdentity:
    """Identifies one task of one runner within a project."""

    project_key: str
    runner_name: str
    task_name: str

    def label(self) -> str:
        return f"{self.runner_name}:{self.task_name}"


@dataclass(slots=True)
class RunningTaskState:
    """Mutable state of the in-flight run, owned by the orchestrator."""

    run_id: int
    identity: TaskIdentity
    start_time: float
    expected_duration_ms: int | None
    killed: bool = False
    success: bool | None = None
    pending_timer: TimerHandle | None = None
    watchdog_timer: TimerHandle | None = None
    last_progress: int = 0
    frame_index: int = 0
    fast_forward_value: int = 0

    @property
    def is_indeterminate(self) -> bool:
        return self.expected_duration_ms is None


@dataclass(slots=True, frozen=True)
class RunSnapshot:
    """Consistent view of the orchestrator for status queries."""

    phase: RunPhase
    identity: TaskIdentity | None
    progress: int | None
