"""Runtime configuration for the task orchestrator and its runners."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_RUNNERS = ("NPM", "Grunt")


@dataclass(slots=True)
class OrchestratorSettings:
    """Progress simulation and watchdog settings."""

    indeterminate_interval_ms: int = 30
    indeterminate_frames: int = 32
    fast_forward_interval_ms: int = 1
    stall_timeout_seconds: float = 0.0


@dataclass(slots=True)
class RunnerSettings:
    """Task runner plugin settings."""

    enabled: tuple[str, ...] = DEFAULT_RUNNERS
    npm_command: str = "npm"
    grunt_command: str = "grunt"
    kill_grace_seconds: float = 2.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    project_dir: Path = field(default_factory=Path.cwd)
    project_key: str = ""
    durations_path: Path = field(
        default_factory=lambda: Path.home() / ".runbar" / "durations.json",
    )
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    runners: RunnerSettings = field(default_factory=RunnerSettings)

    @property
    def effective_project_key(self) -> str:
        """Key under which durations of the current project are stored."""

        return self.project_key or self.project_dir.resolve().name

    @classmethod
    def from_env(cls, project_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults suitable for interactive use."""

        env_project_dir = os.getenv("RUNBAR_PROJECT_DIR", "").strip()
        resolved_project_dir = project_dir or (
            Path(env_project_dir).expanduser() if env_project_dir else Path.cwd()
        )
        env_durations_path = os.getenv("RUNBAR_DURATIONS_PATH", "").strip()
        return cls(
            project_dir=resolved_project_dir,
            project_key=os.getenv("RUNBAR_PROJECT_KEY", "").strip(),
            durations_path=(
                Path(env_durations_path).expanduser()
                if env_durations_path
                else Path.home() / ".runbar" / "durations.json"
            ),
            orchestrator=OrchestratorSettings(
                indeterminate_interval_ms=int(
                    os.getenv("RUNBAR_INDETERMINATE_INTERVAL_MS", "30"),
                ),
                indeterminate_frames=int(os.getenv("RUNBAR_INDETERMINATE_FRAMES", "32")),
                fast_forward_interval_ms=int(
                    os.getenv("RUNBAR_FAST_FORWARD_INTERVAL_MS", "1"),
                ),
                stall_timeout_seconds=float(os.getenv("RUNBAR_STALL_TIMEOUT_SECONDS", "0")),
            ),
            runners=RunnerSettings(
                enabled=_collect_runner_names(),
                npm_command=os.getenv("RUNBAR_NPM_COMMAND", "npm").strip() or "npm",
                grunt_command=os.getenv("RUNBAR_GRUNT_COMMAND", "grunt").strip() or "grunt",
                kill_grace_seconds=float(os.getenv("RUNBAR_KILL_GRACE_SECONDS", "2")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the orchestrator cannot work with."""

        if self.orchestrator.indeterminate_interval_ms <= 0:
            raise ValueError("RUNBAR_INDETERMINATE_INTERVAL_MS must be > 0.")
        if self.orchestrator.indeterminate_frames <= 0:
            raise ValueError("RUNBAR_INDETERMINATE_FRAMES must be > 0.")
        if self.orchestrator.fast_forward_interval_ms < 0:
            raise ValueError("RUNBAR_FAST_FORWARD_INTERVAL_MS must be >= 0.")
        if self.orchestrator.stall_timeout_seconds < 0:
            raise ValueError("RUNBAR_STALL_TIMEOUT_SECONDS must be >= 0.")
        if self.runners.kill_grace_seconds < 0:
            raise ValueError("RUNBAR_KILL_GRACE_SECONDS must be >= 0.")
        if not self.runners.enabled:
            raise ValueError("RUNBAR_RUNNERS must name at least one runner.")
        if not self.project_dir.is_dir():
            raise ValueError(f"Project directory does not exist: {self.project_dir}")


def _collect_runner_names() -> tuple[str, ...]:
    raw = os.getenv("RUNBAR_RUNNERS", "").strip()
    if not raw:
        return DEFAULT_RUNNERS

    names: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        name = part.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        names.append(name)
    return tuple(names)
