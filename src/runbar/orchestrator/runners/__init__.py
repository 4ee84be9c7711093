"""Task runner plugins and their registry."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from runbar.config import RunnerSettings
from runbar.orchestrator.runners.base import (
    RunnerBusyError,
    SubprocessTaskRunner,
    TaskRunner,
    TaskSink,
)
from runbar.orchestrator.runners.grunt import GruntRunner
from runbar.orchestrator.runners.npm import NpmRunner

__all__ = [
    "GruntRunner",
    "NpmRunner",
    "RunnerBusyError",
    "SubprocessTaskRunner",
    "TaskRunner",
    "TaskSink",
    "build_registry",
    "builtin_runners",
]


def builtin_runners(*, project_dir: Path, settings: RunnerSettings) -> list[TaskRunner]:
    """Instantiate every built-in runner enabled in settings, once."""

    enabled = {name.lower() for name in settings.enabled}
    candidates: list[TaskRunner] = [
        NpmRunner(
            project_dir=project_dir,
            command=settings.npm_command,
            kill_grace_seconds=settings.kill_grace_seconds,
        ),
        GruntRunner(
            project_dir=project_dir,
            command=settings.grunt_command,
            kill_grace_seconds=settings.kill_grace_seconds,
        ),
    ]
    unknown = enabled - {runner.name.lower() for runner in candidates}
    if unknown:
        raise ValueError(f"Unknown runner(s) in RUNBAR_RUNNERS: {', '.join(sorted(unknown))}")
    return [runner for runner in candidates if runner.name.lower() in enabled]


def build_registry(runners: Iterable[TaskRunner]) -> dict[str, TaskRunner]:
    """Map runner name to runner, rejecting empty and duplicate names."""

    registry: dict[str, TaskRunner] = {}
    for runner in runners:
        name = runner.name
        if not name:
            raise ValueError(f"Runner {type(runner).__name__} has an empty name")
        if name in registry:
            raise ValueError(f"Duplicate runner name: {name}")
        registry[name] = runner
    return registry
