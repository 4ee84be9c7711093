"""Controllers for runbar CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from runbar.config import Settings
from runbar.orchestrator.durations import DurationStore
from runbar.orchestrator.executor import TaskOrchestrator
from runbar.orchestrator.presentation import ConsolePresenter, Presenter
from runbar.orchestrator.runners import (
    SubprocessTaskRunner,
    TaskRunner,
    build_registry,
    builtin_runners,
)
from runbar.orchestrator.scheduling import LoopScheduler, Scheduler


@dataclass(slots=True)
class TasksCommand:
    """CLI input for task listing."""

    project_dir: Path | None


@dataclass(slots=True)
class RunCommand:
    """CLI input for running one task."""

    project_dir: Path | None
    runner_name: str
    task_name: str
    show_output: bool = True


@dataclass(slots=True)
class DurationsCommand:
    """CLI input for the stored estimates report."""

    project_dir: Path | None


@dataclass(slots=True)
class RunResult:
    """Run report to render in CLI."""

    lines: list[str]
    success: bool


class _CompletionPresenter:
    """Forwards notifications and resolves a future on the terminal one."""

    def __init__(self, inner: Presenter, finished: asyncio.Future[bool]) -> None:
        self._inner = inner
        self._finished = finished

    def on_task_started(self, runner_name: str, task_name: str, is_indeterminate: bool) -> None:
        self._inner.on_task_started(runner_name, task_name, is_indeterminate)

    def on_task_progress(self, percent: int) -> None:
        self._inner.on_task_progress(percent)

    def on_task_frame(self, frame_index: int) -> None:
        self._inner.on_task_frame(frame_index)

    def on_task_finished(self, success: bool) -> None:
        self._inner.on_task_finished(success)
        if not self._finished.done():
            self._finished.set_result(success)

    def on_output_line(self, text: str) -> None:
        self._inner.on_output_line(text)


class RunbarCliController:
    """Coordinates task discovery, execution and estimate inspection."""

    def list_tasks(self, command: TasksCommand) -> list[str]:
        settings = _load_settings(command.project_dir)
        orchestrator = _build_orchestrator(
            settings,
            registry=_registry(settings),
            presenter=ConsolePresenter(frame_count=settings.orchestrator.indeterminate_frames),
            scheduler=LoopScheduler(),
        )
        durations = orchestrator.durations
        project_key = orchestrator.project_key

        lines: list[str] = []
        for runner_name, tasks in orchestrator.get_tasks().items():
            lines.append(f"{runner_name}:")
            for task_name in tasks:
                estimate = durations.get_duration(project_key, runner_name, task_name)
                suffix = f" (~{_format_ms(estimate)})" if estimate is not None else ""
                lines.append(f"  {task_name}{suffix}")
        if not lines:
            return [f"No tasks found in {settings.project_dir}"]
        return lines

    def run(self, command: RunCommand) -> RunResult:
        settings = _load_settings(command.project_dir)
        return asyncio.run(self._run_async(settings=settings, command=command))

    def durations(self, command: DurationsCommand) -> list[str]:
        settings = _load_settings(command.project_dir)
        project_key = settings.effective_project_key
        project = DurationStore(settings.durations_path).durations_for_project(project_key)
        if not project:
            return [f"No durations recorded for project {project_key!r}"]

        lines = [f"Durations for project {project_key!r}:"]
        for runner_name in sorted(project):
            for task_name, duration_ms in sorted(project[runner_name].items()):
                lines.append(f"  {runner_name}:{task_name} {_format_ms(duration_ms)}")
        return lines

    async def _run_async(self, *, settings: Settings, command: RunCommand) -> RunResult:
        loop = asyncio.get_running_loop()
        registry = _registry(settings)
        finished: asyncio.Future[bool] = loop.create_future()
        orchestrator = _build_orchestrator(
            settings,
            registry=registry,
            presenter=_CompletionPresenter(
                ConsolePresenter(
                    frame_count=settings.orchestrator.indeterminate_frames,
                    show_output=command.show_output,
                ),
                finished,
            ),
            scheduler=LoopScheduler(loop),
        )
        durations = orchestrator.durations

        started_at = loop.time()
        orchestrator.run_task(command.runner_name, command.task_name)

        with _kill_on_interrupt(loop, orchestrator, command):
            success = await finished
        runner = registry[command.runner_name]
        if isinstance(runner, SubprocessTaskRunner):
            # Re-raises errors of the terminal callback, e.g. a failed estimate write.
            await runner.wait()

        label = f"{command.runner_name}:{command.task_name}"
        status = "succeeded" if success else "failed"
        took = _format_ms(round((loop.time() - started_at) * 1000))
        lines = [f"Task {label} {status} in {took}"]
        if success:
            estimate = durations.get_duration(
                settings.effective_project_key,
                command.runner_name,
                command.task_name,
            )
            if estimate is not None:
                lines.append(f"Next estimate: {_format_ms(estimate)}")
        return RunResult(lines=lines, success=success)


@contextlib.contextmanager
def _kill_on_interrupt(
    loop: asyncio.AbstractEventLoop,
    orchestrator: TaskOrchestrator,
    command: RunCommand,
) -> Iterator[None]:
    """Ctrl+C re-issues the run request, which kills the running task."""

    def _toggle() -> None:
        orchestrator.run_task(command.runner_name, command.task_name)

    installed = True
    try:
        loop.add_signal_handler(signal.SIGINT, _toggle)
    except (NotImplementedError, RuntimeError, ValueError):
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _load_settings(project_dir: Path | None) -> Settings:
    settings = Settings.from_env(project_dir=project_dir)
    settings.validate()
    return settings


def _build_orchestrator(
    settings: Settings,
    *,
    registry: dict[str, TaskRunner],
    presenter: Presenter,
    scheduler: Scheduler,
) -> TaskOrchestrator:
    return TaskOrchestrator(
        runners=registry,
        durations=DurationStore(settings.durations_path),
        presenter=presenter,
        scheduler=scheduler,
        project_key=settings.effective_project_key,
        settings=settings.orchestrator,
    )


def _registry(settings: Settings) -> dict[str, TaskRunner]:
    return build_registry(
        builtin_runners(project_dir=settings.project_dir, settings=settings.runners),
    )


def _format_ms(duration_ms: int) -> str:
    if duration_ms < 1000:
        return f"{duration_ms} ms"
    return f"{duration_ms / 1000:.1f} s"
