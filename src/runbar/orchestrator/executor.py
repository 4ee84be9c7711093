"""Single-flight task orchestrator.

One task runs at a time. While it runs, a timer chain simulates progress from
the last successful duration of the same task (or cycles indeterminate frames
when there is none). When the runner reports termination the displayed
progress is fast-forwarded to 100 before the terminal notification, and the
observed duration of a successful run becomes the next estimate.

Every state change happens in callbacks on one scheduler, so no locking is
involved. Requests for the running task toggle a kill; requests for any other
task while busy are ignored.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from functools import partial

from runbar.config import OrchestratorSettings
from runbar.orchestrator.durations import DurationStore, DurationStoreError
from runbar.orchestrator.models import (
    RunningTaskState,
    RunPhase,
    RunRequestOutcome,
    RunSnapshot,
    TaskIdentity,
)
from runbar.orchestrator.presentation import Presenter
from runbar.orchestrator.progress import (
    COMPLETE_PROGRESS,
    elapsed_ms,
    known_tick_interval_seconds,
    next_frame,
    running_progress,
)
from runbar.orchestrator.runners import TaskRunner
from runbar.orchestrator.scheduling import Scheduler

logger = logging.getLogger(__name__)


class UnknownRunnerError(LookupError):
    """Run requested for a runner that is not registered."""


class _RunSink:
    """TaskSink bound to one run; drops reports from runs that are no longer current."""

    def __init__(self, orchestrator: TaskOrchestrator, run_id: int) -> None:
        self._orchestrator = orchestrator
        self.run_id = run_id
        self.closed = False

    def output_line(self, text: str) -> None:
        if self._orchestrator._current_run_id() != self.run_id:
            logger.debug("Dropping output of stale run %s", self.run_id)
            return
        self._orchestrator.add_output_line(text)

    def finished(self, success: bool) -> None:
        if self.closed:
            logger.warning(
                "Runner reported termination of run %s more than once; ignoring",
                self.run_id,
            )
            return
        self.closed = True
        if self._orchestrator._current_run_id() != self.run_id:
            logger.debug("Dropping termination of stale run %s", self.run_id)
            return
        self._orchestrator.finished_task(success)


class TaskOrchestrator:
    """Owns the running-task state machine."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        runners: Mapping[str, TaskRunner],
        durations: DurationStore,
        presenter: Presenter,
        scheduler: Scheduler,
        project_key: str,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        self.runners = dict(runners)
        self.durations = durations
        self.presenter = presenter
        self.scheduler = scheduler
        self.project_key = project_key
        self.settings = settings or OrchestratorSettings()
        self._phase = RunPhase.IDLE
        self._state: RunningTaskState | None = None
        self._sink: _RunSink | None = None
        self._run_ids = itertools.count(1)

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def current(self) -> TaskIdentity | None:
        return self._state.identity if self._state is not None else None

    @property
    def is_busy(self) -> bool:
        return self._phase is not RunPhase.IDLE

    def snapshot(self) -> RunSnapshot:
        state = self._state
        if state is None:
            return RunSnapshot(phase=self._phase, identity=None, progress=None)
        progress = None if state.is_indeterminate else state.last_progress
        return RunSnapshot(phase=self._phase, identity=state.identity, progress=progress)

    def get_tasks(self) -> dict[str, list[str]]:
        """Task names per runner, omitting runners without tasks."""

        tasks: dict[str, list[str]] = {}
        for name, runner in self.runners.items():
            runner_tasks = list(runner.list_tasks())
            if runner_tasks:
                tasks[name] = runner_tasks
        return tasks

    def run_task(self, runner_name: str, task_name: str) -> RunRequestOutcome:
        """Start a task, or kill it when it is the one already running."""

        identity = TaskIdentity(
            project_key=self.project_key,
            runner_name=runner_name,
            task_name=task_name,
        )
        state = self._state
        if state is not None:
            if self._phase is RunPhase.RUNNING and state.identity == identity:
                if self._request_kill(state):
                    return RunRequestOutcome.KILL_REQUESTED
                return RunRequestOutcome.IGNORED
            logger.debug(
                "Ignoring run request for %s while %s is %s",
                identity.label(),
                state.identity.label(),
                self._phase.value,
            )
            return RunRequestOutcome.IGNORED

        runner = self.runners.get(runner_name)
        if runner is None:
            raise UnknownRunnerError(f"Unknown runner: {runner_name}")

        expected = self.durations.get_duration(self.project_key, runner_name, task_name)
        if expected == 0:
            expected = 1

        state = RunningTaskState(
            run_id=next(self._run_ids),
            identity=identity,
            start_time=self.scheduler.now(),
            expected_duration_ms=expected,
        )
        sink = _RunSink(self, state.run_id)
        self._state = state
        self._sink = sink
        self._phase = RunPhase.RUNNING
        logger.info(
            "Starting %s (expected %s)",
            identity.label(),
            f"{expected} ms" if expected is not None else "unknown",
        )

        self.presenter.on_task_started(runner_name, task_name, state.is_indeterminate)
        try:
            runner.start(task_name, sink)
        except Exception:
            logger.exception("Runner %s failed to start %s", runner_name, task_name)
            sink.finished(False)
            return RunRequestOutcome.STARTED

        if self._state is not state or self._phase is not RunPhase.RUNNING:
            # The runner reported termination synchronously from start().
            return RunRequestOutcome.STARTED

        state.pending_timer = self.scheduler.call_later(0, partial(self._tick, state.run_id))
        if self.settings.stall_timeout_seconds > 0:
            state.watchdog_timer = self.scheduler.call_later(
                self.settings.stall_timeout_seconds,
                partial(self._on_stall, state.run_id),
            )
        return RunRequestOutcome.STARTED

    def kill_task(self) -> bool:
        """Kill whatever task is running. Returns False when nothing was killed."""

        state = self._state
        if state is None or self._phase is not RunPhase.RUNNING:
            return False
        return self._request_kill(state)

    def add_output_line(self, text: str) -> None:
        self.presenter.on_output_line(text)

    def finished_task(self, success: bool) -> None:
        """Terminal callback of the running task."""

        state = self._state
        if state is None or self._phase is not RunPhase.RUNNING:
            logger.warning(
                "Ignoring termination report (success=%s) while %s",
                success,
                self._phase.value,
            )
            return

        self._cancel_timers(state)
        self._phase = RunPhase.FINISHING

        if state.killed:
            logger.info("%s was killed", state.identity.label())
            state.success = False
            self._complete(state)
            return

        state.success = success
        elapsed = elapsed_ms(state.start_time, self.scheduler.now())
        logger.info(
            "%s %s after %s ms",
            state.identity.label(),
            "succeeded" if success else "failed",
            elapsed,
        )
        if success:
            identity = state.identity
            try:
                self.durations.set_duration(
                    identity.project_key,
                    identity.runner_name,
                    identity.task_name,
                    elapsed,
                )
            except DurationStoreError:
                self._complete(state)
                raise

        if state.expected_duration_ms is None:
            self._complete(state)
            return

        state.fast_forward_value = running_progress(
            elapsed=elapsed,
            expected_duration_ms=state.expected_duration_ms,
            floor=state.last_progress,
        )
        self._fast_forward_step(state.run_id)

    def _current_run_id(self) -> int | None:
        return self._state.run_id if self._state is not None else None

    def _request_kill(self, state: RunningTaskState) -> bool:
        if state.killed:
            logger.debug("Kill already requested for %s", state.identity.label())
            return False
        state.killed = True
        logger.info("Killing %s", state.identity.label())
        self.runners[state.identity.runner_name].kill()
        return True

    def _tick(self, run_id: int) -> None:
        state = self._state
        if state is None or state.run_id != run_id or self._phase is not RunPhase.RUNNING:
            return

        if state.expected_duration_ms is None:
            state.frame_index = next_frame(state.frame_index, self.settings.indeterminate_frames)
            self.presenter.on_task_frame(state.frame_index)
            delay = self.settings.indeterminate_interval_ms / 1000
        else:
            state.last_progress = running_progress(
                elapsed=elapsed_ms(state.start_time, self.scheduler.now()),
                expected_duration_ms=state.expected_duration_ms,
                floor=state.last_progress,
            )
            self.presenter.on_task_progress(state.last_progress)
            delay = known_tick_interval_seconds(state.expected_duration_ms)

        state.pending_timer = self.scheduler.call_later(delay, partial(self._tick, run_id))

    def _fast_forward_step(self, run_id: int) -> None:
        state = self._state
        if state is None or state.run_id != run_id or self._phase is not RunPhase.FINISHING:
            return

        state.pending_timer = None
        if state.fast_forward_value >= COMPLETE_PROGRESS:
            self._complete(state)
            return

        state.fast_forward_value += 1
        state.last_progress = state.fast_forward_value
        self.presenter.on_task_progress(state.fast_forward_value)
        state.pending_timer = self.scheduler.call_later(
            self.settings.fast_forward_interval_ms / 1000,
            partial(self._fast_forward_step, run_id),
        )

    def _on_stall(self, run_id: int) -> None:
        state = self._state
        if state is None or state.run_id != run_id or self._phase is not RunPhase.RUNNING:
            return

        state.watchdog_timer = None
        logger.warning(
            "%s reported no termination within %.1f s; giving up on it",
            state.identity.label(),
            self.settings.stall_timeout_seconds,
        )
        sink = self._sink
        self._request_kill(state)
        if sink is not None and self._state is state and self._phase is RunPhase.RUNNING:
            sink.finished(False)

    def _cancel_timers(self, state: RunningTaskState) -> None:
        for handle in (state.pending_timer, state.watchdog_timer):
            if handle is not None:
                handle.cancel()
        state.pending_timer = None
        state.watchdog_timer = None

    def _complete(self, state: RunningTaskState) -> None:
        try:
            self.presenter.on_task_finished(bool(state.success))
        finally:
            if self._state is state:
                self._state = None
                self._sink = None
                self._phase = RunPhase.IDLE
