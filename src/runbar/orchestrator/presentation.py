"""Presentation port of the orchestrator and the console adapter used by the CLI."""

from __future__ import annotations

from typing import Protocol, TextIO

import click

_BAR_WIDTH = 30


class Presenter(Protocol):
    """Receives run lifecycle notifications from the orchestrator."""

    def on_task_started(self, runner_name: str, task_name: str, is_indeterminate: bool) -> None:
        """A run began; previous output should be cleared."""

    def on_task_progress(self, percent: int) -> None:
        """Known-duration progress, 0-100."""

    def on_task_frame(self, frame_index: int) -> None:
        """Indeterminate progress frame."""

    def on_task_finished(self, success: bool) -> None:
        """Terminal notification of the run."""

    def on_output_line(self, text: str) -> None:
        """One line of task output."""


class ConsolePresenter:
    """Renders a single progress line on stderr and task output on stdout."""

    def __init__(
        self,
        *,
        frame_count: int = 32,
        show_output: bool = True,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.frame_count = frame_count
        self.show_output = show_output
        self._out = out
        self._err = err
        self._label = ""
        self._line_active = False

    def on_task_started(self, runner_name: str, task_name: str, is_indeterminate: bool) -> None:
        self._label = f"{runner_name}:{task_name}"
        mode = "no estimate yet" if is_indeterminate else "estimated"
        click.echo(f"Running {self._label} ({mode})", file=self._err, err=self._err is None)

    def on_task_progress(self, percent: int) -> None:
        filled = _BAR_WIDTH * percent // 100
        bar = "#" * filled + "-" * (_BAR_WIDTH - filled)
        self._render(f"[{bar}] {percent:3d}% {self._label}")

    def on_task_frame(self, frame_index: int) -> None:
        # A three-cell marker bouncing across the bar once per frame cycle.
        half = max(self.frame_count // 2, 1)
        step = frame_index if frame_index < half else self.frame_count - frame_index
        position = (_BAR_WIDTH - 3) * min(step, half) // half
        bar = "-" * position + "===" + "-" * (_BAR_WIDTH - 3 - position)
        self._render(f"[{bar}]  ... {self._label}")

    def on_task_finished(self, success: bool) -> None:
        self._end_line()
        status = "succeeded" if success else "failed"
        click.echo(f"{self._label} {status}", file=self._err, err=self._err is None)

    def on_output_line(self, text: str) -> None:
        if not self.show_output:
            return
        self._end_line()
        click.echo(text, file=self._out)

    def _render(self, text: str) -> None:
        click.echo(f"\r{text}", file=self._err, err=self._err is None, nl=False)
        self._line_active = True

    def _end_line(self) -> None:
        if self._line_active:
            click.echo("", file=self._err, err=self._err is None)
            self._line_active = False
