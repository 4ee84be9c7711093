"""CLI entrypoint for runbar."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from runbar import __version__
from runbar.orchestrator.controllers import (
    DurationsCommand,
    RunbarCliController,
    RunCommand,
    TasksCommand,
)
from runbar.orchestrator.durations import DurationStoreError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = RunbarCliController()

_T = TypeVar("_T")
_LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


@click.group()
@click.version_option(version=__version__, prog_name="runbar")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    envvar="RUNBAR_LOG_LEVEL",
    show_envvar=True,
    show_default=True,
    help="Log level for diagnostics on stderr.",
)
def runbar(log_level: str) -> None:
    """Run project tasks one at a time with a progress bar learned from past runs."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@runbar.command("tasks")
@click.option(
    "--project-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory. Defaults to RUNBAR_PROJECT_DIR or the current directory.",
)
def tasks(project_dir: Path | None) -> None:
    """List the tasks every runner finds in the project."""

    _emit_lines(_guarded(lambda: CONTROLLER.list_tasks(TasksCommand(project_dir=project_dir))))


@runbar.command("run")
@click.argument("runner_name")
@click.argument("task_name")
@click.option(
    "--project-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory. Defaults to RUNBAR_PROJECT_DIR or the current directory.",
)
@click.option(
    "--output/--no-output",
    "show_output",
    default=True,
    show_default=True,
    help="Print the task's output lines.",
)
def run(runner_name: str, task_name: str, project_dir: Path | None, show_output: bool) -> None:
    """Run one task, e.g. `runbar run NPM build`. Ctrl+C kills it."""

    result = _guarded(
        lambda: CONTROLLER.run(
            RunCommand(
                project_dir=project_dir,
                runner_name=runner_name,
                task_name=task_name,
                show_output=show_output,
            ),
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(f"Task {runner_name}:{task_name} failed.")


@runbar.command("durations")
@click.option(
    "--project-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory. Defaults to RUNBAR_PROJECT_DIR or the current directory.",
)
def durations(project_dir: Path | None) -> None:
    """Show the duration estimates recorded for the project."""

    _emit_lines(
        _guarded(lambda: CONTROLLER.durations(DurationsCommand(project_dir=project_dir))),
    )


def _guarded(action: Callable[[], _T]) -> _T:
    try:
        return action()
    except (DurationStoreError, LookupError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    runbar()
