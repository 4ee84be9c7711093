from __future__ import annotations

import io

import allure

from runbar.orchestrator.presentation import ConsolePresenter

pytestmark = [
    allure.epic("Task Orchestrator"),
    allure.feature("Console Presenter"),
]


def _presenter(**kwargs) -> tuple[ConsolePresenter, io.StringIO, io.StringIO]:
    out = io.StringIO()
    err = io.StringIO()
    return ConsolePresenter(out=out, err=err, **kwargs), out, err


def test_progress_bar_and_terminal_status() -> None:
    presenter, out, err = _presenter()

    presenter.on_task_started("NPM", "build", False)
    presenter.on_task_progress(40)
    presenter.on_task_progress(100)
    presenter.on_task_finished(True)

    lines = err.getvalue().split("\n")
    assert lines[0] == "Running NPM:build (estimated)"
    assert f"\r[{'#' * 12}{'-' * 18}]  40% NPM:build" in lines[1]
    assert lines[1].endswith(f"\r[{'#' * 30}] 100% NPM:build")
    assert lines[2] == "NPM:build succeeded"
    assert out.getvalue() == ""


def test_indeterminate_marker_bounces_across_bar() -> None:
    presenter, _, err = _presenter(frame_count=32)

    presenter.on_task_started("Grunt", "test", True)
    presenter.on_task_frame(0)
    presenter.on_task_frame(16)
    presenter.on_task_frame(31)
    presenter.on_task_finished(False)

    text = err.getvalue()
    assert "Running Grunt:test (no estimate yet)" in text
    assert f"\r[==={'-' * 27}]  ... Grunt:test" in text
    assert f"\r[{'-' * 27}===]  ... Grunt:test" in text
    assert text.endswith("\nGrunt:test failed\n")


def test_output_lines_break_the_progress_line() -> None:
    presenter, out, err = _presenter()

    presenter.on_task_started("NPM", "build", False)
    presenter.on_task_progress(10)
    presenter.on_output_line("compiled 3 files")
    presenter.on_task_progress(20)

    assert out.getvalue() == "compiled 3 files\n"
    assert err.getvalue().count("\n") == 2


def test_output_can_be_suppressed() -> None:
    presenter, out, _ = _presenter(show_output=False)

    presenter.on_task_started("NPM", "build", True)
    presenter.on_output_line("noise")

    assert out.getvalue() == ""
