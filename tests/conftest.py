"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from runbar.config import OrchestratorSettings
from runbar.orchestrator.durations import DurationStore
from runbar.orchestrator.executor import TaskOrchestrator

from .fakes import RecordingPresenter, ScriptedRunner, VirtualScheduler

PROJECT_KEY = "demo-project"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RUNBAR_* variables of the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("RUNBAR_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture()
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture()
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "store" / "durations.json"


@pytest.fixture()
def store(store_path: Path) -> DurationStore:
    return DurationStore(store_path)


@pytest.fixture()
def npm() -> ScriptedRunner:
    return ScriptedRunner("NPM", ["build", "test"])


@pytest.fixture()
def grunt() -> ScriptedRunner:
    return ScriptedRunner("Grunt", ["test"])


@pytest.fixture()
def make_orchestrator(scheduler, presenter, store, npm, grunt):
    def _make(
        settings: OrchestratorSettings | None = None,
        runners: list[ScriptedRunner] | None = None,
    ) -> TaskOrchestrator:
        return TaskOrchestrator(
            runners={runner.name: runner for runner in (runners or [npm, grunt])},
            durations=store,
            presenter=presenter,
            scheduler=scheduler,
            project_key=PROJECT_KEY,
            settings=settings,
        )

    return _make
