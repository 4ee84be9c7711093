from __future__ import annotations

from pathlib import Path

import allure
import pytest

from runbar.config import DEFAULT_RUNNERS, Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    settings = Settings.from_env()

    assert settings.project_dir == tmp_path
    assert settings.effective_project_key == tmp_path.name
    assert settings.durations_path == Path.home() / ".runbar" / "durations.json"
    assert settings.orchestrator.indeterminate_interval_ms == 30
    assert settings.orchestrator.indeterminate_frames == 32
    assert settings.orchestrator.fast_forward_interval_ms == 1
    assert settings.orchestrator.stall_timeout_seconds == 0
    assert settings.runners.enabled == DEFAULT_RUNNERS
    assert settings.runners.npm_command == "npm"
    assert settings.runners.grunt_command == "grunt"
    settings.validate()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RUNBAR_PROJECT_DIR", str(tmp_path))
    monkeypatch.setenv("RUNBAR_PROJECT_KEY", "shared-key")
    monkeypatch.setenv("RUNBAR_DURATIONS_PATH", str(tmp_path / "d.json"))
    monkeypatch.setenv("RUNBAR_INDETERMINATE_INTERVAL_MS", "50")
    monkeypatch.setenv("RUNBAR_INDETERMINATE_FRAMES", "8")
    monkeypatch.setenv("RUNBAR_FAST_FORWARD_INTERVAL_MS", "0")
    monkeypatch.setenv("RUNBAR_STALL_TIMEOUT_SECONDS", "600")
    monkeypatch.setenv("RUNBAR_RUNNERS", " npm, Grunt ,NPM,, ")
    monkeypatch.setenv("RUNBAR_NPM_COMMAND", "/usr/local/bin/npm")
    monkeypatch.setenv("RUNBAR_KILL_GRACE_SECONDS", "0.5")

    settings = Settings.from_env()

    assert settings.project_dir == tmp_path
    assert settings.effective_project_key == "shared-key"
    assert settings.durations_path == tmp_path / "d.json"
    assert settings.orchestrator.indeterminate_interval_ms == 50
    assert settings.orchestrator.indeterminate_frames == 8
    assert settings.orchestrator.fast_forward_interval_ms == 0
    assert settings.orchestrator.stall_timeout_seconds == 600
    assert settings.runners.enabled == ("npm", "Grunt")
    assert settings.runners.npm_command == "/usr/local/bin/npm"
    assert settings.runners.kill_grace_seconds == 0.5
    settings.validate()


def test_explicit_project_dir_wins_over_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("RUNBAR_PROJECT_DIR", str(tmp_path / "ignored"))

    settings = Settings.from_env(project_dir=tmp_path)

    assert settings.project_dir == tmp_path


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("RUNBAR_INDETERMINATE_INTERVAL_MS", "0", "RUNBAR_INDETERMINATE_INTERVAL_MS"),
        ("RUNBAR_INDETERMINATE_FRAMES", "0", "RUNBAR_INDETERMINATE_FRAMES"),
        ("RUNBAR_FAST_FORWARD_INTERVAL_MS", "-1", "RUNBAR_FAST_FORWARD_INTERVAL_MS"),
        ("RUNBAR_STALL_TIMEOUT_SECONDS", "-1", "RUNBAR_STALL_TIMEOUT_SECONDS"),
        ("RUNBAR_KILL_GRACE_SECONDS", "-1", "RUNBAR_KILL_GRACE_SECONDS"),
        ("RUNBAR_RUNNERS", " , ", "RUNBAR_RUNNERS"),
    ],
)
def test_validate_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    name: str,
    value: str,
    message: str,
) -> None:
    monkeypatch.setenv(name, value)
    settings = Settings.from_env(project_dir=tmp_path)

    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_validate_rejects_missing_project_dir(tmp_path: Path) -> None:
    settings = Settings.from_env(project_dir=tmp_path / "missing")

    with pytest.raises(ValueError, match="Project directory does not exist"):
        settings.validate()
