"""Persistent store of the last successful duration per task.

The backing file is one JSON document shaped as
``{project_key: {runner_name: {task_name: duration_ms}}}``. Several processes
may share it, so every write re-reads the document and merges into it instead
of dumping the in-memory copy.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DurationDocument = dict[str, dict[str, dict[str, int]]]


class DurationStoreError(RuntimeError):
    """Backing document cannot be read or written."""


class DurationStore:
    """JSON-file backed duration estimates."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: DurationDocument | None = None

    def get_duration(self, project_key: str, runner_name: str, task_name: str) -> int | None:
        """Last successful duration in ms, or None when the task has no estimate."""

        data = self._loaded()
        value = data.get(project_key, {}).get(runner_name, {}).get(task_name)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            logger.warning(
                "Ignoring malformed duration %r for %s/%s/%s",
                value,
                project_key,
                runner_name,
                task_name,
            )
            return None
        return value

    def set_duration(
        self,
        project_key: str,
        runner_name: str,
        task_name: str,
        duration_ms: int,
    ) -> None:
        """Merge one duration into the persisted document."""

        if duration_ms < 0:
            raise ValueError(f"Duration must be >= 0 ms, got {duration_ms}")

        data = self._read_document()
        data.setdefault(project_key, {}).setdefault(runner_name, {})[task_name] = int(duration_ms)
        self._write_document(data)
        self._data = data
        logger.debug(
            "Stored duration %s ms for %s/%s/%s",
            duration_ms,
            project_key,
            runner_name,
            task_name,
        )

    def durations_for_project(self, project_key: str) -> dict[str, dict[str, int]]:
        """Fresh copy of all estimates recorded for one project."""

        self._data = self._read_document()
        project = self._data.get(project_key, {})
        return {runner: dict(tasks) for runner, tasks in project.items()}

    def _loaded(self) -> DurationDocument:
        if self._data is None:
            self._data = self._read_document()
        return self._data

    def _read_document(self) -> DurationDocument:
        try:
            raw = self.path.read_text("utf-8")
        except FileNotFoundError:
            return {}
        except OSError as error:
            raise DurationStoreError(f"Cannot read duration store {self.path}: {error}") from error

        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as error:
            raise DurationStoreError(
                f"Duration store {self.path} is not valid JSON: {error}",
            ) from error
        return _validate_document(payload, path=self.path)

    def _write_document(self, data: DurationDocument) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True),
                "utf-8",
            )
            os.replace(tmp_path, self.path)
        except OSError as error:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise DurationStoreError(
                f"Cannot write duration store {self.path}: {error}",
            ) from error


def _validate_document(payload: Any, *, path: Path) -> DurationDocument:
    if not isinstance(payload, dict):
        raise DurationStoreError(f"Expected JSON object in {path}")
    for project_key, runners in payload.items():
        if not isinstance(runners, dict) or not all(
            isinstance(tasks, dict) for tasks in runners.values()
        ):
            raise DurationStoreError(
                f"Duration store {path} has unexpected layout under project {project_key!r}",
            )
    return payload
