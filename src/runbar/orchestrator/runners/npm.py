"""npm scripts runner."""

from __future__ import annotations

import json
import logging

from runbar.orchestrator.runners.base import SubprocessTaskRunner

logger = logging.getLogger(__name__)


class NpmRunner(SubprocessTaskRunner):
    """Exposes the ``scripts`` of the project's package.json."""

    name = "NPM"

    def list_tasks(self) -> list[str]:
        package_json = self.project_dir / "package.json"
        try:
            payload = json.loads(package_json.read_text("utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as error:
            logger.warning("Cannot read %s: %s", package_json, error)
            return []

        if not isinstance(payload, dict):
            return []
        scripts = payload.get("scripts")
        if not isinstance(scripts, dict):
            return []
        return [str(name) for name in scripts]

    def build_args(self, task_name: str) -> list[str]:
        return [self.command, "run", task_name]
