"""Grunt tasks runner."""

from __future__ import annotations

import logging
import re
import shutil

from runbar.orchestrator.runners.base import SubprocessTaskRunner

logger = logging.getLogger(__name__)

GRUNTFILE_NAMES = ("Gruntfile.js", "Gruntfile.coffee")

# Tasks loaded from grunt plugins are not listed, only the ones the project registers.
_REGISTER_TASK_RE = re.compile(
    r"""\bregister(?:Multi)?Task\s*\(?\s*(['"])(?P<name>[^'"\n]+)\1""",
)


class GruntRunner(SubprocessTaskRunner):
    """Exposes the tasks registered in the project's Gruntfile."""

    name = "Grunt"

    def list_tasks(self) -> list[str]:
        if not self._grunt_available():
            return []

        for filename in GRUNTFILE_NAMES:
            gruntfile = self.project_dir / filename
            try:
                source = gruntfile.read_text("utf-8")
            except FileNotFoundError:
                continue
            except (OSError, UnicodeDecodeError) as error:
                logger.warning("Cannot read %s: %s", gruntfile, error)
                return []
            return parse_registered_tasks(source)
        return []

    def build_args(self, task_name: str) -> list[str]:
        return [self.command, task_name]

    def _grunt_available(self) -> bool:
        if (self.project_dir / "node_modules" / "grunt").is_dir():
            return True
        return shutil.which(self.command) is not None


def parse_registered_tasks(source: str) -> list[str]:
    """Task names passed to registerTask/registerMultiTask, first occurrence order."""

    names: list[str] = []
    seen: set[str] = set()
    for match in _REGISTER_TASK_RE.finditer(source):
        name = match.group("name").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names
