"""Task runner plugin contract and the subprocess-based implementation."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_LINE_LIMIT_BYTES = 1024 * 1024
_READ_CHUNK_BYTES = 64 * 1024


class TaskSink(Protocol):
    """Where a runner reports the progress of one invocation."""

    def output_line(self, text: str) -> None:
        """Deliver one line of process output."""

    def finished(self, success: bool) -> None:
        """Report termination. Must be called exactly once per start()."""


class TaskRunner(Protocol):
    """Protocol implemented by task runner plugins.

    A runner exposes the named tasks of one external tool and executes at most
    one of them at a time. After start() the runner must call sink.finished()
    exactly once, including after kill(). A runner that never does leaves the
    orchestrator busy until the watchdog (if enabled) gives up on it.
    """

    name: str

    def list_tasks(self) -> list[str]:
        """Available task names; empty when the tool is missing or misconfigured."""

    def start(self, task_name: str, sink: TaskSink) -> None:
        """Begin one invocation of task_name."""

    def kill(self) -> None:
        """Terminate the in-flight invocation."""


class RunnerBusyError(RuntimeError):
    """start() was called while a previous invocation is still alive."""


class SubprocessTaskRunner:
    """Runs each task as a child process on the running asyncio loop.

    Subclasses provide ``name``, ``list_tasks`` and ``build_args``.
    """

    name = ""

    def __init__(
        self,
        *,
        project_dir: Path,
        command: str,
        kill_grace_seconds: float = 2.0,
    ) -> None:
        self.project_dir = project_dir
        self.command = command
        self.kill_grace_seconds = kill_grace_seconds
        self._process: asyncio.subprocess.Process | None = None
        self._execution: asyncio.Task[None] | None = None
        self._terminator: asyncio.Task[None] | None = None
        self._kill_requested = False

    def list_tasks(self) -> list[str]:
        raise NotImplementedError

    def build_args(self, task_name: str) -> list[str]:
        raise NotImplementedError

    @property
    def is_active(self) -> bool:
        return self._execution is not None and not self._execution.done()

    def start(self, task_name: str, sink: TaskSink) -> None:
        if self.is_active:
            raise RunnerBusyError(f"{self.name} runner is already executing a task")
        self._kill_requested = False
        self._terminator = None
        args = self.build_args(task_name)
        loop = asyncio.get_running_loop()
        self._execution = loop.create_task(self._execute(args, sink))

    def kill(self) -> None:
        self._kill_requested = True
        process = self._process
        if process is None or process.returncode is not None:
            return
        self._start_terminator(process)

    async def wait(self) -> None:
        """Wait for the current invocation, if any, to report termination."""

        if self._execution is not None:
            await self._execution
        if self._terminator is not None and not self._terminator.done():
            await asyncio.wait({self._terminator})

    async def _execute(self, args: list[str], sink: TaskSink) -> None:
        logger.info("Starting %s in %s", " ".join(args), self.project_dir)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=self.project_dir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as error:
            logger.warning("Failed to start %s: %s", args[0], error)
            sink.output_line(f"Failed to start {args[0]}: {error}")
            sink.finished(False)
            return

        self._process = process
        if self._kill_requested:
            # Output keeps draining while the terminator waits for the exit.
            self._start_terminator(process)

        output_lost = False
        try:
            try:
                await _stream_lines(process, sink)
            except (OSError, ValueError) as error:
                logger.warning("Lost output of %s: %s", args[0], error)
                sink.output_line(f"Lost output of {args[0]}: {error}")
                output_lost = True
                await self._terminate(process)
            returncode = await process.wait()
        except asyncio.CancelledError:
            await self._terminate(process)
            raise
        finally:
            self._process = None

        logger.info("%s exited with code %s", " ".join(args), returncode)
        sink.finished(returncode == 0 and not output_lost)

    def _start_terminator(self, process: asyncio.subprocess.Process) -> None:
        terminator = asyncio.get_running_loop().create_task(self._terminate(process))
        terminator.add_done_callback(_log_terminator_failure)
        self._terminator = terminator

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
        except TimeoutError:
            logger.warning("Process %s ignored terminate; killing", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()


async def _stream_lines(process: asyncio.subprocess.Process, sink: TaskSink) -> None:
    """Route process output to the sink line by line.

    Output without a newline is delivered in slices of at most
    ``_LINE_LIMIT_BYTES`` so a single long line cannot stall the reader.
    """

    if process.stdout is None:
        return
    pending = b""
    while True:
        chunk = await process.stdout.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            sink.output_line(_decode_line(line))
        while len(pending) >= _LINE_LIMIT_BYTES:
            sink.output_line(_decode_line(pending[:_LINE_LIMIT_BYTES]))
            pending = pending[_LINE_LIMIT_BYTES:]
    if pending:
        sink.output_line(_decode_line(pending))


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")


def _log_terminator_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Terminating a task process failed", exc_info=error)
