from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

STATUS_LAUNCH_FAILED = -1
STATUS_ABORTED = -2
ERROR_INIT = "init"
ERROR_KILLED = "killed"
TERMINATE_GRACE_SECONDS = 2.0

DoneCallback = Callable[["ProcessResult"], None]


@dataclass(frozen=True)
class ProcessSpec:
    args: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.args:
            raise ValueError("Process spec needs at least a program name")

    @classmethod
    def of(cls, *args: object) -> ProcessSpec:
        return cls(tuple(str(arg) for arg in args))

    @property
    def program(self) -> str:
        return self.args[0]

    def extended(self, *extra: object) -> ProcessSpec:
        return ProcessSpec(self.args + tuple(str(arg) for arg in extra))

    def __str__(self) -> str:
        return shlex.join(self.args)


@dataclass(frozen=True)
class ProcessResult:
    status: int
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def launch_failed(self) -> bool:
        return self.error == ERROR_INIT

    @property
    def aborted(self) -> bool:
        return self.error == ERROR_KILLED

    @property
    def ok(self) -> bool:
        return self.status == 0 and self.error is None


class ProcessHandle:
    """One pending process run. Completion is announced through callbacks."""

    def __init__(self, spec: ProcessSpec) -> None:
        self.spec = spec
        self._result: ProcessResult | None = None
        self._callbacks: list[DoneCallback] = []
        self._process: asyncio.subprocess.Process | None = None
        self._terminate_requested = False

    @property
    def terminate_requested(self) -> bool:
        return self._terminate_requested

    def done(self) -> bool:
        return self._result is not None

    def result(self) -> ProcessResult:
        if self._result is None:
            raise RuntimeError(f"Process has not finished: {self.spec.program}")
        return self._result

    def add_done_callback(self, callback: DoneCallback) -> None:
        if self._result is not None:
            callback(self._result)
            return
        self._callbacks.append(callback)

    def terminate(self) -> None:
        if self._result is not None or self._terminate_requested:
            return
        self._terminate_requested = True
        if self._process is not None:
            _terminate_process(self._process)

    def set_result(self, result: ProcessResult) -> None:
        if self._result is not None:
            return
        self._result = result
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(result)

    def attach(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        if self._terminate_requested:
            _terminate_process(process)


class ProcessRunner:
    """Launches processes on the running event loop without waiting for them."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def run(self, spec: ProcessSpec) -> ProcessHandle:
        handle = ProcessHandle(spec)
        task = asyncio.get_running_loop().create_task(self._execute(handle))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _execute(self, handle: ProcessHandle) -> None:
        spec = handle.spec
        logger.debug("Launching %s", spec)
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("Could not launch %s: %s", spec.program, exc)
            handle.set_result(
                ProcessResult(
                    status=STATUS_LAUNCH_FAILED,
                    stderr=str(exc),
                    error=ERROR_INIT,
                )
            )
            return

        handle.attach(process)
        stdout, stderr = await process.communicate()
        stdout_text = _decode(stdout)
        stderr_text = _decode(stderr)
        if handle.terminate_requested:
            logger.info("Process %s aborted (exit %s)", spec.program, process.returncode)
            result = ProcessResult(
                status=STATUS_ABORTED,
                stdout=stdout_text,
                stderr=stderr_text,
                error=ERROR_KILLED,
            )
        else:
            logger.debug("Process %s exited with %s", spec.program, process.returncode)
            result = ProcessResult(
                status=process.returncode if process.returncode is not None else 0,
                stdout=stdout_text,
                stderr=stderr_text,
            )
        handle.set_result(result)


def summarize_output(result: ProcessResult) -> str:
    message = result.stderr.strip() or result.stdout.strip()
    if not message:
        return f"exit code {result.status}"
    return message.splitlines()[-1]


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _terminate_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    loop = asyncio.get_running_loop()
    loop.call_later(TERMINATE_GRACE_SECONDS, _kill_if_running, process)


def _kill_if_running(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass
