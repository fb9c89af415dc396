"""Cooperative job flows.

A flow is an ``async def`` procedure that receives its :class:`Flow` and
awaits one operation per step::

    async def procedure(flow: Flow) -> None:
        await flow.run(ProcessSpec.of("mpv", "--version"))
        await flow.run(next_spec)

Every ``await flow.run(...)`` suspends the procedure until the process
completion callback fires, so the steps read top to bottom while the event
loop stays free for the UI. Cancelling the flow terminates the process it is
waiting on and unwinds the procedure at that ``await``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from .errors import ClipError, LaunchFailure, ProcessFailure
from .process_runner import (
    ProcessHandle,
    ProcessResult,
    ProcessRunner,
    ProcessSpec,
    summarize_output,
)

logger = logging.getLogger(__name__)

FAILURE_MARKERS = ("could not open",)

Procedure = Callable[["Flow"], Awaitable[None]]
ResultCheck = Callable[[ProcessSpec, ProcessResult], None]
ErrorCallback = Callable[["Flow", Exception], None]
CancelCallback = Callable[["Flow"], None]
FinishCallback = Callable[["Flow"], None]


class FlowState(Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


def check_encoder_result(spec: ProcessSpec, result: ProcessResult) -> None:
    if result.launch_failed:
        raise LaunchFailure(spec, result)
    if result.status != 0:
        raise ProcessFailure(spec, result, summarize_output(result))
    for marker in FAILURE_MARKERS:
        if marker in result.stdout:
            raise ProcessFailure(spec, result, f"output reports '{marker}'")


class Flow:
    def __init__(self, runner: ProcessRunner, name: str) -> None:
        self.name = name
        self.state = FlowState.RUNNING
        self.error: Exception | None = None
        self._runner = runner
        self._task: asyncio.Task[None] | None = None
        self._awaiting: ProcessHandle | None = None
        self._cancel_requested = False
        self._finish_callbacks: list[FinishCallback] = []

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def awaiting(self) -> ProcessHandle | None:
        return self._awaiting

    def done(self) -> bool:
        return self.state is not FlowState.RUNNING

    async def run(
        self,
        spec: ProcessSpec,
        check: ResultCheck | None = check_encoder_result,
    ) -> ProcessResult:
        handle = self._runner.run(spec)
        self._awaiting = handle
        try:
            result = await self.wait(handle)
        finally:
            self._awaiting = None
        if check is not None:
            check(spec, result)
        return result

    async def wait(self, handle: ProcessHandle) -> ProcessResult:
        future: asyncio.Future[ProcessResult] = asyncio.get_running_loop().create_future()

        def deliver(result: ProcessResult) -> None:
            if not future.done():
                future.set_result(result)

        handle.add_done_callback(deliver)
        return await future

    def cancel(self) -> bool:
        if self.done() or self._cancel_requested:
            return False
        self._cancel_requested = True
        if self._awaiting is not None:
            self._awaiting.terminate()
        if self._task is not None:
            self._task.cancel()
        return True

    async def join(self) -> FlowState:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.state

    def add_finish_callback(self, callback: FinishCallback) -> None:
        if self.done():
            callback(self)
            return
        self._finish_callbacks.append(callback)

    def _finish(self, state: FlowState, error: Exception | None = None) -> None:
        self.state = state
        self.error = error
        callbacks, self._finish_callbacks = self._finish_callbacks, []
        for callback in callbacks:
            callback(self)


class FlowDriver:
    def __init__(
        self,
        runner: ProcessRunner | None = None,
        *,
        on_error: ErrorCallback | None = None,
        on_cancel: CancelCallback | None = None,
    ) -> None:
        self.runner = runner or ProcessRunner()
        self._on_error = on_error
        self._on_cancel = on_cancel

    def start(self, procedure: Procedure, *, name: str = "job") -> Flow:
        flow = Flow(self.runner, name)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._drive(flow, procedure), name=f"flow:{name}")
        task.add_done_callback(lambda done: self._settled(flow, done))
        flow._task = task
        return flow

    async def _drive(self, flow: Flow, procedure: Procedure) -> None:
        try:
            await procedure(flow)
        except asyncio.CancelledError:
            self._cancelled(flow)
            raise
        except ClipError as exc:
            logger.error("Flow %s failed: %s", flow.name, exc)
            flow._finish(FlowState.FAILED, exc)
            if self._on_error is not None:
                self._on_error(flow, exc)
            return
        except Exception as exc:
            logger.exception("Flow %s crashed", flow.name)
            flow._finish(FlowState.FAILED, exc)
            if self._on_error is not None:
                self._on_error(flow, exc)
            raise
        logger.info("Flow %s finished", flow.name)
        flow._finish(FlowState.DONE)

    def _settled(self, flow: Flow, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            # A flow cancelled before its first step never enters _drive.
            self._cancelled(flow)
            return
        # Crashes are logged and reported in _drive.
        task.exception()

    def _cancelled(self, flow: Flow) -> None:
        if flow.done():
            return
        logger.info("Flow %s cancelled", flow.name)
        flow._finish(FlowState.CANCELLED)
        if self._on_cancel is not None:
            self._on_cancel(flow)
