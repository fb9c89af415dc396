from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .process_runner import ProcessResult, ProcessSpec


class ClipError(Exception):
    """Base class for failures that abort a clip job."""


class ValidationFailure(ClipError, ValueError):
    pass


class LaunchFailure(ClipError, RuntimeError):
    def __init__(self, spec: ProcessSpec, result: ProcessResult) -> None:
        detail = result.stderr.strip() or "could not start process"
        super().__init__(f"Failed to launch {spec.program}: {detail}")
        self.spec = spec
        self.result = result


class ProcessFailure(ClipError, RuntimeError):
    def __init__(self, spec: ProcessSpec, result: ProcessResult, reason: str) -> None:
        super().__init__(f"{spec.program} failed: {reason}")
        self.spec = spec
        self.result = result
        self.reason = reason


class HostError(ClipError, RuntimeError):
    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
