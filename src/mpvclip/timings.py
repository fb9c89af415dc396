from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationFailure


@dataclass(frozen=True)
class TimingSnapshot:
    start: float | None
    end: float | None

    def is_valid(self) -> bool:
        if self.start is None or self.end is None:
            return False
        return self.end > self.start

    def bounds(self) -> tuple[float, float]:
        if self.start is None or self.end is None or self.end <= self.start:
            raise ValidationFailure("Wrong timings. Aborting.")
        return self.start, self.end

    @property
    def duration(self) -> float:
        if self.start is None or self.end is None:
            return 0.0
        return self.end - self.start


class TimingWindow:
    """Start/end marks set from the menu. Planning only ever sees a snapshot."""

    def __init__(self) -> None:
        self.start: float | None = None
        self.end: float | None = None

    def set(self, which: str, seconds: float) -> None:
        if which not in {"start", "end"}:
            raise ValueError(f"Unknown timing: {which}")
        setattr(self, which, max(0.0, float(seconds)))

    def reset(self) -> None:
        self.start = None
        self.end = None

    def is_valid(self) -> bool:
        return self.snapshot().is_valid()

    def snapshot(self) -> TimingSnapshot:
        return TimingSnapshot(start=self.start, end=self.end)
