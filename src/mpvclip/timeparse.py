from __future__ import annotations

EMPTY_TIME = "empty"


def format_ms(value: float) -> str:
    """Trim a timestamp down to milliseconds, the way mpv expects it on the command line."""
    return f"{_round_seconds(value):.3f}"


def human_readable_time(value: float | None) -> str:
    if value is None or value != value or value < 0:
        return EMPTY_TIME
    total_ms = int(round(value * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds, millis = divmod(remainder, 1000)
    text = f"{minutes:02d}m{seconds:02d}s{millis:03d}ms"
    if hours > 0:
        text = f"{hours}h{text}"
    return text


def _round_seconds(value: float) -> float:
    return round(value, 3)
