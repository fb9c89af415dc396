from __future__ import annotations

import re
from datetime import datetime
from pathlib import PurePath

from .timeparse import human_readable_time
from .timings import TimingSnapshot

_TAG_RE = re.compile(r"%([ntsedYMDHIPNS])")
_BRACKETS_RE = re.compile(r"\s*(\[[^\]]*\]|\([^)]*\)|【[^】]*】|（[^）]*）)\s*")
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s.\-]+")
_WHITESPACE_RE = re.compile(r"\s+")
_FORBIDDEN_TITLE_RE = re.compile(r'[<>:"/\\|?*]+')


def format_clip_basename(
    template: str,
    *,
    filename: str,
    title: str,
    timings: TimingSnapshot,
    clean: bool = True,
    now: datetime | None = None,
) -> str:
    """Expand %-tags in the filename template.

    %n file name, %t title, %s start, %e end, %d duration, %Y year,
    %M month, %D day, %H hour (24h), %I hour (12h), %P am/pm,
    %N minutes, %S seconds.
    """
    now = now or datetime.now()
    if title == filename or not title:
        filename = clean_filename(filename, clean=clean)
        title = filename
    else:
        filename = clean_filename(filename, clean=clean)
        title = clean_forbidden_characters(title)

    hour_12, sign = _twelve_hour(now.hour)
    start = timings.start or 0.0
    end = timings.end or 0.0
    values = {
        "n": filename,
        "t": title,
        "s": human_readable_time(start),
        "e": human_readable_time(end),
        "d": human_readable_time(end - start),
        "Y": str(now.year),
        "M": f"{now.month:02d}",
        "D": f"{now.day:02d}",
        "H": f"{now.hour:02d}",
        "I": f"{hour_12:02d}",
        "P": sign,
        "N": f"{now.minute:02d}",
        "S": f"{now.second:02d}",
    }
    return _TAG_RE.sub(lambda match: values[match.group(1)], template)


def clean_filename(filename: str, *, clean: bool = True) -> str:
    name = PurePath(filename).stem if filename else ""
    if not clean:
        return name
    name = _BRACKETS_RE.sub(" ", name)
    name = _SPECIAL_CHARS_RE.sub("", name)
    name = _WHITESPACE_RE.sub(" ", name)
    return name.strip()


def clean_forbidden_characters(title: str) -> str:
    return _FORBIDDEN_TITLE_RE.sub(".", title)


def _twelve_hour(hour: int) -> tuple[int, str]:
    sign = "pm" if hour >= 12 else "am"
    hour = hour % 12
    return (hour or 12, sign)
