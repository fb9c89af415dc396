from __future__ import annotations

from rich.text import Text

from ..config import AppConfig
from ..planner import CropRect
from ..prefs import describe_crop, describe_resolution
from ..timeparse import human_readable_time
from ..timings import TimingWindow
from ..upload import host_label


def _section(text: Text, title: str, hint: str | None = None) -> None:
    text.append(title, style="bold")
    if hint:
        text.append(f" {hint}", style="italic dim")
    text.append("\n")


def _item(text: Text, key: str, label: str, value: str | None = None) -> None:
    text.append("    ")
    text.append(f"{key}: ", style="bold cyan")
    text.append(label)
    if value is not None:
        text.append(" ")
        text.append(value, style="yellow")
    text.append("\n")


def upload_target(config: AppConfig) -> str:
    if config.litterbox:
        return f"{host_label(config)} ({config.litterbox_expire})"
    return host_label(config)


def main_menu_text(
    timings: TimingWindow,
    config: AppConfig,
    *,
    alive: bool | None,
    player: str,
    job_running: bool = False,
) -> Text:
    text = Text()
    if alive is False:
        text.append("Error: ", style="bold red")
        text.append("mpv is not found in the PATH.\n")
    _section(text, "Timings", "(+shift use sub timings)")
    _item(text, "s", "start time", human_readable_time(timings.start))
    _item(text, "e", "end time", human_readable_time(timings.end))
    _item(text, "r", "reset")
    _section(text, "Create clip", "(+shift to force fullHD preset)")
    _item(text, "c", "video clip")
    _item(text, "a", "audio clip")
    _item(text, "x", f"video clip to {upload_target(config)}")
    _section(text, "Options")
    _item(text, "p", "Open preferences")
    _item(text, "o", "Open streamable.com")
    _item(text, "k", "Kill running process", "(running)" if job_running else None)
    _item(text, "q", "Quit")
    if alive:
        text.append(f"\nEncoder: {player}", style="dim")
    return text


def preferences_text(
    config: AppConfig,
    *,
    crop: CropRect | None,
    mute: str,
    sub_visibility: str,
) -> Text:
    text = Text()
    _section(text, "Preferences")
    _item(text, "r", "Video resolution:", describe_resolution(config))
    _item(text, "f", "Video format:", config.video_format)
    _item(text, "a", "Audio format:", config.audio_format)
    _item(text, "b", "Audio bitrate:", config.audio_bitrate)
    _item(text, "m", "Mute audio:", mute)
    _item(text, "e", "Embed subtitles:", sub_visibility)
    _item(text, "c", "Crop:", describe_crop(crop))
    _section(text, "Catbox")
    _item(
        text,
        "x",
        "Using:",
        "Litterbox (temporary)" if config.litterbox else "Catbox (permanent)",
    )
    if config.litterbox:
        _item(text, "z", "Litterbox expires after:", config.litterbox_expire)
    else:
        text.append("    z: Litterbox expires after: N/A\n", style="dim")
    _section(text, "Use internal cache (on streams)")
    _item(text, "d", "Use cache:", "yes" if config.use_cache else "no")
    text.append(
        "    There are no guardrails against clipping beyond cached time, "
        "so it is recommended to increase cache\n",
        style="dim",
    )
    _section(text, "Save")
    _item(text, "s", "Save preferences")
    return text
