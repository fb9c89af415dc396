from __future__ import annotations

from dataclasses import replace
from typing import Sequence, TypeVar

from .config import AUDIO_FORMATS, LITTERBOX_EXPIRATIONS, VIDEO_FORMATS, AppConfig
from .planner import CropRect

T = TypeVar("T")

RESOLUTIONS: tuple[tuple[int, int], ...] = (
    (-2, -2),
    (-2, 240),
    (-2, 360),
    (-2, 480),
    (-2, 720),
    (-2, 1080),
    (-2, 1440),
    (-2, 2160),
)
AUDIO_BITRATES = ("32k", "64k", "128k", "256k", "384k")
FULL_HD = (1920, -2)


def next_option(options: Sequence[T], current: T) -> T:
    for index, option in enumerate(options):
        if option == current:
            return options[(index + 1) % len(options)]
    return options[0]


def cycle_resolution(config: AppConfig) -> AppConfig:
    width, height = next_option(RESOLUTIONS, (config.video_width, config.video_height))
    return replace(config, video_width=width, video_height=height)


def cycle_video_format(config: AppConfig) -> AppConfig:
    return replace(config, video_format=next_option(VIDEO_FORMATS, config.video_format))


def cycle_audio_format(config: AppConfig) -> AppConfig:
    return replace(config, audio_format=next_option(AUDIO_FORMATS, config.audio_format))


def cycle_audio_bitrate(config: AppConfig) -> AppConfig:
    return replace(config, audio_bitrate=next_option(AUDIO_BITRATES, config.audio_bitrate))


def cycle_litterbox_expiration(config: AppConfig) -> AppConfig:
    if not config.litterbox:
        return config
    return replace(
        config,
        litterbox_expire=next_option(LITTERBOX_EXPIRATIONS, config.litterbox_expire),
    )


def describe_resolution(config: AppConfig) -> str:
    width = "auto" if config.video_width == -2 else str(config.video_width)
    height = "auto" if config.video_height == -2 else str(config.video_height)
    return f"{width} x {height}"


def parse_crop(text: str) -> CropRect | None:
    """Parse ``x0 y0 x1 y1`` percentages. An empty string clears the crop."""
    parts = text.replace(",", " ").replace("%", " ").split()
    if not parts:
        return None
    if len(parts) != 4:
        raise ValueError("Enter four numbers: x0 y0 x1 y1")
    try:
        values = [float(part) for part in parts]
    except ValueError as exc:
        raise ValueError("Crop values must be numbers") from exc
    if any(value < 0 or value > 100 for value in values):
        raise ValueError("Crop values must be between 0 and 100")
    x0, y0, x1, y1 = (value / 100 for value in values)
    if x0 == x1 or y0 == y1:
        raise ValueError("Crop area is empty")
    return CropRect(x0=x0, y0=y0, x1=x1, y1=y1)


def describe_crop(crop: CropRect | None) -> str:
    if crop is None:
        return "NONE"
    return (
        f"{min(crop.x0, crop.x1) * 100:.2f}%,{min(crop.y0, crop.y1) * 100:.2f}% -> "
        f"{max(crop.x0, crop.x1) * 100:.2f}%,{max(crop.y0, crop.y1) * 100:.2f}%"
    )
