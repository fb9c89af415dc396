from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from .config import AppConfig, EncodingSettings
from .errors import ValidationFailure
from .host import PlaybackState
from .process_runner import ProcessSpec
from .timeparse import format_ms
from .timings import TimingSnapshot

# Extra seconds dumped past the clip end so the trim never runs off the cache.
CACHE_END_MARGIN = 5.0
CACHE_EXTENSIONS = {"mkv", "mov", "mp4", "m4a", "3gp", "3g2", "mj2"}
DEFAULT_CACHE_EXTENSION = "mkv"

_COMMON_ARGS = (
    "--loop-file=no",
    "--keep-open=no",
    "--no-ocopy-metadata",
    "--no-sub",
    "--audio-channels=2",
)
_OPUS_ARGS = (
    "--oacopts-add=vbr=on",
    "--oacopts-add=application=voip",
    "--oacopts-add=compression_level=10",
)


class ClipType(Enum):
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class CropRect:
    """Two corners as fractions (0..1) of the displayed video frame."""

    x0: float
    y0: float
    x1: float
    y1: float


@dataclass(frozen=True)
class ClipRequest:
    clip_type: ClipType
    start: float
    end: float
    state: PlaybackState
    config: AppConfig
    encoding: EncodingSettings
    output_path: Path
    player: str = "mpv"
    crop: CropRect | None = None


@dataclass(frozen=True)
class CacheDump:
    start: float
    end: float
    folder: Path
    cache_file: Path
    normalized_file: Path


def output_path_for(
    clip_type: ClipType,
    basename: str,
    *,
    video_folder: Path,
    audio_folder: Path,
    encoding: EncodingSettings,
) -> Path:
    if clip_type is ClipType.VIDEO:
        return video_folder / f"{basename}{encoding.video_extension}"
    return audio_folder / f"{basename}{encoding.audio_extension}"


def validate_request(timings: TimingSnapshot, output_path: Path) -> tuple[float, float]:
    bounds = timings.bounds()
    folder = output_path.parent
    if not folder.is_dir():
        raise ValidationFailure(f"Error: location {folder} doesn't exist.")
    return bounds


def base_args(request: ClipRequest) -> ProcessSpec:
    return _BASE_BUILDERS[request.clip_type](request)


def plan_direct(request: ClipRequest) -> list[ProcessSpec]:
    spec = base_args(request).extended(
        request.state.path,
        f"--start={format_ms(request.start)}",
        f"--end={format_ms(request.end)}",
    )
    if request.clip_type is ClipType.VIDEO:
        spec = spec.extended(f"--sub-delay={format_ms(request.state.sub_delay)}")
    return [spec.extended(f"--o={request.output_path}")]


def plan_cache_dump(start: float, end: float, folder: Path, file_format: str) -> CacheDump:
    if end <= start:
        raise ValidationFailure("Wrong timings. Aborting.")
    ext = cache_extension(file_format)
    return CacheDump(
        start=start,
        end=end + CACHE_END_MARGIN,
        folder=folder,
        cache_file=folder / f"cached.{ext}",
        normalized_file=folder / f"normalized.{ext}",
    )


def plan_cached(request: ClipRequest, dump: CacheDump, achieved: float) -> list[ProcessSpec]:
    """Build the normalize and trim steps once the seek position is known.

    The dumped file starts at the keyframe the seek landed on, so every
    offset into it is shifted by ``achieved``.
    """
    normalize = base_args(request).extended(
        dump.cache_file,
        f"--o={dump.normalized_file}",
    )
    if request.state.current_sub_external:
        normalize = normalize.extended(
            f"--sub-delay={format_ms(request.state.sub_delay - achieved)}"
        )
    trim = ProcessSpec.of(
        request.player,
        dump.normalized_file,
        *_COMMON_ARGS,
        f"--start={format_ms(request.start - achieved)}",
        f"--length={format_ms(request.end - request.start)}",
        f"--o={request.output_path}",
    )
    return [normalize, trim]


def cache_extension(file_format: str) -> str:
    ext = file_format.split(",")[0].strip().lower()
    if ext in CACHE_EXTENSIONS:
        return ext
    return DEFAULT_CACHE_EXTENSION


def crop_filter(
    crop: CropRect,
    width: int | None,
    height: int | None,
    target_height: int,
) -> str | None:
    if not width or not height:
        return None
    video_width = float(width)
    video_height = float(height)
    if target_height != -2:
        video_width = video_width * target_height / video_height
        video_height = float(target_height)
    start_x = math.floor(min(crop.x0, crop.x1) * video_width)
    start_y = math.floor(min(crop.y0, crop.y1) * video_height)
    end_x = math.floor(max(crop.x0, crop.x1) * video_width)
    end_y = math.floor(max(crop.y0, crop.y1) * video_height)
    return f"{end_x - start_x}:{end_y - start_y}:{start_x}:{start_y}"


def _video_args(request: ClipRequest) -> ProcessSpec:
    config = request.config
    state = request.state
    spec = ProcessSpec.of(
        request.player,
        *_COMMON_ARGS,
        *_OPUS_ARGS,
        "--vf-add=format=yuv420p",
        "--sub-font-provider=auto",
        "--embeddedfonts=yes",
        f"--sub-font={config.sub_font}",
        f"--ovc={request.encoding.video_codec}",
        f"--oac={request.encoding.audio_codec}",
        f"--aid={state.aid}",
        f"--mute={state.mute}",
        f"--volume={state.volume}",
        f"--ovcopts-add=b={config.video_bitrate}",
        f"--oacopts-add=b={config.audio_bitrate}",
        f"--ovcopts-add=crf={config.video_quality}",
        f"--ovcopts-add=preset={config.preset}",
        f"--vf-add=scale={config.video_width}:{config.video_height}",
        f"--ytdl-format={state.ytdl_format}",
        f"--sid={state.sid}",
        f"--secondary-sid={state.secondary_sid}",
        f"--sub-visibility={state.sub_visibility}",
        f"--secondary-sub-visibility={state.secondary_sub_visibility}",
        f"--sub-back-color={state.sub_back_color}",
        f"--sub-border-style={state.sub_border_style}",
        f"--video-aspect-override={state.video_aspect_override}",
    )
    if request.crop is not None:
        crop = crop_filter(request.crop, state.width, state.height, config.video_height)
        if crop is not None:
            spec = spec.extended(f"--vf-add=crop={crop}")
    if state.referrer:
        spec = spec.extended(f"--referrer={state.referrer}")
    if config.video_fps != "auto":
        spec = spec.extended(f"--vf-add=fps={config.video_fps}")
    for sub_path in state.external_subs:
        spec = spec.extended(f"--sub-files-append={sub_path}")
    return spec


def _audio_args(request: ClipRequest) -> ProcessSpec:
    config = request.config
    state = request.state
    spec = ProcessSpec.of(
        request.player,
        *_COMMON_ARGS,
        "--video=no",
        *_OPUS_ARGS,
        f"--oac={request.encoding.audio_codec}",
        f"--volume={state.volume}",
        f"--aid={state.aid}",
        f"--oacopts-add=b={config.audio_bitrate}",
        f"--ytdl-format={state.ytdl_format}",
    )
    if state.referrer:
        spec = spec.extended(f"--referrer={state.referrer}")
    return spec


_BASE_BUILDERS: dict[ClipType, Callable[[ClipRequest], ProcessSpec]] = {
    ClipType.VIDEO: _video_args,
    ClipType.AUDIO: _audio_args,
}
