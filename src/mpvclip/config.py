from __future__ import annotations

import json
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from .paths import (
    config_path,
    default_audio_dir,
    default_dump_dir,
    default_video_dir,
    expand_path,
)

CONFIG_VERSION = 1
DEFAULT_IPC_PATH = "/tmp/mpvsocket"

ALLOWED_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)
VIDEO_FORMATS = ("mp4", "vp9", "vp8")
AUDIO_FORMATS = ("aac", "opus")
LITTERBOX_EXPIRATIONS = ("1h", "12h", "24h", "72h")

_AUDIO_BITRATE_RE = re.compile(r"^\d+[kK]$")
_VIDEO_BITRATE_RE = re.compile(r"^\d+[kKmM]$")


@dataclass
class AppConfig:
    version: int = CONFIG_VERSION
    video_folder_path: str | None = None
    audio_folder_path: str | None = None
    # CRF: 0 is lossless, 23 is the x264 default, 51 is the worst.
    video_quality: int = 23
    preset: str = "faster"
    video_format: str = "mp4"
    video_bitrate: str = "1M"
    video_width: int = -2
    video_height: int = 480
    video_fps: str = "auto"
    audio_format: str = "opus"
    audio_bitrate: str = "32k"
    clean_filename: bool = True
    litterbox: bool = True
    litterbox_expire: str = "72h"
    sub_font: str = "Noto Sans CJK JP"
    filename_template: str = "%n_%s-%e"
    cache_path: str | None = None
    use_cache: bool = False
    ipc_path: str = DEFAULT_IPC_PATH


@dataclass(frozen=True)
class EncodingSettings:
    video_codec: str
    video_extension: str
    audio_codec: str
    audio_extension: str


def load_config(path: Path | None = None) -> tuple[AppConfig, str | None]:
    path = path or config_path()
    if not path.exists():
        return AppConfig(), None
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        return AppConfig(), f"Failed to read config: {path} ({exc})"
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return AppConfig(), f"Config file is not valid JSON: {path}"
    if not isinstance(data, dict):
        return AppConfig(), f"Config file must be a JSON object: {path}"
    return normalize_config(_parse_config_data(data)), None


def save_config(config: AppConfig, path: Path | None = None) -> str | None:
    path = path or config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Failed to create config directory: {path.parent} ({exc})"
    payload = _config_to_dict(config)
    try:
        path.write_text(
            json.dumps(payload, ensure_ascii=True, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        return f"Failed to write config: {path} ({exc})"
    return None


def normalize_config(config: AppConfig) -> AppConfig:
    audio_bitrate = config.audio_bitrate
    if not _AUDIO_BITRATE_RE.match(audio_bitrate):
        number = _whole_number(audio_bitrate) or 32
        audio_bitrate = f"{number}k"
    video_bitrate = config.video_bitrate
    if not _VIDEO_BITRATE_RE.match(video_bitrate):
        video_bitrate = "1M"
    preset = config.preset if config.preset in ALLOWED_PRESETS else "faster"
    return replace(
        config,
        audio_bitrate=audio_bitrate,
        video_bitrate=video_bitrate,
        preset=preset,
    )


def encoding_for(config: AppConfig) -> EncodingSettings:
    if config.video_format == "mp4":
        video_codec, video_extension = "libx264", ".mp4"
    elif config.video_format == "vp9":
        video_codec, video_extension = "libvpx-vp9", ".webm"
    else:
        video_codec, video_extension = "libvpx", ".webm"

    if config.audio_format == "aac":
        audio_codec, audio_extension = "aac", ".aac"
    else:
        audio_codec, audio_extension = "libopus", ".opus"

    return EncodingSettings(
        video_codec=video_codec,
        video_extension=video_extension,
        audio_codec=audio_codec,
        audio_extension=audio_extension,
    )


def video_folder(config: AppConfig) -> Path:
    if config.video_folder_path:
        return expand_path(config.video_folder_path)
    return default_video_dir()


def audio_folder(config: AppConfig) -> Path:
    if config.audio_folder_path:
        return expand_path(config.audio_folder_path)
    return default_audio_dir()


def dump_folder(config: AppConfig) -> Path:
    if config.cache_path:
        return expand_path(config.cache_path)
    return default_dump_dir()


def _parse_config_data(data: dict[str, Any]) -> AppConfig:
    defaults = AppConfig()
    return AppConfig(
        version=_as_int(data.get("version")) or CONFIG_VERSION,
        video_folder_path=_as_str(data.get("video_folder_path")),
        audio_folder_path=_as_str(data.get("audio_folder_path")),
        video_quality=_or(_as_nonneg_int(data.get("video_quality")), defaults.video_quality),
        preset=_or(_as_str(data.get("preset")), defaults.preset),
        video_format=_choice(data.get("video_format"), VIDEO_FORMATS, defaults.video_format),
        video_bitrate=_or(_as_str(data.get("video_bitrate")), defaults.video_bitrate),
        video_width=_or(_as_int(data.get("video_width")), defaults.video_width),
        video_height=_or(_as_int(data.get("video_height")), defaults.video_height),
        video_fps=_or(_as_str(_stringify(data.get("video_fps"))), defaults.video_fps),
        audio_format=_choice(data.get("audio_format"), AUDIO_FORMATS, defaults.audio_format),
        audio_bitrate=_or(_as_str(_stringify(data.get("audio_bitrate"))), defaults.audio_bitrate),
        clean_filename=_or(_as_bool(data.get("clean_filename")), defaults.clean_filename),
        litterbox=_or(_as_bool(data.get("litterbox")), defaults.litterbox),
        litterbox_expire=_choice(
            data.get("litterbox_expire"), LITTERBOX_EXPIRATIONS, defaults.litterbox_expire
        ),
        sub_font=_or(_as_str(data.get("sub_font")), defaults.sub_font),
        filename_template=_or(_as_str(data.get("filename_template")), defaults.filename_template),
        cache_path=_as_str(data.get("cache_path")),
        use_cache=_or(_as_bool(data.get("use_cache")), defaults.use_cache),
        ipc_path=_or(_as_str(data.get("ipc_path")), defaults.ipc_path),
    )


def _config_to_dict(config: AppConfig) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for item in fields(config):
        _set_if(data, item.name, getattr(config, item.name))
    return data


def _set_if(data: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        data[key] = value


def _or(value: Any, default: Any) -> Any:
    return default if value is None else value


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    text = _as_str(value)
    if text is None:
        return default
    text = text.lower()
    return text if text in allowed else default


def _stringify(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _whole_number(value: str) -> int | None:
    text = value.strip()
    if not text.isdigit():
        return None
    return int(text)


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_nonneg_int(value: Any) -> int | None:
    number = _as_int(value)
    if number is None or number < 0:
        return None
    return number
