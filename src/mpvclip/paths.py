from __future__ import annotations

import shutil
from pathlib import Path

from platformdirs import (
    user_cache_path,
    user_config_path,
    user_log_path,
    user_music_path,
    user_videos_path,
)

APP_NAME = "mpvclip"


def cache_root() -> Path:
    root = user_cache_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root


def config_root() -> Path:
    root = user_config_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root


def config_path() -> Path:
    return config_root() / "config.json"


def log_path() -> Path:
    root = user_log_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root / "mpvclip.log"


def default_dump_dir() -> Path:
    return cache_root() / "dump"


def default_video_dir() -> Path:
    return user_videos_path()


def default_audio_dir() -> Path:
    return user_music_path()


def expand_path(value: str | Path) -> Path:
    return Path(value).expanduser()


def remove_dump_dir(path: Path) -> str | None:
    if not path.exists():
        return None
    try:
        shutil.rmtree(path)
    except OSError as exc:
        return f"Failed to remove cache folder: {path} ({exc})"
    return None
