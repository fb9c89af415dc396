from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .config import AppConfig

logger = logging.getLogger(__name__)

Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]

LITTERBOX_ENDPOINT = "https://litterbox.catbox.moe/resources/internals/api.php"
CATBOX_ENDPOINT = "https://catbox.moe/user/api.php"
# Exit status reported when the executable itself could not be started.
STATUS_NOT_RUN = 127


@dataclass(frozen=True)
class UploadResult:
    url: str | None
    error: str | None = None


def host_label(config: AppConfig) -> str:
    return "litterbox.catbox.moe" if config.litterbox else "catbox.moe"


def curl_executable() -> str:
    return shutil.which("curl") or "curl"


def build_upload_command(path: Path, config: AppConfig, curl: str | None = None) -> list[str]:
    endpoint = LITTERBOX_ENDPOINT if config.litterbox else CATBOX_ENDPOINT
    return [
        curl or curl_executable(),
        "-s",
        "-F",
        "reqtype=fileupload",
        "-F",
        f"time={config.litterbox_expire}",
        "-F",
        f'fileToUpload=@"{path}"',
        endpoint,
    ]


def classify_upload_status(status: int, config: AppConfig) -> str | None:
    """Statuses 0..99 come from curl itself, anything else means it never ran."""
    if status < 0 or status > 99:
        return "Error: Failed to upload. Make sure cURL is installed and in your PATH."
    if status != 0:
        return f"Error: Failed to upload to {host_label(config)}"
    return None


def upload_file(
    path: Path,
    config: AppConfig,
    *,
    runner: Runner | None = None,
) -> UploadResult:
    command = build_upload_command(path, config)
    runner = runner or _run_subprocess
    completed = runner(command)
    error = classify_upload_status(completed.returncode, config)
    if error is not None:
        logger.warning("Upload of %s failed with status %s", path, completed.returncode)
        return UploadResult(url=None, error=error)
    url = (completed.stdout or "").strip()
    if not url:
        return UploadResult(url=None, error=f"Error: {host_label(config)} returned no URL")
    logger.info("Catbox URL: %s", url)
    return UploadResult(url=url)


def _run_subprocess(command: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(command, check=False, capture_output=True, text=True)
    except OSError as exc:
        logger.warning("Could not run %s: %s", command[0], exc)
        return subprocess.CompletedProcess(command, STATUS_NOT_RUN, stdout="", stderr=str(exc))
