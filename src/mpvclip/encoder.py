from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable

from .config import (
    AppConfig,
    audio_folder,
    dump_folder,
    encoding_for,
    video_folder,
)
from .errors import HostError, ValidationFailure
from .flow import Flow, FlowDriver
from .host import (
    SEEK_SETTLE_SECONDS,
    PlaybackHost,
    dump_cache,
    read_playback_state,
    seek_achieved,
)
from .jobs import JobSlot
from .output_name import format_clip_basename
from .paths import remove_dump_dir
from .planner import (
    ClipRequest,
    ClipType,
    CropRect,
    output_path_for,
    plan_cache_dump,
    plan_cached,
    plan_direct,
    validate_request,
)
from .process_runner import ProcessRunner, ProcessSpec
from .timings import TimingWindow

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]
CompleteCallback = Callable[[Path], None]

PLAYER_CANDIDATES = ("mpv", "mpvnet")


def _log_notice(message: str, severity: str) -> None:
    level = logging.ERROR if severity == "error" else logging.INFO
    logger.log(level, message)


class ClipEncoder:
    def __init__(
        self,
        config: AppConfig,
        host: PlaybackHost,
        timings: TimingWindow,
        *,
        runner: ProcessRunner | None = None,
        notify: Notifier | None = None,
        seek_settle: float = SEEK_SETTLE_SECONDS,
    ) -> None:
        self.config = config
        self.host = host
        self.timings = timings
        self.crop: CropRect | None = None
        self.alive: bool | None = None
        self.player = PLAYER_CANDIDATES[0]
        self.jobs = JobSlot()
        self._notify = notify or _log_notice
        self._seek_settle = seek_settle
        self.driver = FlowDriver(
            runner,
            on_error=self._report_failure,
            on_cancel=self._report_cancel,
        )

    async def probe(self) -> bool:
        """Look for a usable encoder binary, mpv first and then mpv.net."""

        async def procedure(flow: Flow) -> None:
            result = await flow.run(ProcessSpec.of("mpv", "--version"), check=None)
            if result.status == 0 and "mpv" in result.stdout:
                self.player = "mpv"
                self.alive = True
                return
            result = await flow.run(ProcessSpec.of("mpvnet", "--version"), check=None)
            if result.status == 0:
                self.player = "mpvnet"
                self.alive = True
                return
            self.alive = False

        flow = self.driver.start(procedure, name="probe")
        await flow.join()
        if self.alive is None:
            self.alive = False
        logger.info("Encoder available: %s (%s)", self.alive, self.player)
        return self.alive

    async def create_clip(
        self,
        clip_type: ClipType,
        on_complete: CompleteCallback | None = None,
        *,
        resolution: tuple[int, int] | None = None,
    ) -> Flow | None:
        timings = self.timings.snapshot()
        if not timings.is_valid():
            self._notify("Wrong timings. Aborting.", "warning")
            return None

        self._notify("Please wait...", "information")
        config = self.config
        if resolution is not None:
            config = replace(config, video_width=resolution[0], video_height=resolution[1])
        try:
            state = await read_playback_state(self.host)
        except HostError as exc:
            self._notify(f"Error: {exc}", "error")
            return None

        encoding = encoding_for(config)
        basename = format_clip_basename(
            config.filename_template,
            filename=state.filename,
            title=state.media_title,
            timings=timings,
            clean=config.clean_filename,
        )
        output_path = output_path_for(
            clip_type,
            basename,
            video_folder=video_folder(config),
            audio_folder=audio_folder(config),
            encoding=encoding,
        )
        try:
            start, end = validate_request(timings, output_path)
        except ValidationFailure as exc:
            self._notify(str(exc), "error")
            return None

        request = ClipRequest(
            clip_type=clip_type,
            start=start,
            end=end,
            state=state,
            config=config,
            encoding=encoding,
            output_path=output_path,
            player=self.player,
            crop=self.crop,
        )

        async def procedure(flow: Flow) -> None:
            await self._encode(flow, request, on_complete)

        flow = self.driver.start(procedure, name=str(output_path))
        self.jobs.replace(flow)
        self.crop = None
        self.timings.reset()
        return flow

    def clear_cache(self) -> str | None:
        """Remove the cache dump folder. Returns an error message on failure."""
        folder = dump_folder(self.config)
        error = remove_dump_dir(folder)
        if error:
            logger.warning(error)
        else:
            logger.debug("Cleared cache folder %s", folder)
        return error

    def kill_job(self) -> bool:
        if not self.jobs.kill():
            logger.debug("No running job to kill")
            return False
        self._notify("Killing jobs", "warning")
        return True

    async def _encode(
        self,
        flow: Flow,
        request: ClipRequest,
        on_complete: CompleteCallback | None,
    ) -> None:
        specs = None
        if request.config.use_cache and request.state.network:
            specs = await self._plan_from_cache(request)
        if specs is None:
            specs = plan_direct(request)

        for spec in specs:
            logger.info("The following args will be executed: %s", spec)
            await flow.run(spec)

        self._notify(f"Clip saved to {request.output_path}.", "information")
        if on_complete is not None:
            on_complete(request.output_path)

    async def _plan_from_cache(self, request: ClipRequest) -> list[ProcessSpec] | None:
        dump = plan_cache_dump(
            request.start,
            request.end,
            dump_folder(request.config),
            request.state.file_format,
        )
        try:
            dump.folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Failed to create cache folder %s: %s", dump.folder, exc)
            self._notify("Failed to create cache folder, switching to normal clipping", "warning")
            return None

        self._notify("Dumping cache ...", "information")
        logger.info("Cache dump > %s %s %s", dump.start, dump.end, dump.cache_file)
        if not await dump_cache(self.host, dump.start, dump.end, dump.cache_file):
            self._notify("Failed to dump cache, switching to normal clipping", "warning")
            return None
        self._notify("Cache dumped successfully", "information")

        await self.host.set_property("pause", True)
        achieved = await seek_achieved(self.host, request.start, settle=self._seek_settle)
        logger.info("Seek to %.3f landed on %.3f", request.start, achieved)
        return plan_cached(request, dump, achieved)

    def _report_failure(self, flow: Flow, error: Exception) -> None:
        if flow.name == "probe":
            return
        self._notify(f"Error: couldn't create clip {flow.name}. {error}", "error")

    def _report_cancel(self, flow: Flow) -> None:
        self._notify(f"Job cancelled: {flow.name}", "information")
