from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .errors import HostError
from .timeparse import format_ms

logger = logging.getLogger(__name__)

PROPERTY_UNAVAILABLE = "property unavailable"
# Time for mpv to settle after a keyframe seek before time-pos is read back.
SEEK_SETTLE_SECONDS = 0.3
# Replies such as track-list or playlist can be far longer than asyncio's 64 KiB default.
IPC_LINE_LIMIT = 16 * 1024 * 1024


class PlaybackHost(Protocol):
    async def command(self, *args: Any) -> Any: ...

    async def get_property(self, name: str, default: Any = None) -> Any: ...

    async def get_property_string(self, name: str, default: str = "") -> str: ...

    async def set_property(self, name: str, value: Any) -> None: ...


@dataclass(frozen=True)
class PlaybackState:
    path: str
    filename: str = ""
    media_title: str = ""
    file_format: str = ""
    network: bool = False
    aid: str = "auto"
    sid: str = "auto"
    secondary_sid: str = "no"
    mute: str = "no"
    volume: str = "100"
    ytdl_format: str = ""
    sub_visibility: str = "yes"
    secondary_sub_visibility: str = "yes"
    sub_back_color: str = ""
    sub_border_style: str = ""
    video_aspect_override: str = "-1"
    referrer: str = ""
    width: int | None = None
    height: int | None = None
    sub_delay: float = 0.0
    external_subs: tuple[str, ...] = ()
    current_sub_external: bool = False


class MpvIpcHost:
    """Client for mpv's JSON IPC socket (``mpv --input-ipc-server=PATH``)."""

    def __init__(self, socket_path: str | Path) -> None:
        self.socket_path = Path(socket_path)
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._request_id = 0
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._writer is not None

    async def connect(self) -> None:
        await self._connection()

    async def close(self) -> None:
        writer = self._writer
        self._writer = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as exc:
                logger.debug("Closing mpv socket: %s", exc)
        if self._read_task is not None:
            self._read_task.cancel()
            await asyncio.wait({self._read_task})
            self._read_task = None

    async def command(self, *args: Any) -> Any:
        writer = await self._connection()
        self._request_id += 1
        request_id = self._request_id
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        payload = json.dumps({"command": list(args), "request_id": request_id})
        try:
            writer.write(payload.encode("utf-8") + b"\n")
            await writer.drain()
            response = await future
        except OSError as exc:
            raise HostError(f"Lost connection to mpv ({exc})") from exc
        finally:
            self._pending.pop(request_id, None)
        error = response.get("error", "success")
        if error != "success":
            raise HostError(f"mpv command {args[0]!r} failed: {error}", reason=error)
        return response.get("data")

    async def get_property(self, name: str, default: Any = None) -> Any:
        try:
            return await self.command("get_property", name)
        except HostError as exc:
            if exc.reason == PROPERTY_UNAVAILABLE:
                return default
            raise

    async def get_property_string(self, name: str, default: str = "") -> str:
        try:
            value = await self.command("get_property_string", name)
        except HostError as exc:
            if exc.reason == PROPERTY_UNAVAILABLE:
                return default
            raise
        return default if value is None else str(value)

    async def set_property(self, name: str, value: Any) -> None:
        await self.command("set_property", name, value)

    async def _connection(self) -> asyncio.StreamWriter:
        async with self._connect_lock:
            if self._writer is not None:
                return self._writer
            try:
                reader, writer = await asyncio.open_unix_connection(
                    str(self.socket_path), limit=IPC_LINE_LIMIT
                )
            except OSError as exc:
                raise HostError(f"Cannot connect to mpv at {self.socket_path} ({exc})") from exc
            self._writer = writer
            self._read_task = asyncio.get_running_loop().create_task(
                self._read_loop(reader, writer)
            )
            logger.info("Connected to mpv at %s", self.socket_path)
            return writer

    async def _read_loop(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                try:
                    line = await reader.readline()
                except (OSError, ValueError) as exc:
                    logger.warning("Dropping mpv connection: %s", exc)
                    break
                if not line:
                    break
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Ignoring malformed mpv message: %r", line)
                    continue
                if "event" in message:
                    logger.debug("mpv event: %s", message.get("event"))
                    continue
                future = self._pending.get(message.get("request_id"))
                if future is not None and not future.done():
                    future.set_result(message)
        finally:
            if self._writer is writer:
                self._writer = None
                writer.close()
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(HostError("mpv connection closed"))
            self._pending.clear()


async def read_playback_state(host: PlaybackHost) -> PlaybackState:
    track_list = await host.get_property("track-list", []) or []
    current_sub = await host.get_property("current-tracks/sub")
    sub_delay = await host.get_property("sub-delay", 0.0)
    return PlaybackState(
        path=await host.get_property_string("path"),
        filename=await host.get_property_string("filename"),
        media_title=await host.get_property_string("media-title"),
        file_format=await host.get_property_string("file-format"),
        network=await host.get_property_string("demuxer-via-network") == "yes",
        aid=await host.get_property_string("aid", "auto"),
        sid=await host.get_property_string("sid", "auto"),
        secondary_sid=await host.get_property_string("secondary-sid", "no"),
        mute=await host.get_property_string("mute", "no"),
        volume=await host.get_property_string("volume", "100"),
        ytdl_format=await host.get_property_string("ytdl-format"),
        sub_visibility=await host.get_property_string("sub-visibility", "yes"),
        secondary_sub_visibility=await host.get_property_string(
            "secondary-sub-visibility", "yes"
        ),
        sub_back_color=await host.get_property_string("sub-back-color"),
        sub_border_style=await host.get_property_string("sub-border-style"),
        video_aspect_override=await host.get_property_string("video-aspect-override", "-1"),
        referrer=await host.get_property_string("referrer"),
        width=_as_int(await host.get_property("width")),
        height=_as_int(await host.get_property("height")),
        sub_delay=float(sub_delay or 0.0),
        external_subs=tuple(_external_sub_files(track_list)),
        current_sub_external=isinstance(current_sub, dict) and current_sub.get("external") is True,
    )


async def seek_achieved(
    host: PlaybackHost,
    position: float,
    *,
    settle: float = SEEK_SETTLE_SECONDS,
) -> float:
    await host.command("seek", format_ms(position), "absolute+keyframes")
    if settle > 0:
        await asyncio.sleep(settle)
    achieved = await host.get_property("time-pos")
    if not isinstance(achieved, (int, float)):
        raise HostError("mpv did not report a playback position after seeking")
    return float(achieved)


async def dump_cache(host: PlaybackHost, start: float, end: float, path: Path) -> bool:
    try:
        await host.command("dump-cache", format_ms(start), format_ms(end), str(path))
    except HostError as exc:
        logger.warning("dump-cache failed: %s", exc)
        return False
    return True


def _external_sub_files(track_list: list[Any]) -> list[str]:
    paths: list[str] = []
    for track in track_list:
        if not isinstance(track, dict):
            continue
        if track.get("type") != "sub" or track.get("external") is not True:
            continue
        filename = track.get("external-filename")
        if isinstance(filename, str) and filename:
            paths.append(filename)
    return paths


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None
