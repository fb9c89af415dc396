from __future__ import annotations

import asyncio
import json

import pytest
from fakes import FakeHost

from mpvclip.errors import HostError
from mpvclip.host import MpvIpcHost, dump_cache, read_playback_state, seek_achieved


class FakeMpv:
    """Answers JSON IPC requests the way mpv does."""

    def __init__(self, properties: dict[str, object]) -> None:
        self.properties = properties
        self.requests: list[list[object]] = []
        self.hang_up_after: int | None = None

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while True:
            line = await reader.readline()
            if not line:
                break
            request = json.loads(line)
            command = request["command"]
            self.requests.append(command)
            writer.write(b'{"event": "playback-restart"}\n')
            response = self._respond(command)
            response["request_id"] = request["request_id"]
            writer.write(json.dumps(response).encode("utf-8") + b"\n")
            await writer.drain()
            if self.hang_up_after is not None and len(self.requests) >= self.hang_up_after:
                break
        writer.close()

    def _respond(self, command: list[object]) -> dict[str, object]:
        name = command[0]
        if name in {"get_property", "get_property_string"}:
            if command[1] not in self.properties:
                return {"error": "property unavailable"}
            value = self.properties[command[1]]
            if name == "get_property_string":
                value = str(value)
            return {"error": "success", "data": value}
        if name == "set_property":
            self.properties[command[1]] = command[2]
            return {"error": "success"}
        if name == "dump-cache":
            return {"error": "error running command"}
        return {"error": "success", "data": None}


def _with_host(tmp_path, properties, body):
    async def scenario():
        mpv = FakeMpv(properties)
        socket_path = tmp_path / "mpv.sock"
        server = await asyncio.start_unix_server(mpv.handle, path=str(socket_path))
        host = MpvIpcHost(socket_path)
        await host.connect()
        try:
            return await body(host), mpv
        finally:
            await host.close()
            server.close()
            await server.wait_closed()

    return asyncio.run(scenario())


def test_get_property(tmp_path) -> None:
    async def body(host: MpvIpcHost):
        return (
            await host.get_property("time-pos"),
            await host.get_property_string("mute"),
            await host.get_property("sub-start", "none"),
        )

    result, mpv = _with_host(tmp_path, {"time-pos": 12.5, "mute": False}, body)
    assert result == (12.5, "False", "none")
    assert mpv.requests[0] == ["get_property", "time-pos"]


def test_set_property_and_command(tmp_path) -> None:
    async def body(host: MpvIpcHost):
        await host.set_property("pause", True)
        await host.command("cycle", "mute")
        return await host.get_property("pause")

    result, mpv = _with_host(tmp_path, {}, body)
    assert result is True
    assert ["cycle", "mute"] in mpv.requests


def test_command_error_raises_host_error(tmp_path) -> None:
    async def body(host: MpvIpcHost):
        with pytest.raises(HostError) as info:
            await host.command("dump-cache", "0.000", "5.000", "/tmp/x.mkv")
        return info.value.reason

    reason, _ = _with_host(tmp_path, {}, body)
    assert reason == "error running command"


def test_dump_cache_reports_failure(tmp_path) -> None:
    async def body(host: MpvIpcHost):
        return await dump_cache(host, 0.0, 5.0, tmp_path / "cached.mkv")

    ok, _ = _with_host(tmp_path, {}, body)
    assert ok is False


def test_connect_to_missing_socket(tmp_path) -> None:
    host = MpvIpcHost(tmp_path / "absent.sock")
    with pytest.raises(HostError, match="Cannot connect"):
        asyncio.run(host.connect())
    assert not host.connected


def test_command_without_mpv_raises(tmp_path) -> None:
    host = MpvIpcHost(tmp_path / "absent.sock")
    with pytest.raises(HostError, match="Cannot connect"):
        asyncio.run(host.command("get_property", "pause"))


def test_read_playback_state() -> None:
    host = FakeHost(
        {
            "demuxer-via-network": "yes",
            "sub-delay": 0.5,
            "width": 1920,
            "height": 1080.0,
            "current-tracks/sub": {"id": 2, "external": True},
            "track-list": [
                {"type": "sub", "external": True, "external-filename": "/subs/en.srt"},
                {"type": "sub", "external": False},
                {"type": "audio", "external": True, "external-filename": "/a.flac"},
            ],
        }
    )
    state = asyncio.run(read_playback_state(host))
    assert state.path == "/videos/video.mkv"
    assert state.network is True
    assert state.sub_delay == 0.5
    assert (state.width, state.height) == (1920, 1080)
    assert state.external_subs == ("/subs/en.srt",)
    assert state.current_sub_external is True
    assert state.aid == "auto"


def test_seek_achieved_reads_landing_position() -> None:
    host = FakeHost()
    host.seek_lands_on = 7.75
    achieved = asyncio.run(seek_achieved(host, 10.0, settle=0))
    assert achieved == 7.75
    assert host.commands == [("seek", "10.000", "absolute+keyframes")]


def test_seek_achieved_without_position() -> None:
    host = FakeHost({"time-pos": None})
    with pytest.raises(HostError):
        asyncio.run(seek_achieved(host, 10.0, settle=0))


def test_large_reply_keeps_connection(tmp_path) -> None:
    track_list = [{"type": "sub", "title": "x" * 100_000}]

    async def body(host: MpvIpcHost):
        tracks = await host.get_property("track-list")
        position = await host.get_property("time-pos")
        return tracks, position, host.connected

    (tracks, position, connected), _ = _with_host(
        tmp_path, {"track-list": track_list, "time-pos": 4.0}, body
    )
    assert tracks == track_list
    assert position == 4.0
    assert connected is True


def test_command_connects_once_mpv_is_up(tmp_path) -> None:
    async def scenario():
        socket_path = tmp_path / "mpv.sock"
        host = MpvIpcHost(socket_path)
        with pytest.raises(HostError):
            await host.connect()
        server = await asyncio.start_unix_server(
            FakeMpv({"time-pos": 3.0}).handle, path=str(socket_path)
        )
        try:
            return await host.get_property("time-pos"), host.connected
        finally:
            await host.close()
            server.close()
            await server.wait_closed()

    assert asyncio.run(scenario()) == (3.0, True)


def test_reconnects_after_mpv_hangs_up(tmp_path) -> None:
    async def scenario():
        mpv = FakeMpv({"time-pos": 5.0})
        mpv.hang_up_after = 1
        socket_path = tmp_path / "mpv.sock"
        server = await asyncio.start_unix_server(mpv.handle, path=str(socket_path))
        host = MpvIpcHost(socket_path)
        try:
            first = await host.get_property("time-pos")
            for _ in range(200):
                if not host.connected:
                    break
                await asyncio.sleep(0.01)
            dropped = not host.connected
            mpv.hang_up_after = None
            second = await host.get_property("time-pos")
            return first, dropped, second
        finally:
            await host.close()
            server.close()
            await server.wait_closed()

    assert asyncio.run(scenario()) == (5.0, True, 5.0)
