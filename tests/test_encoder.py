from __future__ import annotations

import asyncio
from pathlib import Path

from fakes import FakeHost, FakeRunner, settle

from mpvclip.config import AppConfig
from mpvclip.encoder import ClipEncoder
from mpvclip.flow import FlowState
from mpvclip.planner import ClipType, CropRect
from mpvclip.timings import TimingWindow


class Notices:
    def __init__(self) -> None:
        self.items: list[tuple[str, str]] = []

    def __call__(self, message: str, severity: str) -> None:
        self.items.append((message, severity))

    def messages(self) -> list[str]:
        return [message for message, _ in self.items]


def make_encoder(
    tmp_path: Path,
    host: FakeHost | None = None,
    **config: object,
) -> tuple[ClipEncoder, FakeRunner, Notices]:
    settings = {
        "video_folder_path": str(tmp_path),
        "audio_folder_path": str(tmp_path),
        "cache_path": str(tmp_path / "dump"),
    }
    settings.update(config)
    runner = FakeRunner()
    notices = Notices()
    timings = TimingWindow()
    timings.set("start", 10.0)
    timings.set("end", 15.0)
    encoder = ClipEncoder(
        AppConfig(**settings),
        host or FakeHost(),
        timings,
        runner=runner,
        notify=notices,
        seek_settle=0,
    )
    return encoder, runner, notices


def test_invalid_timings_launch_nothing(tmp_path) -> None:
    encoder, runner, notices = make_encoder(tmp_path)
    encoder.timings.reset()
    encoder.timings.set("start", 20.0)
    encoder.timings.set("end", 5.0)

    flow = asyncio.run(encoder.create_clip(ClipType.VIDEO))

    assert flow is None
    assert runner.handles == []
    assert notices.messages() == ["Wrong timings. Aborting."]
    assert encoder.timings.start == 20.0


def test_missing_output_folder_launches_nothing(tmp_path) -> None:
    encoder, runner, notices = make_encoder(tmp_path, video_folder_path=str(tmp_path / "missing"))

    flow = asyncio.run(encoder.create_clip(ClipType.VIDEO))

    assert flow is None
    assert runner.handles == []
    assert any("doesn't exist" in message for message in notices.messages())


def test_direct_clip(tmp_path) -> None:
    encoder, runner, notices = make_encoder(tmp_path)
    encoder.crop = CropRect(x0=0.0, y0=0.0, x1=0.5, y1=0.5)
    saved: list[Path] = []

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO, saved.append)
        assert flow is not None
        assert encoder.jobs.current is flow
        await settle()
        runner.finish(0)
        return await flow.join()

    state = asyncio.run(scenario())

    expected = tmp_path / "video_00m10s000ms-00m15s000ms.mp4"
    assert state is FlowState.DONE
    assert len(runner.handles) == 1
    args = runner.handles[0].spec.args
    assert "/videos/video.mkv" in args
    assert "--start=10.000" in args
    assert "--end=15.000" in args
    assert args[-1] == f"--o={expected}"
    assert saved == [expected]
    assert f"Clip saved to {expected}." in notices.messages()
    assert encoder.timings.start is None
    assert encoder.crop is None
    assert encoder.jobs.current is None


def test_full_hd_resolution_override(tmp_path) -> None:
    encoder, runner, _ = make_encoder(tmp_path)

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO, resolution=(1920, -2))
        await settle()
        runner.finish(0)
        await flow.join()

    asyncio.run(scenario())

    assert "--vf-add=scale=1920:-2" in runner.handles[0].spec.args
    assert encoder.config.video_height == 480


def test_cached_clip_dumps_then_encodes_in_two_steps(tmp_path) -> None:
    host = FakeHost({"demuxer-via-network": "yes", "file-format": "mp4"})
    host.seek_lands_on = 8.5
    encoder, runner, notices = make_encoder(tmp_path, host, use_cache=True)
    dump_dir = tmp_path / "dump"

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO)
        await settle()
        assert len(runner.handles) == 1
        runner.finish(0)
        await settle()
        assert len(runner.handles) == 2
        runner.finish(1)
        return await flow.join()

    state = asyncio.run(scenario())

    assert state is FlowState.DONE
    assert ("dump-cache", "10.000", "20.000", str(dump_dir / "cached.mp4")) in host.commands
    assert ("seek", "10.000", "absolute+keyframes") in host.commands
    assert host.properties["pause"] is True
    normalize, trim = (handle.spec.args for handle in runner.handles)
    assert str(dump_dir / "cached.mp4") in normalize
    assert f"--o={dump_dir / 'normalized.mp4'}" in normalize
    assert "--start=1.500" in trim
    assert "--length=5.000" in trim
    assert "Dumping cache ..." in notices.messages()


def test_failed_cache_dump_falls_back_to_direct(tmp_path) -> None:
    host = FakeHost({"demuxer-via-network": "yes"})
    host.failing.add("dump-cache")
    encoder, runner, notices = make_encoder(tmp_path, host, use_cache=True)

    async def scenario():
        flow = await encoder.create_clip(ClipType.AUDIO)
        await settle()
        runner.finish(0)
        return await flow.join()

    state = asyncio.run(scenario())

    assert state is FlowState.DONE
    assert len(runner.handles) == 1
    assert "--start=10.000" in runner.handles[0].spec.args
    assert "Failed to dump cache, switching to normal clipping" in notices.messages()
    assert not any(command[0] == "seek" for command in host.commands)


def test_local_file_ignores_cache_setting(tmp_path) -> None:
    host = FakeHost()
    encoder, runner, _ = make_encoder(tmp_path, host, use_cache=True)

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO)
        await settle()
        runner.finish(0)
        await flow.join()

    asyncio.run(scenario())

    assert len(runner.handles) == 1
    assert not any(command[0] == "dump-cache" for command in host.commands)


def test_kill_job_cancels_running_clip(tmp_path) -> None:
    encoder, runner, notices = make_encoder(tmp_path)
    saved: list[Path] = []

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO, saved.append)
        await settle()
        killed = encoder.kill_job()
        state = await flow.join()
        return killed, state

    killed, state = asyncio.run(scenario())

    assert killed is True
    assert state is FlowState.CANCELLED
    assert runner.handles[0].terminate_requested
    assert saved == []
    assert "Killing jobs" in notices.messages()
    assert encoder.jobs.current is None
    assert encoder.kill_job() is False


def test_failed_encode_is_reported(tmp_path) -> None:
    encoder, runner, notices = make_encoder(tmp_path)
    saved: list[Path] = []

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO, saved.append)
        await settle()
        runner.finish(0, status=1, stderr="Encoding failed")
        return await flow.join()

    state = asyncio.run(scenario())

    assert state is FlowState.FAILED
    assert saved == []
    errors = [message for message, severity in notices.items if severity == "error"]
    assert len(errors) == 1
    assert "couldn't create clip" in errors[0]


def _probe(tmp_path: Path, answers: list[tuple[int, str]]) -> tuple[bool, ClipEncoder]:
    encoder, runner, _ = make_encoder(tmp_path)

    async def scenario():
        task = asyncio.get_running_loop().create_task(encoder.probe())
        for index, (status, stdout) in enumerate(answers):
            await settle()
            runner.finish(index, status=status, stdout=stdout)
        return await task

    return asyncio.run(scenario()), encoder


def test_probe_prefers_mpv(tmp_path) -> None:
    alive, encoder = _probe(tmp_path, [(0, "mpv 0.38.0 Copyright")])
    assert alive is True
    assert encoder.player == "mpv"


def test_probe_falls_back_to_mpvnet(tmp_path) -> None:
    alive, encoder = _probe(tmp_path, [(-1, ""), (0, "mpv.net 7.1")])
    assert alive is True
    assert encoder.player == "mpvnet"


def test_probe_without_encoder(tmp_path) -> None:
    alive, encoder = _probe(tmp_path, [(-1, ""), (-1, "")])
    assert alive is False
    assert encoder.alive is False


def _cached_encoder(tmp_path: Path) -> tuple[ClipEncoder, FakeRunner, Notices, Path]:
    host = FakeHost({"demuxer-via-network": "yes", "file-format": "mkv"})
    host.seek_lands_on = 9.0
    encoder, runner, notices = make_encoder(tmp_path, host, use_cache=True)
    return encoder, runner, notices, tmp_path / "dump" / "cached.mkv"


def test_kill_during_normalize_keeps_cache_and_skips_trim(tmp_path) -> None:
    encoder, runner, notices, cache_file = _cached_encoder(tmp_path)
    saved: list[Path] = []

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO, saved.append)
        await settle()
        assert len(runner.handles) == 1
        assert encoder.kill_job()
        state = await flow.join()
        runner.finish(0, status=-2)
        await settle()
        return state

    state = asyncio.run(scenario())

    assert state is FlowState.CANCELLED
    assert runner.handles[0].terminate_requested
    assert len(runner.handles) == 1
    assert cache_file.exists()
    assert saved == []


def test_failed_trim_keeps_cache(tmp_path) -> None:
    encoder, runner, _, cache_file = _cached_encoder(tmp_path)

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO)
        await settle()
        runner.finish(0)
        await settle()
        runner.finish(1, status=1, stderr="trim failed")
        return await flow.join()

    state = asyncio.run(scenario())

    assert state is FlowState.FAILED
    assert cache_file.exists()


def test_clear_cache_removes_dump_folder(tmp_path) -> None:
    encoder, runner, _, cache_file = _cached_encoder(tmp_path)

    async def scenario():
        flow = await encoder.create_clip(ClipType.VIDEO)
        await settle()
        runner.finish(0)
        await settle()
        runner.finish(1)
        await flow.join()

    asyncio.run(scenario())

    assert cache_file.exists()
    assert encoder.clear_cache() is None
    assert not cache_file.parent.exists()
    assert encoder.clear_cache() is None
