from __future__ import annotations

import argparse
import logging
import threading
import webbrowser
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.theme import Theme
from textual.widgets import Label, Static

from .config import AppConfig, load_config
from .encoder import ClipEncoder
from .errors import HostError
from .host import MpvIpcHost
from .paths import config_path, log_path
from .planner import ClipType
from .prefs import FULL_HD
from .timings import TimingWindow
from .ui.menu import main_menu_text
from .ui.screens import PreferencesScreen
from .upload import UploadResult, host_label, upload_file

logger = logging.getLogger(__name__)

STREAMABLE_URL = "https://streamable.com/"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)-20s | %(message)s"

TOKYO_NIGHT_THEME = Theme(
    name="tokyo-night",
    primary="#7aa2f7",
    secondary="#7dcfff",
    accent="#bb9af7",
    warning="#e0af68",
    error="#f7768e",
    success="#9ece6a",
    foreground="#c0caf5",
    background="#1a1b26",
    surface="#1f2335",
    panel="#24283b",
    boost="#2f334d",
)


class MpvClipApp(App):
    BINDINGS = [
        ("s", "set_time('start')", "Start"),
        ("e", "set_time('end')", "End"),
        ("S", "set_time_sub('start')", "Sub start"),
        ("E", "set_time_sub('end')", "Sub end"),
        ("r", "reset_timings", "Reset"),
        ("c", "create_clip('video')", "Video clip"),
        ("C", "create_clip('video', False, True)", "Video clip (1080p)"),
        ("a", "create_clip('audio')", "Audio clip"),
        ("x", "create_clip('video', True)", "Video + upload"),
        ("X", "create_clip('video', True, True)", "Video (1080p) + upload"),
        ("p", "preferences", "Preferences"),
        ("o", "open_streamable", "Streamable"),
        ("k", "kill_job", "Kill"),
        ("q", "quit", "Quit"),
    ]

    CSS = """
    Screen {
        background: $background;
        color: $text;
    }

    #root {
        height: 100%;
        padding: 1 2;
    }

    #menu {
        height: 1fr;
        padding: 1 2;
        border: round $primary;
        background: $panel;
    }

    #status {
        height: 1;
        color: $secondary;
    }
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        ipc_path: str | None = None,
        config_file: Path | None = None,
    ) -> None:
        super().__init__()
        self.register_theme(TOKYO_NIGHT_THEME)
        self.theme = TOKYO_NIGHT_THEME.name
        self._config_file = config_file
        self._timings = TimingWindow()
        self._host = MpvIpcHost(ipc_path or config.ipc_path)
        self._encoder = ClipEncoder(
            config,
            self._host,
            self._timings,
            notify=self._notify,
        )

    def compose(self) -> ComposeResult:
        with Vertical(id="root"):
            yield Label("", id="status")
            yield Static("", id="menu")

    async def on_mount(self) -> None:
        self._refresh_menu()
        self.run_worker(self._probe_encoder(), exclusive=False)
        try:
            await self._host.connect()
        except HostError as exc:
            self._set_status(f"{exc}. Start mpv with --input-ipc-server={self._host.socket_path}")
            return
        self._set_status(f"Connected to mpv at {self._host.socket_path}")

    async def on_unmount(self) -> None:
        self._encoder.clear_cache()
        await self._host.close()

    async def action_set_time(self, which: str) -> None:
        try:
            position = await self._host.get_property("time-pos")
        except HostError as exc:
            self._notify(str(exc), "error")
            return
        if position is None:
            self._notify("Warning: nothing is playing.", "warning")
            return
        self._timings.set(which, position)
        self._refresh_menu()

    async def action_set_time_sub(self, which: str) -> None:
        try:
            sub_delay = await self._host.get_property("sub-delay", 0.0)
            position = await self._host.get_property(f"sub-{which}")
        except HostError as exc:
            self._notify(str(exc), "error")
            return
        if position is None:
            self._notify("Warning: No subtitles visible.", "warning")
            return
        self._timings.set(which, position + (sub_delay or 0.0))
        self._refresh_menu()

    def action_reset_timings(self) -> None:
        self._timings.reset()
        self._refresh_menu()

    async def action_create_clip(
        self,
        clip_type: str,
        upload: bool = False,
        full_hd: bool = False,
    ) -> None:
        on_complete = self._upload_clip if upload else None
        resolution = FULL_HD if full_hd else None
        flow = await self._encoder.create_clip(
            ClipType(clip_type),
            on_complete,
            resolution=resolution,
        )
        if flow is not None:
            flow.add_finish_callback(lambda _: self._refresh_menu())
        self._refresh_menu()

    def action_preferences(self) -> None:
        self.push_screen(
            PreferencesScreen(self._encoder, self._config_file),
            lambda _: self._refresh_menu(),
        )

    def action_open_streamable(self) -> None:
        if not webbrowser.open(STREAMABLE_URL):
            self._notify("Failed to open browser.", "error")

    def action_kill_job(self) -> None:
        if not self._encoder.kill_job():
            self._set_status("No running job.")
        self._refresh_menu()

    async def _probe_encoder(self) -> None:
        await self._encoder.probe()
        self._refresh_menu()

    def _upload_clip(self, output_path: Path) -> None:
        config = self._encoder.config
        self._notify(f"Uploading to {host_label(config)}...", "information")

        def worker() -> None:
            result = upload_file(output_path, config)
            self.call_from_thread(self._apply_upload_result, result)

        threading.Thread(target=worker, daemon=True).start()

    def _apply_upload_result(self, result: UploadResult) -> None:
        if result.url is None:
            self._notify(result.error or "Upload failed.", "error")
            return
        self.copy_to_clipboard(result.url)
        self._notify(f"Uploaded: {result.url} (copied to clipboard)", "information")

    def _notify(self, message: str, severity: str) -> None:
        log_level = {"error": logging.ERROR, "warning": logging.WARNING}.get(severity, logging.INFO)
        logger.log(log_level, message)
        self._set_status(message)
        self.notify(message, severity=severity)

    def _set_status(self, message: str) -> None:
        try:
            self.query_one("#status", Label).update(message)
        except NoMatches:
            logger.debug("Status line not mounted: %s", message)

    def _refresh_menu(self) -> None:
        try:
            menu = self.query_one("#menu", Static)
        except NoMatches:
            return
        job = self._encoder.jobs.current
        text = main_menu_text(
            self._timings,
            self._encoder.config,
            alive=self._encoder.alive,
            player=self._encoder.player,
            job_running=job is not None and not job.done(),
        )
        menu.update(text)


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> Path:
    log_file = log_file or log_path()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, encoding="utf-8")],
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mpvclip",
        description="Cut audio and video clips from a running mpv instance.",
        epilog=f"Config file: {config_path()}",
    )
    parser.add_argument(
        "--ipc-server",
        help="Path of mpv's IPC socket (mpv --input-ipc-server=PATH)",
    )
    parser.add_argument("--config", help="Path to a config file")
    parser.add_argument("--log-file", help="Write the log here instead of the default location")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    config_file = Path(args.config).expanduser() if args.config else None
    log_file = Path(args.log_file).expanduser() if args.log_file else None
    setup_logging(args.verbose, log_file)
    config, error = load_config(config_file)
    if error:
        logger.warning(error)
    app = MpvClipApp(config, ipc_path=args.ipc_server, config_file=config_file)
    app.run()
