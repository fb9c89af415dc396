from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Callable

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

from ..config import AppConfig, save_config
from ..encoder import ClipEncoder
from ..errors import HostError
from ..planner import CropRect
from ..prefs import (
    cycle_audio_bitrate,
    cycle_audio_format,
    cycle_litterbox_expiration,
    cycle_resolution,
    cycle_video_format,
    describe_crop,
    parse_crop,
)
from .menu import preferences_text


class PreferencesScreen(ModalScreen[None]):
    BINDINGS = [
        ("r", "cycle_resolution", "Resolution"),
        ("f", "cycle_video_format", "Video format"),
        ("a", "cycle_audio_format", "Audio format"),
        ("b", "cycle_audio_bitrate", "Audio bitrate"),
        ("m", "toggle_mute", "Mute"),
        ("e", "toggle_subtitles", "Embed subtitles"),
        ("c", "crop", "Crop"),
        ("d", "toggle_cache", "Use cache"),
        ("x", "toggle_catbox", "Catbox"),
        ("z", "cycle_expiration", "Expiration"),
        ("s", "save", "Save"),
        ("escape", "close", "Close"),
        ("q", "close", "Close"),
    ]

    CSS = """
    PreferencesScreen {
        align: center middle;
        background: $surface 80%;
    }

    #prefs_dialog {
        width: 80%;
        max-width: 100;
        height: auto;
        padding: 1 2;
        border: heavy $accent;
        background: $panel;
    }

    #prefs_status {
        height: 1;
        color: $warning;
    }
    """

    def __init__(self, encoder: ClipEncoder, config_file: Path | None = None) -> None:
        super().__init__()
        self._encoder = encoder
        self._config_file = config_file
        self._mute = "n/a"
        self._sub_visibility = "n/a"

    def compose(self) -> ComposeResult:
        with Vertical(id="prefs_dialog"):
            yield Static("", id="prefs_text")
            yield Label("", id="prefs_status")

    async def on_mount(self) -> None:
        await self._reload_player_state()

    def action_close(self) -> None:
        self.dismiss(None)

    def action_cycle_resolution(self) -> None:
        self._update_config(cycle_resolution)

    def action_cycle_video_format(self) -> None:
        self._update_config(cycle_video_format)

    def action_cycle_audio_format(self) -> None:
        self._update_config(cycle_audio_format)

    def action_cycle_audio_bitrate(self) -> None:
        self._update_config(cycle_audio_bitrate)

    def action_cycle_expiration(self) -> None:
        self._update_config(cycle_litterbox_expiration)

    def action_toggle_catbox(self) -> None:
        self._update_config(lambda config: _toggled(config, "litterbox"))

    def action_toggle_cache(self) -> None:
        error = self._encoder.clear_cache()
        if error:
            self._set_status(error)
        self._update_config(lambda config: _toggled(config, "use_cache"))

    async def action_toggle_mute(self) -> None:
        await self._cycle_player_property("mute")

    async def action_toggle_subtitles(self) -> None:
        await self._cycle_player_property("sub-visibility")

    def action_crop(self) -> None:
        self.app.push_screen(CropScreen(self._encoder.crop), self._handle_crop)

    def action_save(self) -> None:
        error = save_config(self._encoder.config, self._config_file)
        self._set_status(error or "Settings saved.")

    def _handle_crop(self, result: CropRect | None | bool) -> None:
        if result is False:
            return
        self._encoder.crop = result if isinstance(result, CropRect) else None
        self._render()

    def _update_config(self, change: Callable[[AppConfig], AppConfig]) -> None:
        self._encoder.config = change(self._encoder.config)
        self._render()

    async def _cycle_player_property(self, name: str) -> None:
        try:
            await self._encoder.host.command("cycle", name)
        except HostError as exc:
            self._set_status(str(exc))
            return
        await self._reload_player_state()

    async def _reload_player_state(self) -> None:
        try:
            self._mute = await self._encoder.host.get_property_string("mute", "n/a")
            self._sub_visibility = await self._encoder.host.get_property_string(
                "sub-visibility", "n/a"
            )
        except HostError as exc:
            self._set_status(str(exc))
        self._render()

    def _render(self) -> None:
        text = preferences_text(
            self._encoder.config,
            crop=self._encoder.crop,
            mute=self._mute,
            sub_visibility=self._sub_visibility,
        )
        self.query_one("#prefs_text", Static).update(text)

    def _set_status(self, message: str) -> None:
        self.query_one("#prefs_status", Label).update(message)


class CropScreen(ModalScreen[CropRect | None | bool]):
    """Dismisses with a CropRect, None to clear the crop, or False when cancelled."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = """
    CropScreen {
        align: center middle;
        background: $surface 80%;
    }

    #crop_dialog {
        width: 70%;
        max-width: 80;
        height: auto;
        padding: 1 2;
        border: heavy $accent;
        background: $panel;
    }

    #crop_error {
        color: $error;
        height: 1;
    }
    """

    def __init__(self, current: CropRect | None) -> None:
        super().__init__()
        self._current = current

    def compose(self) -> ComposeResult:
        with Vertical(id="crop_dialog"):
            yield Label("Crop corners in percent of the frame: x0 y0 x1 y1")
            yield Label(f"Current: {describe_crop(self._current)}")
            yield Input(
                value=_crop_input_value(self._current),
                placeholder="10 10 90 90 (empty to reset)",
                id="crop_input",
            )
            yield Label("", id="crop_error")
            with Horizontal():
                yield Button("Set", id="crop_set")
                yield Button("Reset", id="crop_reset")
                yield Button("Cancel", id="crop_cancel")

    def action_cancel(self) -> None:
        self.dismiss(False)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "crop_cancel":
            self.dismiss(False)
        elif event.button.id == "crop_reset":
            self.dismiss(None)
        elif event.button.id == "crop_set":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "crop_input":
            self._submit()

    def _submit(self) -> None:
        input_widget = self.query_one("#crop_input", Input)
        error_label = self.query_one("#crop_error", Label)
        try:
            crop = parse_crop(input_widget.value)
        except ValueError as exc:
            error_label.update(str(exc))
            return
        self.dismiss(crop)


def _toggled(config: AppConfig, field_name: str) -> AppConfig:
    return replace(config, **{field_name: not getattr(config, field_name)})


def _crop_input_value(crop: CropRect | None) -> str:
    if crop is None:
        return ""
    values = (crop.x0, crop.y0, crop.x1, crop.y1)
    return " ".join(f"{value * 100:g}" for value in values)
