"""Status bar widget: provider, key hints and location."""

from __future__ import annotations

import os

from rich.text import Text
from textual.app import ComposeResult
from textual.widgets import Label, Static

LOCATION_MAX_CHARS = 20


def shorten_location(path: str, limit: int = LOCATION_MAX_CHARS) -> str:
    """Keep the tail of long paths so the current directory stays visible."""
    if len(path) <= limit:
        return path
    return f"…{path[-(limit - 1):]}"


def current_location() -> str:
    try:
        return shorten_location(os.getcwd())
    except OSError:
        return "?"


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        AI: Claude (auto)  |  ↑↓: Navigate | Enter: Select | q: Quit  |  📁 …/project
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: 1;
    }
    StatusBar Label {
        margin-right: 1;
    }
    StatusBar #status_help {
        width: 1fr;
        content-align: center middle;
        color: $text-muted;
    }
    StatusBar #status_location {
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Label("AI: None", id="status_provider")
        yield Label("|", id="status_sep1")
        yield Label("", id="status_help")
        yield Label("|", id="status_sep2")
        yield Label("", id="status_location")

    def on_mount(self) -> None:
        """Cache label references once after the DOM is ready."""
        self._lbl_provider = self.query_one("#status_provider", Label)
        self._lbl_help = self.query_one("#status_help", Label)
        self._lbl_location = self.query_one("#status_location", Label)

    def set_status(self, *, provider: str, help_text: str, location: str) -> None:
        self._lbl_provider.update(Text(f"AI: {provider}"))
        self._lbl_help.update(Text(help_text))
        self._lbl_location.update(Text(f"📁 {location}"))
