"""Textual front end driving a :class:`SessionMachine`."""

from __future__ import annotations

from enum import Enum
import logging
from pathlib import Path
import sys
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Static

from .config import resolve_data_dir
from .editor import EditorContext, EditorSessionMachine, combined_context_builder
from .events import KeyAction, KeyActionKind, key_to_action, key_to_input_action
from .exceptions import PersistenceError
from .machine import SessionMachine
from .persistence import SessionStore
from .pipeline import QueryPipeline
from .provider import run_query
from .settings import FileSettingsStore, SettingsStore
from .state import SessionStateKind
from .widgets import SessionView, StatusBar
from .widgets.session_view import help_text
from .widgets.status_bar import current_location

LOGGER = logging.getLogger(__name__)


class SessionMode(str, Enum):
    INTERACTIVE = "interactive"
    SETTINGS = "settings"
    EDITOR = "editor"


def create_machine(
    config: dict[str, dict[str, Any]],
    *,
    mode: SessionMode = SessionMode.INTERACTIVE,
    settings: SettingsStore | None = None,
    editor_context: EditorContext | None = None,
    context_file: str | Path | None = None,
    query_runner=run_query,
) -> SessionMachine:
    """Wire settings, session store and pipeline into a machine for ``mode``."""
    session_config = config["session"]
    data_dir = resolve_data_dir(session_config)
    if settings is None:
        settings = FileSettingsStore(data_dir)
    store = SessionStore(data_dir, timeout_seconds=int(session_config["timeout_seconds"]))
    recent_limit = int(session_config["recent_prompts_limit"])

    if mode != SessionMode.SETTINGS:
        try:
            store.cleanup_stale_session()
        except PersistenceError as exc:
            LOGGER.warning(
                "persistence.session.cleanup_failed",
                extra={"event": "persistence.session.cleanup_failed", "reason": str(exc)},
            )

    if mode == SessionMode.EDITOR:
        if editor_context is None or context_file is None:
            raise ValueError("Editor mode requires an editor context and its file.")
        pipeline = QueryPipeline(
            settings,
            store,
            context_builder=combined_context_builder(editor_context),
            query_runner=query_runner,
        )
        return EditorSessionMachine(
            settings,
            store,
            pipeline,
            recent_limit=recent_limit,
            editor_context=editor_context,
            context_file=context_file,
        )

    pipeline = QueryPipeline(settings, store, query_runner=query_runner)
    machine = SessionMachine(
        settings,
        store,
        pipeline,
        recent_limit=recent_limit,
        exit_on_main_menu=mode == SessionMode.SETTINGS,
    )
    if mode == SessionMode.SETTINGS:
        machine.open_settings()
    return machine


class CommandKApp(App[str | None]):
    """Popup UI for asking an AI CLI for a shell command.

    The app's return value is the command the user chose to run, if any; it
    is executed by the caller after the terminal has been restored.
    """

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #header {
        height: auto;
        padding: 0 1;
        content-align: center middle;
        text-align: center;
        border-bottom: solid $panel;
        background: $surface;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
        background: $background;
    }

    #status_bar {
        height: auto;
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "session_quit", "Quit", show=False, priority=True),
    ]

    def __init__(
        self,
        machine: SessionMachine,
        *,
        title: str = "Command K",
        tick_interval_ms: int = 100,
    ) -> None:
        super().__init__()
        self.machine = machine
        self.window_title = title
        self.tick_interval = tick_interval_ms / 1000
        if machine.clipboard is None:
            machine.clipboard = self.copy_to_clipboard
        LOGGER.info(
            "app.python",
            extra={
                "event": "app.python",
                "executable": sys.executable,
                "version": sys.version.split()[0],
            },
        )

    @property
    def editor_context(self) -> EditorContext | None:
        if isinstance(self.machine, EditorSessionMachine):
            return self.machine.editor_context
        return None

    def compose(self) -> ComposeResult:
        yield Static(id="header")
        with Container(id="app-root"):
            yield SessionView(id="session_view")
        yield StatusBar(id="status_bar")

    def on_mount(self) -> None:
        self.title = self.window_title
        self._header = self.query_one("#header", Static)
        self._view = self.query_one("#session_view", SessionView)
        self._status_bar = self.query_one("#status_bar", StatusBar)
        self._view.focus()
        self.set_interval(self.tick_interval, self._on_tick)
        self.refresh_view()

    def _header_text(self) -> Text:
        text = Text(justify="center")
        text.append(f"⌘K {self.window_title}", style="bold magenta")
        editor_context = self.editor_context
        if editor_context is None:
            text.append("\nAI-powered command assistance", style="dim")
        else:
            text.append(" (Neovim)", style="cyan")
            if editor_context.filename:
                filetype = editor_context.filetype or "unknown"
                text.append(f"\nFile: {editor_context.filename} [{filetype}]", style="dim")
        turns = self.machine.session_turns
        if turns > 0:
            text.append(
                f"\n↪ Continuing conversation ({turns} previous turns)", style="green"
            )
        return text

    def refresh_view(self) -> None:
        machine = self.machine
        self._header.update(self._header_text())
        self._view.show(machine)
        editor_context = self.editor_context
        location = (
            (editor_context.filename or "untitled")
            if editor_context is not None
            else current_location()
        )
        self._status_bar.set_status(
            provider=machine.current_provider,
            help_text=help_text(machine),
            location=location,
        )

    def _on_tick(self) -> None:
        if self.machine.kind != SessionStateKind.LOADING:
            return
        self.machine.tick()
        self.refresh_view()

    def apply_action(self, action: KeyAction) -> None:
        self.machine.handle(action)
        if not self.machine.running:
            LOGGER.info(
                "app.session.ended",
                extra={"event": "app.session.ended", "state": self.machine.kind.value},
            )
            self.exit(self.machine.command_to_run())
            return
        self.refresh_view()

    def on_session_view_key_pressed(self, message: SessionView.KeyPressed) -> None:
        kind = self.machine.kind
        if kind == SessionStateKind.LOADING:
            return
        mapper = key_to_input_action if kind == SessionStateKind.PROMPT_INPUT else key_to_action
        action = mapper(message.key, message.character)
        if action.kind == KeyActionKind.NONE:
            return
        self.apply_action(action)

    def action_session_quit(self) -> None:
        if self.machine.kind == SessionStateKind.LOADING:
            return
        self.apply_action(KeyAction.of(KeyActionKind.QUIT))
