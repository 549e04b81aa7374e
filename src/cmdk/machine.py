"""Interactive session state machine driven by key actions and ticks."""

from __future__ import annotations

from collections.abc import Callable, Sequence
import logging
from typing import Any

from .context import gather_context_display
from .events import KeyAction, KeyActionKind
from .exceptions import PersistenceError
from .persistence import SessionStore
from .pipeline import QueryPipeline
from .provider import QueryResult, provider_display_name
from .query_task import PollStatus, QueryTask
from .settings import (
    PRIVACY_SETTINGS,
    SettingsStore,
    cycle_provider,
    is_enabled,
    set_all_privacy,
    toggle,
)
from .state import (
    MenuItem,
    ResultAction,
    SessionState,
    SessionStateKind,
    SettingsItemKind,
    SettingsMenuItem,
)

LOGGER = logging.getLogger(__name__)

SPINNER_FRAMES: tuple[str, ...] = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
DISCONNECTED_MESSAGE = "query thread disconnected"
DEFAULT_RECENT_LIMIT = 20


def step_index(index: int, length: int, action: KeyActionKind) -> int:
    """Move a list cursor one row, clamped to the list bounds."""
    if action == KeyActionKind.UP and index > 0:
        return index - 1
    if action == KeyActionKind.DOWN and index < length - 1:
        return index + 1
    return index


class SessionMachine:
    """Owns the UI state and applies one key action or tick at a time.

    The machine is only ever touched from the UI thread; the query worker
    communicates exclusively through the :class:`QueryTask` it returns.
    """

    def __init__(
        self,
        settings: SettingsStore,
        store: SessionStore,
        pipeline: QueryPipeline,
        *,
        clipboard: Callable[[str], Any] | None = None,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        context_display_builder: Callable[[SettingsStore], str] = gather_context_display,
        exit_on_main_menu: bool = False,
    ) -> None:
        self.settings = settings
        self.store = store
        self.pipeline = pipeline
        self.clipboard = clipboard
        self.recent_limit = recent_limit
        self.context_display_builder = context_display_builder
        self.exit_on_main_menu = exit_on_main_menu

        self.state = SessionState.main_menu()
        self.running = True

        self.menu_items: list[MenuItem] = list(MenuItem)
        self.selected_index = 0

        self.input = ""
        self.cursor_position = 0

        self.result_actions: Sequence[Any] = list(ResultAction)
        self.result_selected = 0
        self.last_response: str | None = None

        self.settings_items: list[SettingsMenuItem] = []
        self.settings_selected = 0
        self.current_provider = provider_display_name(settings)

        self.recent_prompts: list[str] = []
        self.prompts_selected = 0

        self.context_display = ""
        self.session_turns = store.turn_count()
        self.spinner_frame = 0
        self.pending: QueryTask | None = None

    # -- state helpers -------------------------------------------------

    @property
    def kind(self) -> SessionStateKind:
        return self.state.kind

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_frame % len(SPINNER_FRAMES)]

    def transition(self, new_state: SessionState) -> None:
        if new_state.kind != self.state.kind:
            LOGGER.debug(
                "machine.state.transition",
                extra={
                    "event": "machine.state.transition",
                    "from_state": self.state.kind.value,
                    "to_state": new_state.kind.value,
                },
            )
        self.state = new_state

    def quit(self) -> None:
        self.running = False

    def open_settings(self) -> None:
        """Enter the settings menu with freshly built rows."""
        self.refresh_settings_items()
        self.settings_selected = 0
        self.transition(SessionState.settings_menu())

    def refresh_settings_items(self) -> None:
        self.current_provider = provider_display_name(self.settings)
        items = [
            SettingsMenuItem(SettingsItemKind.CHANGE_PROVIDER),
            SettingsMenuItem(SettingsItemKind.SEPARATOR),
        ]
        for key, label in PRIVACY_SETTINGS:
            items.append(
                SettingsMenuItem(
                    SettingsItemKind.TOGGLE,
                    key=key,
                    label=label,
                    enabled=is_enabled(self.settings, key),
                )
            )
        items.extend(
            [
                SettingsMenuItem(SettingsItemKind.SEPARATOR_2),
                SettingsMenuItem(SettingsItemKind.ENABLE_ALL),
                SettingsMenuItem(SettingsItemKind.DISABLE_ALL),
                SettingsMenuItem(SettingsItemKind.BACK),
            ]
        )
        self.settings_items = items

    # -- input ---------------------------------------------------------

    def handle(self, action: KeyAction) -> None:
        """Apply one key action to the current state."""
        if not self.running or self.kind == SessionStateKind.LOADING:
            return
        handlers: dict[SessionStateKind, Callable[[KeyAction], None]] = {
            SessionStateKind.MAIN_MENU: self._handle_main_menu,
            SessionStateKind.PROMPT_INPUT: self._handle_input,
            SessionStateKind.SHOWING_RESULT: self._handle_result,
            SessionStateKind.CONTEXT_VIEW: self._handle_acknowledge,
            SessionStateKind.SETTINGS_MENU: self._handle_settings,
            SessionStateKind.RECENT_PROMPTS: self._handle_prompts,
            SessionStateKind.ERROR: self._handle_acknowledge,
        }
        try:
            handlers[self.kind](action)
        except PersistenceError as exc:
            LOGGER.warning(
                "machine.action.failed",
                extra={"event": "machine.action.failed", "reason": str(exc)},
            )
            self.transition(SessionState.error(str(exc)))
        if self.exit_on_main_menu and self.kind == SessionStateKind.MAIN_MENU:
            self.running = False

    def _handle_main_menu(self, action: KeyAction) -> None:
        if action.kind in (KeyActionKind.UP, KeyActionKind.DOWN):
            self.selected_index = step_index(
                self.selected_index, len(self.menu_items), action.kind
            )
        elif action.kind == KeyActionKind.SELECT:
            self._select_menu_item(self.menu_items[self.selected_index])
        elif action.kind == KeyActionKind.QUIT:
            self.quit()

    def _select_menu_item(self, item: MenuItem) -> None:
        if item == MenuItem.ASK_QUESTION:
            self._start_prompt()
        elif item == MenuItem.RECENT_PROMPTS:
            self.recent_prompts = self.store.get_recent_prompts(self.recent_limit)
            self.prompts_selected = 0
            self.transition(SessionState.recent_prompts())
        elif item == MenuItem.VIEW_CONTEXT:
            self.context_display = self.context_display_builder(self.settings)
            self.transition(SessionState.context_view())
        elif item == MenuItem.PRIVACY_SETTINGS:
            self.open_settings()
        elif item == MenuItem.CLEAR_CONVERSATION:
            self.store.clear_session()
            self.session_turns = 0
            LOGGER.info(
                "machine.session.cleared",
                extra={"event": "machine.session.cleared"},
            )
        elif item == MenuItem.EXIT:
            self.quit()

    def _start_prompt(self) -> None:
        self.input = ""
        self.cursor_position = 0
        self.transition(SessionState.prompt_input())

    def _handle_input(self, action: KeyAction) -> None:
        kind = action.kind
        if kind == KeyActionKind.CHAR:
            position = self.cursor_position
            self.input = self.input[:position] + action.char + self.input[position:]
            self.cursor_position += len(action.char)
        elif kind == KeyActionKind.BACKSPACE:
            if self.cursor_position > 0:
                position = self.cursor_position - 1
                self.input = self.input[:position] + self.input[position + 1 :]
                self.cursor_position = position
        elif kind == KeyActionKind.DELETE:
            position = self.cursor_position
            if position < len(self.input):
                self.input = self.input[:position] + self.input[position + 1 :]
        elif kind == KeyActionKind.LEFT:
            self.cursor_position = max(0, self.cursor_position - 1)
        elif kind == KeyActionKind.RIGHT:
            self.cursor_position = min(len(self.input), self.cursor_position + 1)
        elif kind == KeyActionKind.HOME:
            self.cursor_position = 0
        elif kind == KeyActionKind.END:
            self.cursor_position = len(self.input)
        elif kind == KeyActionKind.SELECT:
            if self.input.strip():
                self.submit(self.input)
        elif kind == KeyActionKind.BACK:
            self.transition(SessionState.main_menu())
        elif kind == KeyActionKind.QUIT:
            self.quit()

    def _handle_result(self, action: KeyAction) -> None:
        if action.kind in (KeyActionKind.UP, KeyActionKind.DOWN):
            self.result_selected = step_index(
                self.result_selected, len(self.result_actions), action.kind
            )
        elif action.kind == KeyActionKind.SELECT:
            self._apply_result_action(self.result_actions[self.result_selected])
        elif action.kind == KeyActionKind.BACK:
            self.transition(SessionState.main_menu())
        elif action.kind == KeyActionKind.QUIT:
            self.quit()

    def _apply_result_action(self, action: ResultAction) -> None:
        if action == ResultAction.RUN_COMMAND:
            if self.last_response is not None:
                self.quit()
        elif action == ResultAction.COPY_TO_CLIPBOARD:
            if self.last_response is not None:
                self._copy(self.last_response)
            self.transition(SessionState.main_menu())
        elif action == ResultAction.ASK_FOLLOW_UP:
            self._start_prompt()
        elif action == ResultAction.BACK_TO_MENU:
            self.transition(SessionState.main_menu())

    def _copy(self, text: str) -> None:
        if self.clipboard is None:
            return
        try:
            self.clipboard(text)
        except Exception as exc:  # noqa: BLE001 - clipboard is best-effort.
            LOGGER.warning(
                "machine.clipboard.failed",
                extra={"event": "machine.clipboard.failed", "reason": str(exc)},
            )

    def _handle_acknowledge(self, action: KeyAction) -> None:
        if action.kind in (KeyActionKind.SELECT, KeyActionKind.BACK):
            self.transition(SessionState.main_menu())
        elif action.kind == KeyActionKind.QUIT:
            self.quit()

    def _handle_settings(self, action: KeyAction) -> None:
        if action.kind == KeyActionKind.UP:
            self.settings_selected = self._settings_step(-1)
        elif action.kind == KeyActionKind.DOWN:
            self.settings_selected = self._settings_step(1)
        elif action.kind == KeyActionKind.SELECT:
            self._select_settings_item(self.settings_items[self.settings_selected])
        elif action.kind == KeyActionKind.BACK:
            self.transition(SessionState.main_menu())
        elif action.kind == KeyActionKind.QUIT:
            self.quit()

    def _settings_step(self, direction: int) -> int:
        """Move one row in ``direction``, skipping separators; clamps at the ends."""
        index = self.settings_selected
        last = len(self.settings_items) - 1
        candidate = index + direction
        while 0 <= candidate <= last:
            if not self.settings_items[candidate].is_separator:
                return candidate
            candidate += direction
        return index

    def _select_settings_item(self, item: SettingsMenuItem) -> None:
        if item.kind == SettingsItemKind.CHANGE_PROVIDER:
            cycle_provider(self.settings)
        elif item.kind == SettingsItemKind.TOGGLE:
            toggle(self.settings, item.key)
        elif item.kind == SettingsItemKind.ENABLE_ALL:
            set_all_privacy(self.settings, True)
        elif item.kind == SettingsItemKind.DISABLE_ALL:
            set_all_privacy(self.settings, False)
        elif item.kind == SettingsItemKind.BACK:
            self.transition(SessionState.main_menu())
            return
        else:
            return
        self.refresh_settings_items()

    def _handle_prompts(self, action: KeyAction) -> None:
        if action.kind in (KeyActionKind.UP, KeyActionKind.DOWN):
            self.prompts_selected = step_index(
                self.prompts_selected, len(self.recent_prompts), action.kind
            )
        elif action.kind == KeyActionKind.SELECT:
            if self.recent_prompts:
                self.submit(self.recent_prompts[self.prompts_selected])
        elif action.kind == KeyActionKind.BACK:
            self.transition(SessionState.main_menu())
        elif action.kind == KeyActionKind.QUIT:
            self.quit()

    # -- query lifecycle -----------------------------------------------

    def submit(self, user_text: str) -> None:
        """Hand ``user_text`` to the pipeline and wait in LOADING."""
        if self.pending is not None or not user_text.strip():
            return
        self.pending = self.pipeline.submit(user_text)
        self.spinner_frame = 0
        self.transition(SessionState.loading())

    def tick(self) -> bool:
        """Advance the spinner and poll the outstanding query.

        Returns True when the query reached a terminal outcome on this tick.
        Raises RuntimeError if the machine is loading with no query in flight.
        """
        if self.kind != SessionStateKind.LOADING:
            return False
        self.spinner_frame = (self.spinner_frame + 1) % len(SPINNER_FRAMES)
        task = self.pending
        if task is None:
            raise RuntimeError("LOADING state without a pending query")
        outcome = task.poll()
        if outcome.status == PollStatus.PENDING:
            return False
        self.pending = None
        if outcome.status == PollStatus.DISCONNECTED or outcome.result is None:
            LOGGER.warning(
                "machine.query.disconnected",
                extra={"event": "machine.query.disconnected"},
            )
            self.transition(SessionState.error(DISCONNECTED_MESSAGE))
            return True
        self._finish(task.user_text, outcome.result)
        return True

    def _finish(self, user_text: str, result: QueryResult) -> None:
        if not result.is_ok:
            self.transition(SessionState.error(result.error or "Unknown error"))
            return
        self.pipeline.complete(user_text, result)
        self.session_turns = self.store.turn_count()
        response = result.text or ""
        self.last_response = response
        self.result_selected = 0
        self.transition(SessionState.showing_result(response))

    # -- exit ----------------------------------------------------------

    def should_run_command(self) -> bool:
        if self.kind != SessionStateKind.SHOWING_RESULT:
            return False
        if not 0 <= self.result_selected < len(self.result_actions):
            return False
        return self.result_actions[self.result_selected] == ResultAction.RUN_COMMAND

    def command_to_run(self) -> str | None:
        """The response to execute once the interface has been torn down."""
        if self.running or not self.should_run_command():
            return None
        return self.last_response
