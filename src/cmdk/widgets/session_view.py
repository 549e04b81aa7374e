"""Body widget rendering the active session state."""

from __future__ import annotations

from rich.text import Text
from textual import events
from textual.message import Message
from textual.widgets import Static

from ..machine import SessionMachine
from ..state import SessionStateKind, SettingsItemKind, SettingsMenuItem

SELECTED_STYLE = "bold magenta"
PROMPT_DISPLAY_MAX_CHARS = 60
SEPARATOR_TEXT = "─" * 13

HELP_TEXT: dict[SessionStateKind, str] = {
    SessionStateKind.MAIN_MENU: "↑↓: Navigate | Enter: Select | q: Quit",
    SessionStateKind.PROMPT_INPUT: "Enter: Submit | Esc: Cancel",
    SessionStateKind.LOADING: "Please wait...",
    SessionStateKind.SHOWING_RESULT: "↑↓: Navigate | Enter: Select | Esc: Back",
    SessionStateKind.CONTEXT_VIEW: "Esc: Back | q: Quit",
    SessionStateKind.SETTINGS_MENU: "↑↓: Navigate | Enter: Toggle | Esc: Back",
    SessionStateKind.RECENT_PROMPTS: "↑↓: Navigate | Enter: Select | Esc: Back",
    SessionStateKind.ERROR: "Enter/Esc: Continue",
}


def help_text(machine: SessionMachine) -> str:
    return HELP_TEXT[machine.kind]


def shorten_prompt(prompt: str, limit: int = PROMPT_DISPLAY_MAX_CHARS) -> str:
    if len(prompt) <= limit:
        return prompt
    return f"{prompt[: limit - 3]}..."


def _append_list(text: Text, labels: list[str], selected: int) -> None:
    for index, label in enumerate(labels):
        if index == selected:
            text.append(f"▶ {label}\n", style=SELECTED_STYLE)
        else:
            text.append(f"  {label}\n")


def settings_label(item: SettingsMenuItem, provider: str) -> str:
    if item.kind == SettingsItemKind.CHANGE_PROVIDER:
        return f"🤖 Change AI provider (current: {provider})"
    if item.is_separator:
        return SEPARATOR_TEXT
    if item.kind == SettingsItemKind.TOGGLE:
        return f"{'✓' if item.enabled else '✗'} {item.label}"
    if item.kind == SettingsItemKind.ENABLE_ALL:
        return "Enable all"
    if item.kind == SettingsItemKind.DISABLE_ALL:
        return "Disable all"
    return "← Back"


def _action_label(action: object) -> str:
    return str(getattr(action, "label", None) or getattr(action, "value", action))


def render_state(machine: SessionMachine) -> Text:
    """Build the body text for whatever state the machine is in."""
    kind = machine.kind
    text = Text()

    if kind == SessionStateKind.MAIN_MENU:
        text.append("Menu\n\n", style="bold")
        _append_list(text, [item.value for item in machine.menu_items], machine.selected_index)
    elif kind == SessionStateKind.PROMPT_INPUT:
        text.append("What do you need?\n\n", style="bold magenta")
        before = machine.input[: machine.cursor_position]
        at = machine.input[machine.cursor_position : machine.cursor_position + 1] or " "
        after = machine.input[machine.cursor_position + 1 :]
        text.append("> ")
        text.append(before)
        text.append(at, style="reverse")
        text.append(after)
        text.append("\n\nPress Enter to submit, Esc to cancel", style="dim")
    elif kind == SessionStateKind.LOADING:
        text.append(f"\n{machine.spinner} ", style="cyan")
        text.append("Thinking...\n\n", style="bold yellow")
        text.append(f"Using {machine.current_provider}", style="dim")
    elif kind == SessionStateKind.SHOWING_RESULT:
        text.append("Response\n\n", style="bold green")
        text.append(machine.state.text, style="green")
        text.append("\n\nActions\n", style="bold")
        _append_list(
            text,
            [_action_label(action) for action in machine.result_actions],
            machine.result_selected,
        )
    elif kind == SessionStateKind.CONTEXT_VIEW:
        text.append("Current Context\n\n", style="bold cyan")
        text.append(machine.context_display, style="cyan")
    elif kind == SessionStateKind.SETTINGS_MENU:
        text.append("Settings\n\n", style="bold")
        _append_list(
            text,
            [settings_label(item, machine.current_provider) for item in machine.settings_items],
            machine.settings_selected,
        )
    elif kind == SessionStateKind.RECENT_PROMPTS:
        if not machine.recent_prompts:
            text.append("No prompt history yet", style="dim")
        else:
            text.append("Recent Prompts (Enter to select, Esc to go back)\n\n", style="bold")
            _append_list(
                text,
                [shorten_prompt(prompt) for prompt in machine.recent_prompts],
                machine.prompts_selected,
            )
    elif kind == SessionStateKind.ERROR:
        text.append("Error\n\n", style="bold red")
        text.append(machine.state.message, style="red")
    return text


class SessionView(Static, can_focus=True):
    """Focusable body that forwards raw key presses to the app."""

    DEFAULT_CSS = """
    SessionView {
        height: 1fr;
        padding: 1 2;
    }
    """

    class KeyPressed(Message):
        """Posted for every key the view receives."""

        def __init__(self, key: str, character: str | None) -> None:
            super().__init__()
            self.key = key
            self.character = character

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        character = event.character if event.is_printable else None
        self.post_message(self.KeyPressed(event.key, character))

    def show(self, machine: SessionMachine) -> None:
        self.update(render_state(machine))
