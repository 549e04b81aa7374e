"""Session state variants and the menu item types shown in each state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionStateKind(str, Enum):
    """Finite set of UI states."""

    MAIN_MENU = "MAIN_MENU"
    PROMPT_INPUT = "PROMPT_INPUT"
    LOADING = "LOADING"
    SHOWING_RESULT = "SHOWING_RESULT"
    CONTEXT_VIEW = "CONTEXT_VIEW"
    SETTINGS_MENU = "SETTINGS_MENU"
    RECENT_PROMPTS = "RECENT_PROMPTS"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the active state and its payload.

    ``text`` is only meaningful for SHOWING_RESULT and ``message`` only for
    ERROR.
    """

    kind: SessionStateKind
    text: str = ""
    message: str = ""

    @classmethod
    def main_menu(cls) -> SessionState:
        return cls(SessionStateKind.MAIN_MENU)

    @classmethod
    def prompt_input(cls) -> SessionState:
        return cls(SessionStateKind.PROMPT_INPUT)

    @classmethod
    def loading(cls) -> SessionState:
        return cls(SessionStateKind.LOADING)

    @classmethod
    def showing_result(cls, text: str) -> SessionState:
        return cls(SessionStateKind.SHOWING_RESULT, text=text)

    @classmethod
    def context_view(cls) -> SessionState:
        return cls(SessionStateKind.CONTEXT_VIEW)

    @classmethod
    def settings_menu(cls) -> SessionState:
        return cls(SessionStateKind.SETTINGS_MENU)

    @classmethod
    def recent_prompts(cls) -> SessionState:
        return cls(SessionStateKind.RECENT_PROMPTS)

    @classmethod
    def error(cls, message: str) -> SessionState:
        return cls(SessionStateKind.ERROR, message=message)


class MenuItem(str, Enum):
    ASK_QUESTION = "Ask a question"
    RECENT_PROMPTS = "Recent prompts"
    VIEW_CONTEXT = "View context"
    PRIVACY_SETTINGS = "Privacy settings"
    CLEAR_CONVERSATION = "Clear conversation"
    EXIT = "Exit"


class ResultAction(str, Enum):
    """Actions offered under a response in the terminal flow."""

    RUN_COMMAND = "Run command"
    COPY_TO_CLIPBOARD = "Copy to clipboard"
    ASK_FOLLOW_UP = "Ask follow-up"
    BACK_TO_MENU = "Back to menu"


class SettingsItemKind(str, Enum):
    CHANGE_PROVIDER = "CHANGE_PROVIDER"
    SEPARATOR = "SEPARATOR"
    TOGGLE = "TOGGLE"
    SEPARATOR_2 = "SEPARATOR_2"
    ENABLE_ALL = "ENABLE_ALL"
    DISABLE_ALL = "DISABLE_ALL"
    BACK = "BACK"


@dataclass(frozen=True)
class SettingsMenuItem:
    kind: SettingsItemKind
    key: str = ""
    label: str = ""
    enabled: bool = False

    @property
    def is_separator(self) -> bool:
        return self.kind in {SettingsItemKind.SEPARATOR, SettingsItemKind.SEPARATOR_2}
