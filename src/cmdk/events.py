"""Logical key actions and their mapping from terminal key names."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class KeyActionKind(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    SELECT = "SELECT"
    BACK = "BACK"
    QUIT = "QUIT"
    CHAR = "CHAR"
    BACKSPACE = "BACKSPACE"
    DELETE = "DELETE"
    HOME = "HOME"
    END = "END"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    NONE = "NONE"


@dataclass(frozen=True)
class KeyAction:
    kind: KeyActionKind
    char: str = ""

    @classmethod
    def of(cls, kind: KeyActionKind) -> KeyAction:
        return cls(kind)

    @classmethod
    def character(cls, char: str) -> KeyAction:
        return cls(KeyActionKind.CHAR, char)


_EDITING_KEYS: dict[str, KeyActionKind] = {
    "enter": KeyActionKind.SELECT,
    "escape": KeyActionKind.BACK,
    "backspace": KeyActionKind.BACKSPACE,
    "delete": KeyActionKind.DELETE,
    "home": KeyActionKind.HOME,
    "end": KeyActionKind.END,
    "left": KeyActionKind.LEFT,
    "right": KeyActionKind.RIGHT,
    "up": KeyActionKind.UP,
    "down": KeyActionKind.DOWN,
}

_NAVIGATION_KEYS: dict[str, KeyActionKind] = {
    **_EDITING_KEYS,
    "k": KeyActionKind.UP,
    "j": KeyActionKind.DOWN,
    "q": KeyActionKind.QUIT,
}


def _is_quit_chord(key: str) -> bool:
    return key == "ctrl+c"


def key_to_action(key: str, character: str | None = None) -> KeyAction:
    """Map a key for menu-style states (vi keys and ``q`` are commands)."""
    if _is_quit_chord(key):
        return KeyAction.of(KeyActionKind.QUIT)
    kind = _NAVIGATION_KEYS.get(key)
    if kind is not None:
        return KeyAction.of(kind)
    if character and character.isprintable():
        return KeyAction.character(character)
    return KeyAction.of(KeyActionKind.NONE)


def key_to_input_action(key: str, character: str | None = None) -> KeyAction:
    """Map a key while typing a prompt: every printable key is text."""
    if _is_quit_chord(key):
        return KeyAction.of(KeyActionKind.QUIT)
    kind = _EDITING_KEYS.get(key)
    if kind is not None:
        return KeyAction.of(kind)
    if character and character.isprintable():
        return KeyAction.character(character)
    return KeyAction.of(KeyActionKind.NONE)
