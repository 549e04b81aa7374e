"""Key/value settings store shared with the shell launcher scripts.

The file is a plain ``key=value`` list with ``#`` comments so the tmux and
shell helpers can read it without Python. Components never open it directly;
they receive a :class:`SettingsStore` and go through ``get``/``set``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .exceptions import PersistenceError

LOGGER = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.conf"

PROVIDER_KEY = "ai_provider"
CUSTOM_COMMAND_KEY = "custom_provider_cmd"

PRIVACY_SETTINGS: tuple[tuple[str, str], ...] = (
    ("send_terminal_content", "Terminal content"),
    ("send_shell_history", "Shell command history"),
    ("send_git_status", "Git repository status"),
    ("send_working_dir", "Working directory path"),
    ("send_env_var_names", "Environment variable names"),
    ("send_shell_type", "Shell type"),
    ("send_terminal_size", "Terminal dimensions"),
    ("send_current_process", "Current running process"),
)

DEFAULT_SETTINGS: dict[str, str] = {
    **{key: "true" for key, _ in PRIVACY_SETTINGS},
    PROVIDER_KEY: "auto",
    CUSTOM_COMMAND_KEY: "",
}

PROVIDER_CYCLE: dict[str, str] = {"auto": "claude", "claude": "codex", "codex": "auto"}

DEFAULT_SETTINGS_TEXT = """# Command K Settings

# AI Provider: auto, claude, codex, custom or mock
ai_provider=auto

# Command used when ai_provider=custom (prompt is piped to stdin)
custom_provider_cmd=

# --- Privacy Settings ---
# Set to "true" or "false"

# Terminal content (last 500 lines of visible output)
send_terminal_content=true

# Shell command history
send_shell_history=true

# Git repository status
send_git_status=true

# Current working directory
send_working_dir=true

# Environment variable names (values are never sent)
send_env_var_names=true

# Shell type (bash, zsh, fish, etc.)
send_shell_type=true

# Terminal dimensions
send_terminal_size=true

# Current running process
send_current_process=true
"""


def default_setting(key: str) -> str:
    """Return the built-in default for ``key``; unknown keys default to ``"true"``."""
    return DEFAULT_SETTINGS.get(key, "true")


class SettingsStore(Protocol):
    """Read/write capability over string settings."""

    def get(self, key: str) -> str: ...

    def set(self, key: str, value: str) -> None: ...


class MemorySettingsStore:
    """Dictionary-backed store used by tests and one-shot tooling."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str:
        return self._values.get(key, default_setting(key))

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class FileSettingsStore:
    """Settings persisted in ``<data_dir>/settings.conf``.

    Every ``get`` re-reads the file so edits made by the shell helpers (or a
    second process) are picked up without restarting.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / SETTINGS_FILENAME

    def ensure_file(self) -> None:
        """Create the settings file with commented defaults when missing."""
        if self.path.exists():
            return
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(DEFAULT_SETTINGS_TEXT, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(
                f"Failed to write settings file {self.path}: {exc}"
            ) from exc

    def _read_lines(self) -> list[str]:
        self.ensure_file()
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise PersistenceError(
                f"Failed to read settings file {self.path}: {exc}"
            ) from exc

    def values(self) -> dict[str, str]:
        """Parse the file into a mapping, skipping comments and blank lines."""
        parsed: dict[str, str] = {}
        for line in self._read_lines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            key, sep, value = stripped.partition("=")
            if sep:
                parsed[key.strip()] = value.strip()
        return parsed

    def get(self, key: str) -> str:
        return self.values().get(key, default_setting(key))

    def set(self, key: str, value: str) -> None:
        """Rewrite ``key`` in place, keeping comments and ordering intact."""
        found = False
        rewritten: list[str] = []
        for line in self._read_lines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                existing_key, sep, _ = stripped.partition("=")
                if sep and existing_key.strip() == key:
                    rewritten.append(f"{key}={value}")
                    found = True
                    continue
            rewritten.append(line)
        if not found:
            rewritten.append(f"{key}={value}")
        try:
            self.path.write_text("\n".join(rewritten) + "\n", encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(
                f"Failed to write settings file {self.path}: {exc}"
            ) from exc
        LOGGER.debug(
            "settings.updated",
            extra={"event": "settings.updated", "key": key},
        )


def is_enabled(settings: SettingsStore, key: str) -> bool:
    """Return True when the flag is exactly ``"true"``; unreadable settings count as on."""
    try:
        return settings.get(key) == "true"
    except PersistenceError:
        return True


def toggle(settings: SettingsStore, key: str) -> None:
    current = settings.get(key)
    settings.set(key, "false" if current == "true" else "true")


def set_all_privacy(settings: SettingsStore, enabled: bool) -> None:
    value = "true" if enabled else "false"
    for key, _label in PRIVACY_SETTINGS:
        settings.set(key, value)


def cycle_provider(settings: SettingsStore) -> str:
    """Advance ``ai_provider`` through auto -> claude -> codex -> auto."""
    next_value = PROVIDER_CYCLE.get(settings.get(PROVIDER_KEY), "auto")
    settings.set(PROVIDER_KEY, next_value)
    return next_value
