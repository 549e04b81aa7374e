"""Per-directory session transcripts, prompt history and the last result.

Layout under the data directory::

    cli-session-<hash>.md   transcript for one working directory
    prompt_history          newline-delimited submitted prompts
    last-result.txt         most recent successful response
"""

from __future__ import annotations

from collections.abc import Callable
import hashlib
import logging
import os
from pathlib import Path
import re
import time

from .exceptions import PersistenceError

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT_SECONDS = 3600
USER_MARKER = "## User:"
ASSISTANT_MARKER = "## Assistant:"

# A user line directly followed by the assistant heading starts a turn;
# responses may quote "## User:" anywhere.
TURN_HEADER = re.compile(
    rf"^{re.escape(USER_MARKER)} [^\n]*\n\n{re.escape(ASSISTANT_MARKER)}\n", re.MULTILINE
)


def directory_hash(directory: str) -> str:
    """Stable short hash naming the transcript of ``directory``."""
    return hashlib.md5(directory.encode("utf-8")).hexdigest()[:8]


class SessionStore:
    """Read and append transcript/history files for one working directory."""

    def __init__(
        self,
        data_dir: Path,
        *,
        timeout_seconds: int = DEFAULT_SESSION_TIMEOUT_SECONDS,
        working_dir: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.timeout_seconds = timeout_seconds
        self.working_dir = working_dir
        self._clock = clock

    def _enforce_permissions(self, path: Path, mode: int = 0o600) -> None:
        """Set POSIX permissions on a file or directory; silently ignores failures."""
        if os.name != "posix":
            return
        try:
            path.chmod(mode)
        except OSError:
            pass

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._enforce_permissions(self.data_dir, 0o700)

    @property
    def session_file(self) -> Path:
        directory = self.working_dir
        if directory is None:
            try:
                directory = os.getcwd()
            except OSError:
                directory = "."
        return self.data_dir / f"cli-session-{directory_hash(directory)}.md"

    @property
    def history_file(self) -> Path:
        return self.data_dir / "prompt_history"

    @property
    def result_file(self) -> Path:
        return self.data_dir / "last-result.txt"

    def cleanup_stale_session(self) -> bool:
        """Delete the transcript when idle longer than the timeout.

        Returns True when a stale file was removed.
        """
        session_file = self.session_file
        try:
            modified = session_file.stat().st_mtime
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise PersistenceError(f"Failed to stat session file: {exc}") from exc

        age = max(0.0, self._clock() - modified)
        if age <= self.timeout_seconds:
            return False
        try:
            session_file.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to remove stale session file: {exc}") from exc
        LOGGER.info(
            "persistence.session.expired",
            extra={"event": "persistence.session.expired", "age_seconds": int(age)},
        )
        return True

    def get_session_history(self) -> str | None:
        """Return the live transcript, or ``None`` when absent, empty or stale."""
        self.cleanup_stale_session()
        try:
            content = self.session_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Failed to read session file: {exc}") from exc
        if not content.strip():
            return None
        return content

    def turn_count(self) -> int:
        try:
            history = self.get_session_history()
        except PersistenceError:
            return 0
        if history is None:
            return 0
        return len(TURN_HEADER.findall(history))

    def append_turn(self, user_message: str, response: str) -> None:
        """Append one exchange to the transcript and record it as the last result."""
        entry = f"{USER_MARKER} {user_message}\n\n{ASSISTANT_MARKER}\n{response}\n\n"
        try:
            self._ensure_dir()
            with self.session_file.open("a", encoding="utf-8") as handle:
                handle.write(entry)
            self._enforce_permissions(self.session_file)
        except OSError as exc:
            raise PersistenceError(f"Failed to append to session file: {exc}") from exc
        self.save_last_result(response)

    def clear_session(self) -> None:
        try:
            self.session_file.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to clear session file: {exc}") from exc

    def save_last_result(self, result: str) -> None:
        try:
            self._ensure_dir()
            self.result_file.write_text(result, encoding="utf-8")
            self._enforce_permissions(self.result_file)
        except OSError as exc:
            raise PersistenceError(f"Failed to save last result: {exc}") from exc

    def get_last_result(self) -> str | None:
        try:
            content = self.result_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Failed to read last result: {exc}") from exc
        return content if content.strip() else None

    def add_to_prompt_history(self, prompt: str) -> None:
        try:
            self._ensure_dir()
            with self.history_file.open("a", encoding="utf-8") as handle:
                handle.write(f"{prompt}\n")
            self._enforce_permissions(self.history_file)
        except OSError as exc:
            raise PersistenceError(f"Failed to append prompt history: {exc}") from exc

    def get_recent_prompts(self, limit: int) -> list[str]:
        """Newest-first prompts, duplicates collapsed to their latest occurrence."""
        try:
            lines = self.history_file.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceError(f"Failed to read prompt history: {exc}") from exc

        seen: set[str] = set()
        prompts: list[str] = []
        for line in reversed(lines):
            candidate = line.strip()
            if not candidate or candidate in seen:
                continue
            seen.add(candidate)
            prompts.append(candidate)
            if len(prompts) >= limit:
                break
        return prompts
