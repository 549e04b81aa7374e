"""Neovim integration: context file parsing, combined context and result files.

The editor plugin writes a ``KEY=value`` context file, launches cmdk with
``--nvim <file>`` and, once cmdk exits, reads ``<file>.result`` (the response)
and ``<file>.action`` (what to do with it).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path

from .context import gather_context, gather_context_display
from .events import KeyAction, KeyActionKind
from .exceptions import EditorContextError
from .machine import SessionMachine, step_index
from .settings import SettingsStore

LOGGER = logging.getLogger(__name__)

BUFFER_CONTENT_LIMIT = 5000
KEY_PREFIX = "CMDK_NVIM_"


@dataclass(frozen=True)
class EditorContext:
    filepath: str | None = None
    filename: str | None = None
    filetype: str | None = None
    cursor_line: int | None = None
    cursor_col: int | None = None
    current_line: str | None = None
    visual_selection: str | None = None
    lsp_diagnostics: str | None = None
    buffer_content: str | None = None

    @classmethod
    def from_file(cls, path: str | Path) -> EditorContext:
        """Parse the context file written by the editor plugin.

        Raises:
            EditorContextError: the file cannot be read.
        """
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise EditorContextError(
                f"Failed to read nvim context file: {path}"
            ) from exc
        return cls.from_text(raw)

    @classmethod
    def from_text(cls, raw: str) -> EditorContext:
        values: dict[str, str] = {}
        for line in raw.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key] = value.replace("\\n", "\n")

        def text(name: str) -> str | None:
            return values.get(KEY_PREFIX + name) or None

        def number(name: str) -> int | None:
            value = values.get(KEY_PREFIX + name)
            if value is None:
                return None
            try:
                parsed = int(value)
            except ValueError:
                return None
            return parsed if parsed >= 0 else None

        buffer_content = None
        buffer_file = values.get(KEY_PREFIX + "BUFFER_FILE")
        if buffer_file:
            try:
                buffer_content = Path(buffer_file).read_text(encoding="utf-8")
            except OSError:
                LOGGER.debug(
                    "editor.buffer.unreadable",
                    extra={"event": "editor.buffer.unreadable", "path": buffer_file},
                )

        return cls(
            filepath=text("FILEPATH"),
            filename=text("FILENAME"),
            filetype=text("FILETYPE"),
            cursor_line=number("CURSOR_LINE"),
            cursor_col=number("CURSOR_COL"),
            current_line=text("CURRENT_LINE"),
            visual_selection=text("VISUAL_SELECTION"),
            lsp_diagnostics=text("LSP_DIAGNOSTICS"),
            buffer_content=buffer_content,
        )

    def to_markdown(self) -> str:
        parts = ["## Neovim Context\n\n"]
        if self.filepath:
            parts.append(f"**File:** {self.filepath}\n")
        if self.filetype:
            parts.append(f"**Filetype:** {self.filetype}\n")
        if self.cursor_line is not None and self.cursor_col is not None:
            parts.append(
                f"**Cursor Position:** Line {self.cursor_line}, Column {self.cursor_col}\n"
            )
        if self.current_line:
            parts.append(f"\n**Current Line:**\n```\n{self.current_line}\n```\n")
        if self.visual_selection:
            parts.append(f"\n**Selected Text:**\n```\n{self.visual_selection}\n```\n")
        if self.lsp_diagnostics:
            parts.append(f"\n**LSP Diagnostics:**\n```\n{self.lsp_diagnostics}\n```\n")
        if self.buffer_content is not None:
            content = self.buffer_content
            if len(content) > BUFFER_CONTENT_LIMIT:
                content = f"{content[:BUFFER_CONTENT_LIMIT]}...\n(truncated)"
            lang = self.filetype or ""
            parts.append(f"\n**Buffer Content:**\n```{lang}\n{content}\n```\n")
        return "".join(parts)

    def display_text(self) -> str:
        lines = ["=== Neovim Context ===", ""]
        if self.filepath:
            lines.append(f"File: {self.filepath}")
        if self.filetype:
            lines.append(f"Filetype: {self.filetype}")
        if self.cursor_line is not None and self.cursor_col is not None:
            lines.append(f"Cursor: Line {self.cursor_line}, Column {self.cursor_col}")
        if self.current_line:
            lines.extend(["", "Current Line:", f"  {self.current_line}"])
        if self.visual_selection:
            selection = self.visual_selection.splitlines()
            lines.extend(["", "Visual Selection:"])
            lines.extend(f"  {line}" for line in selection[:10])
            if len(selection) > 10:
                lines.append("  ... (truncated)")
        if self.lsp_diagnostics:
            lines.extend(["", "LSP Diagnostics:"])
            lines.extend(f"  {line}" for line in self.lsp_diagnostics.splitlines()[:5])
        if self.buffer_content is not None:
            content = self.buffer_content
            lines.extend(
                ["", f"Buffer Content: {len(content)} chars", "  (first 500 chars)"]
            )
            lines.extend(f"  {line}" for line in content[:500].splitlines()[:10])
            if len(content.splitlines()) > 10:
                lines.append("  ...")
        return "\n".join(lines)


class EditorResultAction(str, Enum):
    """What the editor plugin should do with the response."""

    INSERT = "insert"
    REPLACE = "replace"
    RUN = "run"
    COPY = "copy"
    CANCEL = "cancel"

    @property
    def label(self) -> str:
        return _ACTION_LABELS[self]


_ACTION_LABELS = {
    EditorResultAction.INSERT: "Insert at cursor",
    EditorResultAction.REPLACE: "Replace line/selection",
    EditorResultAction.RUN: "Run/execute keys",
    EditorResultAction.COPY: "Copy to clipboard",
    EditorResultAction.CANCEL: "Cancel",
}


def result_paths(context_file: str | Path) -> tuple[Path, Path]:
    base = str(context_file)
    return Path(f"{base}.result"), Path(f"{base}.action")


def write_result(context_file: str | Path, action: EditorResultAction, result: str) -> None:
    """Write the response and chosen action next to the context file."""
    result_path, action_path = result_paths(context_file)
    try:
        result_path.write_text(result, encoding="utf-8")
        action_path.write_text(action.value, encoding="utf-8")
    except OSError as exc:
        raise EditorContextError(f"Failed to write editor result: {exc}") from exc
    LOGGER.info(
        "editor.result.written",
        extra={"event": "editor.result.written", "action": action.value},
    )


def combined_context_builder(editor_context: EditorContext):
    """Terminal context followed by the editor block."""

    def build(settings: SettingsStore) -> str:
        return f"{gather_context(settings)}\n{editor_context.to_markdown()}"

    return build


def combined_display_builder(editor_context: EditorContext):
    def build(settings: SettingsStore) -> str:
        terminal = gather_context_display(settings)
        return (
            f"{editor_context.display_text()}\n\n=== Terminal Context ===\n\n{terminal}"
        )

    return build


class EditorSessionMachine(SessionMachine):
    """Session machine whose result screen hands the response back to the editor.

    Any choice on the result screen, including Back and Quit, ends the session.
    """

    def __init__(
        self,
        *args,
        editor_context: EditorContext,
        context_file: str | Path,
        **kwargs,
    ) -> None:
        kwargs.setdefault(
            "context_display_builder", combined_display_builder(editor_context)
        )
        super().__init__(*args, **kwargs)
        self.editor_context = editor_context
        self.context_file = Path(context_file)
        self.result_actions = list(EditorResultAction)
        self.chosen_action: EditorResultAction | None = None

    def _handle_result(self, action: KeyAction) -> None:
        if action.kind in (KeyActionKind.UP, KeyActionKind.DOWN):
            self.result_selected = step_index(
                self.result_selected, len(self.result_actions), action.kind
            )
        elif action.kind == KeyActionKind.SELECT:
            self.chosen_action = self.result_actions[self.result_selected]
            self.quit()
        elif action.kind in (KeyActionKind.BACK, KeyActionKind.QUIT):
            self.chosen_action = EditorResultAction.CANCEL
            self.quit()

    def should_run_command(self) -> bool:
        return False

    def write_result(self) -> bool:
        """Persist the chosen action for the plugin; False when nothing to write."""
        if self.chosen_action is None or self.last_response is None:
            return False
        write_result(self.context_file, self.chosen_action, self.last_response)
        return True
