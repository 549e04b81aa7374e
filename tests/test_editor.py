"""Tests for the Neovim context file and result hand-off."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from cmdk.editor import (
    BUFFER_CONTENT_LIMIT,
    EditorContext,
    EditorResultAction,
    EditorSessionMachine,
    result_paths,
    write_result,
)
from cmdk.events import KeyAction, KeyActionKind
from cmdk.exceptions import EditorContextError
from cmdk.persistence import SessionStore
from cmdk.pipeline import QueryPipeline
from cmdk.provider import QueryResult
from cmdk.settings import MemorySettingsStore
from cmdk.state import SessionState, SessionStateKind

CONTEXT_TEXT = """CMDK_NVIM_FILEPATH=/src/app.py
CMDK_NVIM_FILENAME=app.py
CMDK_NVIM_FILETYPE=python
CMDK_NVIM_CURSOR_LINE=12
CMDK_NVIM_CURSOR_COL=abc
CMDK_NVIM_CURRENT_LINE=    return x
CMDK_NVIM_VISUAL_SELECTION=a = 1\\nb = 2
CMDK_NVIM_LSP_DIAGNOSTICS=
"""


class EditorContextTests(unittest.TestCase):
    """Validate parsing and markdown rendering."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.base = Path(self._tmp.name)

    def test_parses_keys_and_escapes(self) -> None:
        ctx = EditorContext.from_text(CONTEXT_TEXT)
        self.assertEqual(ctx.filepath, "/src/app.py")
        self.assertEqual(ctx.filetype, "python")
        self.assertEqual(ctx.cursor_line, 12)
        self.assertIsNone(ctx.cursor_col)
        self.assertEqual(ctx.current_line, "    return x")
        self.assertEqual(ctx.visual_selection, "a = 1\nb = 2")
        self.assertIsNone(ctx.lsp_diagnostics)
        self.assertIsNone(ctx.buffer_content)

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(EditorContextError):
            EditorContext.from_file(self.base / "missing.ctx")

    def test_buffer_file_is_read_and_truncated(self) -> None:
        buffer_file = self.base / "buffer.txt"
        buffer_file.write_text("x" * (BUFFER_CONTENT_LIMIT + 10), encoding="utf-8")
        context_file = self.base / "nvim.ctx"
        context_file.write_text(
            f"CMDK_NVIM_FILETYPE=lua\nCMDK_NVIM_BUFFER_FILE={buffer_file}\n",
            encoding="utf-8",
        )
        ctx = EditorContext.from_file(context_file)
        self.assertEqual(len(ctx.buffer_content), BUFFER_CONTENT_LIMIT + 10)
        markdown = ctx.to_markdown()
        self.assertIn("**Buffer Content:**\n```lua\n", markdown)
        self.assertIn("x" * BUFFER_CONTENT_LIMIT + "...\n(truncated)", markdown)
        self.assertNotIn("x" * (BUFFER_CONTENT_LIMIT + 1), markdown)

    def test_markdown_sections(self) -> None:
        ctx = EditorContext.from_text(CONTEXT_TEXT + "CMDK_NVIM_CURSOR_COL=4\n")
        markdown = ctx.to_markdown()
        self.assertTrue(markdown.startswith("## Neovim Context\n\n"))
        self.assertIn("**File:** /src/app.py\n", markdown)
        self.assertIn("**Cursor Position:** Line 12, Column 4\n", markdown)
        self.assertIn("**Selected Text:**\n```\na = 1\nb = 2\n```\n", markdown)
        self.assertNotIn("LSP Diagnostics", markdown)

    def test_display_text(self) -> None:
        display = EditorContext.from_text(CONTEXT_TEXT).display_text()
        self.assertTrue(display.startswith("=== Neovim Context ==="))
        self.assertIn("Visual Selection:\n  a = 1\n  b = 2", display)

    def test_write_result(self) -> None:
        context_file = self.base / "nvim.ctx"
        write_result(context_file, EditorResultAction.REPLACE, "x = 2")
        result_path, action_path = result_paths(context_file)
        self.assertEqual(result_path.read_text(encoding="utf-8"), "x = 2")
        self.assertEqual(action_path.read_text(encoding="utf-8"), "replace")


class EditorSessionMachineTests(unittest.TestCase):
    """Validate that any result-screen choice ends the session."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        base = Path(self._tmp.name)
        self.context_file = base / "nvim.ctx"
        settings = MemorySettingsStore({"ai_provider": "mock"})
        store = SessionStore(base / "data", working_dir="/src")
        pipeline = QueryPipeline(
            settings,
            store,
            context_builder=lambda _settings: "CTX",
            query_runner=lambda _settings, _prompt: QueryResult.ok("x = 2"),
        )
        self.machine = EditorSessionMachine(
            settings,
            store,
            pipeline,
            editor_context=EditorContext.from_text(CONTEXT_TEXT),
            context_file=self.context_file,
            context_display_builder=lambda _settings: "display",
        )
        self.machine.state = SessionState.showing_result("x = 2")
        self.machine.last_response = "x = 2"

    def test_actions_are_editor_actions(self) -> None:
        self.assertEqual(list(self.machine.result_actions), list(EditorResultAction))
        self.assertFalse(self.machine.should_run_command())

    def test_select_records_action(self) -> None:
        self.machine.handle(KeyAction.of(KeyActionKind.DOWN))
        self.machine.handle(KeyAction.of(KeyActionKind.SELECT))
        self.assertFalse(self.machine.running)
        self.assertEqual(self.machine.chosen_action, EditorResultAction.REPLACE)
        self.assertTrue(self.machine.write_result())
        _result, action_path = result_paths(self.context_file)
        self.assertEqual(action_path.read_text(encoding="utf-8"), "replace")

    def test_back_cancels(self) -> None:
        self.machine.handle(KeyAction.of(KeyActionKind.BACK))
        self.assertFalse(self.machine.running)
        self.assertEqual(self.machine.chosen_action, EditorResultAction.CANCEL)

    def test_nothing_written_without_choice(self) -> None:
        self.machine.state = SessionState.main_menu()
        self.machine.handle(KeyAction.of(KeyActionKind.QUIT))
        self.assertFalse(self.machine.write_result())
        result_path, _action = result_paths(self.context_file)
        self.assertFalse(result_path.exists())

    def test_context_view_uses_combined_display(self) -> None:
        self.machine.state = SessionState.main_menu()
        self.machine.selected_index = 2
        self.machine.handle(KeyAction.of(KeyActionKind.SELECT))
        self.assertEqual(self.machine.kind, SessionStateKind.CONTEXT_VIEW)
        self.assertEqual(self.machine.context_display, "display")


if __name__ == "__main__":
    unittest.main()
