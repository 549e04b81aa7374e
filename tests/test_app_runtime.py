"""Runtime-style tests for the real Textual app class."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from cmdk.app import CommandKApp, SessionMode, create_machine
from cmdk.editor import EditorContext, EditorSessionMachine
from cmdk.machine import SessionMachine
from cmdk.persistence import SessionStore
from cmdk.pipeline import QueryPipeline
from cmdk.provider import run_query
from cmdk.settings import MemorySettingsStore
from cmdk.state import SessionStateKind

MOCK_RESPONSE = "echo 'Mock response for: ## User: ls'"


def _no_context(_settings) -> str:
    return "## Terminal Context\n\n"


class AppRuntimeTests(unittest.IsolatedAsyncioTestCase):
    """Drive the app through Textual's pilot with the mock provider."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = MemorySettingsStore({"ai_provider": "mock"})
        self.store = SessionStore(Path(self._tmp.name), working_dir="/work")

    def _machine(self, **kwargs) -> SessionMachine:
        pipeline = QueryPipeline(
            self.settings, self.store, context_builder=_no_context, query_runner=run_query
        )
        return SessionMachine(
            self.settings,
            self.store,
            pipeline,
            context_display_builder=lambda _settings: "Shell: zsh",
            **kwargs,
        )

    @staticmethod
    async def _wait_for(pilot, machine: SessionMachine, kind: SessionStateKind) -> None:
        for _ in range(200):
            await pilot.pause(0.02)
            if machine.kind == kind:
                return
        raise AssertionError(f"machine never reached {kind}")

    async def test_ask_then_run_command(self) -> None:
        machine = self._machine()
        app = CommandKApp(machine, tick_interval_ms=10)
        async with app.run_test() as pilot:
            await pilot.press("enter")
            await pilot.pause()
            self.assertEqual(machine.kind, SessionStateKind.PROMPT_INPUT)
            await pilot.press("l", "s")
            await pilot.pause()
            self.assertEqual(machine.input, "ls")
            await pilot.press("enter")
            await self._wait_for(pilot, machine, SessionStateKind.SHOWING_RESULT)
            self.assertEqual(machine.last_response, MOCK_RESPONSE)
            self.assertEqual(machine.session_turns, 1)
            await pilot.press("enter")
            await pilot.pause()
        self.assertEqual(app.return_value, MOCK_RESPONSE)

    async def test_q_quits_from_menu_without_command(self) -> None:
        machine = self._machine()
        app = CommandKApp(machine)
        async with app.run_test() as pilot:
            await pilot.press("q")
            await pilot.pause()
        self.assertFalse(machine.running)
        self.assertIsNone(app.return_value)

    async def test_ctrl_c_quits_from_prompt_input(self) -> None:
        machine = self._machine()
        app = CommandKApp(machine)
        async with app.run_test() as pilot:
            await pilot.press("enter", "q")
            await pilot.pause()
            self.assertEqual(machine.input, "q")
            self.assertTrue(machine.running)
            await pilot.press("ctrl+c")
            await pilot.pause()
        self.assertFalse(machine.running)

    async def test_header_shows_previous_turns(self) -> None:
        self.store.append_turn("q1", "a1")
        self.store.append_turn("q2", "a2")
        machine = self._machine()
        app = CommandKApp(machine, title="Command K")
        async with app.run_test() as pilot:
            await pilot.pause()
            header = str(app._header_text())
            self.assertIn("Continuing conversation (2 previous turns)", header)
            self.assertEqual(app.title, "Command K")

    async def test_settings_mode_exits_on_back(self) -> None:
        machine = self._machine(exit_on_main_menu=True)
        machine.open_settings()
        app = CommandKApp(machine)
        async with app.run_test() as pilot:
            await pilot.press("enter")
            await pilot.pause()
            self.assertEqual(self.settings.get("ai_provider"), "auto")
            await pilot.press("escape")
            await pilot.pause()
        self.assertFalse(machine.running)

    async def test_editor_mode_header(self) -> None:
        context = EditorContext.from_text(
            "CMDK_NVIM_FILENAME=app.py\nCMDK_NVIM_FILETYPE=python\n"
        )
        pipeline = QueryPipeline(
            self.settings, self.store, context_builder=_no_context, query_runner=run_query
        )
        machine = EditorSessionMachine(
            self.settings,
            self.store,
            pipeline,
            editor_context=context,
            context_file=Path(self._tmp.name) / "nvim.ctx",
        )
        app = CommandKApp(machine)
        async with app.run_test() as pilot:
            await pilot.pause()
            header = str(app._header_text())
            self.assertIn("(Neovim)", header)
            self.assertIn("File: app.py [python]", header)


class CreateMachineTests(unittest.TestCase):
    """Validate mode wiring."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.config = {
            "app": {"title": "Command K", "tick_interval_ms": 100},
            "session": {
                "data_dir": self._tmp.name,
                "timeout_seconds": 3600,
                "recent_prompts_limit": 7,
            },
            "logging": {},
        }

    def test_settings_mode_opens_settings(self) -> None:
        machine = create_machine(
            self.config,
            mode=SessionMode.SETTINGS,
            settings=MemorySettingsStore({"ai_provider": "mock"}),
        )
        self.assertEqual(machine.kind, SessionStateKind.SETTINGS_MENU)
        self.assertTrue(machine.exit_on_main_menu)
        self.assertEqual(machine.recent_limit, 7)

    def test_interactive_mode_uses_file_settings(self) -> None:
        machine = create_machine(self.config)
        self.assertEqual(machine.kind, SessionStateKind.MAIN_MENU)
        self.assertTrue((Path(self._tmp.name) / "settings.conf").exists())

    def test_editor_mode_requires_context(self) -> None:
        with self.assertRaises(ValueError):
            create_machine(self.config, mode=SessionMode.EDITOR)

    def test_editor_mode_builds_editor_machine(self) -> None:
        machine = create_machine(
            self.config,
            mode=SessionMode.EDITOR,
            settings=MemorySettingsStore({"ai_provider": "mock"}),
            editor_context=EditorContext(),
            context_file=Path(self._tmp.name) / "nvim.ctx",
        )
        self.assertIsInstance(machine, EditorSessionMachine)


if __name__ == "__main__":
    unittest.main()
