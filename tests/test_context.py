"""Tests for privacy-gated context building."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
import unittest
from unittest.mock import patch

from cmdk import context
from cmdk.context import (
    ContextEnvironment,
    TmuxPane,
    build_context,
    build_context_display,
    probe_shell_history,
)
from cmdk.settings import PRIVACY_SETTINGS, MemorySettingsStore


def _environment() -> ContextEnvironment:
    return ContextEnvironment(
        shell="zsh",
        working_dir="/home/user/project",
        terminal_size=(120, 40),
        env_var_names=("HOME", "PATH"),
        git_status="Branch: main\nModified files:\n M app.py\n",
        shell_history="ls -la\ngit status",
        tmux_pane=TmuxPane(current_command="nvim", content="line one\nline two"),
    )


class BuildContextTests(unittest.TestCase):
    """Validate section order and flag gating."""

    def test_all_sections_in_fixed_order(self) -> None:
        text = build_context(_environment(), MemorySettingsStore())
        self.assertTrue(text.startswith("## Terminal Context\n\n"))
        markers = [
            "**Shell:** zsh",
            "**Working Directory:** /home/user/project",
            "**Terminal Size:** 120x40",
            "**Current Process:** nvim",
            "### Environment Variables (names only)",
            "### Git Status",
            "### Recent Shell History",
            "### Current Terminal Content",
        ]
        positions = [text.index(marker) for marker in markers]
        self.assertEqual(positions, sorted(positions))
        self.assertIn("**Context Type:** editor", text)
        self.assertIn("HOME PATH", text)

    def test_disabled_flags_omit_sections(self) -> None:
        settings = MemorySettingsStore({key: "false" for key, _ in PRIVACY_SETTINGS})
        text = build_context(_environment(), settings)
        self.assertEqual(text, "## Terminal Context\n\n")

    def test_single_flag_disabled(self) -> None:
        settings = MemorySettingsStore({"send_git_status": "false"})
        text = build_context(_environment(), settings)
        self.assertNotIn("Git Status", text)
        self.assertIn("**Shell:** zsh", text)

    def test_env_var_values_are_never_included(self) -> None:
        environment = ContextEnvironment(env_var_names=("SECRET_TOKEN",))
        with patch.dict(os.environ, {"SECRET_TOKEN": "hunter2"}):
            text = build_context(environment, MemorySettingsStore())
        self.assertIn("SECRET_TOKEN", text)
        self.assertNotIn("hunter2", text)

    def test_display_summarises_sections(self) -> None:
        display = build_context_display(_environment(), MemorySettingsStore())
        self.assertIn("Shell: zsh", display)
        self.assertIn("Current Process: nvim (editor)", display)
        self.assertIn("Environment Variables: 2 names", display)
        self.assertIn("Terminal Content: 2 lines", display)


class CollectTests(unittest.TestCase):
    """Validate that disabled sections are never probed."""

    def test_collect_skips_disabled_probes(self) -> None:
        settings = MemorySettingsStore({key: "false" for key, _ in PRIVACY_SETTINGS})
        with patch.object(context, "probe_git_status") as git_mock, patch.object(
            context, "probe_shell_history"
        ) as history_mock, patch.object(context, "probe_tmux_pane") as tmux_mock:
            environment = ContextEnvironment.collect(settings)
        git_mock.assert_not_called()
        history_mock.assert_not_called()
        tmux_mock.assert_not_called()
        self.assertEqual(environment, ContextEnvironment())

    def test_tmux_probe_absent_outside_tmux(self) -> None:
        with patch.dict(os.environ, {"TMUX": ""}):
            self.assertIsNone(context.probe_tmux_pane())


class ContextTypeTests(unittest.TestCase):
    def test_classification(self) -> None:
        self.assertEqual(TmuxPane("zsh").context_type, "shell")
        self.assertEqual(TmuxPane("python3").context_type, "python-repl")
        self.assertEqual(TmuxPane("psql").context_type, "sql-repl")
        self.assertEqual(TmuxPane("ssh").context_type, "remote-shell")
        self.assertEqual(TmuxPane("htop").context_type, "unknown")


class ShellHistoryTests(unittest.TestCase):
    """Validate history source selection and zsh format stripping."""

    def test_zsh_extended_format_is_stripped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            home = Path(tmp)
            (home / ".zsh_history").write_text(
                ": 1700000000:0;git status\n: 1700000001:0;ls -la\n", encoding="utf-8"
            )
            (home / ".bash_history").write_text("ignored\n", encoding="utf-8")
            self.assertEqual(probe_shell_history(home), "git status\nls -la")

    def test_bash_history_keeps_last_twenty_lines(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            home = Path(tmp)
            lines = [f"cmd {index}" for index in range(30)]
            (home / ".bash_history").write_text("\n".join(lines) + "\n", encoding="utf-8")
            history = probe_shell_history(home)
            self.assertIsNotNone(history)
            self.assertEqual(history.splitlines(), lines[-20:])

    def test_no_history_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsNone(probe_shell_history(Path(tmp)))


if __name__ == "__main__":
    unittest.main()
