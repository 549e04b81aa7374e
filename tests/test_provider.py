"""Tests for provider resolution and the subprocess protocols."""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
import unittest
from unittest.mock import patch

from cmdk.provider import (
    CustomCommand,
    MockProvider,
    NamedTool,
    QueryResult,
    dispatch,
    provider_display_name,
    resolve_provider,
    run_query,
    sidecar_output_path,
)
from cmdk.exceptions import (
    PersistenceError,
    ProviderConfigError,
    ProviderNotFoundError,
)
from cmdk.settings import MemorySettingsStore

CODEX_ARGS = """
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "-o" ]; then out="$2"; shift; fi
  shift
done
cat > /dev/null
"""


@unittest.skipUnless(os.name == "posix", "shell script fakes need POSIX")
class FakeToolTestCase(unittest.TestCase):
    """Puts throwaway executables first on PATH."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.bin_dir = Path(self._tmp.name)
        patcher = patch.dict(
            os.environ,
            {"PATH": os.pathsep.join([str(self.bin_dir), "/usr/bin", "/bin"])},
        )
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)
        sidecar_output_path().unlink(missing_ok=True)

    def install(self, name: str, body: str) -> Path:
        path = self.bin_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path


class ResolveProviderTests(FakeToolTestCase):
    """Validate explicit and automatic provider selection."""

    def test_resolution_is_repeatable_and_uncached(self) -> None:
        self.install("claude", "cat > /dev/null")
        settings = MemorySettingsStore({"ai_provider": "mock"})
        self.assertEqual(resolve_provider(settings), resolve_provider(settings))
        self.assertEqual(resolve_provider(settings), MockProvider())
        settings.set("ai_provider", "claude")
        self.assertEqual(resolve_provider(settings), NamedTool("claude"))
        self.assertEqual(resolve_provider(settings), resolve_provider(settings))

    def test_auto_prefers_claude(self) -> None:
        self.install("claude", "cat > /dev/null")
        self.install("codex", "cat > /dev/null")
        self.assertEqual(resolve_provider(MemorySettingsStore()), NamedTool("claude"))

    def test_auto_falls_back_to_codex(self) -> None:
        self.install("codex", "cat > /dev/null")
        self.assertEqual(resolve_provider(MemorySettingsStore()), NamedTool("codex"))

    def test_unknown_value_behaves_like_auto(self) -> None:
        self.install("codex", "cat > /dev/null")
        settings = MemorySettingsStore({"ai_provider": "gemini"})
        self.assertEqual(resolve_provider(settings), NamedTool("codex"))

    def test_auto_without_tools(self) -> None:
        with patch.dict(os.environ, {"PATH": str(self.bin_dir)}):
            with self.assertRaises(ProviderNotFoundError) as ctx:
                resolve_provider(MemorySettingsStore())
        self.assertEqual(str(ctx.exception), "No AI CLI found (install claude or codex)")

    def test_explicit_tool_must_exist(self) -> None:
        with patch.dict(os.environ, {"PATH": str(self.bin_dir)}):
            with self.assertRaises(ProviderNotFoundError) as ctx:
                resolve_provider(MemorySettingsStore({"ai_provider": "codex"}))
        self.assertEqual(str(ctx.exception), "codex not found in PATH")

    def test_custom_requires_command(self) -> None:
        settings = MemorySettingsStore({"ai_provider": "custom", "custom_provider_cmd": "  "})
        with self.assertRaises(ProviderConfigError) as ctx:
            resolve_provider(settings)
        self.assertEqual(str(ctx.exception), "custom_provider_cmd not set")

    def test_custom_and_mock(self) -> None:
        settings = MemorySettingsStore({"ai_provider": "custom", "custom_provider_cmd": "cat"})
        self.assertEqual(resolve_provider(settings), CustomCommand("cat"))
        self.assertEqual(
            resolve_provider(MemorySettingsStore({"ai_provider": "mock"})), MockProvider()
        )

    def test_display_names(self) -> None:
        self.install("claude", "cat > /dev/null")
        self.assertEqual(provider_display_name(MemorySettingsStore()), "Claude (auto)")
        self.assertEqual(
            provider_display_name(MemorySettingsStore({"ai_provider": "claude"})), "Claude"
        )
        self.assertEqual(
            provider_display_name(MemorySettingsStore({"ai_provider": "mock"})), "Mock (test)"
        )
        self.assertEqual(
            provider_display_name(MemorySettingsStore({"ai_provider": "custom"})), "None"
        )


class PipeProtocolTests(FakeToolTestCase):
    def test_success_returns_trimmed_stdout(self) -> None:
        self.install("claude", 'cat > /dev/null\necho "  ls -la  "')
        self.assertEqual(dispatch(NamedTool("claude"), "prompt"), QueryResult.ok("ls -la"))

    def test_prompt_arrives_on_stdin(self) -> None:
        self.install("claude", 'read first\necho "got:$first"')
        result = dispatch(NamedTool("claude"), "hello\nworld")
        self.assertEqual(result.text, "got:hello")

    def test_failure_carries_stderr(self) -> None:
        self.install("claude", "cat > /dev/null\necho boom >&2\nexit 3")
        result = dispatch(NamedTool("claude"), "prompt")
        self.assertFalse(result.is_ok)
        self.assertTrue(result.error.startswith("Claude error: boom"))


class SidecarProtocolTests(FakeToolTestCase):
    def test_reads_and_removes_output_file(self) -> None:
        self.install("codex", CODEX_ARGS + "printf '  git log  \\n' > \"$out\"")
        result = dispatch(NamedTool("codex"), "prompt")
        self.assertEqual(result, QueryResult.ok("git log"))
        self.assertFalse(sidecar_output_path().exists())

    def test_missing_output_file_is_an_error_even_on_success(self) -> None:
        self.install("codex", CODEX_ARGS + "exit 0")
        result = dispatch(NamedTool("codex"), "prompt")
        self.assertEqual(result, QueryResult.err("Codex did not produce output"))

    def test_stale_output_file_is_not_reused(self) -> None:
        sidecar_output_path().write_text("stale answer", encoding="utf-8")
        self.install("codex", CODEX_ARGS + "exit 0")
        result = dispatch(NamedTool("codex"), "prompt")
        self.assertEqual(result.error, "Codex did not produce output")

    def test_empty_output_with_failure_exit(self) -> None:
        self.install("codex", CODEX_ARGS + ': > "$out"\nexit 2')
        self.assertEqual(dispatch(NamedTool("codex"), "prompt"), QueryResult.err("Codex error"))

    def test_empty_output_with_success_exit_is_empty_success(self) -> None:
        self.install("codex", CODEX_ARGS + ': > "$out"')
        self.assertEqual(dispatch(NamedTool("codex"), "prompt"), QueryResult.ok(""))

    def test_output_wins_over_failure_exit(self) -> None:
        self.install("codex", CODEX_ARGS + 'echo partial > "$out"\nexit 1')
        self.assertEqual(dispatch(NamedTool("codex"), "prompt"), QueryResult.ok("partial"))


class FreeformProtocolTests(FakeToolTestCase):
    def test_command_line_is_split_into_arguments(self) -> None:
        self.install("shout", 'tr "$1" "$2"')
        result = dispatch(CustomCommand("shout a-z A-Z"), "make it loud\n")
        self.assertEqual(result, QueryResult.ok("MAKE IT LOUD"))

    def test_failure_carries_stderr(self) -> None:
        self.install("broken", "cat > /dev/null\necho nope >&2\nexit 1")
        result = dispatch(CustomCommand("broken"), "prompt")
        self.assertTrue(result.error.startswith("Custom command error: nope"))

    def test_empty_command(self) -> None:
        self.assertEqual(
            dispatch(CustomCommand("   "), "prompt"), QueryResult.err("Empty custom command")
        )

    def test_spawn_failure(self) -> None:
        result = dispatch(CustomCommand("definitely-not-installed-cmdk"), "prompt")
        self.assertTrue(
            result.error.startswith(
                "Failed to spawn custom command: definitely-not-installed-cmdk"
            )
        )


class MockAndRunQueryTests(FakeToolTestCase):
    def test_mock_echoes_last_prompt_line(self) -> None:
        result = dispatch(MockProvider(), "preamble\n## User: list files\n")
        self.assertEqual(result.text, "echo 'Mock response for: ## User: list files'")

    def test_run_query_reports_resolution_errors(self) -> None:
        with patch.dict(os.environ, {"PATH": str(self.bin_dir)}):
            result = run_query(MemorySettingsStore({"ai_provider": "claude"}), "prompt")
        self.assertEqual(result, QueryResult.err("claude not found in PATH"))

    def test_run_query_uses_current_settings(self) -> None:
        settings = MemorySettingsStore({"ai_provider": "mock"})
        self.assertTrue(run_query(settings, "a\nb").text.endswith("b'"))
        settings.set("ai_provider", "custom")
        self.assertEqual(run_query(settings, "x").error, "custom_provider_cmd not set")

    def test_run_query_reports_unreadable_settings(self) -> None:
        class UnreadableSettings(MemorySettingsStore):
            def get(self, key: str) -> str:
                raise PersistenceError("Failed to read settings file: boom")

        result = run_query(UnreadableSettings(), "prompt")
        self.assertEqual(result, QueryResult.err("Failed to read settings file: boom"))
        self.assertEqual(provider_display_name(UnreadableSettings()), "None")


if __name__ == "__main__":
    unittest.main()
