"""Provider resolution and subprocess dispatch.

Three external tool shapes are supported and normalised into one
:class:`QueryResult`:

* pipe: prompt on stdin, answer on stdout (``claude --print``)
* sidecar file: prompt on stdin, answer written to a temp file (``codex exec -o``)
* freeform: a user-configured command line fed the prompt on stdin

Callers above :func:`dispatch` never branch on provider identity.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import subprocess
import tempfile

from .exceptions import (
    CmdkError,
    ProviderConfigError,
    ProviderError,
    ProviderExecutionError,
    ProviderNotFoundError,
)
from .settings import CUSTOM_COMMAND_KEY, PROVIDER_KEY, SettingsStore

LOGGER = logging.getLogger(__name__)

AUTO_PRIORITY: tuple[str, ...] = ("claude", "codex")


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one provider query: exactly one of ``text``/``error`` is set."""

    text: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, text: str) -> QueryResult:
        return cls(text=text)

    @classmethod
    def err(cls, message: str) -> QueryResult:
        return cls(error=message)

    @property
    def is_ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class NamedTool:
    """A tool whose invocation shape is built in (``claude`` or ``codex``)."""

    tool_id: str

    def __str__(self) -> str:
        return self.tool_id.capitalize()


@dataclass(frozen=True)
class CustomCommand:
    """A user-supplied command line that reads the prompt on stdin."""

    command_line: str

    def __str__(self) -> str:
        return "Custom"


@dataclass(frozen=True)
class MockProvider:
    """Offline provider that echoes a synthetic command."""

    def __str__(self) -> str:
        return "Mock (test)"


Provider = NamedTool | CustomCommand | MockProvider


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def resolve_provider(settings: SettingsStore) -> Provider:
    """Resolve the configured provider; never cached so edits apply immediately.

    Raises:
        ProviderNotFoundError: the selected (or any auto-detected) tool is missing.
        ProviderConfigError: ``custom`` is selected without a command line.
    """
    selected = settings.get(PROVIDER_KEY).strip()

    if selected in AUTO_PRIORITY:
        if not command_exists(selected):
            raise ProviderNotFoundError(f"{selected} not found in PATH")
        return NamedTool(selected)
    if selected == "custom":
        command_line = settings.get(CUSTOM_COMMAND_KEY).strip()
        if not command_line:
            raise ProviderConfigError(f"{CUSTOM_COMMAND_KEY} not set")
        return CustomCommand(command_line)
    if selected == "mock":
        return MockProvider()

    # "auto" and anything unrecognised: first installed tool wins.
    for tool_id in AUTO_PRIORITY:
        if command_exists(tool_id):
            return NamedTool(tool_id)
    raise ProviderNotFoundError("No AI CLI found (install claude or codex)")


def provider_display_name(settings: SettingsStore) -> str:
    """Human label for the status bar, e.g. ``"Claude (auto)"`` or ``"None"``."""
    try:
        provider = resolve_provider(settings)
    except CmdkError:
        return "None"
    if settings.get(PROVIDER_KEY).strip() == "auto":
        return f"{provider} (auto)"
    return str(provider)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _spawn(
    argv: list[str], prompt: str, what: str, *, capture: bool = True
) -> subprocess.CompletedProcess[bytes]:
    try:
        return subprocess.run(
            argv,
            input=prompt.encode("utf-8"),
            stdout=subprocess.PIPE if capture else subprocess.DEVNULL,
            stderr=subprocess.PIPE if capture else subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        raise ProviderExecutionError(f"Failed to spawn {what}: {exc}") from exc


def run_pipe_protocol(prompt: str, executable: str = "claude") -> str:
    completed = _spawn([executable, "--print"], prompt, f"{executable} process")
    if completed.returncode != 0:
        raise ProviderExecutionError(f"Claude error: {_decode(completed.stderr)}")
    return _decode(completed.stdout).strip()


def sidecar_output_path() -> Path:
    return Path(tempfile.gettempdir()) / f"cmdk-codex-{os.getpid()}.txt"


def run_sidecar_protocol(prompt: str, executable: str = "codex") -> str:
    output_file = sidecar_output_path()
    # A leftover from a crashed run must not be mistaken for this answer.
    output_file.unlink(missing_ok=True)

    completed = _spawn(
        [
            executable,
            "exec",
            "--skip-git-repo-check",
            "--sandbox",
            "read-only",
            "-o",
            str(output_file),
            "-",
        ],
        prompt,
        f"{executable} process",
        capture=False,
    )

    if not output_file.exists():
        raise ProviderExecutionError("Codex did not produce output")
    try:
        response = output_file.read_text(encoding="utf-8", errors="replace").strip()
    except OSError as exc:
        raise ProviderExecutionError(f"Failed to read codex output: {exc}") from exc
    finally:
        output_file.unlink(missing_ok=True)

    if completed.returncode != 0 and not response:
        raise ProviderExecutionError("Codex error")
    return response


def run_freeform_protocol(prompt: str, command_line: str) -> str:
    parts = command_line.split()
    if not parts:
        raise ProviderConfigError("Empty custom command")
    completed = _spawn(parts, prompt, f"custom command: {command_line}")
    if completed.returncode != 0:
        raise ProviderExecutionError(
            f"Custom command error: {_decode(completed.stderr)}"
        )
    return _decode(completed.stdout).strip()


def run_mock_protocol(prompt: str) -> str:
    lines = prompt.splitlines()
    last_line = lines[-1] if lines else "empty"
    return f"echo 'Mock response for: {last_line}'"


_NAMED_PROTOCOLS: dict[str, Callable[[str, str], str]] = {
    "claude": run_pipe_protocol,
    "codex": run_sidecar_protocol,
}


def dispatch(provider: Provider, prompt: str) -> QueryResult:
    """Run ``prompt`` through ``provider`` and normalise the outcome."""
    try:
        if isinstance(provider, NamedTool):
            protocol = _NAMED_PROTOCOLS.get(provider.tool_id)
            if protocol is None:
                raise ProviderConfigError(f"Unknown provider: {provider.tool_id}")
            text = protocol(prompt, provider.tool_id)
        elif isinstance(provider, CustomCommand):
            text = run_freeform_protocol(prompt, provider.command_line)
        else:
            text = run_mock_protocol(prompt)
    except ProviderError as exc:
        LOGGER.warning(
            "provider.dispatch.failed",
            extra={
                "event": "provider.dispatch.failed",
                "provider": str(provider),
                "error_type": type(exc).__name__,
            },
        )
        return QueryResult.err(str(exc))
    LOGGER.info(
        "provider.dispatch.completed",
        extra={
            "event": "provider.dispatch.completed",
            "provider": str(provider),
            "response_chars": len(text),
        },
    )
    return QueryResult.ok(text)


def run_query(settings: SettingsStore, prompt: str) -> QueryResult:
    """Resolve the provider from ``settings`` and dispatch ``prompt`` to it.

    Resolution failures, including an unreadable settings file, come back as
    an error result so the worker always delivers a value.
    """
    try:
        provider = resolve_provider(settings)
    except CmdkError as exc:
        LOGGER.warning(
            "provider.resolve.failed",
            extra={"event": "provider.resolve.failed", "reason": str(exc)},
        )
        return QueryResult.err(str(exc))
    LOGGER.info(
        "provider.resolved",
        extra={"event": "provider.resolved", "provider": str(provider)},
    )
    return dispatch(provider, prompt)
