"""Privacy-gated terminal context gathered for every prompt."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import shutil
import subprocess

from .settings import SettingsStore, is_enabled

LOGGER = logging.getLogger(__name__)

GIT_STATUS_MAX_LINES = 10
SHELL_HISTORY_MAX_LINES = 20
PANE_CONTENT_MAX_LINES = 500
PROBE_TIMEOUT_SECONDS = 5

_SHELL_NAMES = {"bash", "zsh", "fish", "sh"}
_CONTEXT_TYPES: dict[str, str] = {
    "vim": "editor",
    "nvim": "editor",
    "vi": "editor",
    "python": "python-repl",
    "python3": "python-repl",
    "ipython": "python-repl",
    "node": "node-repl",
    "psql": "sql-repl",
    "mysql": "sql-repl",
    "sqlite3": "sql-repl",
    "ssh": "remote-shell",
    "mosh": "remote-shell",
}


@dataclass(frozen=True)
class TmuxPane:
    """Snapshot of the tmux pane the assistant was launched from."""

    current_command: str = ""
    content: str = ""

    @property
    def context_type(self) -> str:
        command = self.current_command.strip()
        if command in _CONTEXT_TYPES:
            return _CONTEXT_TYPES[command]
        if command in _SHELL_NAMES:
            return "shell"
        return "unknown"


@dataclass(frozen=True)
class ContextEnvironment:
    """Raw environment facts; ``None`` means unavailable or not collected."""

    shell: str | None = None
    working_dir: str | None = None
    terminal_size: tuple[int, int] | None = None
    env_var_names: tuple[str, ...] = field(default_factory=tuple)
    git_status: str | None = None
    shell_history: str | None = None
    tmux_pane: TmuxPane | None = None

    @classmethod
    def collect(cls, settings: SettingsStore) -> ContextEnvironment:
        """Probe the system, skipping every section whose flag is disabled."""
        tmux_pane = None
        if is_enabled(settings, "send_current_process") or is_enabled(
            settings, "send_terminal_content"
        ):
            tmux_pane = probe_tmux_pane()
        return cls(
            shell=probe_shell() if is_enabled(settings, "send_shell_type") else None,
            working_dir=(
                probe_working_dir() if is_enabled(settings, "send_working_dir") else None
            ),
            terminal_size=(
                probe_terminal_size()
                if is_enabled(settings, "send_terminal_size")
                else None
            ),
            env_var_names=(
                tuple(sorted(os.environ))
                if is_enabled(settings, "send_env_var_names")
                else ()
            ),
            git_status=probe_git_status() if is_enabled(settings, "send_git_status") else None,
            shell_history=(
                probe_shell_history()
                if is_enabled(settings, "send_shell_history")
                else None
            ),
            tmux_pane=tmux_pane,
        )


def probe_shell() -> str | None:
    shell = os.environ.get("SHELL", "").strip()
    if not shell:
        return None
    return Path(shell).name or shell


def probe_working_dir() -> str | None:
    try:
        return os.getcwd()
    except OSError:
        return None


def probe_terminal_size() -> tuple[int, int] | None:
    columns, rows = shutil.get_terminal_size(fallback=(0, 0))
    if columns <= 0 or rows <= 0:
        return None
    return columns, rows


def _run_probe(*args: str) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            check=False,
            timeout=PROBE_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None


def probe_git_status() -> str | None:
    """Return branch and short status, or ``None`` outside a repository."""
    git_dir = _run_probe("git", "rev-parse", "--git-dir")
    if git_dir is None or git_dir.returncode != 0:
        return None

    lines: list[str] = []
    branch = _run_probe("git", "branch", "--show-current")
    if branch is not None and branch.returncode == 0 and branch.stdout.strip():
        lines.append(f"Branch: {branch.stdout.strip()}")

    status = _run_probe("git", "status", "--short")
    if status is not None and status.returncode == 0:
        changed = status.stdout.splitlines()[:GIT_STATUS_MAX_LINES]
        if changed:
            lines.append("Modified files:")
            lines.extend(changed)

    if not lines:
        return None
    return "\n".join(lines) + "\n"


def _strip_zsh_extended(line: str) -> str:
    # zsh extended history: ": <timestamp>:<elapsed>;<command>"
    if line.startswith(": "):
        _, sep, command = line.partition(";")
        if sep:
            return command
    return line


def probe_shell_history(home: Path | None = None) -> str | None:
    base = home or Path.home()
    for candidate in (base / ".zsh_history", base / ".bash_history"):
        if not candidate.exists():
            continue
        try:
            content = candidate.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        recent = content.splitlines()[-SHELL_HISTORY_MAX_LINES:]
        if recent:
            return "\n".join(_strip_zsh_extended(line) for line in recent)
    return None


def probe_tmux_pane() -> TmuxPane | None:
    if not os.environ.get("TMUX"):
        return None
    target = os.environ.get("TMUX_PANE", "")
    target_args = ["-t", target] if target else []

    command = _run_probe(
        "tmux", "display-message", "-p", *target_args, "#{pane_current_command}"
    )
    content = _run_probe(
        "tmux", "capture-pane", "-p", *target_args, "-S", f"-{PANE_CONTENT_MAX_LINES}"
    )
    if command is None and content is None:
        return None
    pane_lines = (
        content.stdout.splitlines()[-PANE_CONTENT_MAX_LINES:]
        if content is not None and content.returncode == 0
        else []
    )
    return TmuxPane(
        current_command=(
            command.stdout.strip()
            if command is not None and command.returncode == 0
            else ""
        ),
        content="\n".join(pane_lines),
    )


def build_context(environment: ContextEnvironment, settings: SettingsStore) -> str:
    """Render the markdown context block for the enabled sections only."""
    parts = ["## Terminal Context\n\n"]

    if is_enabled(settings, "send_shell_type") and environment.shell:
        parts.append(f"**Shell:** {environment.shell}\n")
    if is_enabled(settings, "send_working_dir") and environment.working_dir:
        parts.append(f"**Working Directory:** {environment.working_dir}\n")
    if is_enabled(settings, "send_terminal_size") and environment.terminal_size:
        columns, rows = environment.terminal_size
        parts.append(f"**Terminal Size:** {columns}x{rows}\n")

    pane = environment.tmux_pane
    if is_enabled(settings, "send_current_process") and pane and pane.current_command:
        parts.append(f"**Current Process:** {pane.current_command}\n")
        parts.append(f"**Context Type:** {pane.context_type}\n")

    if is_enabled(settings, "send_env_var_names"):
        parts.append("\n### Environment Variables (names only)\n```\n")
        parts.append(" ".join(environment.env_var_names))
        parts.append("\n```\n")
    if is_enabled(settings, "send_git_status") and environment.git_status:
        parts.append("\n### Git Status\n")
        parts.append(environment.git_status)
    if is_enabled(settings, "send_shell_history") and environment.shell_history:
        parts.append("\n### Recent Shell History\n```\n")
        parts.append(environment.shell_history)
        parts.append("\n```\n")
    if is_enabled(settings, "send_terminal_content") and pane and pane.content:
        parts.append(
            f"\n### Current Terminal Content (last {PANE_CONTENT_MAX_LINES} lines)\n```\n"
        )
        parts.append(pane.content)
        parts.append("\n```\n")

    return "".join(parts)


def build_context_display(
    environment: ContextEnvironment, settings: SettingsStore
) -> str:
    """Plain-text summary of what would be sent, for the context view."""
    lines: list[str] = []

    if is_enabled(settings, "send_shell_type") and environment.shell:
        lines.append(f"Shell: {environment.shell}")
    if is_enabled(settings, "send_working_dir") and environment.working_dir:
        lines.append(f"Working Directory: {environment.working_dir}")
    if is_enabled(settings, "send_terminal_size") and environment.terminal_size:
        columns, rows = environment.terminal_size
        lines.append(f"Terminal Size: {columns}x{rows}")
    pane = environment.tmux_pane
    if is_enabled(settings, "send_current_process") and pane and pane.current_command:
        lines.append(f"Current Process: {pane.current_command} ({pane.context_type})")
    if is_enabled(settings, "send_git_status") and environment.git_status:
        lines.append("")
        lines.append("Git Status:")
        lines.extend(f"  {line}" for line in environment.git_status.splitlines())
    if is_enabled(settings, "send_env_var_names"):
        lines.append(f"Environment Variables: {len(environment.env_var_names)} names")
    if is_enabled(settings, "send_shell_history") and environment.shell_history:
        lines.append(f"Shell History: last {SHELL_HISTORY_MAX_LINES} commands")
    if is_enabled(settings, "send_terminal_content") and pane and pane.content:
        lines.append(f"Terminal Content: {len(pane.content.splitlines())} lines")

    return "\n".join(lines)


def gather_context(settings: SettingsStore) -> str:
    """Collect the live environment and render the prompt context block."""
    return build_context(ContextEnvironment.collect(settings), settings)


def gather_context_display(settings: SettingsStore) -> str:
    return build_context_display(ContextEnvironment.collect(settings), settings)
