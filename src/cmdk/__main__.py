"""CLI entrypoint for cmdk."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
import subprocess
import sys

from .app import CommandKApp, SessionMode, create_machine
from .config import ensure_config_dir, load_config, resolve_data_dir
from .context import gather_context
from .editor import EditorContext, EditorSessionMachine, combined_context_builder
from .exceptions import CmdkError
from .logging_utils import configure_logging
from .persistence import SessionStore
from .pipeline import ContextBuilder, QueryPipeline
from .settings import FileSettingsStore, SettingsStore

RUN_BANNER = "\x1b[1;33m▶ Running:\x1b[0m {command}"
RUN_OK = "\x1b[1;32m✓ Command completed successfully\x1b[0m"
RUN_FAILED = "\x1b[1;31m✗ Command exited with code {code}\x1b[0m"
RUN_SPAWN_FAILED = "\x1b[1;31m✗ Failed to run command: {error}\x1b[0m"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmdk",
        description="AI-powered command assistant for the terminal",
    )
    parser.add_argument("-q", "--query", help="Direct query mode (non-interactive)")
    parser.add_argument(
        "-c", "--context", action="store_true", help="Print the current context and exit"
    )
    parser.add_argument(
        "-s", "--settings", action="store_true", help="Open privacy settings"
    )
    parser.add_argument(
        "--nvim",
        metavar="CONTEXT_FILE",
        help="Neovim integration mode (path to context file)",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    return parser


def _version() -> str:
    try:
        return metadata.version("cmdk")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def run_direct_query(
    settings: SettingsStore,
    store: SessionStore,
    query: str,
    context_builder: ContextBuilder = gather_context,
) -> int:
    """Answer ``query`` without the UI or transcript; prints the response."""
    pipeline = QueryPipeline(settings, store, context_builder=context_builder)
    result = pipeline.run_direct(query)
    if not result.is_ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(result.text)
    return 0


def run_command(command: str) -> int:
    """Execute the chosen response through ``sh -c`` after the UI is gone."""
    print(RUN_BANNER.format(command=command))
    print()
    try:
        completed = subprocess.run(["sh", "-c", command], check=False)
    except OSError as exc:
        print(RUN_SPAWN_FAILED.format(error=exc), file=sys.stderr)
        return 1
    print()
    if completed.returncode == 0:
        print(RUN_OK)
    else:
        print(RUN_FAILED.format(code=completed.returncode))
    return completed.returncode


def _run_editor(config, context_file: str, editor_context: EditorContext) -> int:
    machine = create_machine(
        config,
        mode=SessionMode.EDITOR,
        editor_context=editor_context,
        context_file=context_file,
    )
    app = CommandKApp(
        machine,
        title=str(config["app"]["title"]),
        tick_interval_ms=int(config["app"]["tick_interval_ms"]),
    )
    app.run()
    if isinstance(machine, EditorSessionMachine):
        machine.write_result()
    return 0


def _run_tui(config, mode: SessionMode) -> str | None:
    machine = create_machine(config, mode=mode)
    app = CommandKApp(
        machine,
        title=str(config["app"]["title"]),
        tick_interval_ms=int(config["app"]["tick_interval_ms"]),
    )
    return app.run()


def main(argv: Sequence[str] | None = None) -> int:
    """Ensure configuration exists, dispatch on CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        print(f"cmdk {_version()}")
        return 0

    piped_input: str | None = None
    if args.nvim is None and not sys.stdin.isatty():
        piped_input = sys.stdin.read().strip()

    ensure_config_dir()
    config = load_config()
    configure_logging(config["logging"])

    data_dir = resolve_data_dir(config["session"])
    settings = FileSettingsStore(data_dir)
    store = SessionStore(
        data_dir, timeout_seconds=int(config["session"]["timeout_seconds"])
    )

    try:
        settings.ensure_file()
        if args.nvim is not None:
            editor_context = EditorContext.from_file(args.nvim)
            if args.query is not None:
                return run_direct_query(
                    settings,
                    store,
                    args.query,
                    context_builder=combined_context_builder(editor_context),
                )
            return _run_editor(config, args.nvim, editor_context)

        if args.context:
            print(gather_context(settings))
            return 0

        if args.settings:
            _run_tui(config, SessionMode.SETTINGS)
            return 0

        if args.query is not None:
            return run_direct_query(settings, store, args.query)

        if piped_input is not None:
            if not piped_input:
                print("Error: no query received on stdin", file=sys.stderr)
                return 1
            return run_direct_query(settings, store, piped_input)

        command = _run_tui(config, SessionMode.INTERACTIVE)
    except CmdkError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if command:
        return run_command(command)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
