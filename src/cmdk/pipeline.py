"""Prompt composition and asynchronous query submission."""

from __future__ import annotations

from collections.abc import Callable
import logging

from .context import gather_context
from .exceptions import PersistenceError
from .persistence import SessionStore
from .provider import QueryResult, run_query
from .query_task import QueryTask
from .settings import SettingsStore

LOGGER = logging.getLogger(__name__)

SYSTEM_PREAMBLE = """You are a terminal command assistant. Output ONLY the exact command to run.

CRITICAL RULES:
- Output ONLY the command itself - no shell prompts, no $, no explanation
- No markdown code blocks - just the raw command
- Single command only (use && or ; for multiple)
- If asked for explanation, then explain - otherwise just the command

"""

ContextBuilder = Callable[[SettingsStore], str]
QueryRunner = Callable[[SettingsStore, str], QueryResult]


def build_full_prompt(user_query: str, context: str, history: str | None = None) -> str:
    """Preamble, context, optional prior conversation, then the user turn."""
    parts = [SYSTEM_PREAMBLE, context]
    if history:
        parts.append("\n## Previous Conversation:\n")
        parts.append(history)
    parts.append(f"\n## User: {user_query}\n")
    return "".join(parts)


class QueryPipeline:
    """Glue between context, transcript, provider and the worker thread."""

    def __init__(
        self,
        settings: SettingsStore,
        store: SessionStore,
        *,
        context_builder: ContextBuilder = gather_context,
        query_runner: QueryRunner = run_query,
    ) -> None:
        self.settings = settings
        self.store = store
        self.context_builder = context_builder
        self.query_runner = query_runner

    def _load_history(self) -> str | None:
        try:
            return self.store.get_session_history()
        except PersistenceError as exc:
            LOGGER.warning(
                "pipeline.history.load_failed",
                extra={"event": "pipeline.history.load_failed", "reason": str(exc)},
            )
            return None

    def compose(self, user_text: str) -> str:
        """Record the prompt and build the full text sent to the provider."""
        try:
            self.store.add_to_prompt_history(user_text)
        except PersistenceError as exc:
            LOGGER.warning(
                "persistence.history.append_failed",
                extra={
                    "event": "persistence.history.append_failed",
                    "reason": str(exc),
                },
            )
        context = self.context_builder(self.settings)
        return build_full_prompt(user_text, context, self._load_history())

    def submit(self, user_text: str) -> QueryTask:
        """Start a background query; returns immediately with its task handle."""
        if not user_text.strip():
            raise ValueError("Cannot submit an empty query.")
        full_prompt = self.compose(user_text)
        settings = self.settings
        runner = self.query_runner
        LOGGER.info(
            "pipeline.query.started",
            extra={"event": "pipeline.query.started", "prompt_chars": len(full_prompt)},
        )
        return QueryTask.spawn(user_text, lambda: runner(settings, full_prompt))

    def complete(self, user_text: str, result: QueryResult) -> None:
        """Persist a successful exchange; failed queries leave the transcript alone."""
        if not result.is_ok:
            LOGGER.info(
                "pipeline.query.failed",
                extra={"event": "pipeline.query.failed"},
            )
            return
        try:
            self.store.append_turn(user_text, result.text or "")
        except PersistenceError as exc:
            LOGGER.warning(
                "persistence.session.append_failed",
                extra={
                    "event": "persistence.session.append_failed",
                    "reason": str(exc),
                },
            )
        LOGGER.info(
            "pipeline.query.completed",
            extra={"event": "pipeline.query.completed"},
        )

    def run_direct(self, query: str) -> QueryResult:
        """Synchronous one-shot query without transcript, for the CLI."""
        full_prompt = build_full_prompt(query, self.context_builder(self.settings))
        return self.query_runner(self.settings, full_prompt)
