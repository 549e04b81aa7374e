"""Top-level package for cmdk."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import CommandKApp
    from .config import ensure_config_dir, load_config
    from .exceptions import (
        CmdkError,
        ConfigValidationError,
        EditorContextError,
        PersistenceError,
        ProviderConfigError,
        ProviderError,
        ProviderExecutionError,
        ProviderNotFoundError,
    )
    from .machine import SessionMachine
    from .persistence import SessionStore
    from .pipeline import QueryPipeline
    from .provider import QueryResult, resolve_provider, run_query
    from .settings import FileSettingsStore, MemorySettingsStore
    from .state import SessionState, SessionStateKind

__all__ = [
    "CmdkError",
    "CommandKApp",
    "ConfigValidationError",
    "EditorContextError",
    "FileSettingsStore",
    "MemorySettingsStore",
    "PersistenceError",
    "ProviderConfigError",
    "ProviderError",
    "ProviderExecutionError",
    "ProviderNotFoundError",
    "QueryPipeline",
    "QueryResult",
    "SessionMachine",
    "SessionState",
    "SessionStateKind",
    "SessionStore",
    "ensure_config_dir",
    "load_config",
    "resolve_provider",
    "run_query",
]

_EXCEPTIONS = {
    "CmdkError",
    "ConfigValidationError",
    "EditorContextError",
    "PersistenceError",
    "ProviderConfigError",
    "ProviderError",
    "ProviderExecutionError",
    "ProviderNotFoundError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the UI stack is only loaded when needed."""
    if name in {"ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"QueryResult", "resolve_provider", "run_query"}:
        from . import provider

        return getattr(provider, name)
    if name in {"FileSettingsStore", "MemorySettingsStore"}:
        from . import settings

        return getattr(settings, name)
    if name in {"SessionState", "SessionStateKind"}:
        from . import state

        return getattr(state, name)
    if name == "SessionStore":
        from .persistence import SessionStore

        return SessionStore
    if name == "QueryPipeline":
        from .pipeline import QueryPipeline

        return QueryPipeline
    if name == "SessionMachine":
        from .machine import SessionMachine

        return SessionMachine
    if name == "CommandKApp":
        from .app import CommandKApp

        return CommandKApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
