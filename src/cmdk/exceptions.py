"""Domain exception hierarchy for the command assistant."""

from __future__ import annotations


class CmdkError(RuntimeError):
    """Base class for all domain-level errors."""


class ConfigValidationError(CmdkError):
    """Raised when configuration cannot be validated safely."""


class ProviderError(CmdkError):
    """Base class for provider resolution and dispatch failures."""


class ProviderNotFoundError(ProviderError):
    """Raised when no usable provider executable is available."""


class ProviderConfigError(ProviderError):
    """Raised when the provider settings are incomplete (e.g. empty custom command)."""


class ProviderExecutionError(ProviderError):
    """Raised when a provider subprocess fails or produces no usable output."""


class PersistenceError(CmdkError):
    """Raised when session or history files cannot be read or written."""


class EditorContextError(CmdkError):
    """Raised when the editor context file cannot be read."""
