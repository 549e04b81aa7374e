"""Widget exports for the cmdk UI."""

from .session_view import SessionView
from .status_bar import StatusBar

__all__ = ["SessionView", "StatusBar"]
