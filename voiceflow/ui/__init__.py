"""Terminal user interface."""

from .terminal import TerminalUI

__all__ = ["TerminalUI"]
