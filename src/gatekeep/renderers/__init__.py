"""
Renderers for Gatekeep.

Output formatters for decisions and results: terminal and JSON.
"""

from gatekeep.renderers.json_renderer import JsonRenderer
from gatekeep.renderers.terminal import TerminalRenderer

__all__ = [
    "TerminalRenderer",
    "JsonRenderer",
]
