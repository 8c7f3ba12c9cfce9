"""Console output for pipeline progress."""

from .console import (
    ConsoleProtocol,
    MockConsole,
    PrefixedConsole,
    RichConsole,
    Style,
    SynchronizedConsole,
)

__all__ = [
    "ConsoleProtocol",
    "MockConsole",
    "PrefixedConsole",
    "RichConsole",
    "Style",
    "SynchronizedConsole",
]
