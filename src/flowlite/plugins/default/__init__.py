"""Default plugins shipped with flowlite."""

from flowlite.plugins.default.logging import LoggingPlugin
from flowlite.plugins.default.logging import get_logger

__all__ = [
    "LoggingPlugin",
    "get_logger",
]
