from flowlite.plugins.default import LoggingPlugin
from flowlite.plugins.default import get_logger

from .hooks.markers import hook_impl
from .manager import register_hooks
from .manager import unregister_hooks

__all__ = [
    "hook_impl",
    "register_hooks",
    "unregister_hooks",
    "LoggingPlugin",
    "get_logger",
]
