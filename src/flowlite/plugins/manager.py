"""Utility functions to manage the project-wide hook configuration."""

import logging
from inspect import isclass
from typing import Any

from pluggy import PluginManager

from .hooks.markers import HOOK_NAMESPACE
from .hooks.specs import EventSpec
from .hooks.specs import TaskSpec
from .hooks.specs import WorkflowSpec

logger = logging.getLogger(__name__)

_PLUGIN_ENTRY_POINT = "flowlite.hooks"  # entry-point to load hooks from for installed plugins
_PLUGIN_MANAGER: PluginManager | None = None


# region API


def register_hooks(*hooks: Any) -> None:
    """Register specified flowlite pluggy hooks globally."""
    hook_manager = _get_global_plugin_manager()
    for hooks_collection in hooks:
        if not hook_manager.is_registered(hooks_collection):
            _check_is_instance(hooks_collection)
            hook_manager.register(hooks_collection)


def unregister_hooks(*hooks: Any) -> None:
    """Remove previously registered global hooks, ignoring ones that are not registered."""
    hook_manager = _get_global_plugin_manager()
    for hooks_collection in hooks:
        if hook_manager.is_registered(hooks_collection):
            hook_manager.unregister(hooks_collection)


def register_plugins_entry_points(_plugin_manager: PluginManager | None = None) -> None:
    """Register flowlite plugins from Python package entrypoints."""
    _plugin_manager = _plugin_manager if _plugin_manager else _get_global_plugin_manager()
    _plugin_manager.load_setuptools_entrypoints(_PLUGIN_ENTRY_POINT)  # Doesn't use setuptools


def get_hook_manager() -> PluginManager:
    """Return the global hook manager."""
    return _get_global_plugin_manager()


def create_hook_manager_with_plugins(plugins: list[Any]) -> PluginManager:
    """
    Create a new hook manager with both global and workflow-specific plugins.

    This combines globally registered hooks with additional hooks for a specific workflow.
    Used internally by `Workflow` to support per-workflow hooks without polluting the global
    manager.

    Args:
        plugins: Additional hook implementations to register.

    Returns:
        A new PluginManager with global + workflow-specific hooks.
    """
    manager = _create_plugin_manager()

    global_manager = _get_global_plugin_manager()
    for plugin in global_manager.get_plugins():
        if not manager.is_registered(plugin):  # pragma: no branch
            manager.register(plugin)

    for plugin in plugins:
        if not manager.is_registered(plugin):
            _check_is_instance(plugin)
            manager.register(plugin)

    return manager


# region Helpers


def _initialize_plugin_system() -> PluginManager:
    """Initializes hooks for the flowlite library, loading plugins installed as entry points."""
    manager = _create_plugin_manager()
    global _PLUGIN_MANAGER
    _PLUGIN_MANAGER = manager
    register_plugins_entry_points(manager)
    return manager


def _get_global_plugin_manager() -> PluginManager:
    """Returns initialized global plugin manager, creating it on first use."""
    plugin_manager = _PLUGIN_MANAGER
    if plugin_manager is None:
        plugin_manager = _initialize_plugin_system()
    return plugin_manager


def _create_plugin_manager() -> PluginManager:
    """Create a new PluginManager instance and register flowlite's hook specs."""
    manager = PluginManager(HOOK_NAMESPACE)
    manager.trace.root.setwriter(
        logger.debug if logger.getEffectiveLevel() == logging.DEBUG else None
    )
    manager.enable_tracing()
    manager.add_hookspecs(TaskSpec)
    manager.add_hookspecs(WorkflowSpec)
    manager.add_hookspecs(EventSpec)
    return manager


def _check_is_instance(plugin: Any) -> None:
    if isclass(plugin):
        raise TypeError(
            "flowlite expects hooks to be registered as instances. "
            "Have you forgotten the `()` when registering a hook class?"
        )
