"""flowlite: Lightweight task-graph workflows with dynamic dependencies and event triggers."""

__version__ = "0.1.0"

from . import settings
from .context import Context
from .engine import Engine
from .exceptions import CycleDetectedError
from .exceptions import FlowliteError
from .exceptions import RequiredKeyMissingError
from .exceptions import TaskNotFoundError
from .plugins.manager import _initialize_plugin_system
from .tasks import DynamicDependencies
from .tasks import Middleware
from .tasks import StaticDependencies
from .tasks import Task
from .workflow import EVENT_PAYLOAD_KEY
from .workflow import Workflow

# Initialize hooks system on module import
_initialize_plugin_system()

__all__ = [
    "Context",
    "CycleDetectedError",
    "DynamicDependencies",
    "EVENT_PAYLOAD_KEY",
    "Engine",
    "FlowliteError",
    "Middleware",
    "RequiredKeyMissingError",
    "StaticDependencies",
    "Task",
    "TaskNotFoundError",
    "Workflow",
    "settings",
]
