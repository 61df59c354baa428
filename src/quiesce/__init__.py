"""quiesce: act() test barrier for effect-driven rendering engines."""

from importlib.metadata import version as _version

__version__ = _version("quiesce")

from quiesce._scope import ScopeSnapshot, ScopeTracker
from quiesce.act import Barrier, DeferredCompletion, SyncCompletion, get_act
from quiesce.diagnostics import Diagnostics, WarningLog, is_dev_mode, set_dev_mode
from quiesce.engine import Effect, Engine, State, View
from quiesce.flush import FlushEngine, Renderer
from quiesce.scheduler import AsyncioScheduler, HostScheduler
# textual NOT auto-imported — opt-in only

__all__ = [
    "Barrier",
    "get_act",
    "SyncCompletion",
    "DeferredCompletion",
    "ScopeTracker",
    "ScopeSnapshot",
    "FlushEngine",
    "Renderer",
    "HostScheduler",
    "AsyncioScheduler",
    "Diagnostics",
    "WarningLog",
    "set_dev_mode",
    "is_dev_mode",
    "Engine",
    "State",
    "View",
    "Effect",
]
