"""The acquisition flow: phases, messages, the orchestrator and its async runtime."""

from .events import Intent, IntentKind
from .orchestrator import FlowSnapshot, Orchestrator
from .phases import Phase
from .records import FileEntry, QueuedRecord, write_record
from .runtime import FlowRuntime, OperationRunner
from .session import FilterConfig, Session

__all__ = [
    "FileEntry",
    "FilterConfig",
    "FlowRuntime",
    "FlowSnapshot",
    "Intent",
    "IntentKind",
    "OperationRunner",
    "Orchestrator",
    "Phase",
    "QueuedRecord",
    "Session",
    "write_record",
]
