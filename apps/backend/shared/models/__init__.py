"""
Central import point for the shared pydantic models.

    from shared.models import WorkflowGraph, NodeInstance, ExecutionResult
"""

from .execution import *
from .node_enums import *
from .workflow import *

__all__ = [
    # node_enums.py
    "NodeType",
    "TRIGGER_TYPES",
    "TRIGGER_MARKERS",
    "MAIN_HANDLE",
    "TRUE_HANDLE",
    "FALSE_HANDLE",
    "node_kind",
    "can_emit_handle",
    # workflow.py
    "NodeInstance",
    "Connection",
    "WorkflowGraph",
    "Workflow",
    # execution.py
    "ExecutionStatus",
    "LogEntryStatus",
    "LogEntry",
    "ExecutionRecord",
    "ExecutionResult",
]
