"""
Execution models - run records, log entries and results
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Run state machine: pending -> running -> success | error"""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR)


class LogEntryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class LogEntry(BaseModel):
    """Outcome of one node visit"""

    node_id: str = Field(..., description="Visited node id")
    node_name: str = Field(default="", description="Node label at visit time")
    node_type: str = Field(..., description="Node type tag")
    timestamp_ms: int = Field(..., description="Visit start, epoch milliseconds")
    status: LogEntryStatus = LogEntryStatus.PENDING
    data: Optional[Dict[str, Any]] = Field(default=None, description="Result fragment on success")
    error: Optional[str] = Field(default=None, description="Error message on failure")
    diagnostics: List[str] = Field(default_factory=list, description="Captured warnings and script output")


class ExecutionRecord(BaseModel):
    """Run record as written to the execution log store"""

    id: str
    workflow_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    trigger: str = Field(default="manual", description="What started the run: manual, schedule, test, webhook")
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    logs: List[LogEntry] = Field(default_factory=list)
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    """Value returned to whoever started the run"""

    execution_id: str
    workflow_id: Optional[str] = None
    success: bool
    status: ExecutionStatus
    duration_ms: int
    log: List[LogEntry] = Field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict, description="Context at the end of the last branch walked")


__all__ = [
    "ExecutionStatus",
    "LogEntryStatus",
    "LogEntry",
    "ExecutionRecord",
    "ExecutionResult",
]
