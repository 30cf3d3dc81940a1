"""Per-run execution log for workflow_engine (core)."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from shared.models import LogEntry, LogEntryStatus, NodeInstance


def now_ms() -> int:
    return int(time.time() * 1000)


class ExecutionLog:
    """Ordered node-visit log owned by a single run.

    Mutation contract: ``start`` appends a pending entry; ``succeed`` and
    ``fail`` settle that entry exactly once. Entries are never removed or
    reordered, and settled entries are never touched again.
    """

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def start(self, node: NodeInstance) -> LogEntry:
        entry = LogEntry(
            node_id=node.id,
            node_name=node.name,
            node_type=node.type,
            timestamp_ms=now_ms(),
        )
        self._entries.append(entry)
        return entry

    def succeed(
        self,
        entry: LogEntry,
        data: Dict[str, Any],
        diagnostics: Optional[List[str]] = None,
    ) -> None:
        self._settle(entry, LogEntryStatus.SUCCESS)
        entry.data = data
        entry.diagnostics.extend(diagnostics or [])

    def fail(self, entry: LogEntry, error: str, diagnostics: Optional[List[str]] = None) -> None:
        self._settle(entry, LogEntryStatus.ERROR)
        entry.error = error
        entry.diagnostics.extend(diagnostics or [])

    def _settle(self, entry: LogEntry, status: LogEntryStatus) -> None:
        if entry.status is not LogEntryStatus.PENDING:
            raise ValueError(f"Log entry for node {entry.node_id} is already {entry.status.value}")
        entry.status = status

    def to_records(self) -> List[Dict[str, Any]]:
        return [entry.model_dump(mode="json") for entry in self._entries]


__all__ = ["ExecutionLog", "now_ms"]
