"""Execution log repository abstractions.

Interfaces for persisting run records and their node logs, with an
in-memory impl for tests/local runs and a Supabase impl for production.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from shared.models import ExecutionRecord

logger = logging.getLogger(__name__)

EXECUTIONS_TABLE = "workflow_executions"


class ExecutionLogRepository:
    async def create_execution_log(self, record: ExecutionRecord) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def update_execution_log(
        self, execution_id: str, updates: Dict[str, Any]
    ) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionRecord]:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_execution_logs(
        self, workflow_id: Optional[str] = None, limit: int = 50
    ) -> List[ExecutionRecord]:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryExecutionLogRepository(ExecutionLogRepository):
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    async def create_execution_log(self, record: ExecutionRecord) -> None:
        self._data[record.id] = record.model_dump(mode="json")

    async def update_execution_log(self, execution_id: str, updates: Dict[str, Any]) -> None:
        if execution_id not in self._data:
            raise KeyError(f"Unknown execution {execution_id}")
        self._data[execution_id].update(updates)

    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionRecord]:
        row = self._data.get(execution_id)
        return ExecutionRecord.model_validate(row) if row else None

    async def list_execution_logs(self, workflow_id: Optional[str] = None, limit: int = 50) -> List[ExecutionRecord]:
        rows = [r for r in self._data.values() if workflow_id is None or r["workflow_id"] == workflow_id]
        rows.sort(key=lambda r: r["started_at"], reverse=True)
        return [ExecutionRecord.model_validate(r) for r in rows[:limit]]


class SupabaseExecutionLogRepository(ExecutionLogRepository):
    """Supabase-based repository writing to the ``workflow_executions`` table.

    The supabase client is synchronous, so calls run in a worker thread.
    """

    def __init__(self, client: Optional[Client] = None) -> None:
        if client is None:
            supabase_url = os.getenv("SUPABASE_URL")
            supabase_key = os.getenv("SUPABASE_SECRET_KEY") or os.getenv("SUPABASE_SERVICE_KEY")
            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY environment variables are required")
            client = create_client(supabase_url, supabase_key)
        self._client: Client = client

    async def create_execution_log(self, record: ExecutionRecord) -> None:
        row = record.model_dump(mode="json")
        await asyncio.to_thread(lambda: self._client.table(EXECUTIONS_TABLE).insert(row).execute())

    async def update_execution_log(self, execution_id: str, updates: Dict[str, Any]) -> None:
        await asyncio.to_thread(
            lambda: self._client.table(EXECUTIONS_TABLE).update(updates).eq("id", execution_id).execute()
        )

    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionRecord]:
        result = await asyncio.to_thread(
            lambda: self._client.table(EXECUTIONS_TABLE).select("*").eq("id", execution_id).limit(1).execute()
        )
        if not result.data:
            return None
        return ExecutionRecord.model_validate(result.data[0])

    async def list_execution_logs(self, workflow_id: Optional[str] = None, limit: int = 50) -> List[ExecutionRecord]:
        def _query():
            query = self._client.table(EXECUTIONS_TABLE).select("*")
            if workflow_id is not None:
                query = query.eq("workflow_id", workflow_id)
            return query.order("started_at", desc=True).limit(limit).execute()

        result = await asyncio.to_thread(_query)
        return [ExecutionRecord.model_validate(row) for row in result.data or []]


__all__ = [
    "ExecutionLogRepository",
    "InMemoryExecutionLogRepository",
    "SupabaseExecutionLogRepository",
]
