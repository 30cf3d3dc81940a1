"""
Workflow Repository - storage of workflow definitions for the scheduler.

Credential fields are encrypted on save; the engine decrypts them per run.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from supabase import Client, create_client

from shared.models import Workflow
from workflow_engine.services.credential_encryption import CredentialEncryption

logger = logging.getLogger(__name__)

WORKFLOWS_TABLE = "workflows"


class WorkflowRepository:
    """Repository for workflow storage operations"""

    def __init__(self, codec: Optional[CredentialEncryption] = None):
        self.codec = codec

    def _prepare(self, workflow: Workflow) -> Workflow:
        now = datetime.now(timezone.utc)
        updates = {"updated_at": now, "created_at": workflow.created_at or now}
        if self.codec is not None:
            graph = self.codec.encrypt_graph(workflow.graph)
            updates.update(nodes=graph.nodes, connections=graph.connections)
        return workflow.model_copy(update=updates)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:  # pragma: no cover - interface
        raise NotImplementedError

    async def list_active_workflows(self) -> List[Workflow]:  # pragma: no cover - interface
        raise NotImplementedError

    async def save_workflow(self, workflow: Workflow) -> Workflow:  # pragma: no cover - interface
        raise NotImplementedError

    async def set_active(self, workflow_id: str, is_active: bool) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def delete_workflow(self, workflow_id: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryWorkflowRepository(WorkflowRepository):
    def __init__(self, workflows: Iterable[Workflow] = (), codec: Optional[CredentialEncryption] = None):
        super().__init__(codec)
        self._data: Dict[str, Workflow] = {wf.id: wf for wf in workflows}

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        return self._data.get(workflow_id)

    async def list_active_workflows(self) -> List[Workflow]:
        return [wf for wf in self._data.values() if wf.is_active]

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        stored = self._prepare(workflow)
        self._data[stored.id] = stored
        return stored

    async def set_active(self, workflow_id: str, is_active: bool) -> None:
        workflow = self._data.get(workflow_id)
        if workflow is not None:
            self._data[workflow_id] = workflow.model_copy(update={"is_active": is_active})

    async def delete_workflow(self, workflow_id: str) -> bool:
        return self._data.pop(workflow_id, None) is not None


class SupabaseWorkflowRepository(WorkflowRepository):
    """Supabase-backed repository for the ``workflows`` table.

    The supabase client is synchronous, so calls run in a worker thread.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        url: str = "",
        key: str = "",
        codec: Optional[CredentialEncryption] = None,
    ):
        super().__init__(codec)
        if client is None:
            if not url or not key:
                raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY are required")
            client = create_client(url, key)
        self._client: Client = client

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        result = await asyncio.to_thread(
            lambda: self._client.table(WORKFLOWS_TABLE).select("*").eq("id", workflow_id).limit(1).execute()
        )
        if not result.data:
            logger.warning(f"Workflow not found: {workflow_id}")
            return None
        return Workflow.from_record(result.data[0])

    async def list_active_workflows(self) -> List[Workflow]:
        result = await asyncio.to_thread(
            lambda: self._client.table(WORKFLOWS_TABLE).select("*").eq("is_active", True).execute()
        )
        workflows = []
        for row in result.data or []:
            try:
                workflows.append(Workflow.from_record(row))
            except ValueError as e:
                logger.error(f"Skipping unreadable workflow {row.get('id')}: {e}")
        return workflows

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        stored = self._prepare(workflow)
        row = stored.to_record()
        await asyncio.to_thread(lambda: self._client.table(WORKFLOWS_TABLE).upsert(row).execute())
        return stored

    async def set_active(self, workflow_id: str, is_active: bool) -> None:
        updates = {"is_active": is_active, "updated_at": datetime.now(timezone.utc).isoformat()}
        await asyncio.to_thread(
            lambda: self._client.table(WORKFLOWS_TABLE).update(updates).eq("id", workflow_id).execute()
        )

    async def delete_workflow(self, workflow_id: str) -> bool:
        result = await asyncio.to_thread(
            lambda: self._client.table(WORKFLOWS_TABLE).delete().eq("id", workflow_id).execute()
        )
        return bool(result.data)


__all__ = ["WorkflowRepository", "InMemoryWorkflowRepository", "SupabaseWorkflowRepository"]
