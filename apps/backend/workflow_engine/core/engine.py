"""
Workflow execution engine.

One ``run`` call walks a workflow graph depth-first from its start node(s):

1. Decrypt credential fields into a runtime-only copy of the graph.
2. Validate handles and acyclicity, then resolve the start node(s).
3. Visit each node through the dispatcher. ``continue-downstream`` results
   recurse into every outgoing connection, in declared order, with
   ``{**parent_context, **fragment}``; ``handled-downstream`` results recurse
   only into the branches the runner chose, each with its own context.
   Siblings run one after another, never concurrently.
4. The first failing node aborts the run (fail-fast). The node log is flushed
   to the execution log store after every change so an in-progress run is
   observable.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.models import (
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    NodeInstance,
    WorkflowGraph,
)
from workflow_engine.runners.base import ControlSignal
from workflow_engine.runners.factory import NodeDispatcher
from workflow_engine.services.credential_encryption import CredentialEncryption
from workflow_engine.services.repository import (
    ExecutionLogRepository,
    InMemoryExecutionLogRepository,
)

from .exceptions import EngineError
from .graph import ExecutionGraph
from .state import ExecutionLog

logger = logging.getLogger(__name__)


class _RunState:
    """Everything one run owns; never shared between runs."""

    def __init__(self, record: ExecutionRecord, graph: ExecutionGraph):
        self.record = record
        self.graph = graph
        self.log = ExecutionLog()
        self.last_context: Dict[str, Any] = {}

    @property
    def execution_id(self) -> str:
        return self.record.id


class ExecutionEngine:
    """Sequential depth-first workflow executor."""

    def __init__(
        self,
        repository: Optional[ExecutionLogRepository] = None,
        codec: Optional[CredentialEncryption] = None,
        dispatcher: Optional[NodeDispatcher] = None,
    ) -> None:
        self.repository = repository or InMemoryExecutionLogRepository()
        self.codec = codec or CredentialEncryption()
        self.dispatcher = dispatcher or NodeDispatcher()

    async def run(
        self,
        graph: WorkflowGraph,
        initial_context: Optional[Dict[str, Any]] = None,
        *,
        workflow_id: Optional[str] = None,
        start_node_id: Optional[str] = None,
        trigger: str = "manual",
    ) -> ExecutionResult:
        """Execute ``graph`` once and return its result.

        Node failures do not raise; they are recorded on the failing log entry
        and in the returned result (``success=False``).
        """
        context = dict(initial_context or {})
        started = time.monotonic()
        record = ExecutionRecord(
            id=f"exec_{uuid.uuid4().hex}",
            workflow_id=workflow_id,
            trigger=trigger,
            started_at=datetime.now(timezone.utc),
        )
        extra = {"execution_id": record.id}

        record.status = ExecutionStatus.RUNNING
        await self._create_record(record)
        logger.info(f"▶️ Starting execution for workflow {workflow_id or '<unsaved>'}", extra=extra)

        state: Optional[_RunState] = None
        error: Optional[Exception] = None
        try:
            runtime_graph = ExecutionGraph(self.codec.decrypt_graph(graph))
            runtime_graph.validate()
            state = _RunState(record, runtime_graph)
            for node in runtime_graph.start_nodes(context, start_node_id):
                await self._visit(state, node, context)
        except Exception as e:
            error = e

        duration_ms = int((time.monotonic() - started) * 1000)
        record.status = ExecutionStatus.ERROR if error else ExecutionStatus.SUCCESS
        record.completed_at = datetime.now(timezone.utc)
        record.duration_ms = duration_ms
        record.error = str(error) if error else None
        log = state.log.entries if state else []

        await self._update_record(
            record.id,
            {
                "status": record.status.value,
                "completed_at": record.completed_at.isoformat(),
                "duration_ms": duration_ms,
                "logs": state.log.to_records() if state else [],
                "error": record.error,
            },
        )

        if error:
            logger.error(
                f"❌ Execution failed after {duration_ms}ms: {type(error).__name__}: {error}",
                extra=extra,
                exc_info=not isinstance(error, EngineError),
            )
        else:
            logger.info(f"✅ Execution completed in {duration_ms}ms ({len(log)} nodes)", extra=extra)

        return ExecutionResult(
            execution_id=record.id,
            workflow_id=workflow_id,
            success=error is None,
            status=record.status,
            duration_ms=duration_ms,
            log=log,
            error=record.error,
            error_type=type(error).__name__ if error else None,
            context=state.last_context if state else context,
        )

    async def _visit(self, state: _RunState, node: NodeInstance, context: Dict[str, Any]) -> None:
        extra = {"execution_id": state.execution_id}
        entry = state.log.start(node)
        await self._flush(state)

        try:
            result = await self.dispatcher.execute(node, context)
        except Exception as e:
            state.log.fail(entry, str(e), getattr(e, "diagnostics", None))
            await self._flush(state)
            logger.warning(f"Node '{node.label}' ({node.type}) failed: {e}", extra=extra)
            raise

        state.log.succeed(entry, result.fragment, result.diagnostics)
        await self._flush(state)
        logger.debug(f"Node '{node.label}' ({node.type}) completed", extra=extra)

        if result.signal is ControlSignal.CONTINUE_DOWNSTREAM:
            child_context = {**context, **result.fragment}
            state.last_context = child_context
            for conn in state.graph.outgoing(node.id):
                await self._visit(state, state.graph.nodes[conn.target], child_context)
            return

        for branch in result.branches:
            state.last_context = branch.context
            for conn in state.graph.outgoing(node.id, branch.handles):
                await self._visit(state, state.graph.nodes[conn.target], branch.context)

    async def _flush(self, state: _RunState) -> None:
        await self._update_record(state.execution_id, {"logs": state.log.to_records()})

    async def _create_record(self, record: ExecutionRecord) -> None:
        try:
            await self.repository.create_execution_log(record)
        except Exception as e:
            logger.error(f"Failed to create execution log: {e}", extra={"execution_id": record.id})

    async def _update_record(self, execution_id: str, updates: Dict[str, Any]) -> None:
        # Log store failures never abort a run
        try:
            await self.repository.update_execution_log(execution_id, updates)
        except Exception as e:
            logger.error(f"Failed to update execution log: {e}", extra={"execution_id": execution_id})


__all__ = ["ExecutionEngine"]
