"""Workflow and result constructors shared by the scheduler tests."""

from typing import Any, Dict, List, Optional

from shared.models import ExecutionResult, ExecutionStatus, Workflow


def make_workflow(
    workflow_id: str = "wf1",
    nodes: Optional[List[Dict[str, Any]]] = None,
    connections: Optional[List[Dict[str, Any]]] = None,
    is_active: bool = False,
) -> Workflow:
    return Workflow.from_record(
        {
            "id": workflow_id,
            "name": f"Workflow {workflow_id}",
            "is_active": is_active,
            "data": {"nodes": nodes or [], "connections": connections or []},
        }
    )


def cron_workflow(workflow_id: str = "wf1", schedule: Any = "*/5 * * * *", is_active: bool = False) -> Workflow:
    return make_workflow(
        workflow_id,
        nodes=[
            {"id": "cron", "type": "cron", "name": "Every five", "config": {"schedule": schedule}},
            {"id": "set", "type": "set", "config": {"values": {"ran": "yes"}}},
        ],
        connections=[{"id": "c1", "source": "cron", "target": "set", "sourceHandle": "main"}],
        is_active=is_active,
    )


def dangling_workflow(workflow_id: str = "bad", is_active: bool = False) -> Workflow:
    """Cron workflow whose only connection points at a node that does not exist."""
    return make_workflow(
        workflow_id,
        nodes=[{"id": "cron", "type": "cron", "config": {"schedule": "*/5 * * * *"}}],
        connections=[{"id": "x", "source": "cron", "target": "ghost"}],
        is_active=is_active,
    )


def execution_result(success: bool = True, workflow_id: str = "wf1") -> ExecutionResult:
    return ExecutionResult(
        execution_id="exec_test",
        workflow_id=workflow_id,
        success=success,
        status=ExecutionStatus.SUCCESS if success else ExecutionStatus.ERROR,
        duration_ms=1,
        error=None if success else "boom",
    )
