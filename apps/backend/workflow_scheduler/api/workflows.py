import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from shared.models import ExecutionRecord, ExecutionResult, Workflow
from workflow_engine.services.repository import ExecutionLogRepository
from workflow_scheduler.core.exceptions import SchedulerError
from workflow_scheduler.dependencies import (
    get_execution_repository,
    get_scheduler,
    get_workflow_repository,
)
from workflow_scheduler.services.scheduler import Scheduler
from workflow_scheduler.services.workflow_repository import WorkflowRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


class TestModeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    interval: str = Field(..., description="Tick period, e.g. 5min or 1hr")
    duration: str = Field(default="30min", description="Session lifetime, e.g. 15min or 1day")
    max_executions: Optional[int] = Field(default=None, alias="maxExecutions", ge=1)


class ExecuteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    initial_context: Dict[str, Any] = Field(default_factory=dict, alias="initialContext")
    start_node_id: Optional[str] = Field(default=None, alias="startNodeId")


class ActivationResponse(BaseModel):
    workflow_id: str
    active: bool
    message: str


class SchedulerStatusResponse(BaseModel):
    active_workflows: List[str]
    test_mode_workflows: List[Dict[str, Any]]


async def _load_workflow(workflow_id: str, repository: WorkflowRepository) -> Workflow:
    workflow = await repository.get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
    return workflow


@router.get("/status", response_model=SchedulerStatusResponse)
async def get_status(scheduler: Scheduler = Depends(get_scheduler)):
    """List activated workflows and live test-mode sessions"""
    return SchedulerStatusResponse(
        active_workflows=scheduler.get_active_workflows(),
        test_mode_workflows=scheduler.get_test_mode_workflows(),
    )


@router.post("/{workflow_id}/activate", response_model=ActivationResponse)
async def activate_workflow(
    workflow_id: str,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Schedule a workflow from its cron node and mark it active"""
    workflow = await _load_workflow(workflow_id, repository)

    if not scheduler.activate_workflow(workflow):
        raise HTTPException(
            status_code=400,
            detail="Workflow could not be activated: invalid graph, or not exactly one cron node with a schedule",
        )

    await repository.set_active(workflow_id, True)
    return ActivationResponse(workflow_id=workflow_id, active=True, message="Workflow activated")


@router.post("/{workflow_id}/deactivate", response_model=ActivationResponse)
async def deactivate_workflow(
    workflow_id: str,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Remove a workflow's schedule and any test session"""
    scheduler.deactivate_workflow(workflow_id)
    await repository.set_active(workflow_id, False)
    return ActivationResponse(workflow_id=workflow_id, active=False, message="Workflow deactivated")


@router.post("/{workflow_id}/test")
async def start_test_mode(
    workflow_id: str,
    request: TestModeRequest,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Start a time-boxed test schedule"""
    workflow = await _load_workflow(workflow_id, repository)
    try:
        session = scheduler.start_test_mode(
            workflow,
            interval=request.interval,
            duration=request.duration,
            max_executions=request.max_executions,
        )
    except SchedulerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"workflow_id": workflow_id, "test_mode": session.model_dump(mode="json", exclude={"stopped"})}


@router.post("/{workflow_id}/test/stop")
async def stop_test_mode(workflow_id: str, scheduler: Scheduler = Depends(get_scheduler)):
    """Stop a test schedule; a no-op when none is running"""
    stopped = scheduler.stop_test_mode(workflow_id)
    return {"workflow_id": workflow_id, "stopped": stopped}


@router.post("/{workflow_id}/execute", response_model=ExecutionResult)
async def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteRequest] = None,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Run a workflow once and return its full result"""
    workflow = await _load_workflow(workflow_id, repository)
    request = request or ExecuteRequest()

    logger.info(f"Manual execution requested for workflow {workflow_id}")
    try:
        return await scheduler.execute_now(
            workflow,
            request.initial_context,
            start_node_id=request.start_node_id,
        )
    except SchedulerError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{workflow_id}/executions", response_model=List[ExecutionRecord])
async def list_executions(
    workflow_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    executions: ExecutionLogRepository = Depends(get_execution_repository),
):
    """Recent runs of a workflow, newest first"""
    return await executions.list_execution_logs(workflow_id=workflow_id, limit=limit)


@router.delete("/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Deactivate, then delete a workflow"""
    scheduler.deactivate_workflow(workflow_id)
    if not await repository.delete_workflow(workflow_id):
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
    return {"message": "Workflow deleted successfully", "workflow_id": workflow_id}
