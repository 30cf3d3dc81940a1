"""
FastAPI dependencies for workflow_scheduler

Services are built in the application lifespan and kept on ``app.state``.
"""

from fastapi import HTTPException, Request

from workflow_engine.services.repository import ExecutionLogRepository

from .services.scheduler import Scheduler
from .services.workflow_repository import WorkflowRepository


def get_scheduler(request: Request) -> Scheduler:
    """Get scheduler dependency"""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not available")
    return scheduler


def get_workflow_repository(request: Request) -> WorkflowRepository:
    """Get workflow repository dependency"""
    repository = getattr(request.app.state, "workflow_repository", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Workflow repository not available")
    return repository


def get_execution_repository(request: Request) -> ExecutionLogRepository:
    """Get execution log repository dependency"""
    repository = getattr(request.app.state, "execution_repository", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Execution log repository not available")
    return repository
