"""
Inbound webhook endpoint.

``/hooks/{workflow_id}/{slug}`` runs the workflow synchronously from the
webhook node whose ``path`` equals the slug and whose ``httpMethod``
(default POST) matches the request.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from shared.models import ExecutionResult, NodeInstance, NodeType, Workflow
from workflow_scheduler.core.exceptions import SchedulerError
from workflow_scheduler.dependencies import get_scheduler, get_workflow_repository
from workflow_scheduler.services.scheduler import Scheduler
from workflow_scheduler.services.workflow_repository import WorkflowRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hooks", tags=["webhooks"])

DEFAULT_WEBHOOK_METHOD = "POST"


def find_webhook_node(workflow: Workflow, slug: str, method: str) -> Optional[NodeInstance]:
    for node in workflow.nodes:
        if not node.is_type(NodeType.WEBHOOK):
            continue
        path = str(node.config.get("path", "")).strip("/")
        node_method = str(node.config.get("httpMethod") or DEFAULT_WEBHOOK_METHOD).upper()
        if path == slug.strip("/") and node_method == method.upper():
            return node
    return None


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


@router.api_route(
    "/{workflow_id}/{slug}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    response_model=ExecutionResult,
)
async def receive_webhook(
    workflow_id: str,
    slug: str,
    request: Request,
    scheduler: Scheduler = Depends(get_scheduler),
    repository: WorkflowRepository = Depends(get_workflow_repository),
):
    """Run a workflow from one of its webhook nodes"""
    workflow = await repository.get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")

    node = find_webhook_node(workflow, slug, request.method)
    if node is None:
        raise HTTPException(
            status_code=404,
            detail=f"No {request.method} webhook with path '{slug}' in workflow {workflow_id}",
        )

    initial_context = {
        "headers": dict(request.headers),
        "params": dict(request.path_params),
        "query": dict(request.query_params),
        "body": await _read_body(request),
    }
    logger.info(f"📥 Webhook {request.method} /{slug} received for workflow {workflow_id}")
    try:
        return await scheduler.execute_now(workflow, initial_context, start_node_id=node.id, trigger="webhook")
    except SchedulerError as e:
        raise HTTPException(status_code=400, detail=str(e))
