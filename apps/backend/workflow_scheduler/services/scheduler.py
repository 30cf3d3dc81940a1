"""
Workflow Scheduler - owns cron activations and test-mode sessions.

One ``Scheduler`` is built at process start and handed to the API layer.
Every job lives in a single APScheduler ``AsyncIOScheduler``:

* ``cron_<workflow_id>``: the permanent schedule of an activated workflow
* ``test_<workflow_id>``: the periodic tick of a test-mode session
* ``test_expiry_<workflow_id>``: the one-shot job ending that session
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import BaseModel, Field

from shared.models import ExecutionResult, NodeType, Workflow, WorkflowGraph
from workflow_engine.core.engine import ExecutionEngine
from workflow_scheduler.core.config import Settings, get_settings
from workflow_scheduler.core.exceptions import (
    InvalidScheduleError,
    InvalidWorkflowError,
    SchedulerError,
    WorkflowNotFoundError,
)
from workflow_scheduler.services.workflow_repository import (
    InMemoryWorkflowRepository,
    WorkflowRepository,
)
from workflow_scheduler.triggers.cron_trigger import (
    build_cron_trigger,
    interval_to_cron,
    parse_duration,
    resolve_timezone,
)

logger = logging.getLogger(__name__)


class ScheduledJob(BaseModel):
    workflow_id: str
    cron_expression: str
    job_id: str
    activated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TestModeSession(BaseModel):
    """A time-boxed schedule that ends itself after ``max_executions`` ticks or at ``ends_at``"""

    __test__ = False  # not a pytest class

    workflow_id: str
    interval: str
    duration: str
    max_executions: Optional[int] = None
    exec_count: int = 0
    started_at: datetime
    ends_at: datetime
    stopped: bool = False

    @property
    def job_id(self) -> str:
        return f"test_{self.workflow_id}"

    @property
    def expiry_job_id(self) -> str:
        return f"test_expiry_{self.workflow_id}"

    @property
    def exhausted(self) -> bool:
        return self.max_executions is not None and self.exec_count >= self.max_executions


class Scheduler:
    """Registers workflow triggers and hands each tick to the execution engine"""

    def __init__(
        self,
        engine: Optional[ExecutionEngine] = None,
        workflow_repository: Optional[WorkflowRepository] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.engine = engine or ExecutionEngine()
        self.workflow_repository = workflow_repository or InMemoryWorkflowRepository()
        self.timezone = resolve_timezone(self.settings.scheduler_timezone)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.timezone)
        self._active_jobs: Dict[str, ScheduledJob] = {}
        self._test_sessions: Dict[str, TestModeSession] = {}

    @property
    def max_instances(self) -> int:
        return self.settings.job_max_instances

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    async def initialize(self) -> int:
        """Start APScheduler and re-register every workflow stored as active.

        Returns the number of workflows whose schedule was restored.
        """
        logger.info("🔄 Initializing scheduler...")
        self.start()

        try:
            workflows = await self.workflow_repository.list_active_workflows()
        except Exception as e:
            logger.error(f"❌ Failed to load active workflows: {e}", exc_info=True)
            return 0

        logger.info(f"Found {len(workflows)} active workflows")
        restored = 0
        for workflow in workflows:
            try:
                activated = self.activate_workflow(workflow)
            except Exception as e:
                logger.error(f"❌ Failed to restore workflow {workflow.id}: {e}", exc_info=True)
                continue
            if activated:
                restored += 1
            else:
                logger.warning(f"Active workflow {workflow.id} has no usable schedule, left unscheduled")

        logger.info(f"✅ Scheduler initialized: {restored}/{len(workflows)} workflows scheduled")
        return restored

    def activate_workflow(self, workflow: Workflow) -> bool:
        """Schedule ``workflow`` from its single cron node.

        Returns False, registering nothing, when the graph is malformed or does
        not hold exactly one cron node with a valid ``schedule``. Re-activating
        replaces the existing job in place.
        """
        logger.info(f"Activating workflow: {workflow.name} ({workflow.id})")

        try:
            graph = self._graph_of(workflow)
        except InvalidWorkflowError as e:
            logger.error(f"❌ {e}")
            return False

        cron_nodes = graph.nodes_of_type(NodeType.CRON)
        if len(cron_nodes) != 1:
            logger.warning(f"Workflow {workflow.id} needs exactly one cron node, found {len(cron_nodes)}")
            return False

        schedule = cron_nodes[0].config.get("schedule")
        if not schedule:
            logger.warning(f"No schedule configured in cron node for workflow {workflow.id}")
            return False

        try:
            trigger = build_cron_trigger(schedule, self.timezone)
        except InvalidScheduleError as e:
            logger.error(f"❌ {e}")
            return False

        job_id = f"cron_{workflow.id}"
        self.scheduler.add_job(
            func=self._run_scheduled,
            trigger=trigger,
            args=[workflow],
            id=job_id,
            name=f"workflow:{workflow.id}",
            replace_existing=True,
            max_instances=self.max_instances,
        )
        self._active_jobs[workflow.id] = ScheduledJob(
            workflow_id=workflow.id, cron_expression=schedule, job_id=job_id
        )

        logger.info(f"✅ Workflow {workflow.id} activated with schedule: {schedule}")
        return True

    def deactivate_workflow(self, workflow_id: str) -> bool:
        """Remove the workflow's cron job and any test-mode session. Safe to repeat."""
        job = self._active_jobs.pop(workflow_id, None)
        if job is not None:
            self._remove_job(job.job_id)
            logger.info(f"Deactivated workflow: {workflow_id}")

        stopped_test = self.stop_test_mode(workflow_id)
        return job is not None or stopped_test

    def start_test_mode(
        self,
        workflow: Workflow,
        interval: str,
        duration: str = "30min",
        max_executions: Optional[int] = None,
    ) -> TestModeSession:
        """Run ``workflow`` every ``interval`` until ``duration`` passes or
        ``max_executions`` ticks have happened, whichever comes first.

        A session already running for the workflow is replaced.
        """
        if max_executions is not None and max_executions < 1:
            raise InvalidScheduleError(f"max_executions must be at least 1, got {max_executions}")

        self._graph_of(workflow)
        trigger = build_cron_trigger(interval_to_cron(interval), self.timezone)
        lifetime = parse_duration(duration)

        self.stop_test_mode(workflow.id)

        started_at = datetime.now(timezone.utc)
        session = TestModeSession(
            workflow_id=workflow.id,
            interval=interval,
            duration=duration,
            max_executions=max_executions,
            started_at=started_at,
            ends_at=started_at + lifetime,
        )

        self.scheduler.add_job(
            func=self._run_test_tick,
            trigger=trigger,
            args=[workflow, session],
            id=session.job_id,
            name=f"test:{workflow.id}",
            replace_existing=True,
            max_instances=self.max_instances,
        )
        self.scheduler.add_job(
            func=self._expire_test_mode,
            trigger=DateTrigger(run_date=session.ends_at),
            args=[session],
            id=session.expiry_job_id,
            name=f"test-expiry:{workflow.id}",
            replace_existing=True,
        )
        self._test_sessions[workflow.id] = session

        logger.info(
            f"🧪 Test mode started for {workflow.name or workflow.id}: every {interval} "
            f"until {session.ends_at.isoformat()} (max {max_executions or '∞'} runs)"
        )
        return session

    def stop_test_mode(self, workflow_id: str) -> bool:
        """Stop the workflow's test session. Returns False when none was running."""
        session = self._test_sessions.get(workflow_id)
        if session is None:
            return False
        self._end_session(session)
        return True

    async def execute_now(
        self,
        workflow: Workflow,
        initial_context: Optional[Dict[str, Any]] = None,
        start_node_id: Optional[str] = None,
        trigger: str = "manual",
    ) -> ExecutionResult:
        """Run ``workflow`` once, outside any schedule"""
        return await self.engine.run(
            self._graph_of(workflow),
            initial_context or {},
            workflow_id=workflow.id,
            start_node_id=start_node_id,
            trigger=trigger,
        )

    async def execute_workflow_by_id(
        self, workflow_id: str, initial_context: Optional[Dict[str, Any]] = None
    ) -> ExecutionResult:
        workflow = await self.workflow_repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return await self.execute_now(workflow, initial_context)

    def get_active_workflows(self) -> List[str]:
        return list(self._active_jobs)

    def get_test_mode_workflows(self) -> List[Dict[str, Any]]:
        return [
            session.model_dump(mode="json", exclude={"stopped"})
            for session in self._test_sessions.values()
        ]

    def shutdown(self) -> None:
        """Stop every test session and cron job, then APScheduler itself"""
        logger.info("Shutting down scheduler")
        for workflow_id in list(self._test_sessions):
            self.stop_test_mode(workflow_id)
        for job in list(self._active_jobs.values()):
            self._remove_job(job.job_id)
        self._active_jobs.clear()

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")

    @staticmethod
    def _graph_of(workflow: Workflow) -> WorkflowGraph:
        try:
            return workflow.graph
        except ValueError as e:
            raise InvalidWorkflowError(f"Workflow {workflow.id} has an invalid graph: {e}") from e

    async def _run_scheduled(self, workflow: Workflow) -> None:
        # A failed run never deactivates the workflow; the next tick runs as usual
        logger.info(f"⏰ Triggering workflow: {workflow.name or workflow.id}")
        try:
            result = await self.execute_now(workflow, trigger="schedule")
        except Exception as e:
            logger.error(f"❌ Scheduled run of workflow {workflow.id} crashed: {e}", exc_info=True)
            return
        if not result.success:
            logger.warning(f"Scheduled run {result.execution_id} of workflow {workflow.id} failed: {result.error}")

    async def _run_test_tick(self, workflow: Workflow, session: TestModeSession) -> None:
        if session.stopped or session.exhausted:
            return

        session.exec_count += 1
        logger.info(
            f"🧪 Test execution {session.exec_count}/{session.max_executions or '∞'} "
            f"for {workflow.name or workflow.id}"
        )
        try:
            await self.execute_now(workflow, trigger="test")
        except Exception as e:
            logger.error(f"❌ Test run of workflow {workflow.id} crashed: {e}", exc_info=True)
        finally:
            if session.exhausted:
                logger.info(f"Max executions reached for {workflow.name or workflow.id}")
                self._end_session(session)

    async def _expire_test_mode(self, session: TestModeSession) -> None:
        logger.info(f"Test mode duration ended for workflow {session.workflow_id}")
        self._end_session(session)

    def _end_session(self, session: TestModeSession) -> None:
        if session.stopped:
            return
        session.stopped = True
        # A replaced session must not unregister its successor
        if self._test_sessions.get(session.workflow_id) is session:
            del self._test_sessions[session.workflow_id]
            self._remove_job(session.job_id)
            self._remove_job(session.expiry_job_id)
        logger.info(f"Test mode stopped for workflow: {session.workflow_id}")

    def _remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug(f"Job {job_id} already gone")


__all__ = [
    "Scheduler",
    "ScheduledJob",
    "TestModeSession",
    "SchedulerError",
    "InvalidScheduleError",
    "InvalidWorkflowError",
    "WorkflowNotFoundError",
]
