"""
Pytest configuration and shared fixtures for workflow_scheduler tests.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from workflow_scheduler.core.config import Settings
from workflow_scheduler.services.scheduler import Scheduler
from workflow_scheduler.services.workflow_repository import InMemoryWorkflowRepository
from workflow_scheduler.tests.builders import execution_result


@pytest.fixture
def settings():
    return Settings(scheduler_timezone="UTC", scheduler_max_workers=4, allow_overlapping_runs=True)


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.run = AsyncMock(return_value=execution_result())
    return mock


@pytest.fixture
def workflow_repository():
    return InMemoryWorkflowRepository()


@pytest.fixture
async def scheduler(engine, workflow_repository, settings):
    sched = Scheduler(engine=engine, workflow_repository=workflow_repository, settings=settings)
    sched.start()
    yield sched
    sched.shutdown()
