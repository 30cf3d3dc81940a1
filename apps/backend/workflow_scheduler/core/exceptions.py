"""Scheduler errors. Raised synchronously to callers, never from a tick."""


class SchedulerError(Exception):
    """Base class for scheduler failures"""


class InvalidScheduleError(SchedulerError):
    """Cron expression, test-mode interval or execution cap could not be used"""


class InvalidWorkflowError(SchedulerError):
    """Stored graph cannot be built, e.g. a connection names an unknown node"""


class WorkflowNotFoundError(SchedulerError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


__all__ = ["SchedulerError", "InvalidScheduleError", "InvalidWorkflowError", "WorkflowNotFoundError"]
