"""
Scheduler lifecycle tests.

Jobs are registered on a live AsyncIOScheduler; ticks are driven by awaiting
the registered job function directly instead of waiting on the clock.
"""

from datetime import timedelta

import pytest
from apscheduler.triggers.date import DateTrigger

from workflow_scheduler.core.config import Settings
from workflow_scheduler.core.exceptions import InvalidScheduleError, InvalidWorkflowError, WorkflowNotFoundError
from workflow_scheduler.services.scheduler import Scheduler
from workflow_scheduler.services.workflow_repository import InMemoryWorkflowRepository
from workflow_scheduler.tests.builders import cron_workflow, dangling_workflow, execution_result, make_workflow


async def _fire(scheduler, job_id):
    job = scheduler.scheduler.get_job(job_id)
    assert job is not None, f"job {job_id} is not registered"
    await job.func(*job.args)


class TestActivation:
    async def test_activate_registers_cron_job(self, scheduler, settings):
        assert scheduler.activate_workflow(cron_workflow("wf1")) is True

        job = scheduler.scheduler.get_job("cron_wf1")
        assert job is not None
        assert job.max_instances == settings.scheduler_max_workers
        assert scheduler.get_active_workflows() == ["wf1"]

    async def test_invalid_schedule_leaves_registry_unchanged(self, scheduler):
        assert scheduler.activate_workflow(cron_workflow("wf1", schedule="not-a-cron")) is False

        assert scheduler.get_active_workflows() == []
        assert scheduler.scheduler.get_jobs() == []

    async def test_invalid_reactivation_keeps_existing_job(self, scheduler):
        original = cron_workflow("wf1", schedule="0 * * * *")
        scheduler.activate_workflow(original)

        assert scheduler.activate_workflow(cron_workflow("wf1", schedule="99 * * * *")) is False

        job = scheduler.scheduler.get_job("cron_wf1")
        assert job.args[0] is original
        assert scheduler.get_active_workflows() == ["wf1"]

    @pytest.mark.parametrize("schedule", [None, ""])
    async def test_missing_schedule_fails(self, scheduler, schedule):
        assert scheduler.activate_workflow(cron_workflow("wf1", schedule=schedule)) is False
        assert scheduler.scheduler.get_jobs() == []

    async def test_requires_exactly_one_cron_node(self, scheduler):
        no_cron = make_workflow("none", nodes=[{"id": "m", "type": "manual"}])
        two_crons = make_workflow(
            "two",
            nodes=[
                {"id": "a", "type": "cron", "config": {"schedule": "* * * * *"}},
                {"id": "b", "type": "cron", "config": {"schedule": "0 * * * *"}},
            ],
        )

        assert scheduler.activate_workflow(no_cron) is False
        assert scheduler.activate_workflow(two_crons) is False
        assert scheduler.get_active_workflows() == []

    async def test_dangling_connection_fails_activation(self, scheduler):
        assert scheduler.activate_workflow(dangling_workflow("bad")) is False

        assert scheduler.get_active_workflows() == []
        assert scheduler.scheduler.get_jobs() == []

    async def test_reactivation_replaces_job(self, scheduler):
        scheduler.activate_workflow(cron_workflow("wf1", schedule="0 * * * *"))
        updated = cron_workflow("wf1", schedule="*/5 * * * *")

        assert scheduler.activate_workflow(updated) is True

        jobs = scheduler.scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].args[0] is updated
        assert scheduler.get_active_workflows() == ["wf1"]

    async def test_overlap_disabled_runs_one_instance(self, engine):
        settings = Settings(scheduler_timezone="UTC", allow_overlapping_runs=False)
        scheduler = Scheduler(engine=engine, settings=settings)
        scheduler.start()
        try:
            scheduler.activate_workflow(cron_workflow("wf1"))
            assert scheduler.scheduler.get_job("cron_wf1").max_instances == 1
        finally:
            scheduler.shutdown()

    async def test_tick_runs_engine_with_schedule_trigger(self, scheduler, engine):
        workflow = cron_workflow("wf1")
        scheduler.activate_workflow(workflow)

        await _fire(scheduler, "cron_wf1")

        engine.run.assert_awaited_once()
        args, kwargs = engine.run.call_args
        assert args[0] == workflow.graph
        assert kwargs["workflow_id"] == "wf1"
        assert kwargs["trigger"] == "schedule"

    @pytest.mark.parametrize("outcome", [execution_result(success=False), RuntimeError("store down")])
    async def test_failed_run_does_not_deactivate(self, scheduler, engine, outcome):
        if isinstance(outcome, Exception):
            engine.run.side_effect = outcome
        else:
            engine.run.return_value = outcome
        scheduler.activate_workflow(cron_workflow("wf1"))

        await _fire(scheduler, "cron_wf1")
        await _fire(scheduler, "cron_wf1")

        assert engine.run.await_count == 2
        assert scheduler.get_active_workflows() == ["wf1"]
        assert scheduler.scheduler.get_job("cron_wf1") is not None

    async def test_deactivate_removes_job_and_test_session(self, scheduler):
        workflow = cron_workflow("wf1")
        scheduler.activate_workflow(workflow)
        scheduler.start_test_mode(workflow, "5min", "15min")

        assert scheduler.deactivate_workflow("wf1") is True

        assert scheduler.get_active_workflows() == []
        assert scheduler.get_test_mode_workflows() == []
        assert scheduler.scheduler.get_jobs() == []
        assert scheduler.deactivate_workflow("wf1") is False


class TestTestMode:
    async def test_session_stops_after_max_executions(self, scheduler, engine):
        workflow = cron_workflow("wf1")
        session = scheduler.start_test_mode(workflow, interval="5min", duration="15min", max_executions=2)
        tick = scheduler.scheduler.get_job("test_wf1")

        await tick.func(*tick.args)
        assert scheduler.get_test_mode_workflows()[0]["exec_count"] == 1

        await tick.func(*tick.args)

        assert engine.run.await_count == 2
        assert engine.run.call_args.kwargs["trigger"] == "test"
        assert session.stopped
        assert scheduler.get_test_mode_workflows() == []
        assert scheduler.scheduler.get_job("test_wf1") is None
        assert scheduler.scheduler.get_job("test_expiry_wf1") is None

        # a straggling tick after the stop does nothing
        await tick.func(*tick.args)
        assert engine.run.await_count == 2

    async def test_session_stops_when_duration_expires(self, scheduler, engine):
        session = scheduler.start_test_mode(cron_workflow("wf1"), interval="5min", duration="15min", max_executions=2)
        tick = scheduler.scheduler.get_job("test_wf1")
        expiry = scheduler.scheduler.get_job("test_expiry_wf1")

        assert isinstance(expiry.trigger, DateTrigger)
        assert session.ends_at - session.started_at == timedelta(minutes=15)

        await expiry.func(*expiry.args)

        assert session.stopped
        assert scheduler.get_test_mode_workflows() == []
        assert scheduler.scheduler.get_job("test_wf1") is None
        await tick.func(*tick.args)
        engine.run.assert_not_awaited()

    async def test_failed_test_run_still_counts(self, scheduler, engine):
        engine.run.side_effect = RuntimeError("boom")
        session = scheduler.start_test_mode(cron_workflow("wf1"), interval="1min", max_executions=1)

        await _fire(scheduler, "test_wf1")

        assert session.exec_count == 1
        assert session.stopped

    async def test_stop_twice_is_safe(self, scheduler):
        scheduler.start_test_mode(cron_workflow("wf1"), interval="5min")

        assert scheduler.stop_test_mode("wf1") is True
        assert scheduler.stop_test_mode("wf1") is False
        assert scheduler.scheduler.get_jobs() == []

    async def test_stop_without_session_is_noop(self, scheduler):
        assert scheduler.stop_test_mode("missing") is False

    async def test_unknown_interval_raises_without_side_effects(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.start_test_mode(cron_workflow("wf1"), interval="3min")

        assert scheduler.get_test_mode_workflows() == []
        assert scheduler.scheduler.get_jobs() == []

    async def test_dangling_connection_rejected_without_side_effects(self, scheduler):
        with pytest.raises(InvalidWorkflowError, match="ghost"):
            scheduler.start_test_mode(dangling_workflow("bad"), interval="5min")

        assert scheduler.get_test_mode_workflows() == []
        assert scheduler.scheduler.get_jobs() == []

    async def test_zero_max_executions_rejected(self, scheduler):
        with pytest.raises(InvalidScheduleError):
            scheduler.start_test_mode(cron_workflow("wf1"), interval="5min", max_executions=0)

    async def test_unknown_duration_defaults_to_thirty_minutes(self, scheduler):
        session = scheduler.start_test_mode(cron_workflow("wf1"), interval="5min", duration="ages")
        assert session.ends_at - session.started_at == timedelta(minutes=30)

    async def test_restart_replaces_session(self, scheduler, engine):
        workflow = cron_workflow("wf1")
        first = scheduler.start_test_mode(workflow, interval="5min", max_executions=5)
        old_tick = scheduler.scheduler.get_job("test_wf1")
        old_func, old_args = old_tick.func, old_tick.args

        second = scheduler.start_test_mode(workflow, interval="1min", max_executions=3)

        assert first.stopped and not second.stopped
        await old_func(*old_args)
        engine.run.assert_not_awaited()

        sessions = scheduler.get_test_mode_workflows()
        assert len(sessions) == 1
        assert sessions[0]["interval"] == "1min"
        assert len(scheduler.scheduler.get_jobs()) == 2

    async def test_session_listing(self, scheduler):
        scheduler.start_test_mode(cron_workflow("wf1"), interval="5min", duration="1hr", max_executions=4)

        (session,) = scheduler.get_test_mode_workflows()
        assert session["workflow_id"] == "wf1"
        assert session["max_executions"] == 4
        assert session["exec_count"] == 0
        assert {"started_at", "ends_at", "interval", "duration"} <= set(session)
        assert "stopped" not in session

    async def test_test_mode_does_not_need_cron_node(self, scheduler):
        manual = make_workflow("m", nodes=[{"id": "t", "type": "manual"}])
        scheduler.start_test_mode(manual, interval="1min")
        assert scheduler.get_test_mode_workflows()[0]["workflow_id"] == "m"


class TestLifecycle:
    async def test_initialize_restores_active_workflows(self, engine, settings):
        repository = InMemoryWorkflowRepository(
            [
                cron_workflow("good", is_active=True),
                cron_workflow("broken", schedule="nope", is_active=True),
                cron_workflow("idle", is_active=False),
            ]
        )
        scheduler = Scheduler(engine=engine, workflow_repository=repository, settings=settings)
        try:
            restored = await scheduler.initialize()

            assert restored == 1
            assert scheduler.scheduler.running
            assert scheduler.get_active_workflows() == ["good"]
        finally:
            scheduler.shutdown()

    async def test_initialize_skips_unbuildable_graph(self, engine, settings):
        repository = InMemoryWorkflowRepository(
            [dangling_workflow("bad", is_active=True), cron_workflow("good", is_active=True)]
        )
        scheduler = Scheduler(engine=engine, workflow_repository=repository, settings=settings)
        try:
            assert await scheduler.initialize() == 1

            assert scheduler.get_active_workflows() == ["good"]
            assert scheduler.scheduler.get_job("cron_good") is not None
            assert scheduler.scheduler.get_job("cron_bad") is None
        finally:
            scheduler.shutdown()

    async def test_initialize_survives_storage_failure(self, engine, settings, workflow_repository, monkeypatch):
        async def fail():
            raise ConnectionError("database unreachable")

        monkeypatch.setattr(workflow_repository, "list_active_workflows", fail)
        scheduler = Scheduler(engine=engine, workflow_repository=workflow_repository, settings=settings)
        try:
            assert await scheduler.initialize() == 0
        finally:
            scheduler.shutdown()

    async def test_execute_now_forwards_context(self, scheduler, engine):
        workflow = cron_workflow("wf1")

        result = await scheduler.execute_now(workflow, {"body": {"a": 1}}, start_node_id="set")

        assert result.success
        engine.run.assert_awaited_once_with(
            workflow.graph,
            {"body": {"a": 1}},
            workflow_id="wf1",
            start_node_id="set",
            trigger="manual",
        )

    async def test_execute_now_rejects_unbuildable_graph(self, scheduler, engine):
        with pytest.raises(InvalidWorkflowError):
            await scheduler.execute_now(dangling_workflow("bad"))
        engine.run.assert_not_awaited()

    async def test_execute_by_id(self, scheduler, engine, workflow_repository):
        await workflow_repository.save_workflow(cron_workflow("wf1"))

        await scheduler.execute_workflow_by_id("wf1")
        engine.run.assert_awaited_once()

        with pytest.raises(WorkflowNotFoundError):
            await scheduler.execute_workflow_by_id("missing")

    async def test_shutdown_stops_everything(self, scheduler):
        scheduler.activate_workflow(cron_workflow("wf1"))
        scheduler.start_test_mode(cron_workflow("wf2"), interval="5min")

        scheduler.shutdown()

        assert scheduler.get_active_workflows() == []
        assert scheduler.get_test_mode_workflows() == []
        assert not scheduler.scheduler.running
