import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import create_client

from shared.logging_config import setup_logging
from workflow_engine.core.engine import ExecutionEngine
from workflow_engine.services.repository import (
    InMemoryExecutionLogRepository,
    SupabaseExecutionLogRepository,
)
from workflow_scheduler.api import hooks, workflows
from workflow_scheduler.core.config import Settings, settings
from workflow_scheduler.services.scheduler import Scheduler
from workflow_scheduler.services.workflow_repository import (
    InMemoryWorkflowRepository,
    SupabaseWorkflowRepository,
)

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Construct repositories, engine and scheduler onto ``app.state``"""
    engine = ExecutionEngine()

    if settings.supabase_configured:
        client = create_client(settings.supabase_url, settings.supabase_secret_key)
        execution_repository = SupabaseExecutionLogRepository(client)
        workflow_repository = SupabaseWorkflowRepository(client, codec=engine.codec)
        logger.info("Using Supabase storage")
    else:
        execution_repository = InMemoryExecutionLogRepository()
        workflow_repository = InMemoryWorkflowRepository(codec=engine.codec)
        logger.warning("Supabase not configured, using in-memory storage")

    engine.repository = execution_repository
    app.state.execution_repository = execution_repository
    app.state.workflow_repository = workflow_repository
    app.state.scheduler = Scheduler(engine=engine, workflow_repository=workflow_repository, settings=settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager"""
    logger.info("Starting workflow_scheduler service")

    # Services placed on app.state beforehand (tests) are used as-is
    if getattr(app.state, "scheduler", None) is None:
        build_services(app, settings)

    scheduler: Scheduler = app.state.scheduler
    try:
        await scheduler.initialize()
        logger.info("workflow_scheduler service started successfully")
        yield
    finally:
        logger.info("Shutting down workflow_scheduler service")
        scheduler.shutdown()
        await scheduler.engine.dispatcher.aclose()
        logger.info("workflow_scheduler service shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Workflow Scheduler Service",
        description="Cron activation, test mode and on-demand runs for workflows",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workflows.router, prefix="/api/v1")
    app.include_router(hooks.router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"service": "workflow_scheduler", "version": "0.1.0", "status": "running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is None:
            return {"service": "workflow_scheduler", "status": "unhealthy", "scheduler": "not_initialized"}

        return {
            "service": "workflow_scheduler",
            "status": "healthy" if scheduler.scheduler.running else "degraded",
            "version": "0.1.0",
            "active_workflows": len(scheduler.get_active_workflows()),
            "test_mode_workflows": len(scheduler.get_test_mode_workflows()),
        }

    return app


setup_logging(settings.service_name, settings.log_level, settings.log_format)

app = create_app()


def main():
    logger.info(f"Starting workflow_scheduler on {settings.host}:{settings.port}")
    uvicorn.run(
        "workflow_scheduler.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
