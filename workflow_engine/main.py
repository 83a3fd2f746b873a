"""Main FastAPI application for the workflow execution engine."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.endpoints import router
from .api.middleware import ErrorHandlingMiddleware
from .api.monitor import ProgressMonitor
from .config import AppConfig, get_config
from .core.execution_engine import WorkflowEngine
from .core.logging import get_logger, setup_logging
from .core.registry import HandlerRegistry


def create_app(config: Optional[AppConfig] = None, registry: Optional[HandlerRegistry] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Application configuration; defaults to the environment-derived one
        registry: Handler registry; defaults to the built-in handlers

    Returns:
        FastAPI application whose engine and monitor live on ``app.state``
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        setup_logging(config)
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} {config.app_version}")

        app.state.config = config
        app.state.engine = WorkflowEngine(
            registry or HandlerRegistry.with_builtins(),
            options=config.execution_options()
        )
        app.state.monitor = ProgressMonitor(queue_size=config.monitor_queue_size)
        logger.info("Core components initialized")

        yield

        logger.info(f"Shutting down {config.app_name}")
        try:
            await app.state.engine.shutdown()
            logger.info("Execution engine shutdown completed")
        except Exception as e:
            logger.error(f"Error during execution engine shutdown: {e}")

    app = FastAPI(
        title=config.app_name,
        description="Validates, schedules and executes graphs of typed task nodes",
        version=config.app_version,
        lifespan=lifespan
    )

    app.add_middleware(ErrorHandlingMiddleware, slow_request_threshold=config.slow_request_threshold)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"]
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint for health check."""
        return {"message": f"{config.app_name} is running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        engine = getattr(app.state, "engine", None)
        return {
            "status": "healthy" if engine is not None else "starting",
            "service": "workflow-engine",
            "version": config.app_version,
            "active_runs": len(engine.active_runs()) if engine is not None else 0,
            "node_types": len(engine.registry) if engine is not None else 0
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, **get_config().get_uvicorn_config())
