"""FastAPI REST and WebSocket endpoints for the workflow engine."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

from ..core.exceptions import ExecutionEngineError, GraphValidationError, WorkflowEngineError, create_error_response
from ..core.execution_engine import WorkflowEngine, WorkflowRun
from ..core.logging import get_logger
from ..core.registry import HandlerRegistry
from ..models.core import ExecutionSnapshot, ExecutionStatusEnum, ValidationResult, WorkflowGraph
from .monitor import ProgressMonitor

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["workflow"])


def get_engine(request: Request) -> WorkflowEngine:
    """Dependency to get the workflow engine stored on the application."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Workflow engine not initialized")
    return engine


def get_registry(request: Request) -> HandlerRegistry:
    return get_engine(request).registry


def get_monitor(request: Request) -> ProgressMonitor:
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Progress monitor not initialized")
    return monitor


# Request/Response models
class RunWorkflowRequest(BaseModel):
    """Request model for running a workflow."""
    graph: WorkflowGraph = Field(..., description="Graph to execute")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Initial run variables")
    parallel: Optional[bool] = Field(None, description="Override the engine's parallel execution setting")


class RunWorkflowResponse(BaseModel):
    """Response model for workflow execution."""
    execution_id: str = Field(..., description="Unique identifier for the execution run")
    status: ExecutionStatusEnum = Field(..., description="Status at submission time")
    message: str = Field("Workflow execution started", description="Human readable message")


class RunSummary(BaseModel):
    """Summary of a tracked run."""
    execution_id: str
    workflow_id: str
    status: ExecutionStatusEnum
    progress: float


class CancelRunResponse(BaseModel):
    execution_id: str
    cancelled: bool


def _find_run(engine: WorkflowEngine, execution_id: str) -> WorkflowRun:
    run = engine.get_run(execution_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "RunNotFound",
                "message": f"Execution '{execution_id}' not found",
                "details": {"execution_id": execution_id}
            }
        )
    return run


@router.post(
    "/workflows/validate",
    response_model=ValidationResult,
    summary="Validate a workflow graph",
    description="Check a graph for structural errors and advisory warnings without running it"
)
async def validate_workflow(
    graph: WorkflowGraph,
    engine: WorkflowEngine = Depends(get_engine)
) -> ValidationResult:
    result = engine.validate(graph)
    logger.info(f"Validated workflow '{graph.id}': valid={result.is_valid}")
    return result


@router.post(
    "/workflows/run",
    response_model=RunWorkflowResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Execute a workflow graph",
    description="Validate a graph and start its execution in the background"
)
async def run_workflow(
    request: RunWorkflowRequest,
    engine: WorkflowEngine = Depends(get_engine),
    monitor: ProgressMonitor = Depends(get_monitor)
) -> RunWorkflowResponse:
    """
    Start a workflow run.

    Raises:
        HTTPException: 400 if the graph is invalid, 500 on engine errors
    """
    try:
        run = engine.create_run(request.graph, request.variables, parallel=request.parallel)
        monitor.attach(run)
        engine.launch(run)
        run.task.add_done_callback(lambda _: monitor.run_finished(run))

        logger.info(f"Accepted workflow '{request.graph.id}' as execution {run.execution_id}")
        return RunWorkflowResponse(execution_id=run.execution_id, status=run.status)

    except GraphValidationError as e:
        logger.warning(f"Rejected invalid workflow '{request.graph.id}': {e.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=create_error_response(e))
    except WorkflowEngineError as e:
        logger.error(f"Workflow engine error while starting '{request.graph.id}': {e.message}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=create_error_response(e))


@router.get(
    "/runs",
    response_model=List[RunSummary],
    summary="List tracked runs"
)
async def list_runs(engine: WorkflowEngine = Depends(get_engine)) -> List[RunSummary]:
    return [
        RunSummary(
            execution_id=run.execution_id,
            workflow_id=run.context.workflow_id,
            status=run.status,
            progress=run.context.progress()
        )
        for run in engine.list_runs()
    ]


@router.get(
    "/runs/{execution_id}",
    response_model=ExecutionSnapshot,
    summary="Get a run snapshot",
    description="Status, results and error log of a tracked run"
)
async def get_run(execution_id: str, engine: WorkflowEngine = Depends(get_engine)) -> ExecutionSnapshot:
    return _find_run(engine, execution_id).context.snapshot()


@router.post(
    "/runs/{execution_id}/cancel",
    response_model=CancelRunResponse,
    summary="Cancel a run",
    description="Request cooperative cancellation; nodes already running finish first"
)
async def cancel_run(execution_id: str, engine: WorkflowEngine = Depends(get_engine)) -> CancelRunResponse:
    _find_run(engine, execution_id)
    try:
        cancelled = engine.cancel(execution_id)
    except ExecutionEngineError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=create_error_response(e))
    return CancelRunResponse(execution_id=execution_id, cancelled=cancelled)


@router.get(
    "/node-types",
    summary="List registered node types",
    description="Type tags, descriptions and required configuration fields of every handler"
)
async def list_node_types(registry: HandlerRegistry = Depends(get_registry)) -> List[Dict[str, Any]]:
    return registry.describe()


@router.websocket("/ws/runs/{execution_id}")
async def monitor_run(websocket: WebSocket, execution_id: str):
    """
    Stream progress events of one run.

    Sends ``node_progress`` and ``node_error`` events as they happen and a
    final ``run_finished`` event, then closes the connection.
    """
    engine: Optional[WorkflowEngine] = getattr(websocket.app.state, "engine", None)
    monitor: Optional[ProgressMonitor] = getattr(websocket.app.state, "monitor", None)
    if engine is None or monitor is None:
        await websocket.close(code=1011, reason="Run monitoring not available")
        return

    run = engine.get_run(execution_id)
    if run is None:
        await websocket.close(code=4404, reason=f"Execution '{execution_id}' not found")
        return

    await websocket.accept()
    queue = monitor.subscribe(execution_id)
    try:
        if run.is_finished:
            await websocket.send_json(monitor.finished_event(run).model_dump(mode="json"))
        else:
            while True:
                event = await queue.get()
                await websocket.send_json(event)
                if event["event_type"] == ProgressMonitor.RUN_FINISHED:
                    break
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Monitor client disconnected from execution {execution_id}")
    finally:
        monitor.unsubscribe(execution_id, queue)
