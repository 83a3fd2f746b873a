"""Execution engine orchestrating validated workflow runs."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..models.core import (
    ExecutionStatusEnum,
    LogEventType,
    NodeExecutionResult,
    NodeResultStatus,
    ProgressPhase,
    ValidationResult,
    WorkflowGraph,
)
from .context import CancellationToken, ExecutionContext
from .dispatcher import NodeDispatcher
from .exceptions import ExecutionEngineError, GraphValidationError, WorkflowCancelledError
from .logging import get_logger, log_with_context
from .registry import HandlerRegistry
from .scheduler import ExecutionPlan, ExecutionScheduler
from .supervisor import NodeSupervisor, RetryPolicy, error_message, error_type
from .validator import WorkflowValidator

logger = get_logger(__name__)

ProgressHook = Callable[[str, ProgressPhase], Union[None, Awaitable[None]]]
ErrorHook = Callable[[str, str], Union[None, Awaitable[None]]]

WORKFLOW_ERROR_NODE = "workflow"


class ExecutionOptions(BaseModel):
    """Engine-wide execution defaults."""
    max_retries: int = Field(3, ge=0, description="Retries allowed per node after the first attempt")
    retry_delay: float = Field(1.0, ge=0, description="Linear backoff base in seconds")
    node_timeout: float = Field(300.0, gt=0, description="Per-attempt node deadline in seconds")
    parallel: bool = Field(False, description="Run dependency-ready groups concurrently")
    max_tracked_runs: int = Field(1000, ge=1, description="Launched runs kept for lookup before finished ones are evicted")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            node_timeout=self.node_timeout
        )


class WorkflowRun:
    """One execution of a validated graph.

    A run is created pending by ``WorkflowEngine.create_run`` and executed
    exactly once. Hooks may be replaced before ``execute`` is called.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        plan: ExecutionPlan,
        context: ExecutionContext,
        dispatcher: NodeDispatcher,
        supervisor: NodeSupervisor,
        on_progress: Optional[ProgressHook] = None,
        on_error: Optional[ErrorHook] = None,
    ):
        self.graph = graph
        self.plan = plan
        self.context = context
        self.dispatcher = dispatcher
        self.supervisor = supervisor
        self.on_progress = on_progress
        self.on_error = on_error
        self.token = CancellationToken()
        self.task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def execution_id(self) -> str:
        return self.context.execution_id

    @property
    def status(self) -> ExecutionStatusEnum:
        return self.context.status

    @property
    def is_finished(self) -> bool:
        return self.context.is_terminal

    def cancel(self, reason: str = "Execution cancelled by user") -> bool:
        """
        Request cooperative cancellation.

        Nodes already running finish; no further group is dispatched.

        Returns:
            False if the run had already reached a terminal status
        """
        if self.context.is_terminal:
            return False
        self.token.cancel(reason)
        logger.info(f"Cancellation requested for execution {self.execution_id}: {reason}")
        return True

    async def execute(self) -> ExecutionContext:
        """
        Execute the plan and return the terminal context.

        Node failures and cancellation are reported through the context
        status, never raised.

        Raises:
            ExecutionEngineError: If the run was already executed
        """
        if self._started:
            raise ExecutionEngineError(
                f"Execution {self.execution_id} has already been started",
                execution_id=self.execution_id,
                workflow_id=self.context.workflow_id
            )
        self._started = True

        self._log_event(LogEventType.WORKFLOW_START,
                        f"Starting workflow '{self.graph.id}' with {len(self.plan)} node(s)")

        try:
            for group in self.plan.groups:
                if self.token.cancelled:
                    raise WorkflowCancelledError(self.token.reason, execution_id=self.execution_id)

                if self.context.status == ExecutionStatusEnum.PENDING:
                    self.context.transition(ExecutionStatusEnum.RUNNING)

                if len(group) == 1:
                    results = [await self._run_node(group[0])]
                else:
                    results = await asyncio.gather(*(self._run_node(node_id) for node_id in group))

                failed = [result.node_id for result in results if result.status == NodeResultStatus.FAILURE]
                if failed:
                    self.context.transition(ExecutionStatusEnum.FAILED)
                    self._log_event(LogEventType.WORKFLOW_COMPLETE,
                                    f"Workflow '{self.graph.id}' failed at node(s) {', '.join(failed)}",
                                    level=logging.ERROR)
                    return self.context

            if self.context.status == ExecutionStatusEnum.PENDING:
                self.context.transition(ExecutionStatusEnum.RUNNING)
            self.context.transition(ExecutionStatusEnum.COMPLETED)
            self._log_event(LogEventType.WORKFLOW_COMPLETE, f"Workflow '{self.graph.id}' completed")

        except WorkflowCancelledError as e:
            self._mark_cancelled(e.message)

        except asyncio.CancelledError:
            self._mark_cancelled("Execution task was cancelled")
            raise

        except Exception as e:
            logger.error(f"Workflow-level failure in execution {self.execution_id}: {e}", exc_info=True)
            if not self.context.is_terminal:
                self.context.append_error(WORKFLOW_ERROR_NODE, error_message(e), error_type(e))
                self.context.transition(ExecutionStatusEnum.FAILED)

        return self.context

    async def _run_node(self, node_id: str) -> NodeExecutionResult:
        node = self.graph.get_node(node_id)
        resolved_input = self.dispatcher.resolve_input(self.graph, node_id, self.context)

        self._log_event(LogEventType.NODE_START, f"Starting execution of node {node_id}", node_id=node_id)
        await self._call_hook(self.on_progress, node_id, ProgressPhase.STARTED)

        result = await self.supervisor.run(
            node,
            lambda: self.dispatcher.execute_node(node, resolved_input),
            execution_id=self.execution_id
        )
        self.context.record_result(result)

        if result.status == NodeResultStatus.FAILURE:
            self.context.append_error(node_id, result.error, result.error_type)
            self._log_event(LogEventType.NODE_ERROR,
                            f"Node {node_id} failed after {result.attempts} attempt(s): {result.error}",
                            node_id=node_id, level=logging.ERROR, error_type=result.error_type)
            await self._call_hook(self.on_progress, node_id, ProgressPhase.FAILED)
            await self._call_hook(self.on_error, node_id, result.error)
        elif result.status == NodeResultStatus.SKIPPED:
            self._log_event(LogEventType.NODE_SKIPPED, f"Node {node_id} skipped", node_id=node_id)
            await self._call_hook(self.on_progress, node_id, ProgressPhase.COMPLETED)
        else:
            self._log_event(LogEventType.NODE_COMPLETE,
                            f"Node {node_id} completed in {result.duration:.3f}s", node_id=node_id)
            await self._call_hook(self.on_progress, node_id, ProgressPhase.COMPLETED)

        return result

    def _mark_cancelled(self, reason: str) -> None:
        if not self.context.is_terminal:
            self.context.transition(ExecutionStatusEnum.CANCELLED)
        self._log_event(LogEventType.WORKFLOW_CANCELLED, f"Workflow '{self.graph.id}' cancelled: {reason}",
                        level=logging.WARNING)

    async def _call_hook(self, hook: Optional[Callable[..., Any]], *args) -> None:
        if hook is None:
            return
        try:
            outcome = hook(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Observer hook failed for execution {self.execution_id}: {e}", exc_info=True)

    def _log_event(self, event_type: LogEventType, message: str, node_id: Optional[str] = None,
                   level: int = logging.INFO, **fields) -> None:
        log_with_context(
            logger, level, message,
            event_type=event_type.value,
            execution_id=self.execution_id,
            workflow_id=self.context.workflow_id,
            node_id=node_id,
            **fields
        )

    def __repr__(self) -> str:
        return f"WorkflowRun(execution_id={self.execution_id!r}, status={self.status.value!r})"


class WorkflowEngine:
    """Validates, schedules and executes workflow graphs.

    The engine is an explicitly constructed service: the handler registry,
    validator and scheduler are passed in or built per instance. Runs
    started in the background are tracked in memory; once more than
    ``max_tracked_runs`` are held, the oldest finished runs are dropped.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        options: Optional[ExecutionOptions] = None,
        validator: Optional[WorkflowValidator] = None,
        scheduler: Optional[ExecutionScheduler] = None,
    ):
        """Initialize the engine.

        Args:
            registry: Handlers used for dispatch and required-field checks
            options: Execution defaults (retries, backoff, timeout, parallelism)
            validator: Graph validator; defaults to one bound to ``registry``
            scheduler: Execution scheduler
        """
        self.registry = registry
        self.options = options or ExecutionOptions()
        self.validator = validator or WorkflowValidator(registry)
        self.scheduler = scheduler or ExecutionScheduler()
        self.dispatcher = NodeDispatcher(registry)
        self._runs: Dict[str, WorkflowRun] = {}

        logger.info(f"WorkflowEngine initialized with {len(registry)} handler(s), "
                    f"max_retries={self.options.max_retries}, node_timeout={self.options.node_timeout}s")

    def validate(self, graph: WorkflowGraph) -> ValidationResult:
        return self.validator.validate(graph)

    def create_run(
        self,
        graph: WorkflowGraph,
        variables: Optional[Dict[str, Any]] = None,
        *,
        parallel: Optional[bool] = None,
        on_progress: Optional[ProgressHook] = None,
        on_error: Optional[ErrorHook] = None,
    ) -> WorkflowRun:
        """
        Validate a graph and prepare a pending run.

        Args:
            graph: Graph to execute
            variables: Initial run variables, the input of source nodes
            parallel: Override the engine's parallel setting for this run
            on_progress: ``(node_id, phase)`` observer, plain or async
            on_error: ``(node_id, error_message)`` observer, plain or async

        Returns:
            A pending WorkflowRun

        Raises:
            GraphValidationError: If the graph has blocking validation errors
        """
        validation = self.validator.validate(graph)
        if not validation.is_valid:
            raise GraphValidationError(
                f"Workflow '{graph.id}' failed validation: {'; '.join(validation.error_messages())}",
                validation_result=validation,
                workflow_id=graph.id
            )

        run_parallel = self.options.parallel if parallel is None else parallel
        plan = self.scheduler.plan(graph, parallel=run_parallel)
        context = ExecutionContext(graph.id, variables=variables, planned_nodes=plan.order)

        return WorkflowRun(
            graph=graph,
            plan=plan,
            context=context,
            dispatcher=self.dispatcher,
            supervisor=NodeSupervisor(self.options.retry_policy()),
            on_progress=on_progress,
            on_error=on_error
        )

    async def execute(self, graph: WorkflowGraph, variables: Optional[Dict[str, Any]] = None, **kwargs) -> ExecutionContext:
        """Create a run and execute it to completion without tracking it."""
        run = self.create_run(graph, variables, **kwargs)
        return await run.execute()

    def start(self, graph: WorkflowGraph, variables: Optional[Dict[str, Any]] = None, **kwargs) -> WorkflowRun:
        """Create a run and execute it as a background task on the running loop."""
        return self.launch(self.create_run(graph, variables, **kwargs))

    def launch(self, run: WorkflowRun) -> WorkflowRun:
        """
        Execute a prepared run as a background task and track it.

        Raises:
            ExecutionEngineError: If the run is already tracked
        """
        if run.execution_id in self._runs:
            raise ExecutionEngineError(
                f"Execution {run.execution_id} is already tracked",
                execution_id=run.execution_id
            )
        self._runs[run.execution_id] = run
        self._evict_finished_runs()
        run.task = asyncio.create_task(run.execute(), name=f"workflow-run-{run.execution_id}")
        logger.info(f"Started execution {run.execution_id} for workflow '{run.graph.id}'")
        return run

    def _evict_finished_runs(self) -> None:
        excess = len(self._runs) - self.options.max_tracked_runs
        if excess <= 0:
            return
        finished = [execution_id for execution_id, run in self._runs.items() if run.is_finished]
        for execution_id in finished[:excess]:
            del self._runs[execution_id]
        logger.debug(f"Evicted {min(excess, len(finished))} finished run(s) from tracking")

    def get_run(self, execution_id: str) -> Optional[WorkflowRun]:
        return self._runs.get(execution_id)

    def cancel(self, execution_id: str, reason: str = "Execution cancelled by user") -> bool:
        """
        Request cancellation of a tracked run.

        Raises:
            ExecutionEngineError: If no run with that id is tracked
        """
        run = self._runs.get(execution_id)
        if run is None:
            raise ExecutionEngineError(f"Execution {execution_id} not found", execution_id=execution_id)
        return run.cancel(reason)

    def list_runs(self) -> List[WorkflowRun]:
        return list(self._runs.values())

    def active_runs(self) -> List[WorkflowRun]:
        return [run for run in self._runs.values() if not run.is_finished]

    async def shutdown(self) -> None:
        """Cancel every unfinished run and wait for background tasks to end."""
        active = self.active_runs()
        for run in active:
            run.cancel("Engine shutting down")

        tasks = [run.task for run in active if run.task is not None and not run.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(f"WorkflowEngine shut down, cancelled {len(active)} active run(s)")
