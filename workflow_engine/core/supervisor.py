"""Retry and timeout supervision of individual node executions."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models.core import NodeDefinition, NodeExecutionResult, NodeResultStatus
from .exceptions import NodeSkipped, NodeTimeoutError, WorkflowEngineError
from .logging import NodeRetryLogger, get_logger

logger = get_logger(__name__)


class _HandlerTimeout(Exception):
    """Carries a TimeoutError raised by the handler itself past ``wait_for``."""

    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


async def _guarded(invoke: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return await invoke()
    except asyncio.TimeoutError as e:
        raise _HandlerTimeout(e) from e


class RetryPolicy(BaseModel):
    """Retry and timeout budget applied to every node of a run.

    The backoff is linear: after the n-th failed attempt the supervisor
    waits ``retry_delay * n`` seconds.
    """
    max_retries: int = Field(3, ge=0, description="Retries allowed after the first attempt")
    retry_delay: float = Field(1.0, ge=0, description="Base backoff delay in seconds")
    node_timeout: float = Field(300.0, gt=0, description="Per-attempt deadline in seconds")

    def get_delay(self, attempt: int) -> float:
        return self.retry_delay * attempt

    def for_node(self, node: NodeDefinition) -> "RetryPolicy":
        """Apply a node's ``node_timeout`` and ``max_retries`` config overrides."""
        overrides = {}
        if node.config.get("node_timeout") is not None:
            overrides["node_timeout"] = node.config["node_timeout"]
        if node.config.get("max_retries") is not None:
            overrides["max_retries"] = node.config["max_retries"]

        if not overrides:
            return self

        try:
            return RetryPolicy(**{**self.model_dump(), **overrides})
        except ValidationError as e:
            logger.warning(f"Ignoring invalid retry overrides on node {node.id}: {e.errors()[0]['msg']}")
            return self


class NodeSupervisor:
    """Runs one node under its retry policy and deadline."""

    def __init__(self, policy: Optional[RetryPolicy] = None):
        self.policy = policy or RetryPolicy()
        self.retry_logger = NodeRetryLogger("node_supervisor")

    async def run(
        self,
        node: NodeDefinition,
        invoke: Callable[[], Awaitable[Any]],
        execution_id: Optional[str] = None,
    ) -> NodeExecutionResult:
        """
        Invoke a node until it succeeds or its retry budget is spent.

        Each attempt races ``invoke()`` against the node timeout; whichever
        settles first decides the attempt. The handler is invoked at most
        ``max_retries + 1`` times.

        Args:
            node: Node being executed
            invoke: Zero-argument coroutine factory performing one attempt
            execution_id: Run the node belongs to, for log context

        Returns:
            NodeExecutionResult with status success, failure or skipped
        """
        policy = self.policy.for_node(node)
        max_attempts = policy.max_retries + 1
        started_at = datetime.now(timezone.utc)
        last_error: Optional[BaseException] = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            try:
                output = await asyncio.wait_for(_guarded(invoke), timeout=policy.node_timeout)
            except NodeSkipped as skip:
                logger.info(f"Node {node.id} skipped: {skip.reason or 'no reason given'}")
                return NodeExecutionResult(
                    node_id=node.id,
                    status=NodeResultStatus.SKIPPED,
                    error=skip.reason or None,
                    started_at=started_at,
                    ended_at=datetime.now(timezone.utc),
                    retries=attempt - 1,
                    attempts=attempt
                )
            except asyncio.TimeoutError:
                last_error = NodeTimeoutError(
                    f"Execution timeout after {policy.node_timeout}s",
                    timeout=policy.node_timeout,
                    node_id=node.id,
                    execution_id=execution_id,
                    attempts=attempt
                )
            except _HandlerTimeout as wrapped:
                last_error = wrapped.error
            except Exception as e:
                last_error = e
            else:
                if attempt > 1:
                    self.retry_logger.recovered(node.id, attempt, execution_id)
                return NodeExecutionResult(
                    node_id=node.id,
                    status=NodeResultStatus.SUCCESS,
                    output=output,
                    started_at=started_at,
                    ended_at=datetime.now(timezone.utc),
                    retries=attempt - 1,
                    attempts=attempt
                )

            if attempt < max_attempts:
                delay = policy.get_delay(attempt)
                self.retry_logger.attempt_failed(node.id, last_error, attempt, max_attempts, delay, execution_id)
                if delay > 0:
                    await asyncio.sleep(delay)

        self.retry_logger.exhausted(node.id, last_error, attempt, execution_id)
        return NodeExecutionResult(
            node_id=node.id,
            status=NodeResultStatus.FAILURE,
            error=error_message(last_error),
            error_type=error_type(last_error),
            started_at=started_at,
            ended_at=datetime.now(timezone.utc),
            retries=attempt - 1,
            attempts=attempt
        )


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def error_type(error: BaseException) -> str:
    if isinstance(error, WorkflowEngineError):
        return error.error_code
    return type(error).__name__
