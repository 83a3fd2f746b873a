"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    GraphValidationError,
    SchedulingError,
    NodeExecutionError,
    NodeTimeoutError,
    NodeSkipped,
    WorkflowCancelledError,
    HandlerRegistryError,
    ExecutionEngineError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .registry import HandlerRegistry
from .validator import WorkflowValidator
from .scheduler import ExecutionPlan, ExecutionScheduler
from .context import CancellationToken, ExecutionContext
from .dispatcher import NodeDispatcher
from .supervisor import NodeSupervisor, RetryPolicy
from .execution_engine import ExecutionOptions, WorkflowEngine, WorkflowRun

__all__ = [
    "WorkflowEngineError",
    "GraphValidationError",
    "SchedulingError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "NodeSkipped",
    "WorkflowCancelledError",
    "HandlerRegistryError",
    "ExecutionEngineError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "HandlerRegistry",
    "WorkflowValidator",
    "ExecutionPlan",
    "ExecutionScheduler",
    "CancellationToken",
    "ExecutionContext",
    "NodeDispatcher",
    "NodeSupervisor",
    "RetryPolicy",
    "ExecutionOptions",
    "WorkflowEngine",
    "WorkflowRun",
]
