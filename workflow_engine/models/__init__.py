"""Data models for the workflow execution engine."""

from .core import (
    ExecutionStatusEnum,
    NodeResultStatus,
    ProgressPhase,
    LogEventType,
    NodeDefinition,
    EdgeDefinition,
    WorkflowGraph,
    ValidationIssue,
    ValidationResult,
    NodeExecutionResult,
    ErrorLogEntry,
    ExecutionSnapshot,
)

__all__ = [
    "ExecutionStatusEnum",
    "NodeResultStatus",
    "ProgressPhase",
    "LogEventType",
    "NodeDefinition",
    "EdgeDefinition",
    "WorkflowGraph",
    "ValidationIssue",
    "ValidationResult",
    "NodeExecutionResult",
    "ErrorLogEntry",
    "ExecutionSnapshot",
]
