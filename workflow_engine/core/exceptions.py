"""Custom exceptions for the workflow execution engine with detailed error information."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    SCHEDULING = "scheduling"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CANCELLATION = "cancellation"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class GraphValidationError(WorkflowEngineError):
    """Raised when a caller asks to run a graph that failed validation."""

    def __init__(
        self,
        message: str,
        validation_result: Optional[Any] = None,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_result = validation_result
        if workflow_id:
            self.add_context(workflow_id=workflow_id)
        if validation_result is not None:
            self.add_details(
                errors=[issue.model_dump(exclude_none=True) for issue in validation_result.errors],
                warnings=[issue.model_dump(exclude_none=True) for issue in validation_result.warnings]
            )


class SchedulingError(WorkflowEngineError):
    """Raised when no complete execution order exists for a graph."""

    def __init__(self, message: str, unscheduled: Optional[list] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.SCHEDULING,
            **kwargs
        )
        self.unscheduled = list(unscheduled or [])
        if self.unscheduled:
            self.add_details(unscheduled=self.unscheduled)


class NodeExecutionError(WorkflowEngineError):
    """Raised when a node handler reports a failure."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        super().__init__(message, recoverable=True, **kwargs)
        self.node_id = node_id
        if node_id:
            self.add_context(node_id=node_id)
        if execution_id:
            self.add_context(execution_id=execution_id)
        if attempts is not None:
            self.add_details(attempts=attempts)


class NodeTimeoutError(NodeExecutionError):
    """Raised when a node handler does not settle before its deadline."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(
            message,
            error_code="TimeoutError",
            category=ErrorCategory.TIMEOUT,
            **kwargs
        )
        self.timeout = timeout
        if timeout is not None:
            self.add_details(timeout=timeout)


class NodeSkipped(Exception):
    """Raised by a handler to end its node with status ``skipped``.

    Not an error: the supervisor records the skip without retrying.
    """

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason


class WorkflowCancelledError(WorkflowEngineError):
    """Raised when cooperative cancellation is observed."""

    def __init__(self, message: str = "Workflow execution cancelled", execution_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.CANCELLATION,
            **kwargs
        )
        if execution_id:
            self.add_context(execution_id=execution_id)


class HandlerRegistryError(WorkflowEngineError):
    """Raised when handler registry operations fail."""

    def __init__(
        self,
        message: str,
        type_tag: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if type_tag:
            self.add_context(type_tag=type_tag)
        if operation:
            self.add_context(operation=operation)


class ExecutionEngineError(WorkflowEngineError):
    """Raised when execution engine operations fail."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if execution_id:
            self.add_context(execution_id=execution_id)
        if workflow_id:
            self.add_context(workflow_id=workflow_id)


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
