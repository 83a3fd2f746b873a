"""Run-scoped execution state and the cooperative cancellation signal."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.core import (
    ErrorLogEntry,
    ExecutionSnapshot,
    ExecutionStatusEnum,
    NodeExecutionResult,
    NodeResultStatus,
)
from .exceptions import ExecutionEngineError
from .logging import get_logger

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    ExecutionStatusEnum.PENDING: {
        ExecutionStatusEnum.RUNNING,
        ExecutionStatusEnum.CANCELLED,
        ExecutionStatusEnum.FAILED,
    },
    ExecutionStatusEnum.RUNNING: {
        ExecutionStatusEnum.COMPLETED,
        ExecutionStatusEnum.FAILED,
        ExecutionStatusEnum.CANCELLED,
    },
    ExecutionStatusEnum.COMPLETED: set(),
    ExecutionStatusEnum.FAILED: set(),
    ExecutionStatusEnum.CANCELLED: set(),
}


def generate_execution_id() -> str:
    return f"exec_{uuid.uuid4().hex}"


class CancellationToken:
    """Shared cancellation signal, safe to trigger from any thread.

    The engine polls it between groups and nodes; running handlers are
    never interrupted.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Execution cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ExecutionContext:
    """Mutable state of one workflow run.

    Created pending, mutated only by the engine during its run, and frozen
    once a terminal status is reached. Concurrent nodes write distinct
    result keys; error log appends are serialized by a lock.
    """

    def __init__(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
        planned_nodes: Optional[List[str]] = None,
        execution_id: Optional[str] = None,
    ):
        self.workflow_id = workflow_id
        self.execution_id = execution_id or generate_execution_id()
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None
        self.status = ExecutionStatusEnum.PENDING
        self.variables: Dict[str, Any] = dict(variables or {})
        self.results: Dict[str, Any] = {}
        self.node_results: Dict[str, NodeExecutionResult] = {}
        self.errors: List[ErrorLogEntry] = []
        self.planned_nodes: List[str] = list(planned_nodes or [])
        self._error_lock = threading.Lock()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, status: ExecutionStatusEnum) -> None:
        """
        Move the run to a new status.

        Raises:
            ExecutionEngineError: If the state machine forbids the transition
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise ExecutionEngineError(
                f"Illegal status transition {self.status.value} -> {status.value}",
                execution_id=self.execution_id,
                workflow_id=self.workflow_id
            )
        logger.debug(f"Execution {self.execution_id}: {self.status.value} -> {status.value}")
        self.status = status
        if status.is_terminal:
            self.completed_at = datetime.now(timezone.utc)

    def record_result(self, result: NodeExecutionResult) -> None:
        """Store a node's terminal outcome; failures leave the results map untouched."""
        self._ensure_mutable()
        self.node_results[result.node_id] = result
        if result.status != NodeResultStatus.FAILURE:
            self.results[result.node_id] = result.output

    def append_error(self, node_id: str, message: str, error_type: Optional[str] = None) -> ErrorLogEntry:
        self._ensure_mutable()
        entry = ErrorLogEntry(
            node_id=node_id,
            message=message,
            timestamp=datetime.now(timezone.utc),
            error_type=error_type
        )
        with self._error_lock:
            self.errors.append(entry)
        return entry

    def get_node_result(self, node_id: str) -> Optional[NodeExecutionResult]:
        return self.node_results.get(node_id)

    def progress(self) -> float:
        """Percentage of planned nodes with a terminal outcome."""
        if not self.planned_nodes:
            return 100.0 if self.status == ExecutionStatusEnum.COMPLETED else 0.0
        return len(self.node_results) / len(self.planned_nodes) * 100

    def snapshot(self) -> ExecutionSnapshot:
        with self._error_lock:
            errors = list(self.errors)
        return ExecutionSnapshot(
            workflow_id=self.workflow_id,
            execution_id=self.execution_id,
            status=self.status,
            started_at=self.started_at,
            completed_at=self.completed_at,
            variables=dict(self.variables),
            results=dict(self.results),
            errors=errors,
            node_results=dict(self.node_results),
            progress=self.progress()
        )

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise ExecutionEngineError(
                f"Execution {self.execution_id} is {self.status.value} and can no longer change",
                execution_id=self.execution_id,
                workflow_id=self.workflow_id
            )

    def __repr__(self) -> str:
        return f"ExecutionContext(execution_id={self.execution_id!r}, status={self.status.value!r})"
