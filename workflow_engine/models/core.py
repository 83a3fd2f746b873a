"""Core Pydantic models for the workflow execution engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionStatusEnum(str, Enum):
    """Enumeration of workflow execution statuses."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatusEnum.COMPLETED, ExecutionStatusEnum.FAILED, ExecutionStatusEnum.CANCELLED)


class NodeResultStatus(str, Enum):
    """Terminal outcome of a single node."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ProgressPhase(str, Enum):
    """Phases reported to progress observers."""
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class LogEventType(str, Enum):
    """Enumeration of execution log event types."""
    NODE_START = "node_start"
    NODE_COMPLETE = "node_complete"
    NODE_ERROR = "node_error"
    NODE_SKIPPED = "node_skipped"
    NODE_RETRY = "node_retry"
    UNKNOWN_TYPE_FALLBACK = "unknown_type_fallback"
    WORKFLOW_START = "workflow_start"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_CANCELLED = "workflow_cancelled"


class NodeDefinition(BaseModel):
    """Definition of a workflow node."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique identifier for the node")
    type: str = Field(..., description="Type tag used to select the node handler")
    config: Dict[str, Any] = Field(default_factory=dict, description="Type-specific configuration")
    label: Optional[str] = Field(None, description="Display label, unused by execution")
    position: Optional[Dict[str, float]] = Field(None, description="Canvas position, unused by execution")

    @field_validator('id', 'type')
    @classmethod
    def validate_not_blank(cls, value):
        """Ensure identifiers are not blank."""
        if not value or not value.strip():
            raise ValueError("Node id and type cannot be empty")
        return value.strip()


class EdgeDefinition(BaseModel):
    """Directed dependency from one node's output to another node's input.

    Dangling references and self-loops are accepted here and reported by
    the validator instead.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Unique identifier for the edge")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")

    @field_validator('id', 'source', 'target')
    @classmethod
    def validate_not_blank(cls, value):
        if not value or not value.strip():
            raise ValueError("Edge id, source and target cannot be empty")
        return value.strip()


class WorkflowGraph(BaseModel):
    """Serializable workflow document: ``{nodes, edges, version}``.

    Node order is significant; the scheduler breaks ties by declaration
    order.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default="workflow", description="Workflow identifier")
    name: Optional[str] = Field(None, description="Human readable name")
    version: str = Field(default="1.0", description="Document version")
    nodes: List[NodeDefinition] = Field(default_factory=list, description="Nodes in declaration order")
    edges: List[EdgeDefinition] = Field(default_factory=list, description="Dependency edges")

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[NodeDefinition]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[EdgeDefinition]:
        return [edge for edge in self.edges if edge.target == node_id]

    def declaration_index(self) -> Dict[str, int]:
        """Map node id to its first position in the node list."""
        index: Dict[str, int] = {}
        for position, node in enumerate(self.nodes):
            index.setdefault(node.id, position)
        return index


class ValidationIssue(BaseModel):
    """A blocking error or advisory warning produced by validation."""
    model_config = ConfigDict(frozen=True)

    message: str = Field(..., description="Human readable description")
    code: str = Field(..., description="Machine readable issue tag")
    node_id: Optional[str] = Field(None, description="Node the issue refers to")
    edge_id: Optional[str] = Field(None, description="Edge the issue refers to")


class ValidationResult(BaseModel):
    """Result of graph validation."""
    is_valid: bool = Field(..., description="Whether the graph may be executed")
    errors: List[ValidationIssue] = Field(default_factory=list, description="Blocking errors")
    warnings: List[ValidationIssue] = Field(default_factory=list, description="Non-blocking warnings")

    def error_messages(self) -> List[str]:
        return [issue.message for issue in self.errors]


class NodeExecutionResult(BaseModel):
    """Outcome of one node's supervised execution."""
    node_id: str
    status: NodeResultStatus
    output: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    started_at: datetime
    ended_at: datetime
    retries: int = Field(0, description="Retries consumed beyond the first attempt")
    attempts: int = Field(0, description="Handler invocations made")

    @property
    def duration(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


class ErrorLogEntry(BaseModel):
    """Entry in a run's append-only error log."""
    node_id: str
    message: str
    timestamp: datetime
    error_type: Optional[str] = None


class ExecutionSnapshot(BaseModel):
    """Serializable view of an execution context."""
    workflow_id: str
    execution_id: str
    status: ExecutionStatusEnum
    started_at: datetime
    completed_at: Optional[datetime] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    results: Dict[str, Any] = Field(default_factory=dict)
    errors: List[ErrorLogEntry] = Field(default_factory=list)
    node_results: Dict[str, NodeExecutionResult] = Field(default_factory=dict)
    progress: float = Field(0.0, description="Percentage of planned nodes with a terminal outcome")
