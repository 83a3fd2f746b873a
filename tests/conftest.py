"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional

import pytest

from workflow_engine.core.execution_engine import ExecutionOptions, WorkflowEngine
from workflow_engine.core.registry import HandlerRegistry
from workflow_engine.models.core import EdgeDefinition, NodeDefinition, WorkflowGraph


def make_graph(
    node_ids: List[str],
    edges: Optional[List[tuple]] = None,
    node_type: str = "task",
    configs: Optional[Dict[str, Dict[str, Any]]] = None,
    types: Optional[Dict[str, str]] = None,
) -> WorkflowGraph:
    """Build a graph from node ids and ``(source, target)`` pairs."""
    configs = configs or {}
    types = types or {}
    return WorkflowGraph(
        id="test-workflow",
        nodes=[
            NodeDefinition(id=node_id, type=types.get(node_id, node_type), config={"name": node_id, **configs.get(node_id, {})})
            for node_id in node_ids
        ],
        edges=[
            EdgeDefinition(id=f"e{index}", source=source, target=target)
            for index, (source, target) in enumerate(edges or [], start=1)
        ]
    )


class CallRecorder:
    """Handler callable that records invocations and echoes a tagged result."""

    def __init__(self):
        self.calls: List[tuple] = []

    def __call__(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        self.calls.append((config.get("name"), input_data))
        return {"handled": config.get("name"), "input": input_data}

    @property
    def order(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def fast_options():
    """Execution options without backoff delays."""
    return ExecutionOptions(max_retries=3, retry_delay=0.0, node_timeout=2.0)


@pytest.fixture
def recorder():
    return CallRecorder()


@pytest.fixture
def registry(recorder):
    """Registry with a recording ``task`` handler."""
    registry = HandlerRegistry()
    registry.register("task", recorder, description="Records calls")
    return registry


@pytest.fixture
def builtin_registry():
    return HandlerRegistry.with_builtins()


@pytest.fixture
def engine(registry, fast_options):
    return WorkflowEngine(registry, options=fast_options)
