"""Input resolution and type dispatch for single nodes."""

import asyncio
import functools
import logging
from typing import Any

from ..models.core import LogEventType, NodeDefinition, WorkflowGraph
from .context import ExecutionContext
from .logging import get_logger, log_with_context
from .registry import HandlerRegistry

logger = get_logger(__name__)


class NodeDispatcher:
    """Resolves a node's input and invokes the handler registered for its type."""

    def __init__(self, registry: HandlerRegistry):
        self.registry = registry

    def resolve_input(self, graph: WorkflowGraph, node_id: str, context: ExecutionContext) -> Any:
        """
        Build the input a node receives.

        - no incoming edges: a shallow copy of the run's variables mapping
        - one incoming edge: that upstream node's result, verbatim
        - several incoming edges: ``{upstream_id: result}`` in edge order
        """
        incoming = graph.incoming_edges(node_id)

        if not incoming:
            return dict(context.variables)

        if len(incoming) == 1:
            return context.results.get(incoming[0].source)

        return {edge.source: context.results.get(edge.source) for edge in incoming}

    async def execute_node(self, node: NodeDefinition, resolved_input: Any) -> Any:
        """
        Invoke the node's handler.

        Coroutine handlers are awaited on the running loop; synchronous
        handlers run in the loop's default executor. Unknown node types pass
        their input through unchanged.
        """
        handler = self.registry.get(node.type)

        if handler is None:
            log_with_context(
                logger, logging.INFO,
                f"No handler registered for node type '{node.type}', passing input through for node {node.id}",
                event_type=LogEventType.UNKNOWN_TYPE_FALLBACK.value,
                node_id=node.id,
                node_type=node.type
            )
            return resolved_input

        if handler.is_async:
            return await handler.execute(node.config, resolved_input)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(handler.execute, node.config, resolved_input)
        )
