"""Structural validation of workflow graphs."""

from collections import Counter
from typing import Dict, List, Optional

from ..models.core import WorkflowGraph, ValidationIssue, ValidationResult
from .logging import get_logger
from .registry import HandlerRegistry

logger = get_logger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


class WorkflowValidator:
    """Checks a graph for blocking errors and advisory warnings.

    Validation is pure: it never mutates the graph, and repeated calls on
    an unmodified graph return equal results.
    """

    def __init__(self, registry: Optional[HandlerRegistry] = None):
        """Initialize the validator.

        Args:
            registry: Handler registry consulted for required configuration
                fields. Without one, no per-type field checks are made.
        """
        self.registry = registry

    def validate(self, graph: WorkflowGraph) -> ValidationResult:
        """
        Validate a graph for structural correctness.

        Checks, in order: non-empty node set and unique node ids, edge
        references, isolated nodes (warning), cycles, and required
        configuration fields per node type.

        Args:
            graph: The graph to validate

        Returns:
            ValidationResult with errors and warnings in check order
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        self._check_nodes(graph, errors)
        self._check_edge_references(graph, errors)
        self._check_isolated_nodes(graph, warnings)
        self._check_cycles(graph, errors)
        self._check_required_fields(graph, errors)

        result = ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
        logger.debug(f"Validated workflow '{graph.id}'. Valid: {result.is_valid}, "
                     f"Errors: {len(errors)}, Warnings: {len(warnings)}")
        return result

    def _check_nodes(self, graph: WorkflowGraph, errors: List[ValidationIssue]) -> None:
        if not graph.nodes:
            errors.append(ValidationIssue(
                code="empty_workflow",
                message="Workflow must contain at least one node"
            ))
            return

        counts = Counter(node.id for node in graph.nodes)
        for node_id, count in counts.items():
            if count > 1:
                errors.append(ValidationIssue(
                    code="duplicate_node",
                    node_id=node_id,
                    message=f"Node id '{node_id}' is declared {count} times"
                ))

    def _check_edge_references(self, graph: WorkflowGraph, errors: List[ValidationIssue]) -> None:
        node_ids = set(graph.node_ids())
        for edge in graph.edges:
            missing = [node_id for node_id in (edge.source, edge.target) if node_id not in node_ids]
            if missing:
                names = ", ".join(f"'{node_id}'" for node_id in dict.fromkeys(missing))
                errors.append(ValidationIssue(
                    code="invalid_edge",
                    edge_id=edge.id,
                    message=f"Edge '{edge.id}' references non-existent node {names}"
                ))

    def _check_isolated_nodes(self, graph: WorkflowGraph, warnings: List[ValidationIssue]) -> None:
        if len(graph.nodes) <= 1:
            return

        connected = set()
        for edge in graph.edges:
            connected.add(edge.source)
            connected.add(edge.target)

        for node in graph.nodes:
            if node.id not in connected:
                warnings.append(ValidationIssue(
                    code="isolated_node",
                    node_id=node.id,
                    message=f"Node '{node.label or node.id}' is not connected to any other nodes"
                ))

    def _check_cycles(self, graph: WorkflowGraph, errors: List[ValidationIssue]) -> None:
        closing_node = self.find_cycle(graph)
        if closing_node is not None:
            errors.append(ValidationIssue(
                code="cycle",
                node_id=closing_node,
                message=f"Workflow contains circular dependencies through node '{closing_node}'"
            ))

    def _check_required_fields(self, graph: WorkflowGraph, errors: List[ValidationIssue]) -> None:
        if self.registry is None:
            return

        for node in graph.nodes:
            for field in self.registry.missing_config_fields(node):
                errors.append(ValidationIssue(
                    code="missing_field",
                    node_id=node.id,
                    message=f"Node '{node.id}' is missing required field: {field}"
                ))

    @staticmethod
    def find_cycle(graph: WorkflowGraph) -> Optional[str]:
        """
        Three-color depth-first search for a cycle.

        Edges with a dangling endpoint are ignored. Traversal is iterative
        so deep chains do not exhaust the interpreter stack.

        Returns:
            The node id a back edge points to (a gray node), or None when acyclic
        """
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in graph.node_ids()}
        for edge in graph.edges:
            if edge.source in adjacency and edge.target in adjacency:
                adjacency[edge.source].append(edge.target)

        color = {node_id: WHITE for node_id in adjacency}

        for root in adjacency:
            if color[root] != WHITE:
                continue

            color[root] = GRAY
            stack = [(root, iter(adjacency[root]))]
            while stack:
                node_id, neighbors = stack[-1]
                advanced = False
                for neighbor in neighbors:
                    if color[neighbor] == GRAY:
                        return neighbor
                    if color[neighbor] == WHITE:
                        color[neighbor] = GRAY
                        stack.append((neighbor, iter(adjacency[neighbor])))
                        advanced = True
                        break
                if not advanced:
                    color[node_id] = BLACK
                    stack.pop()

        return None
