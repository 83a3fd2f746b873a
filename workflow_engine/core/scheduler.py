"""Dependency-ordered scheduling of workflow nodes using Kahn's algorithm."""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List

from ..models.core import WorkflowGraph
from .exceptions import SchedulingError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionPlan:
    """Order of execution fixed once per run.

    In sequential mode every group holds exactly one node; in parallel mode
    each group is one wave of simultaneously ready nodes.
    """

    parallel: bool
    groups: List[List[str]] = field(default_factory=list)

    @property
    def order(self) -> List[str]:
        return [node_id for group in self.groups for node_id in group]

    def __len__(self) -> int:
        return sum(len(group) for group in self.groups)


class ExecutionScheduler:
    """Computes deterministic execution orders for acyclic graphs.

    Ties between nodes that become ready at the same moment are broken by
    their declaration order in the graph.
    """

    def plan(self, graph: WorkflowGraph, parallel: bool = False) -> ExecutionPlan:
        """Build the execution plan for a run."""
        if parallel:
            groups = self.ready_groups(graph)
        else:
            groups = [[node_id] for node_id in self.execution_order(graph)]
        logger.debug(f"Planned {len(groups)} group(s) for workflow '{graph.id}' (parallel={parallel})")
        return ExecutionPlan(parallel=parallel, groups=groups)

    def execution_order(self, graph: WorkflowGraph) -> List[str]:
        """
        Flatten Kahn's algorithm into one global order.

        Nodes start in declaration order; nodes freed by removing one node
        are appended in declaration order.

        Raises:
            SchedulingError: If some nodes can never become ready
        """
        in_degree, adjacency, position = self._build(graph)

        queue = deque(node_id for node_id in position if in_degree[node_id] == 0)
        order: List[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)

            freed = []
            for neighbor in adjacency[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    freed.append(neighbor)
            queue.extend(sorted(freed, key=position.__getitem__))

        self._ensure_complete(position, order)
        return order

    def ready_groups(self, graph: WorkflowGraph) -> List[List[str]]:
        """
        Bucket nodes into waves that may run concurrently.

        Each wave holds every node whose dependencies all lie in earlier
        waves; readiness is recomputed after the whole previous wave is
        removed.

        Raises:
            SchedulingError: If some nodes can never become ready
        """
        in_degree, adjacency, position = self._build(graph)

        wave = [node_id for node_id in position if in_degree[node_id] == 0]
        groups: List[List[str]] = []

        while wave:
            groups.append(wave)
            freed = set()
            for node_id in wave:
                for neighbor in adjacency[node_id]:
                    in_degree[neighbor] -= 1
                    if in_degree[neighbor] == 0:
                        freed.add(neighbor)
            wave = sorted(freed, key=position.__getitem__)

        self._ensure_complete(position, [node_id for group in groups for node_id in group])
        return groups

    @staticmethod
    def _build(graph: WorkflowGraph):
        position: Dict[str, int] = graph.declaration_index()
        in_degree: Dict[str, int] = {node_id: 0 for node_id in position}
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in position}

        for edge in graph.edges:
            if edge.source not in position or edge.target not in position:
                raise SchedulingError(
                    f"Edge '{edge.id}' references a node that is not in the graph",
                    details={"edge_id": edge.id}
                )
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        return in_degree, adjacency, position

    @staticmethod
    def _ensure_complete(position: Dict[str, int], scheduled: List[str]) -> None:
        if len(scheduled) == len(position):
            return
        done = set(scheduled)
        unscheduled = [node_id for node_id in position if node_id not in done]
        raise SchedulingError(
            f"Cannot schedule {len(unscheduled)} node(s) involved in circular dependencies",
            unscheduled=unscheduled
        )
