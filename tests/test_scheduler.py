"""Tests for dependency-ordered scheduling."""

import pytest

from workflow_engine.core.exceptions import SchedulingError
from workflow_engine.core.scheduler import ExecutionScheduler
from workflow_engine.models.core import EdgeDefinition

from tests.conftest import make_graph


@pytest.fixture
def scheduler():
    return ExecutionScheduler()


class TestExecutionOrder:
    """Sequential (flattened) ordering."""

    def test_independent_node_keeps_declaration_position(self, scheduler):
        graph = make_graph(["A", "B", "C", "D"], edges=[("A", "B"), ("B", "C")])
        assert scheduler.execution_order(graph) == ["A", "D", "B", "C"]

    def test_every_edge_respected(self, scheduler):
        edges = [("E", "B"), ("A", "B"), ("B", "C"), ("D", "C"), ("C", "F")]
        graph = make_graph(["A", "B", "C", "D", "E", "F"], edges=edges)

        order = scheduler.execution_order(graph)

        assert sorted(order) == sorted(graph.node_ids())
        for source, target in edges:
            assert order.index(source) < order.index(target)

    def test_nodes_freed_together_follow_declaration_order(self, scheduler):
        graph = make_graph(["root", "z", "y", "x"], edges=[("root", "x"), ("root", "z"), ("root", "y")])
        assert scheduler.execution_order(graph) == ["root", "z", "y", "x"]

    def test_cycle_raises_scheduling_error(self, scheduler):
        graph = make_graph(["A", "B", "C"], edges=[("A", "B"), ("B", "C"), ("C", "B")])

        with pytest.raises(SchedulingError) as exc_info:
            scheduler.execution_order(graph)

        assert exc_info.value.unscheduled == ["B", "C"]

    def test_dangling_edge_raises_scheduling_error(self, scheduler):
        graph = make_graph(["A"])
        graph.edges.append(EdgeDefinition(id="e9", source="A", target="missing"))

        with pytest.raises(SchedulingError):
            scheduler.execution_order(graph)


class TestReadyGroups:
    """Parallel wave grouping."""

    def test_waves(self, scheduler):
        graph = make_graph(["A", "B", "C", "D"], edges=[("A", "B"), ("B", "C")])
        assert scheduler.ready_groups(graph) == [["A", "D"], ["B"], ["C"]]

    def test_diamond_joins_after_both_branches(self, scheduler):
        graph = make_graph(
            ["A", "B", "C", "D"],
            edges=[("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]
        )
        assert scheduler.ready_groups(graph) == [["A"], ["B", "C"], ["D"]]

    def test_no_intra_group_dependencies(self, scheduler):
        edges = [("a", "c"), ("b", "c"), ("c", "e"), ("d", "e"), ("a", "d")]
        graph = make_graph(["a", "b", "c", "d", "e"], edges=edges)

        groups = scheduler.ready_groups(graph)
        position = {node_id: index for index, group in enumerate(groups) for node_id in group}

        for source, target in edges:
            assert position[source] < position[target]

    def test_cycle_raises_scheduling_error(self, scheduler):
        graph = make_graph(["A", "B"], edges=[("A", "B"), ("B", "A")])

        with pytest.raises(SchedulingError):
            scheduler.ready_groups(graph)


class TestPlan:

    def test_sequential_plan_has_single_node_groups(self, scheduler):
        graph = make_graph(["A", "B", "C", "D"], edges=[("A", "B"), ("B", "C")])
        plan = scheduler.plan(graph, parallel=False)

        assert plan.groups == [["A"], ["D"], ["B"], ["C"]]
        assert plan.order == ["A", "D", "B", "C"]
        assert len(plan) == 4

    def test_parallel_plan_uses_waves(self, scheduler):
        graph = make_graph(["A", "B", "C", "D"], edges=[("A", "B"), ("B", "C")])
        plan = scheduler.plan(graph, parallel=True)

        assert plan.parallel
        assert plan.groups == [["A", "D"], ["B"], ["C"]]
