"""Tests for run progress broadcasting."""

import pytest

from workflow_engine.api.monitor import ProgressMonitor
from workflow_engine.models.core import ExecutionStatusEnum

from tests.conftest import make_graph


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestProgressMonitor:

    @pytest.mark.asyncio
    async def test_events_stream_in_order(self, engine):
        monitor = ProgressMonitor()
        run = monitor.attach(engine.create_run(make_graph(["A", "B"], edges=[("A", "B")])))
        queue = monitor.subscribe(run.execution_id)

        await run.execute()
        monitor.run_finished(run)

        events = drain(queue)
        assert [(event["node_id"], event["data"].get("phase")) for event in events[:-1]] == [
            ("A", "started"), ("A", "completed"), ("B", "started"), ("B", "completed"),
        ]
        assert events[-1]["event_type"] == ProgressMonitor.RUN_FINISHED
        assert events[-1]["data"]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_run_finished_survives_full_queue(self, engine):
        monitor = ProgressMonitor(queue_size=2)
        run = monitor.attach(engine.create_run(make_graph(["A", "B"], edges=[("A", "B")])))
        queue = monitor.subscribe(run.execution_id)

        await run.execute()
        assert queue.full()

        monitor.run_finished(run)
        events = drain(queue)

        assert len(events) == 2
        assert events[-1]["event_type"] == ProgressMonitor.RUN_FINISHED
        assert run.status == ExecutionStatusEnum.COMPLETED

    @pytest.mark.asyncio
    async def test_progress_dropped_when_queue_full(self, engine):
        monitor = ProgressMonitor(queue_size=1)
        run = monitor.attach(engine.create_run(make_graph(["A"])))
        queue = monitor.subscribe(run.execution_id)

        await run.execute()

        events = drain(queue)
        assert [event["data"]["phase"] for event in events] == ["started"]

    @pytest.mark.asyncio
    async def test_unsubscribed_queue_receives_nothing(self, engine):
        monitor = ProgressMonitor()
        run = monitor.attach(engine.create_run(make_graph(["A"])))
        queue = monitor.subscribe(run.execution_id)
        monitor.unsubscribe(run.execution_id, queue)

        await run.execute()

        assert queue.empty()
        assert monitor.subscriber_count() == 0
