"""Progress broadcasting for real-time run monitoring."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel

from ..core.execution_engine import ErrorHook, ProgressHook, WorkflowRun
from ..core.logging import get_logger
from ..models.core import ProgressPhase

logger = get_logger(__name__)


class MonitorEvent(BaseModel):
    """Event pushed to run subscribers."""
    event_type: str
    execution_id: str
    timestamp: datetime
    node_id: Optional[str] = None
    data: Dict[str, Any] = {}


class ProgressMonitor:
    """Fans run events out to per-subscriber asyncio queues.

    Hooks produced by ``progress_hook``/``error_hook`` are attached to a run
    before it is launched; WebSocket handlers consume the queues.
    """

    RUN_FINISHED = "run_finished"

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}
        logger.info("ProgressMonitor initialized")

    def subscribe(self, execution_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.setdefault(execution_id, set()).add(queue)
        logger.debug(f"New subscriber for execution {execution_id}")
        return queue

    def unsubscribe(self, execution_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(execution_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[execution_id]

    def subscriber_count(self, execution_id: Optional[str] = None) -> int:
        if execution_id is not None:
            return len(self._subscribers.get(execution_id, ()))
        return sum(len(queues) for queues in self._subscribers.values())

    def publish(self, event: MonitorEvent) -> int:
        """
        Deliver an event to every subscriber of its run.

        A full queue drops the new progress event, except ``run_finished``,
        which displaces the oldest queued event so streams always terminate.

        Returns:
            Number of subscribers the event reached
        """
        delivered = 0
        payload = event.model_dump(mode="json")
        for queue in list(self._subscribers.get(event.execution_id, ())):
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                if event.event_type != self.RUN_FINISHED:
                    logger.warning(f"Dropping {event.event_type} event for slow subscriber of {event.execution_id}")
                    continue
                dropped = queue.get_nowait()
                logger.warning(f"Dropping queued {dropped['event_type']} event to deliver "
                               f"{event.event_type} for {event.execution_id}")
                queue.put_nowait(payload)
                delivered += 1
        return delivered

    def progress_hook(self, execution_id: str) -> ProgressHook:
        def on_progress(node_id: str, phase: ProgressPhase) -> None:
            self.publish(MonitorEvent(
                event_type="node_progress",
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                node_id=node_id,
                data={"phase": phase.value}
            ))
        return on_progress

    def error_hook(self, execution_id: str) -> ErrorHook:
        def on_error(node_id: str, error: str) -> None:
            self.publish(MonitorEvent(
                event_type="node_error",
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                node_id=node_id,
                data={"error": error}
            ))
        return on_error

    def attach(self, run: WorkflowRun) -> WorkflowRun:
        """Route a pending run's hooks through this monitor."""
        run.on_progress = self.progress_hook(run.execution_id)
        run.on_error = self.error_hook(run.execution_id)
        return run

    def finished_event(self, run: WorkflowRun) -> MonitorEvent:
        return MonitorEvent(
            event_type=self.RUN_FINISHED,
            execution_id=run.execution_id,
            timestamp=datetime.now(timezone.utc),
            data={
                "status": run.status.value,
                "errors": [entry.model_dump(mode="json") for entry in run.context.errors]
            }
        )

    def run_finished(self, run: WorkflowRun) -> None:
        self.publish(self.finished_event(run))
        logger.debug(f"Published run_finished for execution {run.execution_id}")
