"""Built-in node handlers for the workflow execution engine."""

from typing import List, Optional

import httpx

from .base import NodeHandler, FunctionHandler
from .data_nodes import DatabaseHandler, LoopHandler, TransformHandler, ConditionalHandler
from .integration_nodes import (
    ApiHandler,
    ScheduleHandler,
    WebhookHandler,
    EmailHandler,
    NotificationHandler,
    AITaskHandler,
)


def builtin_handlers(http_transport: Optional[httpx.AsyncBaseTransport] = None) -> List[NodeHandler]:
    """Fresh instances of every built-in handler."""
    return [
        DatabaseHandler(),
        ApiHandler(transport=http_transport),
        LoopHandler(),
        TransformHandler(),
        ScheduleHandler(),
        WebhookHandler(),
        EmailHandler(),
        NotificationHandler(),
        AITaskHandler(),
        ConditionalHandler(),
    ]


__all__ = [
    "NodeHandler",
    "FunctionHandler",
    "DatabaseHandler",
    "LoopHandler",
    "TransformHandler",
    "ConditionalHandler",
    "ApiHandler",
    "ScheduleHandler",
    "WebhookHandler",
    "EmailHandler",
    "NotificationHandler",
    "AITaskHandler",
    "builtin_handlers",
]
