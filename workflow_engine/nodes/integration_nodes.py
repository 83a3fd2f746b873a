"""Integration node handlers: HTTP calls, schedules, webhooks, messaging and AI tasks.

Email, notification, webhook and AI task handlers report what was
requested; delivery belongs to the host application's collaborators.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from croniter import croniter

from ..core.logging import get_logger
from .base import NodeHandler, is_missing

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ApiHandler(NodeHandler):
    """Make an HTTP request with httpx.

    Config:
        url: Target URL (required)
        method: HTTP method (required)
        headers: Request headers
        params: Query parameters
        body: JSON body for POST/PUT/PATCH
        timeout: Request timeout in seconds (default: 30)

    Returns the parsed JSON body, or the text body when it is not JSON.
    Responses with status >= 400 raise ``httpx.HTTPStatusError`` so the
    supervisor can retry them.
    """

    type_tag = "api"
    description = "Call an HTTP API and return its response body"
    required_fields = ["url", "method"]

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def execute(self, config: Dict[str, Any], input_data: Any) -> Any:
        method = str(config.get("method", "GET")).upper()
        request_kwargs: Dict[str, Any] = {
            "method": method,
            "url": config["url"],
            "headers": config.get("headers") or {},
            "params": config.get("params") or {},
        }
        body = config.get("body")
        if body is not None and method in ("POST", "PUT", "PATCH"):
            request_kwargs["json"] = body

        logger.info(f"Calling {method} {config['url']}")

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=config.get("timeout", 30),
            follow_redirects=True,
        ) as client:
            response = await client.request(**request_kwargs)

        response.raise_for_status()

        try:
            return response.json()
        except ValueError:
            return response.text


class ScheduleHandler(NodeHandler):
    """Validate a cron expression and report its next fire time."""

    type_tag = "schedule"
    description = "Compute the next run of a cron schedule"
    required_fields = ["cron_expression"]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        cron_expression = config["cron_expression"]
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")

        next_run = croniter(cron_expression, _now()).get_next(datetime)
        return {
            "scheduled": True,
            "cron_expression": cron_expression,
            "next_run": next_run.isoformat(),
        }


class WebhookHandler(NodeHandler):
    type_tag = "webhook"
    description = "Register a webhook listener"
    required_fields = ["webhook_url"]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        return {
            "webhook_registered": True,
            "url": config["webhook_url"],
            "events": list(config.get("events") or []),
        }


class EmailHandler(NodeHandler):
    """Compose an email from ``to``, ``subject`` and ``body`` or ``template``."""

    type_tag = "email"
    description = "Send an email"
    required_fields = ["to", "subject"]

    def validate(self, config: Dict[str, Any]) -> List[str]:
        missing = super().validate(config)
        if is_missing(config.get("body")) and is_missing(config.get("template")):
            missing.append("body or template")
        return missing

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        recipients = config["to"]
        if isinstance(recipients, str):
            recipients = [recipients]
        logger.info(f"Sending email '{config['subject']}' to {len(recipients)} recipient(s)")
        return {
            "sent": True,
            "to": list(recipients),
            "subject": config["subject"],
            "timestamp": _now().isoformat(),
        }


class NotificationHandler(NodeHandler):
    type_tag = "notification"
    description = "Send a notification to a channel"
    required_fields = ["channel", "recipients"]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        logger.info(f"Sending notification on channel '{config['channel']}'")
        return {
            "sent": True,
            "channel": config["channel"],
            "recipients": list(config["recipients"]),
            "timestamp": _now().isoformat(),
        }


class AITaskHandler(NodeHandler):
    type_tag = "ai-task"
    description = "Run a task against an AI model"
    required_fields = ["model", "task"]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        return {
            "response": f"AI response for task: {config['task']}",
            "model": config["model"],
            "timestamp": _now().isoformat(),
        }
