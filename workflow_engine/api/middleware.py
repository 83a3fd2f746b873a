"""Request tracing and error handling middleware."""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.exceptions import (
    ConfigurationError,
    ExecutionEngineError,
    GraphValidationError,
    HandlerRegistryError,
    SchedulingError,
    WorkflowEngineError,
    create_error_response,
)
from ..core.logging import get_logger

logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id, logs its duration and maps engine errors to JSON."""

    def __init__(self, app, slow_request_threshold: float = 5.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()

        try:
            response = await call_next(request)
        except WorkflowEngineError as e:
            duration = time.time() - start_time
            logger.warning(
                f"Workflow engine error: {request.method} {request.url.path} - "
                f"Error: {e.error_code} - Duration: {duration:.3f}s",
                extra={"extra_fields": {"request_id": request_id, "error": e.to_dict()}}
            )
            return JSONResponse(
                status_code=self._get_status_code_for_error(e),
                content=create_error_response(e),
                headers={"X-Request-ID": request_id}
            )
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Unexpected error: {request.method} {request.url.path} - "
                f"Error: {e} - Duration: {duration:.3f}s",
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.now(timezone.utc).isoformat()
                    },
                    "request_id": request_id
                },
                headers={"X-Request-ID": request_id}
            )

        duration = time.time() - start_time
        if duration > self.slow_request_threshold:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {duration:.3f}s")
        else:
            logger.debug(f"Request completed: {request.method} {request.url.path} - "
                         f"Status: {response.status_code} - Duration: {duration:.3f}s")

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response

    @staticmethod
    def _get_status_code_for_error(error: WorkflowEngineError) -> int:
        if isinstance(error, GraphValidationError):
            return 400
        if isinstance(error, (SchedulingError, HandlerRegistryError)):
            return 422
        if isinstance(error, ExecutionEngineError) and "not found" in error.message.lower():
            return 404
        if isinstance(error, ConfigurationError):
            return 500
        return 500
