"""Base capability shared by all node handlers."""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional


def is_missing(value: Any) -> bool:
    """True for absent config values: None, empty strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class NodeHandler:
    """A type-specific unit of work.

    Subclasses set ``type_tag``, list the configuration keys they cannot run
    without in ``required_fields``, and implement ``execute``. ``execute``
    may be a coroutine or a plain function; plain functions are run in a
    worker thread by the dispatcher.
    """

    type_tag: str = ""
    description: str = ""
    required_fields: List[str] = []

    def validate(self, config: Dict[str, Any]) -> List[str]:
        """Return the names of required configuration fields that are missing."""
        return [field for field in self.required_fields if is_missing(config.get(field))]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Any:
        raise NotImplementedError

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.execute)

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.type_tag,
            "description": self.description,
            "required_fields": list(self.required_fields),
        }


class FunctionHandler(NodeHandler):
    """Adapts a plain ``fn(config, input_data)`` callable to the handler capability."""

    def __init__(
        self,
        type_tag: str,
        function: Callable[..., Any],
        description: str = "",
        required_fields: Optional[List[str]] = None,
    ):
        self.type_tag = type_tag
        self.function = function
        self.description = description or (inspect.getdoc(function) or "").split("\n")[0]
        self.required_fields = list(required_fields or [])

    @property
    def is_async(self) -> bool:
        return asyncio.iscoroutinefunction(self.function)

    def execute(self, config: Dict[str, Any], input_data: Any) -> Any:
        return self.function(config, input_data)
