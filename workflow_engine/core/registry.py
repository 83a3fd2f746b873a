"""Handler registry mapping node type tags to their handlers."""

import inspect
from typing import Any, Callable, Dict, List, Optional, Union

from ..models.core import NodeDefinition
from ..nodes.base import FunctionHandler, NodeHandler
from .exceptions import HandlerRegistryError
from .logging import get_logger

logger = get_logger(__name__)

HandlerLike = Union[NodeHandler, Callable[..., Any]]


class HandlerRegistry:
    """Registry of node handlers, supplied to the engine at construction.

    Adding a node type means registering a handler here; the engine never
    switches on type tags itself.
    """

    def __init__(self, handlers: Optional[List[NodeHandler]] = None):
        """Initialize the registry.

        Args:
            handlers: Optional handler instances to register immediately
        """
        self._handlers: Dict[str, NodeHandler] = {}
        for handler in handlers or []:
            self.register(handler.type_tag, handler)

    @classmethod
    def with_builtins(cls, **handler_options) -> "HandlerRegistry":
        """Create a registry pre-populated with the built-in node handlers."""
        from ..nodes import builtin_handlers

        return cls(builtin_handlers(**handler_options))

    def register(
        self,
        type_tag: str,
        handler: HandlerLike,
        description: str = "",
        required_fields: Optional[List[str]] = None,
        replace: bool = False,
    ) -> NodeHandler:
        """Register a handler for a node type.

        Args:
            type_tag: Node type the handler serves
            handler: A NodeHandler instance or a ``fn(config, input_data)`` callable
            description: Description used when wrapping a plain callable
            required_fields: Required config fields when wrapping a plain callable
            replace: Allow overwriting an existing registration

        Returns:
            The registered NodeHandler

        Raises:
            HandlerRegistryError: If the tag is empty, already taken, or the handler is invalid
        """
        if not type_tag or not type_tag.strip():
            raise HandlerRegistryError("Handler type tag cannot be empty", operation="register")

        type_tag = type_tag.strip()

        if type_tag in self._handlers and not replace:
            raise HandlerRegistryError(
                f"Handler for node type '{type_tag}' is already registered",
                type_tag=type_tag,
                operation="register"
            )

        if isinstance(handler, NodeHandler):
            resolved = handler
        elif callable(handler):
            try:
                sig = inspect.signature(handler)
            except (ValueError, TypeError) as e:
                raise HandlerRegistryError(
                    f"Cannot inspect signature for handler '{type_tag}': {e}",
                    type_tag=type_tag,
                    operation="register"
                )
            if len(sig.parameters) < 2:
                logger.warning(f"Handler '{type_tag}' accepts fewer than two parameters (config, input_data)")
            resolved = FunctionHandler(type_tag, handler, description, required_fields)
        else:
            raise HandlerRegistryError(
                f"Handler for '{type_tag}' must be a NodeHandler or a callable",
                type_tag=type_tag,
                operation="register"
            )

        self._handlers[type_tag] = resolved
        logger.info(f"Registered handler for node type '{type_tag}'")
        return resolved

    def unregister(self, type_tag: str) -> bool:
        """Remove a handler. Returns False if the type was not registered."""
        removed = self._handlers.pop(type_tag, None)
        if removed is not None:
            logger.info(f"Unregistered handler for node type '{type_tag}'")
        return removed is not None

    def get(self, type_tag: str) -> Optional[NodeHandler]:
        """Return the handler for a type tag, or None when unknown."""
        return self._handlers.get(type_tag)

    def has(self, type_tag: str) -> bool:
        return type_tag in self._handlers

    def type_tags(self) -> List[str]:
        return list(self._handlers)

    def describe(self) -> List[Dict[str, Any]]:
        """Describe every registered handler for host listings."""
        return [handler.describe() for handler in self._handlers.values()]

    def required_fields_table(self) -> Dict[str, List[str]]:
        """Type tag to statically required config fields."""
        return {tag: list(handler.required_fields) for tag, handler in self._handlers.items()}

    def missing_config_fields(self, node: NodeDefinition) -> List[str]:
        """Required config fields the node lacks; unknown types require nothing."""
        handler = self._handlers.get(node.type)
        if handler is None:
            return []
        return handler.validate(node.config)

    def __contains__(self, type_tag: str) -> bool:
        return type_tag in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
