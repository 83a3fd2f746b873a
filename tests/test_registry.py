"""Tests for the handler registry."""

import pytest

from workflow_engine.core.exceptions import HandlerRegistryError
from workflow_engine.core.registry import HandlerRegistry
from workflow_engine.models.core import NodeDefinition
from workflow_engine.nodes.base import FunctionHandler, NodeHandler


class UppercaseHandler(NodeHandler):
    type_tag = "uppercase"
    description = "Uppercase a string"
    required_fields = ["field"]

    def execute(self, config, input_data):
        return str(input_data[config["field"]]).upper()


class TestHandlerRegistry:

    def test_register_handler_instance(self):
        registry = HandlerRegistry()
        handler = registry.register("uppercase", UppercaseHandler())

        assert registry.get("uppercase") is handler
        assert "uppercase" in registry
        assert len(registry) == 1

    def test_register_plain_callable(self):
        registry = HandlerRegistry()

        def add_one(config, input_data):
            """Add one to the input."""
            return input_data + 1

        handler = registry.register("add", add_one, required_fields=["x"])

        assert isinstance(handler, FunctionHandler)
        assert handler.description == "Add one to the input."
        assert handler.execute({}, 1) == 2
        assert registry.required_fields_table() == {"add": ["x"]}

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry([UppercaseHandler()])

        with pytest.raises(HandlerRegistryError):
            registry.register("uppercase", UppercaseHandler())

    def test_replace_allows_overwrite(self):
        registry = HandlerRegistry([UppercaseHandler()])
        replacement = UppercaseHandler()

        registry.register("uppercase", replacement, replace=True)

        assert registry.get("uppercase") is replacement

    def test_empty_type_tag_rejected(self):
        with pytest.raises(HandlerRegistryError):
            HandlerRegistry().register("  ", lambda config, input_data: None)

    def test_non_callable_rejected(self):
        with pytest.raises(HandlerRegistryError):
            HandlerRegistry().register("bad", "not a handler")

    def test_unregister(self):
        registry = HandlerRegistry([UppercaseHandler()])

        assert registry.unregister("uppercase")
        assert not registry.unregister("uppercase")
        assert registry.get("uppercase") is None

    def test_missing_config_fields(self):
        registry = HandlerRegistry([UppercaseHandler()])

        assert registry.missing_config_fields(NodeDefinition(id="n", type="uppercase")) == ["field"]
        assert registry.missing_config_fields(NodeDefinition(id="n", type="unknown")) == []

    def test_builtins(self):
        registry = HandlerRegistry.with_builtins()

        assert set(registry.type_tags()) == {
            "database", "api", "loop", "transform", "schedule",
            "webhook", "email", "notification", "ai-task", "conditional",
        }
        table = registry.required_fields_table()
        assert table["database"] == ["connection_string", "query"]
        assert table["api"] == ["url", "method"]
        assert table["ai-task"] == ["model", "task"]
        assert table["transform"] == []

    def test_describe(self):
        registry = HandlerRegistry([UppercaseHandler()])

        assert registry.describe() == [{
            "type": "uppercase",
            "description": "Uppercase a string",
            "required_fields": ["field"],
        }]
