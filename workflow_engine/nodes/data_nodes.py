"""Data handling node handlers: database, loop, transform and conditional."""

from functools import reduce
from typing import Any, Dict, List

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

from ..core.logging import get_logger
from .base import NodeHandler, is_missing
from .expressions import evaluate

logger = get_logger(__name__)


class DatabaseHandler(NodeHandler):
    """Run a SQL statement against the configured database.

    Config:
        connection_string: SQLAlchemy URL, e.g. ``sqlite:///data.db`` (required)
        query: SQL text with ``:name`` bind parameters (required)
        params: Bind parameters; a mapping input is merged underneath them
    """

    type_tag = "database"
    description = "Execute a SQL query and return the resulting rows"
    required_fields = ["connection_string", "query"]

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        connection_string = config["connection_string"]
        query = config["query"]

        params: Dict[str, Any] = {}
        if isinstance(input_data, dict):
            params.update(input_data)
        params.update(config.get("params") or {})

        logger.info(f"Executing database query: {query}")

        engine = create_engine(connection_string)
        try:
            with engine.begin() as connection:
                statement = text(query)
                # Only pass the parameters the statement actually binds
                bound = {key: value for key, value in params.items() if key in statement.compile().params}
                result = connection.execute(statement, bound)
                if result.returns_rows:
                    rows = [dict(row._mapping) for row in result]
                    row_count = len(rows)
                else:
                    rows = []
                    row_count = result.rowcount
        finally:
            engine.dispose()

        return {
            "rows": rows,
            "row_count": row_count,
            "query": query,
            "database": config.get("database") or make_url(connection_string).database,
        }


class LoopHandler(NodeHandler):
    """Expand the input into per-iteration records.

    ``for`` loops emit ``iterations`` records of ``{index, input}``;
    ``forEach`` loops emit ``{index, item}`` for each element of a list input.
    """

    type_tag = "loop"
    description = "Repeat over a fixed count or over each input item"
    required_fields = ["loop_type"]

    def validate(self, config: Dict[str, Any]) -> List[str]:
        missing = super().validate(config)
        if config.get("loop_type") == "for" and is_missing(config.get("iterations")):
            missing.append("iterations")
        return missing

    def execute(self, config: Dict[str, Any], input_data: Any) -> List[Dict[str, Any]]:
        loop_type = config.get("loop_type")

        if loop_type == "for":
            iterations = int(config.get("iterations") or 0)
            return [{"index": index, "input": input_data} for index in range(iterations)]

        if loop_type == "forEach":
            if not isinstance(input_data, (list, tuple)):
                raise ValueError(f"forEach loop requires a list input, got {type(input_data).__name__}")
            return [{"index": index, "item": item} for index, item in enumerate(input_data)]

        raise ValueError(f"Unsupported loop type: {loop_type}")


class TransformHandler(NodeHandler):
    """Map, filter or reduce a list input.

    Expressions see ``item`` (and ``acc`` for reduce) plus ``index``.
    Without an expression, ``map`` wraps each item as ``{"transformed": item}``,
    ``filter`` keeps truthy items, and ``reduce`` merges mapping items.
    Non-list input passes through unchanged.
    """

    type_tag = "transform"
    description = "Apply map, filter or reduce to list data"

    def execute(self, config: Dict[str, Any], input_data: Any) -> Any:
        transform_type = config.get("transform_type")
        expression = config.get("expression")

        if not isinstance(input_data, (list, tuple)):
            return input_data

        if transform_type == "map":
            if not expression:
                return [{"transformed": item} for item in input_data]
            return [evaluate(expression, {"item": item, "index": index}) for index, item in enumerate(input_data)]

        if transform_type == "filter":
            if not expression:
                return [item for item in input_data if item]
            return [
                item for index, item in enumerate(input_data)
                if evaluate(expression, {"item": item, "index": index})
            ]

        if transform_type == "reduce":
            initial = config.get("initial", {})
            if not expression:
                def merge(acc, item):
                    if isinstance(acc, dict) and isinstance(item, dict):
                        return {**acc, **item}
                    return acc
                return reduce(merge, input_data, initial)
            return reduce(
                lambda acc, item: evaluate(expression, {"acc": acc, "item": item}),
                input_data,
                initial
            )

        return input_data


class ConditionalHandler(NodeHandler):
    """Evaluate ``condition`` against the input and pick an output branch.

    The condition sees ``input`` and, when the input is a mapping, each of
    its keys. A boolean ``condition`` is used as-is.
    """

    type_tag = "conditional"
    description = "Choose between two outputs based on a condition"

    def execute(self, config: Dict[str, Any], input_data: Any) -> Dict[str, Any]:
        condition = config.get("condition")

        if isinstance(condition, str):
            names: Dict[str, Any] = {}
            if isinstance(input_data, dict):
                names.update({key: value for key, value in input_data.items() if isinstance(key, str)})
            names["input"] = input_data
            condition_met = bool(evaluate(condition, names))
        else:
            condition_met = bool(condition)

        return {
            "condition_met": condition_met,
            "output": config.get("true_output") if condition_met else config.get("false_output"),
        }
