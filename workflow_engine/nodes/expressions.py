"""Restricted expression evaluation for transform and conditional nodes."""

import ast
from typing import Any, Dict

from ..core.logging import get_logger

logger = get_logger(__name__)

SAFE_BUILTINS: Dict[str, Any] = {
    'len': len,
    'str': str,
    'int': int,
    'float': float,
    'bool': bool,
    'isinstance': isinstance,
    'min': min,
    'max': max,
    'sum': sum,
    'abs': abs,
    'round': round,
    'sorted': sorted,
    'list': list,
    'dict': dict,
}

FORBIDDEN_NODES = (ast.Lambda, ast.NamedExpr, ast.Await, ast.Yield, ast.YieldFrom)


class ExpressionError(ValueError):
    """Raised when an expression cannot be evaluated."""


def check_expression(tree: ast.AST) -> None:
    """
    Reject syntax that could reach interpreter internals.

    Private and dunder names or attributes are refused. Calls are only
    allowed on ``SAFE_BUILTINS`` names.

    Raises:
        ExpressionError: On the first disallowed node
    """
    for node in ast.walk(tree):
        if isinstance(node, FORBIDDEN_NODES):
            raise ExpressionError(f"{type(node).__name__} is not allowed in expressions")

        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ExpressionError(f"Access to attribute '{node.attr}' is not allowed")

        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise ExpressionError(f"Access to name '{node.id}' is not allowed")

        if isinstance(node, ast.Call):
            if not (isinstance(node.func, ast.Name) and node.func.id in SAFE_BUILTINS):
                raise ExpressionError(f"Only calls to {', '.join(sorted(SAFE_BUILTINS))} are allowed")


def evaluate(expression: str, names: Dict[str, Any]) -> Any:
    """
    Evaluate an expression string with no builtins beyond ``SAFE_BUILTINS``.

    Args:
        expression: Python expression, e.g. ``"item['price'] > 10"``
        names: Variables visible to the expression

    Returns:
        The expression's value

    Raises:
        ExpressionError: If the expression is empty, uses disallowed syntax or raises
    """
    if not expression or not str(expression).strip():
        raise ExpressionError("Expression cannot be empty")

    try:
        tree = ast.parse(str(expression).strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression '{expression}': {e.msg}") from e

    check_expression(tree)

    # Names go into globals so comprehensions inside the expression can see them
    eval_globals: Dict[str, Any] = dict(SAFE_BUILTINS)
    eval_globals.update(names)
    eval_globals["__builtins__"] = {}

    try:
        return eval(compile(tree, "<expression>", "eval"), eval_globals)
    except Exception as e:
        logger.debug(f"Failed to evaluate expression '{expression}': {e}")
        raise ExpressionError(f"Failed to evaluate expression '{expression}': {e}") from e
