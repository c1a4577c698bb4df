"""Arithmetic expression tool."""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from mcp_shell.errors import HandlerFailure
from mcp_shell.tools.registry import ToolDefinition, ToolHandler
from mcp_shell.types import ToolResult

_INVALID_CHARS = re.compile(r"[^0-9+\-*/.() ]")

_BINARY_OPS: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}
_UNARY_OPS: dict[type[ast.unaryop], Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculateInput(BaseModel):
    expression: str = Field(
        min_length=1,
        description='Mathematical expression to evaluate (e.g., "2 + 3 * 4")',
    )


class CalculationError(HandlerFailure):
    """Raised when an expression is rejected or cannot be evaluated."""


class CalculatorTool(ToolHandler):
    """Evaluates `+ - * / **` arithmetic over decimal literals.

    Expressions are parsed with `ast` and walked against a whitelist of node
    types; nothing is ever passed to `eval`. All arithmetic is done in floats
    so results match what a JSON client would compute.
    """

    def __init__(self, max_expression_length: int = 100) -> None:
        self.max_expression_length = max_expression_length

    def definitions(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name="calculate",
                description="Perform mathematical calculations with support for basic operations",
                args_schema=CalculateInput,
            )
        ]

    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        try:
            data = CalculateInput.model_validate(arguments)
            value = self.evaluate(data.expression)
        except ValidationError:
            return ToolResult.error("Error: Expression must be a non-empty string")
        except CalculationError as exc:
            return ToolResult.error(f"Error: {exc}")
        return ToolResult.text(f"Result: {data.expression} = {format_number(value)}")

    def evaluate(self, expression: str) -> float:
        if len(expression) > self.max_expression_length:
            raise CalculationError(
                f"Expression exceeds maximum length of {self.max_expression_length} characters"
            )
        if _INVALID_CHARS.search(expression):
            raise CalculationError("Expression contains invalid characters")

        try:
            tree = ast.parse(expression.strip(), mode="eval")
            value = _evaluate_node(tree.body)
        except (SyntaxError, ZeroDivisionError, OverflowError) as exc:
            raise CalculationError("Failed to evaluate expression") from exc

        if not math.isfinite(value):
            raise CalculationError("Invalid mathematical expression")
        return value


def _evaluate_node(node: ast.AST) -> float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return float(node.value)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        result = _BINARY_OPS[type(node.op)](left, right)
        if isinstance(result, complex):
            raise CalculationError("Invalid mathematical expression")
        return result
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate_node(node.operand))
    raise CalculationError("Failed to evaluate expression")


def format_number(value: float) -> str:
    """Render integral floats without a trailing `.0`."""
    if value.is_integer():
        return str(int(value))
    return repr(value)
