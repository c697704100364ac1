"""Expression layer — condition parser and expression tree."""

from conditioner.expressions.nodes import BinaryOp, ExpressionNode, Leaf, Not, Operator
from conditioner.expressions.parser import ExpressionParser, count_leaves, parse_expression

__all__ = [
    "BinaryOp",
    "ExpressionNode",
    "ExpressionParser",
    "Leaf",
    "Not",
    "Operator",
    "count_leaves",
    "parse_expression",
]
