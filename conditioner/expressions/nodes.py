"""Expression tree — the closed set of condition nodes.

A parsed condition is a tree of three node kinds::

    Leaf      probe:{value}       — one probe assertion
    Not       not X               — negation of one operand
    BinaryOp  (X and Y) / (X or Y)

Every node exposes the same contract:

    evaluate()   -> bool   current truth value (pure w.r.t. leaf states)
    serialize()  -> str    human-readable form that parses back to an
                           equivalent tree
    leaves()     -> iterator over the Leaf nodes, left to right
    resolved     -> bool   True once every leaf is bound to a live test

The tree shape never changes after parsing.  Only leaves mutate, once, from
an unresolved ``(probe_id, expected)`` descriptor to a bound live test.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterator, Union

from conditioner.exceptions import ExpressionError

if TYPE_CHECKING:
    from conditioner.probes.base import LiveTest


class Operator(str, Enum):
    AND = "and"
    OR = "or"


class Leaf:
    """One ``probe:{value}`` assertion.

    Holds either the unresolved descriptor or the live test, never both.
    """

    def __init__(self, probe_id: str, expected: str) -> None:
        if not probe_id:
            raise ExpressionError("Leaf requires a probe id")
        self._descriptor: tuple[str, str] | None = (probe_id, expected)
        self._test: LiveTest | None = None

    @property
    def probe_id(self) -> str:
        if self._test is not None:
            return self._test.probe_id
        assert self._descriptor is not None
        return self._descriptor[0]

    @property
    def expected(self) -> str:
        if self._test is not None:
            return self._test.expected
        assert self._descriptor is not None
        return self._descriptor[1]

    @property
    def resolved(self) -> bool:
        return self._test is not None

    @property
    def test(self) -> "LiveTest | None":
        return self._test

    def resolve(self, test: "LiveTest") -> None:
        """Bind *test* to this leaf.  A leaf can only be resolved once."""
        if self._test is not None:
            raise ExpressionError(
                f"Leaf '{self.serialize()}' is already resolved",
                context={"probe_id": self.probe_id},
            )
        self._test = test
        self._descriptor = None

    def evaluate(self) -> bool:
        if self._test is None:
            return False
        return self._test.succeeds()

    def serialize(self) -> str:
        return f"{self.probe_id}:{{{self.expected}}}"

    def leaves(self) -> Iterator[Leaf]:
        yield self

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "pending"
        return f"Leaf({self.probe_id!r}, {self.expected!r}, {state})"


class Not:
    """Negation of exactly one operand."""

    def __init__(self, operand: ExpressionNode) -> None:
        if operand is None:
            raise ExpressionError("Not requires an operand")
        self.operand = operand

    @property
    def resolved(self) -> bool:
        return self.operand.resolved

    def evaluate(self) -> bool:
        # Fail closed: negating an unbound leaf must not yield True.
        if not self.operand.resolved:
            return False
        return not self.operand.evaluate()

    def serialize(self) -> str:
        return f"not {self.operand.serialize()}"

    def leaves(self) -> Iterator[Leaf]:
        yield from self.operand.leaves()

    def __repr__(self) -> str:
        return f"Not({self.operand!r})"


class BinaryOp:
    """``left and right`` / ``left or right``."""

    def __init__(self, operator: Operator | str, left: ExpressionNode, right: ExpressionNode) -> None:
        if left is None or right is None:
            raise ExpressionError("BinaryOp requires both operands")
        self.operator = Operator(operator)
        self.left = left
        self.right = right

    @property
    def resolved(self) -> bool:
        return self.left.resolved and self.right.resolved

    def evaluate(self) -> bool:
        a = self.left.evaluate()
        b = self.right.evaluate()
        if self.operator is Operator.AND:
            return a and b
        return a or b

    def serialize(self) -> str:
        return f"({self.left.serialize()} {self.operator.value} {self.right.serialize()})"

    def leaves(self) -> Iterator[Leaf]:
        yield from self.left.leaves()
        yield from self.right.leaves()

    def __repr__(self) -> str:
        return f"BinaryOp({self.operator.name}, {self.left!r}, {self.right!r})"


ExpressionNode = Union[Leaf, Not, BinaryOp]
