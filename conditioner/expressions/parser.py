"""Condition expression parser.

Turns a textual condition into an expression tree::

    "media:{(min-width:40em)} and not (connection:{offline} or flag:{lite})"

    BinaryOp(AND,
             Leaf('media', '(min-width:40em)'),
             Not(BinaryOp(OR, Leaf('connection', 'offline'), Leaf('flag', 'lite'))))

Grammar
-------
- leaf      ``path:{value}``.  ``path`` holds no whitespace, parentheses or
            braces; ``value`` runs to the next ``}`` and may contain spaces,
            parentheses and colons.
- prefix    ``not``
- infix     ``and`` / ``or`` — no precedence, folded left to right, so
            ``a or b and c`` reads as ``((a or b) and c)``.
- groups    ``( ... )``; an empty group contributes nothing.

Keywords are only recognised at a token boundary and must be followed by
whitespace, ``(`` or the end of input.

The parser does a single left-to-right pass over the characters with an
explicit stack of open group frames.  Closing a frame reduces it: every
``not`` is folded into its operand first, then ``operand operator operand``
runs are folded into ``BinaryOp`` nodes.  Malformed input raises
:class:`~conditioner.exceptions.ExpressionParseError` instead of producing a
partial tree.
"""

from __future__ import annotations

import re
from enum import Enum

from conditioner.exceptions import ExpressionParseError
from conditioner.expressions.nodes import BinaryOp, ExpressionNode, Leaf, Not, Operator

_LEAF_RE = re.compile(r"(?P<path>[^\s(){}]+?):\{(?P<value>[^}]*)\}")

_LEAF_OPENER = ":{"


class _Keyword(str, Enum):
    AND = "and"
    OR = "or"
    NOT = "not"


_Item = tuple["ExpressionNode | _Keyword", int]


class _Frame:
    """One open parenthesised group (or the top level)."""

    def __init__(self, opened_at: int) -> None:
        self.opened_at = opened_at
        self.items: list[_Item] = []


def count_leaves(text: str) -> int:
    """Return the number of ``path:{value}`` leaves in *text*.

    Counts occurrences of ``:{`` without parsing.
    """
    return text.count(_LEAF_OPENER)


class ExpressionParser:
    """Stateless condition parser.

    Usage::

        parser = ExpressionParser()
        tree = parser.parse("a:{1} and not b:{2}")
        tree.serialize()   # "(a:{1} and not b:{2})"
    """

    def parse(self, text: str) -> ExpressionNode:
        """Parse *text* into an expression tree.

        Raises:
            ExpressionParseError: The expression is empty or malformed.
        """
        if text is None or not text.strip():
            raise ExpressionParseError("expression is empty", text or "")

        stack: list[_Frame] = [_Frame(0)]
        i = 0
        n = len(text)

        while i < n:
            c = text[i]

            if c.isspace():
                i += 1
                continue

            if c == "(":
                stack.append(_Frame(i))
                i += 1
                continue

            if c == ")":
                if len(stack) == 1:
                    raise ExpressionParseError("unbalanced ')'", text, i)
                frame = stack.pop()
                node = self._reduce(frame, text)
                if node is not None:
                    stack[-1].items.append((node, frame.opened_at))
                i += 1
                continue

            keyword = self._match_keyword(text, i)
            if keyword is not None:
                stack[-1].items.append((keyword, i))
                i += len(keyword.value)
                continue

            match = _LEAF_RE.match(text, i)
            if match is None:
                raise ExpressionParseError(self._describe_bad_leaf(text, i), text, i)
            stack[-1].items.append((Leaf(match["path"], match["value"]), i))
            i = match.end()

        if len(stack) > 1:
            raise ExpressionParseError("unbalanced '('", text, stack[-1].opened_at)

        tree = self._reduce(stack[0], text)
        if tree is None:
            raise ExpressionParseError("expression contains no conditions", text)

        found = sum(1 for _ in tree.leaves())
        if found != count_leaves(text):
            raise ExpressionParseError(
                f"found {found} conditions but {count_leaves(text)} '{_LEAF_OPENER}' "
                f"openers; condition values may not contain '{_LEAF_OPENER}'",
                text,
            )
        return tree

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _match_keyword(text: str, i: int) -> _Keyword | None:
        if i > 0 and not (text[i - 1].isspace() or text[i - 1] == "("):
            return None
        for keyword in _Keyword:
            end = i + len(keyword.value)
            if not text.startswith(keyword.value, i):
                continue
            if end == len(text) or text[end].isspace() or text[end] == "(":
                return keyword
        return None

    @staticmethod
    def _describe_bad_leaf(text: str, i: int) -> str:
        end = i
        while end < len(text) and not text[end].isspace() and text[end] not in "()":
            end += 1
        word = text[i:end]
        opener = text.find(_LEAF_OPENER, i)
        if opener != -1 and opener < end and "}" not in text[opener:]:
            return f"unterminated '{{' in '{word}'"
        return f"expected 'probe:{{value}}' but found '{word}'"

    def _reduce(self, frame: _Frame, text: str) -> ExpressionNode | None:
        """Collapse one frame into a single node (None for an empty frame)."""
        items = frame.items
        if not items:
            return None

        # Negations first, innermost (right-most) first so "not not x" folds.
        i = len(items) - 1
        while i >= 0:
            token, pos = items[i]
            if token is _Keyword.NOT:
                if i + 1 >= len(items) or isinstance(items[i + 1][0], _Keyword):
                    raise ExpressionParseError("'not' must be followed by a condition", text, pos)
                items[i : i + 2] = [(Not(items[i + 1][0]), pos)]
            i -= 1

        # What remains must alternate: operand (operator operand)*
        expect_operand = True
        for token, pos in items:
            is_operator = isinstance(token, _Keyword)
            if expect_operand and is_operator:
                raise ExpressionParseError(f"unexpected operator '{token.value}'", text, pos)
            if not expect_operand and not is_operator:
                raise ExpressionParseError("missing 'and'/'or' between conditions", text, pos)
            expect_operand = not expect_operand
        if expect_operand:
            token, pos = items[-1]
            raise ExpressionParseError(
                f"operator '{token.value}' is missing its right operand", text, pos
            )

        node = items[0][0]
        for j in range(1, len(items), 2):
            node = BinaryOp(Operator(items[j][0].value), node, items[j + 1][0])
        return node


_default_parser = ExpressionParser()


def parse_expression(text: str) -> ExpressionNode:
    """Parse *text* with a shared :class:`ExpressionParser`."""
    return _default_parser.parse(text)
