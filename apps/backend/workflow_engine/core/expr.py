"""Restricted expression evaluation for IF and switch conditions.

Conditions are parsed with ``ast`` and evaluated by walking a small, closed set
of node kinds: literals, context names, comparisons, boolean logic, basic
arithmetic, list/tuple literals and key/index access on context values.
Function calls, attribute access on arbitrary objects, comprehensions and
lambdas are rejected.

The editor writes conditions in JavaScript style, so ``===``, ``!==``, ``&&``,
``||`` and ``!`` are translated before parsing. ``a contains b`` binds like any
other comparison; it is carried through the parser as Python's ``is``, which
conditions cannot otherwise use (a written ``is``/``is not`` means ``==``/``!=``).
"""

from __future__ import annotations

import ast
import json
import operator
import re
from typing import Any, Dict, List, Optional

from .exceptions import EvaluationError
from .template import interpolate, to_display_string

MAX_EXPRESSION_LENGTH = 500

# Largest string or list a condition may build with "*"
MAX_SEQUENCE_LENGTH = 10_000

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    # "a contains b"
    ast.Is: lambda a, b: b in a,
}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_CONSTANT_NAMES = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

# Longest tokens first so "===" is not read as "==" followed by "="
_JS_OPERATORS = (
    ("===", " == "),
    ("!==", " != "),
    ("&&", " and "),
    ("||", " or "),
)

_WORD_OPERATORS = (
    (re.compile(r"\bis\s+not\b"), " != "),
    (re.compile(r"\bis\b"), " == "),
    (re.compile(r"\bcontains\b"), " is "),
)


def _split_quoted(expression: str) -> List[tuple[bool, str]]:
    """Split into (is_quoted, text) chunks so rewrites skip string literals."""
    chunks: List[tuple[bool, str]] = []
    buf: List[str] = []
    quote = None
    i = 0
    while i < len(expression):
        char = expression[i]
        if quote:
            buf.append(char)
            if char == "\\" and i + 1 < len(expression):
                buf.append(expression[i + 1])
                i += 1
            elif char == quote:
                chunks.append((True, "".join(buf)))
                buf = []
                quote = None
        elif char in ("'", '"'):
            if buf:
                chunks.append((False, "".join(buf)))
            buf = [char]
            quote = char
        else:
            buf.append(char)
        i += 1
    if quote:
        raise EvaluationError(f"Unterminated string literal in expression: {expression}")
    if buf:
        chunks.append((False, "".join(buf)))
    return chunks


def _rewrite_unquoted(text: str) -> str:
    for js_op, py_op in _JS_OPERATORS:
        text = text.replace(js_op, py_op)
    for pattern, py_op in _WORD_OPERATORS:
        text = pattern.sub(py_op, text)
    out: List[str] = []
    for i, char in enumerate(text):
        # bare "!" is logical not; "!=" stays a comparison
        if char == "!" and (i + 1 >= len(text) or text[i + 1] != "="):
            out.append(" not ")
        else:
            out.append(char)
    return "".join(out)


def normalize_expression(expression: str) -> str:
    """Translate JavaScript-style operators to their Python spelling."""
    chunks = _split_quoted(expression)
    pieces = [text if quoted else _rewrite_unquoted(text) for quoted, text in chunks]
    return "".join(pieces).strip()


def _as_literal(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return to_display_string(value)


def _quoted_fragment(quote: str):
    def render(value: Any) -> str:
        return to_display_string(value).replace("\\", "\\\\").replace(quote, "\\" + quote)

    return render


def interpolate_condition(
    template: str,
    context: Dict[str, Any],
    diagnostics: Optional[List[str]] = None,
) -> str:
    """Interpolate a condition so substituted values stay valid literals.

    Placeholders outside quotes become literals (strings are quoted);
    placeholders inside a quoted string are inserted as escaped text.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template
    pieces = []
    for quoted, text in _split_quoted(template):
        formatter = _quoted_fragment(text[0]) if quoted else _as_literal
        pieces.append(interpolate(text, context, diagnostics, formatter=formatter))
    return "".join(pieces)


def evaluate(expression: str, context: Dict[str, Any]) -> Any:
    """Evaluate ``expression`` against ``context``.

    Raises:
        EvaluationError: the expression is empty, too long, malformed, uses an
            unsupported construct, names an unknown variable, or fails while
            being evaluated (e.g. comparing a string with a number).
    """
    if not isinstance(expression, str) or not expression.strip():
        raise EvaluationError("Expression cannot be empty")

    expression = expression.strip()
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise EvaluationError(
            f"Expression too long ({len(expression)} chars, max {MAX_EXPRESSION_LENGTH})"
        )

    normalized = normalize_expression(expression)
    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as e:
        raise EvaluationError(f"Invalid expression syntax: {expression}") from e

    try:
        return _eval_node(tree.body, context)
    except EvaluationError:
        raise
    except Exception as e:
        raise EvaluationError(f"Evaluation error in '{expression}': {e}") from e


def evaluate_condition(expression: str, context: Dict[str, Any]) -> bool:
    return bool(evaluate(expression, context))


def _check_repeat(left: Any, right: Any) -> None:
    for seq, count in ((left, right), (right, left)):
        if isinstance(seq, (str, list)) and isinstance(count, int):
            if len(seq) * count > MAX_SEQUENCE_LENGTH:
                raise EvaluationError(
                    f"Repetition would build {len(seq) * count} elements (max {MAX_SEQUENCE_LENGTH})"
                )


def _eval_node(node: ast.AST, context: Dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in _CONSTANT_NAMES:
            return _CONSTANT_NAMES[node.id]
        if node.id in context:
            return context[node.id]
        raise EvaluationError(f"Unknown variable: '{node.id}'")

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, context)
        for op, comparator in zip(node.ops, node.comparators):
            op_func = _COMPARE_OPS.get(type(op))
            if op_func is None:
                raise EvaluationError(f"Unsupported comparison: {type(op).__name__}")
            right = _eval_node(comparator, context)
            if not op_func(left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_eval_node(v, context) for v in node.values)
        return any(_eval_node(v, context) for v in node.values)

    if isinstance(node, ast.UnaryOp):
        op_func = _UNARY_OPS.get(type(node.op))
        if op_func is None:
            raise EvaluationError(f"Unsupported unary op: {type(node.op).__name__}")
        return op_func(_eval_node(node.operand, context))

    if isinstance(node, ast.BinOp):
        op_func = _BIN_OPS.get(type(node.op))
        if op_func is None:
            raise EvaluationError(f"Unsupported binary op: {type(node.op).__name__}")
        left = _eval_node(node.left, context)
        right = _eval_node(node.right, context)
        if isinstance(node.op, ast.Mult):
            _check_repeat(left, right)
        return op_func(left, right)

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_eval_node(elt, context) for elt in node.elts]

    if isinstance(node, ast.Subscript):
        container = _eval_node(node.value, context)
        key = _eval_node(node.slice, context)
        if isinstance(container, dict):
            return container.get(key)
        if isinstance(container, (list, str)) and isinstance(key, int):
            return container[key] if -len(container) <= key < len(container) else None
        raise EvaluationError(f"Cannot index {type(container).__name__}")

    # a.b on a context mapping reads key "b"; nothing else is reachable
    if isinstance(node, ast.Attribute):
        container = _eval_node(node.value, context)
        if isinstance(container, dict):
            return container.get(node.attr)
        raise EvaluationError(f"Cannot read '{node.attr}' from {type(container).__name__}")

    raise EvaluationError(f"Unsupported expression element: {type(node).__name__}")


__all__ = [
    "MAX_EXPRESSION_LENGTH",
    "MAX_SEQUENCE_LENGTH",
    "evaluate",
    "evaluate_condition",
    "interpolate_condition",
    "normalize_expression",
]
