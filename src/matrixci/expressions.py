# expressions.py
# `${{ ... }}` substitution for step parameters.
#
# Two namespaces are understood:
#   matrix.<axis>               bound when the job graph is built
#   steps.<id>.outputs.<key>    bound right before a step runs
# Anything else is left untouched.
from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidMatrixError

_EXPR = re.compile(r"\$\{\{\s*([^}]*?)\s*\}\}")
_MATRIX = re.compile(r"^matrix\.([A-Za-z_][\w-]*)$")
_STEP_OUTPUT = re.compile(r"^steps\.([A-Za-z_][\w-]*)\.outputs\.([A-Za-z_][\w-]*)$")


def render_value(value: Any) -> str:
    """Text form of a matrix value; booleans render as `true`/`false`."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _walk(value: Any, fn) -> Any:
    if isinstance(value, str):
        return fn(value)
    if isinstance(value, dict):
        return {k: _walk(v, fn) for k, v in value.items()}
    if isinstance(value, list):
        return [_walk(v, fn) for v in value]
    if isinstance(value, tuple):
        return tuple(_walk(v, fn) for v in value)
    return value


def bind_matrix(value: Any, matrix: Mapping[str, Any], *, job: Optional[str] = None) -> Any:
    """
    Replace `${{ matrix.<axis> }}` references with the bound axis value.

    A reference to an axis the job does not declare is a build-time error.
    """

    def repl(match: re.Match) -> str:
        expr = match.group(1)
        m = _MATRIX.match(expr)
        if not m:
            return match.group(0)
        axis = m.group(1)
        if axis not in matrix:
            raise InvalidMatrixError(
                f"Reference to undefined matrix axis '{axis}'",
                job=job,
                details={"axis": axis, "known": sorted(matrix)},
            )
        return render_value(matrix[axis])

    return _walk(value, lambda s: _EXPR.sub(repl, s))


def bind_step_outputs(value: Any, outputs: Mapping[str, Dict[str, str]]) -> Any:
    """
    Replace `${{ steps.<id>.outputs.<key> }}` with outputs of earlier steps.

    Unknown ids or keys resolve to an empty string.
    """

    def repl(match: re.Match) -> str:
        m = _STEP_OUTPUT.match(match.group(1))
        if not m:
            return match.group(0)
        step_id, key = m.groups()
        return str(outputs.get(step_id, {}).get(key, ""))

    return _walk(value, lambda s: _EXPR.sub(repl, s))
