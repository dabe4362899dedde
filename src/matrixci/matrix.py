# matrix.py
from __future__ import annotations

from itertools import product
from typing import List, Mapping, Optional, Sequence

from .errors import InvalidMatrixError
from .model import AxisValue, MatrixAssignment

_SCALARS = (str, int, float, bool)


def expand_matrix(
    matrix: Optional[Mapping[str, Sequence[AxisValue]]],
    *,
    job: Optional[str] = None,
) -> List[MatrixAssignment]:
    """
    Expand a matrix into the Cartesian product of its axes.

    Axes keep their declaration order and the last-declared axis varies
    fastest, so the same matrix always yields the same list:

        expand_matrix({"os": ["linux", "mac"], "rust": ["stable", "nightly"]})
        -> [(("os", "linux"), ("rust", "stable")),
            (("os", "linux"), ("rust", "nightly")),
            (("os", "mac"), ("rust", "stable")),
            (("os", "mac"), ("rust", "nightly"))]

    No matrix (or an empty one) yields a single empty assignment.
    """
    if not matrix:
        return [()]

    axes: List[str] = []
    value_lists: List[List[AxisValue]] = []
    for axis, values in matrix.items():
        if not isinstance(axis, str) or not axis:
            raise InvalidMatrixError(f"Matrix axis name must be a non-empty string, got {axis!r}", job=job)
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise InvalidMatrixError(
                f"Matrix axis '{axis}' must be a list of values",
                job=job,
                details={"axis": axis},
            )
        if len(values) == 0:
            raise InvalidMatrixError(
                f"Matrix axis '{axis}' has no values",
                job=job,
                details={"axis": axis},
            )
        for v in values:
            if not isinstance(v, _SCALARS):
                raise InvalidMatrixError(
                    f"Matrix axis '{axis}' has a non-scalar value: {v!r}",
                    job=job,
                    details={"axis": axis},
                )
        # 1, 1.0 and True hash alike; compare with their types.
        if len({(type(v), v) for v in values}) != len(values):
            raise InvalidMatrixError(
                f"Matrix axis '{axis}' has duplicate values: {list(values)}",
                job=job,
                details={"axis": axis},
            )
        axes.append(axis)
        value_lists.append(list(values))

    return [tuple(zip(axes, combo)) for combo in product(*value_lists)]


def matrix_size(matrix: Optional[Mapping[str, Sequence[AxisValue]]]) -> int:
    size = 1
    for values in (matrix or {}).values():
        size *= len(values)
    return size
