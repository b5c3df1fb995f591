# matrix.py
from __future__ import annotations

import itertools
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import MalformedMatrixError
from .model import PRIMARY_AXIS, Axis, JobConfiguration, Matrix, axis_value

Point = Tuple[str, ...]


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

def validate_matrix(matrix: Matrix) -> None:
    """Raise MalformedMatrixError if the matrix cannot be expanded."""
    if not matrix.axes:
        raise MalformedMatrixError("matrix must declare at least one axis")

    seen: set[str] = set()
    for axis in matrix.axes:
        if not axis.name:
            raise MalformedMatrixError("axis name must be non-empty")
        if axis.name == PRIMARY_AXIS:
            raise MalformedMatrixError(
                f"axis name {PRIMARY_AXIS!r} is reserved for the derived primary-cell axis"
            )
        if axis.name in seen:
            raise MalformedMatrixError(f"duplicate axis name {axis.name!r}", axis=axis.name)
        seen.add(axis.name)
        if not axis.values:
            raise MalformedMatrixError(f"axis {axis.name!r} has no values", axis=axis.name)
        if len(set(axis.values)) != len(axis.values):
            dupes = sorted({v for v in axis.values if axis.values.count(v) > 1})
            raise MalformedMatrixError(
                f"axis {axis.name!r} has duplicate values {dupes}",
                axis=axis.name,
            )

    for entry in matrix.exclude:
        _check_keys("exclude", entry, seen)
        if not entry:
            raise MalformedMatrixError("empty exclude entry would drop every job")

    for entry in matrix.include:
        _check_keys("include", entry, seen)
        missing = [a for a in matrix.axis_names if a not in entry]
        if missing:
            raise MalformedMatrixError(
                f"include entry {dict(entry)} does not assign axes {missing}"
            )

    if matrix.primary is not None:
        _check_keys("primary", matrix.primary, seen)

    if _find_primary(matrix) is None:
        if matrix.primary is not None:
            raise MalformedMatrixError(
                f"primary cell {dict(matrix.primary)} matches no job in the matrix"
            )
        raise MalformedMatrixError("exclude entries remove every job from the matrix")


def _check_keys(what: str, entry: Mapping[str, Any], known: Iterable[str]) -> None:
    unknown = sorted(set(entry) - set(known))
    if unknown:
        raise MalformedMatrixError(
            f"{what} entry references undeclared axes {unknown}",
            known=sorted(known),
        )


# ---------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------

def _matches(names: List[str], point: Point, entry: Mapping[str, Any]) -> bool:
    return all(point[names.index(k)] == axis_value(v) for k, v in entry.items())


def _raw_points(matrix: Matrix) -> Iterator[Point]:
    """Cross-product minus excludes, then includes not already produced."""
    names = matrix.axis_names
    values = [a.values for a in matrix.axes]

    def excluded(point: Point) -> bool:
        return any(_matches(names, point, e) for e in matrix.exclude)

    for point in itertools.product(*values):
        if not excluded(point):
            yield point

    emitted_includes: set[Point] = set()
    for entry in matrix.include:
        point = tuple(axis_value(entry[n]) for n in names)
        in_product = all(v in axis.values for v, axis in zip(point, matrix.axes))
        if in_product and not excluded(point):
            continue
        if point in emitted_includes:
            continue
        emitted_includes.add(point)
        yield point


def _find_primary(matrix: Matrix) -> Optional[Point]:
    names = matrix.axis_names
    for point in _raw_points(matrix):
        if matrix.primary is None or _matches(names, point, matrix.primary):
            return point
    return None


class Expansion:
    """
    Lazy, restartable sequence of JobConfigurations.

    Each iteration regenerates the cross-product in declaration order
    (first axis varies slowest), so nothing is materialised up front.
    """

    def __init__(self, matrix: Matrix):
        validate_matrix(matrix)
        self.matrix = matrix
        self._primary = _find_primary(matrix)

    def __iter__(self) -> Iterator[JobConfiguration]:
        names = self.matrix.axis_names
        for point in _raw_points(self.matrix):
            yield JobConfiguration(
                values=tuple(zip(names, point)),
                primary=point == self._primary,
            )

    def __len__(self) -> int:
        return sum(1 for _ in _raw_points(self.matrix))


def expand(matrix: Matrix) -> Expansion:
    """Validate `matrix` and return its expansion. Raises MalformedMatrixError."""
    return Expansion(matrix)


# ---------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------

def matrix_from_dict(data: Mapping[str, Any]) -> Matrix:
    """
    Build a Matrix from the definition-document shape:

        {"os": [...], "rust": [...], "exclude": [...], "include": [...], "primary": {...}}
    """
    if not isinstance(data, Mapping):
        raise MalformedMatrixError(f"matrix must be a mapping, got {type(data).__name__}")

    axes: List[Axis] = []
    exclude: List[Dict[str, str]] = []
    include: List[Dict[str, str]] = []
    primary: Optional[Dict[str, str]] = None

    for key, value in data.items():
        key = str(key)
        if key in ("exclude", "include"):
            entries = value or []
            if not isinstance(entries, list) or not all(isinstance(e, Mapping) for e in entries):
                raise MalformedMatrixError(f"matrix.{key} must be a list of mappings")
            target = exclude if key == "exclude" else include
            target.extend({str(k): axis_value(v) for k, v in e.items()} for e in entries)
        elif key == PRIMARY_AXIS and isinstance(value, Mapping):
            primary = {str(k): axis_value(v) for k, v in value.items()}
        else:
            if not isinstance(value, list):
                raise MalformedMatrixError(
                    f"axis {key!r} must be a list of values, got {type(value).__name__}",
                    axis=key,
                )
            axes.append(Axis(name=key, values=tuple(value)))

    return Matrix(axes=tuple(axes), exclude=tuple(exclude), include=tuple(include), primary=primary)


def matrix_to_dict(matrix: Matrix) -> Dict[str, Any]:
    out: Dict[str, Any] = {a.name: list(a.values) for a in matrix.axes}
    if matrix.exclude:
        out["exclude"] = [dict(e) for e in matrix.exclude]
    if matrix.include:
        out["include"] = [dict(e) for e in matrix.include]
    if matrix.primary is not None:
        out[PRIMARY_AXIS] = dict(matrix.primary)
    return out
