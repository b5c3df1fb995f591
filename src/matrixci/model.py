# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

PRIMARY_AXIS = "primary"


def axis_value(value: Any) -> str:
    """Normalise a declared value to the string form conditions compare against."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ---------------------------------------------------------------------
# Matrix definition
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Axis:
    """A named dimension of the matrix with its ordered values."""
    name: str
    values: Tuple[str, ...]

    def __post_init__(self) -> None:
        # force values to str so equality checks in conditions are stable
        object.__setattr__(self, "values", tuple(axis_value(v) for v in self.values))


@dataclass(frozen=True)
class Matrix:
    """
    Axes in declaration order plus optional exclude/include entries.

    `primary` optionally designates the single cell for "run once" steps;
    without it the first expanded cell is primary.
    """
    axes: Tuple[Axis, ...]
    exclude: Tuple[Dict[str, str], ...] = ()
    include: Tuple[Dict[str, str], ...] = ()
    primary: Optional[Dict[str, str]] = None

    @property
    def axis_names(self) -> List[str]:
        return [a.name for a in self.axes]

    def size(self) -> int:
        """Size of the raw cross-product (before exclude/include)."""
        n = 1
        for a in self.axes:
            n *= len(a.values)
        return n


@dataclass(frozen=True)
class JobConfiguration:
    """
    One point of the cross-product. Immutable.

    `values` keeps the declared axis order. The derived `primary` axis is
    answered by `lookup()` but is not part of `values`.
    """
    values: Tuple[Tuple[str, str], ...]
    primary: bool = False

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], primary: bool = False) -> JobConfiguration:
        return cls(values=tuple((k, axis_value(v)) for k, v in mapping.items()), primary=primary)

    def __getitem__(self, axis: str) -> str:
        value = self.lookup(axis)
        if value is None:
            raise KeyError(axis)
        return value

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self.values)

    def __len__(self) -> int:
        return len(self.values)

    def lookup(self, axis: str) -> Optional[str]:
        if axis == PRIMARY_AXIS:
            return "true" if self.primary else "false"
        for k, v in self.values:
            if k == axis:
                return v
        return None

    def axis_names(self, include_derived: bool = True) -> List[str]:
        names = [k for k, _ in self.values]
        if include_derived:
            names.append(PRIMARY_AXIS)
        return names

    def as_dict(self, include_derived: bool = False) -> Dict[str, str]:
        d = dict(self.values)
        if include_derived:
            d[PRIMARY_AXIS] = "true" if self.primary else "false"
        return d

    @property
    def label(self) -> str:
        """Short display id, e.g. `(ubuntu, stable)`."""
        return "(" + ", ".join(v for _, v in self.values) + ")"


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StepTemplate:
    """
    A step as declared once per pipeline. Shared read-only by every job.

    Exactly one of `run` (shell command) or `uses` (named composite action,
    configured through `params`) is set.
    """
    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    condition: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    continue_on_error: bool = False
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if (self.run is None) == (self.uses is None):
            raise ValueError(
                f"step {self.name!r} must define exactly one of 'run' or 'uses'"
            )

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.uses:
            return f"Run {self.uses}"
        first = (self.run or "").strip().splitlines()
        return f"Run {first[0]}" if first else "Run"


@dataclass(frozen=True)
class ResolvedStep:
    """A StepTemplate bound to one job: condition evaluated, command rendered."""
    index: int
    name: str
    command: str
    should_run: bool
    template: StepTemplate
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    continue_on_error: bool = False
    timeout: Optional[float] = None


@dataclass(frozen=True)
class Pipeline:
    """A full definition: matrix + ordered steps + pipeline-wide env."""
    name: str
    matrix: Matrix
    steps: Tuple[StepTemplate, ...]
    env: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------

class Status(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class StepState(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"      # condition evaluated false
    NOT_RUN = "not_run"      # never reached because of fail-fast
    ERRORED = "errored"      # the command collaborator itself raised

    @property
    def ran(self) -> bool:
        return self in (StepState.SUCCEEDED, StepState.FAILED, StepState.ERRORED)


@dataclass(frozen=True)
class StepRecord:
    name: str
    command: str
    state: StepState
    exit_code: Optional[int] = None
    output: str = ""
    error: Optional[str] = None
    duration: float = 0.0
    allowed_failure: bool = False

    @property
    def ran(self) -> bool:
        return self.state.ran

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "command": self.command,
            "state": self.state.value,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
        }
        if self.error:
            d["error"] = self.error
        if self.allowed_failure:
            d["allowed_failure"] = True
        return d


@dataclass(frozen=True)
class JobOutcome:
    config: JobConfiguration
    status: Status
    records: Tuple[StepRecord, ...] = ()
    reason: str = ""
    duration: float = 0.0

    @property
    def name(self) -> str:
        return self.config.label

    def failed_step(self) -> Optional[StepRecord]:
        for r in self.records:
            if r.state in (StepState.FAILED, StepState.ERRORED) and not r.allowed_failure:
                return r
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.config.as_dict(),
            "primary": self.config.primary,
            "status": self.status.value,
            "reason": self.reason,
            "duration": round(self.duration, 3),
            "steps": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True)
class PipelineResult:
    status: Status
    outcomes: Tuple[JobOutcome, ...]

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS

    @property
    def failed_jobs(self) -> List[JobOutcome]:
        return [o for o in self.outcomes if o.status is Status.FAILURE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "jobs": [o.to_dict() for o in self.outcomes],
        }
