# errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class CIError(Exception):
    """
    Structured error with enough context for:
      - clean CLI output
      - JSON reports
      - debugging without full tracebacks
    """

    kind = "ci_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class DefinitionError(CIError):
    """The pipeline definition document could not be read."""

    kind = "definition_error"


class MalformedMatrixError(CIError):
    """Bad axis definition. Fatal: the pipeline cannot start."""

    kind = "malformed_matrix"


class StepResolutionError(CIError):
    """A step could not be bound to a job configuration."""

    kind = "step_resolution"

    def __init__(self, message: str, *, step: Optional[str] = None, **details: Any):
        super().__init__(message, **details)
        self.step = step
        if step is not None:
            self.details.setdefault("step", step)


class UnknownAxisError(StepResolutionError):
    """A condition or placeholder references an axis the job does not have."""

    kind = "unknown_axis"

    def __init__(self, axis: str, known: Optional[list] = None, **details: Any):
        msg = f"unknown axis {axis!r}"
        if known is not None:
            msg += f" (known axes: {sorted(known)})"
        super().__init__(msg, **details)
        self.axis = axis


class ConditionSyntaxError(StepResolutionError):
    """The condition text does not parse."""

    kind = "condition_syntax"


class CommandExecutionFailure(CIError):
    """
    Non-zero exit from a step.

    Never raised out of the executor; it is the diagnostic attached to the
    failed step record.
    """

    kind = "command_failed"

    def __init__(self, job: str, step: str, cmd: str, exit_code: int):
        super().__init__(
            f"step {step!r} failed (exit={exit_code}): {cmd}",
            job=job,
            exit_code=exit_code,
        )
        self.job = job
        self.step = step
        self.cmd = cmd
        self.exit_code = exit_code
