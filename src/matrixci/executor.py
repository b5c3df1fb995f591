# executor.py
from __future__ import annotations

import os
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from . import settings
from .errors import CommandExecutionFailure
from .model import (
    JobConfiguration,
    JobOutcome,
    ResolvedStep,
    Status,
    StepRecord,
    StepState,
)
from .ui.console import Console, get_console

TIMEOUT_EXIT_CODE = 124


# ----------------------------------------------------------------------
# Command-execution collaborators
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ShellRunner:
    """
    Runs step commands through the system shell and reports the exit status.

    `env` passed to `run` is overlaid on os.environ; `cwd` is relative to
    `repo_root`.
    """

    def __init__(
        self,
        repo_root: str | Path = ".",
        *,
        shell: Optional[str] = None,
        output_tail: Optional[int] = None,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.shell = shell if shell is not None else settings.SHELL
        self.output_tail = output_tail if output_tail is not None else settings.OUTPUT_TAIL

    def run(
        self,
        command: str,
        env: Mapping[str, str],
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        workdir = (self.repo_root / (cwd or ".")).resolve()
        if not workdir.is_dir():
            raise FileNotFoundError(f"step cwd not found: {workdir}")

        full_env = os.environ.copy()
        full_env.update(env)

        try:
            proc = subprocess.run(
                command,
                shell=True,
                executable=self.shell,
                cwd=str(workdir),
                env=full_env,
                text=True,
                capture_output=True,  # so output can be shown on failure
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=_tail(_as_text(e.stdout), self.output_tail),
                stderr=f"timed out after {timeout}s",
            )

        return CommandResult(
            exit_code=proc.returncode,
            stdout=_tail(proc.stdout, self.output_tail),
            stderr=_tail(proc.stderr, self.output_tail),
        )


class DryRunner:
    """Records commands instead of running them; every command succeeds."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self._lock = threading.Lock()

    def run(
        self,
        command: str,
        env: Mapping[str, str],
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        with self._lock:
            self.calls.append((command, dict(env)))
        return CommandResult(exit_code=0, stdout=f"[dry-run] {command}")


def _as_text(data: object) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


def _tail(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text[-limit:] if limit > 0 else text


# ----------------------------------------------------------------------
# Environment
# ----------------------------------------------------------------------

_NON_IDENT = re.compile(r"[^A-Za-z0-9]")


def axis_env_name(axis: str) -> str:
    """`rust-version` -> `MATRIX_RUST_VERSION`."""
    return "MATRIX_" + _NON_IDENT.sub("_", axis).upper()


def job_env(
    config: JobConfiguration,
    pipeline_env: Optional[Mapping[str, str]] = None,
    step_env: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Pipeline env, then step env, then one MATRIX_<AXIS> per axis."""
    env: Dict[str, str] = {}
    env.update({k: str(v) for k, v in (pipeline_env or {}).items()})
    env.update({k: str(v) for k, v in (step_env or {}).items()})
    for name, value in config.as_dict(include_derived=True).items():
        env[axis_env_name(name)] = value
    return env


# ----------------------------------------------------------------------
# Job execution
# ----------------------------------------------------------------------

def run_job(
    config: JobConfiguration,
    plan: Sequence[ResolvedStep],
    runner,
    *,
    pipeline_env: Optional[Mapping[str, str]] = None,
    console: Optional[Console] = None,
) -> JobOutcome:
    """
    Run one job's resolved steps in order and return its outcome.

    - should_run False -> SKIPPED, nothing invoked
    - first failing step (unless continue_on_error) stops the job; every
      later step is NOT_RUN
    - errors raised by the runner are recorded as ERRORED, never propagated
    - a job whose steps were all skipped succeeds
    """
    console = console or get_console()
    started = time.monotonic()
    records: List[StepRecord] = []
    failure: Optional[StepRecord] = None

    for step in plan:
        if failure is not None:
            records.append(StepRecord(name=step.name, command=step.command, state=StepState.NOT_RUN))
            continue

        if not step.should_run:
            console.print_step_skipped(config.label, step.name)
            records.append(StepRecord(name=step.name, command=step.command, state=StepState.SKIPPED))
            continue

        console.print_step(config.label, step.name)
        record = _run_step(config, step, runner, pipeline_env)
        records.append(record)
        if record.state is not StepState.SUCCEEDED and not record.allowed_failure:
            failure = record

    duration = time.monotonic() - started
    if failure is not None:
        return JobOutcome(
            config=config,
            status=Status.FAILURE,
            records=tuple(records),
            reason=f"step {failure.name!r} {failure.state.value}",
            duration=duration,
        )

    ran = sum(1 for r in records if r.ran)
    reason = "all steps skipped" if ran == 0 else f"{ran} step(s) succeeded"
    return JobOutcome(
        config=config,
        status=Status.SUCCESS,
        records=tuple(records),
        reason=reason,
        duration=duration,
    )


def _run_step(
    config: JobConfiguration,
    step: ResolvedStep,
    runner,
    pipeline_env: Optional[Mapping[str, str]],
) -> StepRecord:
    env = job_env(config, pipeline_env, step.env)
    t0 = time.monotonic()
    try:
        result: CommandResult = runner.run(step.command, env, cwd=step.cwd, timeout=step.timeout)
    except Exception as e:
        return StepRecord(
            name=step.name,
            command=step.command,
            state=StepState.ERRORED,
            error=f"{type(e).__name__}: {e}",
            duration=time.monotonic() - t0,
            allowed_failure=step.continue_on_error,
        )

    elapsed = time.monotonic() - t0
    output = "\n".join(part for part in (result.stdout, result.stderr) if part)
    if result.exit_code == 0:
        return StepRecord(
            name=step.name,
            command=step.command,
            state=StepState.SUCCEEDED,
            exit_code=0,
            output=output,
            duration=elapsed,
        )

    failure = CommandExecutionFailure(
        job=config.label,
        step=step.name,
        cmd=step.command,
        exit_code=result.exit_code,
    )
    return StepRecord(
        name=step.name,
        command=step.command,
        state=StepState.FAILED,
        exit_code=result.exit_code,
        output=output,
        error=failure.message,
        duration=elapsed,
        allowed_failure=step.continue_on_error,
    )
