# runner.py
from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from . import settings
from .actions import ActionRegistry
from .errors import StepResolutionError
from .executor import ShellRunner, run_job
from .matrix import expand
from .model import JobConfiguration, JobOutcome, Pipeline, PipelineResult, Status, StepTemplate
from .plan import build_plan
from .ui.console import Console, get_console

OutcomeCallback = Callable[[JobOutcome], None]


def default_workers() -> int:
    if settings.WORKERS:
        return max(1, settings.WORKERS)
    c = os.cpu_count() or 2
    return max(1, c - 1)


def aggregate(outcomes: Iterable[JobOutcome]) -> Status:
    """Failure iff some job failed; skipped jobs never fail the pipeline."""
    for o in outcomes:
        if o.status is Status.FAILURE:
            return Status.FAILURE
    return Status.SUCCESS


def execute_job(
    config: JobConfiguration,
    steps: Sequence[StepTemplate],
    runner,
    *,
    registry: Optional[ActionRegistry] = None,
    pipeline_env: Optional[Mapping[str, str]] = None,
    console: Optional[Console] = None,
) -> JobOutcome:
    """Plan and run one job. A step that cannot be resolved fails only this job."""
    try:
        plan = build_plan(steps, config, registry=registry)
    except StepResolutionError as e:
        return JobOutcome(
            config=config,
            status=Status.FAILURE,
            reason=f"plan build failed: {e.message}"
            + (f" (step {e.step!r})" if e.step else ""),
        )
    return run_job(config, plan, runner, pipeline_env=pipeline_env, console=console)


def run_jobs(
    configs: Iterable[JobConfiguration],
    steps: Sequence[StepTemplate],
    *,
    runner=None,
    registry: Optional[ActionRegistry] = None,
    env: Optional[Mapping[str, str]] = None,
    max_workers: Optional[int] = None,
    fail_fast: bool = False,
    on_job_finished: Optional[OutcomeCallback] = None,
    console: Optional[Console] = None,
) -> PipelineResult:
    """
    Run every job concurrently (bounded by max_workers) and aggregate.

    With fail_fast, jobs not yet started when a job fails are recorded as
    SKIPPED; jobs already running finish and report their real outcome.
    Outcomes are returned in the order `configs` produced them.
    """
    console = console or get_console()
    runner = runner if runner is not None else ShellRunner()
    if max_workers is None:
        max_workers = default_workers()
    max_workers = max(1, max_workers)

    steps = tuple(steps)
    pending = iter(enumerate(configs))
    results: Dict[int, JobOutcome] = {}
    in_flight: Dict[Future, tuple] = {}
    failed_job: Optional[str] = None

    def finish(idx: int, outcome: JobOutcome) -> None:
        results[idx] = outcome
        if on_job_finished is None:
            return
        try:
            on_job_finished(outcome)
        except Exception as e:
            # a reporting failure must not lose the remaining outcomes
            console.print_debug(f"on_job_finished failed for {outcome.name}: {e!r}")

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while True:
            # fill free slots
            while len(in_flight) < max_workers and not (fail_fast and failed_job):
                nxt = next(pending, None)
                if nxt is None:
                    break
                idx, config = nxt
                fut = pool.submit(
                    execute_job,
                    config,
                    steps,
                    runner,
                    registry=registry,
                    pipeline_env=env,
                    console=console,
                )
                in_flight[fut] = (idx, config)

            if not in_flight:
                break

            # wait for one completion, then loop to refill
            fut = next(as_completed(list(in_flight.keys())))
            idx, config = in_flight.pop(fut)
            try:
                outcome = fut.result()
            except Exception as e:
                outcome = JobOutcome(
                    config=config,
                    status=Status.FAILURE,
                    reason=f"internal error: {type(e).__name__}: {e}",
                )
                console.print_debug(f"job {config.label} crashed: {e!r}")

            if outcome.status is Status.FAILURE and failed_job is None:
                failed_job = config.label
            finish(idx, outcome)

    # anything never submitted was cancelled by pipeline-level fail-fast
    for idx, config in pending:
        finish(
            idx,
            JobOutcome(
                config=config,
                status=Status.SKIPPED,
                reason=f"cancelled after {failed_job} failed",
            ),
        )

    outcomes = tuple(results[i] for i in sorted(results))
    return PipelineResult(status=aggregate(outcomes), outcomes=outcomes)


def run_pipeline(
    pipeline: Pipeline,
    *,
    runner=None,
    registry: Optional[ActionRegistry] = None,
    max_workers: Optional[int] = None,
    fail_fast: bool = False,
    on_job_finished: Optional[OutcomeCallback] = None,
    console: Optional[Console] = None,
) -> PipelineResult:
    """
    Expand the matrix and run every job.

    MalformedMatrixError is raised before any job starts.
    """
    expansion = expand(pipeline.matrix)
    return run_jobs(
        expansion,
        pipeline.steps,
        runner=runner,
        registry=registry,
        env=pipeline.env,
        max_workers=max_workers,
        fail_fast=fail_fast,
        on_job_finished=on_job_finished,
        console=console,
    )


def plan_pipeline(
    pipeline: Pipeline,
    *,
    registry: Optional[ActionRegistry] = None,
) -> List[tuple]:
    """
    Resolve every job's plan without running anything.

    Returns (config, plan_or_None, error_or_None) per job.
    """
    out: List[tuple] = []
    for config in expand(pipeline.matrix):
        try:
            out.append((config, build_plan(pipeline.steps, config, registry=registry), None))
        except StepResolutionError as e:
            out.append((config, None, e))
    return out
