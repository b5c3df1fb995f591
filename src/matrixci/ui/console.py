"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Optional, Sequence

from ..model import JobConfiguration, JobOutcome, PipelineResult, ResolvedStep, StepState, Status

_STATE_MARK = {
    StepState.SUCCEEDED: "ok",
    StepState.FAILED: "FAILED",
    StepState.ERRORED: "ERROR",
    StepState.SKIPPED: "skipped",
    StepState.NOT_RUN: "not run",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress per-step progress lines
        """
        self.debug = debug
        self.quiet = quiet
        # jobs report from worker threads; keep multi-line blocks together
        self._lock = threading.Lock()

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        workflow: str,
        job_count: int,
        workers: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Pipeline: {pipeline}")
        print(f"Workflow: {workflow}")
        print(f"Jobs: {job_count}")
        print(f"Workers: {workers}")
        print()

    def print_step(self, job: str, step: str) -> None:
        """Print step start message."""
        if not self.quiet:
            print(f"[{job}] ▶ {step}")

    def print_step_skipped(self, job: str, step: str) -> None:
        if not self.quiet:
            print(f"[{job}] ⏭ {step} (condition false)")

    def print_job_outcome(self, outcome: JobOutcome) -> None:
        """Print one finished job, including why it failed."""
        with self._lock:
            if outcome.status is Status.SUCCESS:
                print(f"✓ {outcome.name} ({outcome.duration:.1f}s)")
                return
            if outcome.status is Status.SKIPPED:
                print(f"⏭ {outcome.name} (skipped: {outcome.reason})")
                return

            print(f"✗ JOB FAILED: {outcome.name}")
            failed = outcome.failed_step()
            if failed is not None:
                print(f"  STEP FAILED: {failed.name}")
                if failed.exit_code is not None:
                    print(f"  Exit code: {failed.exit_code}")
                if failed.error:
                    if self.debug:
                        print(f"  Error details: {failed.error}")
                    else:
                        print(f"  Error: {failed.error.splitlines()[0]}")
                if failed.output and self.debug:
                    for line in failed.output.rstrip().splitlines():
                        print(f"  | {line}")
            elif outcome.reason:
                print(f"  Reason: {outcome.reason}")

    def print_plan(self, config: JobConfiguration, plan: Sequence[ResolvedStep]) -> None:
        """Print the resolved steps of one job."""
        with self._lock:
            marker = " [primary]" if config.primary else ""
            print(f"\nJOB {config.label}{marker}")
            for step in plan:
                mark = "run " if step.should_run else "skip"
                print(f"  {step.index + 1:>2}. [{mark}] {step.name}")
                if self.debug:
                    print(f"        $ {step.command}")

    def print_plan_error(self, config: JobConfiguration, exc: Exception) -> None:
        with self._lock:
            print(f"\nJOB {config.label}")
            print(f"  ERROR: {exc}")

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary: every job, every step state."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for outcome in result.outcomes:
            print(f"  {outcome.name}: {outcome.status.value.upper()}")
            for rec in outcome.records:
                mark = _STATE_MARK[rec.state]
                if rec.allowed_failure:
                    mark += " (allowed)"
                print(f"      - {rec.name}: {mark}")
            if not outcome.records and outcome.reason:
                print(f"      ({outcome.reason})")
        print("-" * 40)
        print(f"PIPELINE: {result.status.value.upper()}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
