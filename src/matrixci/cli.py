# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from matrixci import settings
from matrixci.definition import load_pipeline
from matrixci.errors import CIError
from matrixci.executor import DryRunner, ShellRunner
from matrixci.matrix import expand
from matrixci.runner import default_workers, plan_pipeline, run_pipeline
from matrixci.ui.console import Console, get_console, set_console

EXIT_FAILED = 1
EXIT_DEFINITION = 2
EXIT_INTERRUPTED = 130


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files: list[Path] = []
    current_dir = Path(".")

    for name in settings.DEFAULT_WORKFLOW_FILES:
        p = current_dir / name
        if p.exists():
            workflow_files.append(p)

    for pattern in ("*_workflow.py", "*.matrixci.yml", "*.matrixci.yaml"):
        for path in current_dir.glob(pattern):
            if path not in workflow_files:
                workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow matrixci.yml",
            )
            sys.exit(EXIT_DEFINITION)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:"] + [f"  {n}" for n in settings.DEFAULT_WORKFLOW_FILES]
            + ["  *_workflow.py", "  *.matrixci.yml"],
            suggestion="Specify a workflow explicitly:\n  matrixci run --workflow ci.yml",
        )
        sys.exit(EXIT_DEFINITION)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a workflow explicitly:\n  matrixci run --workflow matrixci.yml",
        )
        sys.exit(EXIT_DEFINITION)

    return workflow_files[0]


def _load(workflow_path: Path):
    console = get_console()
    try:
        return load_pipeline(workflow_path)
    except (CIError, FileNotFoundError) as e:
        console.print_error(
            "Invalid workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        sys.exit(EXIT_DEFINITION)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces, commands and captured output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Hide per-step progress lines")
@click.pass_context
def cli(ctx, debug, quiet):
    """matrixci: matrix-driven CI job runner."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (YAML or python)")
@click.option("--workers", default=settings.WORKERS, type=int, help="Number of parallel jobs")
@click.option(
    "--fail-fast/--no-fail-fast",
    default=settings.FAIL_FAST,
    show_default=True,
    help="Cancel jobs that have not started after the first job failure",
)
@click.option("--repo-root", default=".", show_default=True, help="Directory steps run in")
@click.option("--dry-run", is_flag=True, default=False, help="Resolve and report without running commands")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON")
@click.pass_context
def run(ctx, workflow, workers, fail_fast, repo_root, dry_run, as_json):
    """Run every job of a workflow's matrix."""
    console = get_console()
    if as_json:
        # stdout carries only the JSON document
        console = Console(debug=console.debug, quiet=True)
        set_console(console)
    workflow_path = discover_workflow(workflow)
    pipeline = _load(workflow_path)

    try:
        job_count = len(expand(pipeline.matrix))
        workers = workers or default_workers()
        if not as_json:
            console.print_run_started(
                pipeline=pipeline.name,
                workflow=workflow_path.name,
                job_count=job_count,
                workers=workers,
            )

        runner = DryRunner() if dry_run else ShellRunner(repo_root)
        result = run_pipeline(
            pipeline,
            runner=runner,
            max_workers=workers,
            fail_fast=fail_fast,
            on_job_finished=None if as_json else console.print_job_outcome,
            console=console,
        )

        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
        else:
            console.print_results(result)

        if not result.ok:
            sys.exit(EXIT_FAILED)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except CIError as e:
        console.print_error("Pipeline could not start", str(e))
        sys.exit(EXIT_DEFINITION)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (YAML or python)")
def plan(workflow):
    """Show each job's resolved steps without running them."""
    console = get_console()
    pipeline = _load(discover_workflow(workflow))

    errors = 0
    for config, steps, error in plan_pipeline(pipeline):
        if error is not None:
            errors += 1
            console.print_plan_error(config, error)
        else:
            console.print_plan(config, steps)

    if errors:
        sys.exit(EXIT_DEFINITION)


@cli.command(name="matrix")
@click.option("--workflow", default=None, help="Workflow file (YAML or python)")
def matrix_cmd(workflow):
    """List the expanded job configurations."""
    pipeline = _load(discover_workflow(workflow))
    for i, config in enumerate(expand(pipeline.matrix), start=1):
        marker = "  [primary]" if config.primary else ""
        click.echo(f"{i:>3}. {config.label}{marker}")


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (YAML or python)")
def validate(workflow):
    """Check the workflow parses and every job's plan resolves."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    pipeline = _load(workflow_path)

    problems = [(c, e) for c, _steps, e in plan_pipeline(pipeline) if e is not None]
    if problems:
        console.print_error(
            "Workflow has unresolvable steps",
            f"{len(problems)} job(s) cannot be planned:",
            details=[f"{c.label}: {e.message}" for c, e in problems],
        )
        sys.exit(EXIT_DEFINITION)

    console.print_info(f"{workflow_path.name}: OK ({len(expand(pipeline.matrix))} jobs)")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
