# definition.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .errors import DefinitionError
from .matrix import matrix_from_dict, matrix_to_dict, validate_matrix
from .model import Pipeline, StepTemplate, axis_value

_STEP_KEYS = {
    "name", "run", "uses", "with", "if", "env", "cwd", "working-directory",
    "continue-on-error", "continue_on_error", "timeout", "timeout-minutes",
}


# ----------------------------------------------------------------------
# dict <-> model
# ----------------------------------------------------------------------

def _as_bool(value: Any, key: str) -> bool:
    """YAML booleans as-is; quoted strings parsed the way env flags are."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("1", "true", "yes", "on"):
            return True
        if v in ("0", "false", "no", "off", ""):
            return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _as_mapping(value: Any, key: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


def step_from_dict(data: Mapping[str, Any], index: int = 0) -> StepTemplate:
    if not isinstance(data, Mapping):
        raise DefinitionError(f"step #{index + 1} must be a mapping", step=index + 1)

    unknown = sorted(set(data) - _STEP_KEYS)
    if unknown:
        raise DefinitionError(f"step #{index + 1} has unknown keys {unknown}", step=index + 1)

    condition = data.get("if")
    if condition is not None:
        condition = axis_value(condition)

    try:
        timeout = data.get("timeout")
        if timeout is None and data.get("timeout-minutes") is not None:
            timeout = float(data["timeout-minutes"]) * 60

        return StepTemplate(
            name=data.get("name"),
            run=data.get("run"),
            uses=data.get("uses"),
            condition=condition,
            params=dict(_as_mapping(data.get("with"), "with")),
            env={str(k): axis_value(v) for k, v in _as_mapping(data.get("env"), "env").items()},
            cwd=data.get("cwd", data.get("working-directory")),
            continue_on_error=_as_bool(
                data.get("continue_on_error", data.get("continue-on-error", False)),
                "continue-on-error",
            ),
            timeout=float(timeout) if timeout is not None else None,
        )
    except (TypeError, ValueError) as e:
        raise DefinitionError(f"step #{index + 1}: {e}", step=index + 1) from e


def step_to_dict(step: StepTemplate) -> Dict[str, Any]:
    d: Dict[str, Any] = {}
    if step.name is not None:
        d["name"] = step.name
    if step.condition is not None:
        d["if"] = step.condition
    if step.uses is not None:
        d["uses"] = step.uses
        if step.params:
            d["with"] = dict(step.params)
    else:
        d["run"] = step.run
    if step.env:
        d["env"] = dict(step.env)
    if step.cwd is not None:
        d["cwd"] = step.cwd
    if step.continue_on_error:
        d["continue_on_error"] = True
    if step.timeout is not None:
        d["timeout"] = step.timeout
    return d


def _single_job(data: Mapping[str, Any]) -> Mapping[str, Any]:
    """Pull the one job out of a `jobs:` style document."""
    jobs = data.get("jobs")
    if not isinstance(jobs, Mapping) or len(jobs) != 1:
        raise DefinitionError(
            "a 'jobs' document must contain exactly one job",
            found=sorted(jobs) if isinstance(jobs, Mapping) else type(jobs).__name__,
        )
    (job_id, job), = jobs.items()
    if not isinstance(job, Mapping):
        raise DefinitionError(f"job {job_id!r} must be a mapping")

    strategy = job.get("strategy") or {}
    try:
        env = {**_as_mapping(data.get("env"), "env"), **_as_mapping(job.get("env"), "env")}
    except ValueError as e:
        raise DefinitionError(f"job {job_id!r}: {e}") from e
    return {
        "name": job.get("name") or data.get("name") or job_id,
        "env": env,
        "matrix": strategy.get("matrix"),
        "steps": job.get("steps"),
    }


def pipeline_from_dict(data: Mapping[str, Any]) -> Pipeline:
    """
    Build a Pipeline from a parsed definition document.

    Raises DefinitionError for shape problems and MalformedMatrixError for
    bad axes, so both surface before any job starts.
    """
    if not isinstance(data, Mapping):
        raise DefinitionError(f"definition must be a mapping, got {type(data).__name__}")
    if "jobs" in data:
        data = _single_job(data)

    steps_raw = data.get("steps")
    if not isinstance(steps_raw, list) or not steps_raw:
        raise DefinitionError("definition must list at least one step")

    matrix = matrix_from_dict(data.get("matrix") or {})
    validate_matrix(matrix)

    steps: List[StepTemplate] = [step_from_dict(s, i) for i, s in enumerate(steps_raw)]
    try:
        env = _as_mapping(data.get("env"), "env")
    except ValueError as e:
        raise DefinitionError(str(e)) from e
    return Pipeline(
        name=str(data.get("name") or "pipeline"),
        matrix=matrix,
        steps=tuple(steps),
        env={str(k): axis_value(v) for k, v in env.items()},
    )


def pipeline_to_dict(pipeline: Pipeline) -> Dict[str, Any]:
    d: Dict[str, Any] = {"name": pipeline.name}
    if pipeline.env:
        d["env"] = dict(pipeline.env)
    d["matrix"] = matrix_to_dict(pipeline.matrix)
    d["steps"] = [step_to_dict(s) for s in pipeline.steps]
    return d


# ----------------------------------------------------------------------
# YAML
# ----------------------------------------------------------------------

def loads_pipeline(text: str) -> Pipeline:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DefinitionError(f"invalid YAML: {e}") from e
    return pipeline_from_dict(data)


def dumps_pipeline(pipeline: Pipeline) -> str:
    return yaml.safe_dump(pipeline_to_dict(pipeline), sort_keys=False, default_flow_style=False)


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a YAML document or a python workflow file.

    A python file must define either:
      - workflow() -> Pipeline
      - PIPELINE = Pipeline(...)
    (a plain dict in the definition shape is accepted for both)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in (".yml", ".yaml"):
        return loads_pipeline(wf_path.read_text(encoding="utf-8"))

    if wf_path.suffix != ".py":
        raise DefinitionError(f"Workflow must be a .yml/.yaml or .py file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        result = globals_dict["workflow"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]
    else:
        raise DefinitionError(
            "Workflow file must define workflow() -> Pipeline or PIPELINE = Pipeline(...)",
            file=str(wf_path),
        )

    if isinstance(result, Mapping):
        return pipeline_from_dict(result)
    if not isinstance(result, Pipeline):
        raise DefinitionError(
            f"workflow() must return a Pipeline, got {type(result).__name__}",
            file=str(wf_path),
        )
    validate_matrix(result.matrix)
    return result
