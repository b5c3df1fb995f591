from .dsl import sh, uses, axis, matrix, pipeline, PipelineBuilder, build
from .runner import run_pipeline, run_jobs
from .matrix import expand
from .plan import build_plan
from .conditions import evaluate, parse_condition
from .definition import load_pipeline, loads_pipeline, dumps_pipeline
from .model import (
    Axis,
    Matrix,
    JobConfiguration,
    StepTemplate,
    ResolvedStep,
    JobOutcome,
    PipelineResult,
    Pipeline,
    Status,
    StepState,
)
from .errors import (
    CIError,
    DefinitionError,
    MalformedMatrixError,
    UnknownAxisError,
    StepResolutionError,
    ConditionSyntaxError,
    CommandExecutionFailure,
)

__all__ = [
    "sh", "uses", "axis", "matrix", "pipeline", "PipelineBuilder", "build",
    "run_pipeline", "run_jobs", "expand", "build_plan", "evaluate", "parse_condition",
    "load_pipeline", "loads_pipeline", "dumps_pipeline",
    "Axis", "Matrix", "JobConfiguration", "StepTemplate", "ResolvedStep",
    "JobOutcome", "PipelineResult", "Pipeline", "Status", "StepState",
    "CIError", "DefinitionError", "MalformedMatrixError", "UnknownAxisError",
    "StepResolutionError", "ConditionSyntaxError", "CommandExecutionFailure",
]
