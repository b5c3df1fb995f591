# plan.py
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .actions import ActionRegistry, default_registry
from .conditions import evaluate, interpolate
from .errors import StepResolutionError
from .model import JobConfiguration, ResolvedStep, StepTemplate


def _interpolate_value(value: Any, config: JobConfiguration) -> Any:
    if isinstance(value, str):
        return interpolate(value, config)
    if isinstance(value, list):
        return [_interpolate_value(v, config) for v in value]
    if isinstance(value, dict):
        return {k: _interpolate_value(v, config) for k, v in value.items()}
    return value


def resolve_step(
    index: int,
    template: StepTemplate,
    config: JobConfiguration,
    registry: ActionRegistry,
) -> ResolvedStep:
    name = template.display_name
    try:
        should_run = evaluate(template.condition, config)

        if template.uses is not None:
            params = _interpolate_value(dict(template.params), config)
            command = registry.render(template.uses, params, step=name)
        else:
            command = interpolate(template.run or "", config)

        env = {k: interpolate(str(v), config) for k, v in template.env.items()}
        cwd = interpolate(template.cwd, config) if template.cwd else None
        name = interpolate(name, config)
    except StepResolutionError as e:
        if e.step is None:
            e.step = name
            e.details["step"] = name
        raise

    return ResolvedStep(
        index=index,
        name=name,
        command=command,
        should_run=should_run,
        template=template,
        env=env,
        cwd=cwd,
        continue_on_error=template.continue_on_error,
        timeout=template.timeout,
    )


def build_plan(
    steps: Sequence[StepTemplate],
    config: JobConfiguration,
    *,
    registry: Optional[ActionRegistry] = None,
) -> List[ResolvedStep]:
    """
    Bind every step to `config`, preserving declaration order.

    Raises StepResolutionError (or its UnknownAxisError / ConditionSyntaxError
    subclasses) naming the offending step.
    """
    registry = registry or default_registry
    return [resolve_step(i, t, config, registry) for i, t in enumerate(steps)]
