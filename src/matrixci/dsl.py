# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from .model import Axis, Matrix, Pipeline, StepTemplate


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: Optional[str],
    cmd: str,
    *,
    when: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,
    continue_on_error: bool = False,
    timeout: Optional[float] = None,
) -> StepTemplate:
    """Create a shell step. `when` is the condition expression."""
    return StepTemplate(
        name=name,
        run=cmd,
        condition=when,
        env=dict(env or {}),
        cwd=cwd,
        continue_on_error=continue_on_error,
        timeout=timeout,
    )


def uses(
    action: str,
    name: Optional[str] = None,
    *,
    when: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    **params: Any,
) -> StepTemplate:
    """
    Create a step that invokes a named composite action.

    Parameter names may use underscores; they are passed on with dashes,
    e.g. rust_version -> rust-version.
    """
    return StepTemplate(
        name=name,
        uses=action,
        condition=when,
        params={k.replace("_", "-"): v for k, v in params.items()},
        env=dict(env or {}),
    )


# ---------------------------------------------------------------------
# Matrix helpers
# ---------------------------------------------------------------------

def axis(name: str, values: Iterable[Any]) -> Axis:
    return Axis(name=name, values=tuple(values))


def matrix(
    *axes: Axis,
    exclude: Optional[List[Dict[str, Any]]] = None,
    include: Optional[List[Dict[str, Any]]] = None,
    primary: Optional[Dict[str, Any]] = None,
    **named_axes: Iterable[Any],
) -> Matrix:
    """
    Build a Matrix. Axes keep declaration order:

        matrix(os=["ubuntu", "windows"], rust=["stable", "nightly"])
        matrix(axis("os", [...]), axis("rust", [...]), exclude=[{...}])
    """
    all_axes = list(axes) + [axis(k, v) for k, v in named_axes.items()]
    return Matrix(
        axes=tuple(all_axes),
        exclude=tuple(exclude or ()),
        include=tuple(include or ()),
        primary=primary,
    )


# ---------------------------------------------------------------------
# Pipeline helpers
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *steps: StepTemplate,
    matrix: Matrix,
    env: Optional[Dict[str, str]] = None,
) -> Pipeline:
    if not steps:
        raise ValueError(f"pipeline({name!r}) must have at least one step")
    return Pipeline(name=name, matrix=matrix, steps=tuple(steps), env=dict(env or {}))


class PipelineBuilder:
    def __init__(self, name: str):
        self.name = name
        self._axes: list[Axis] = []
        self._exclude: list[Dict[str, Any]] = []
        self._include: list[Dict[str, Any]] = []
        self._primary: Optional[Dict[str, Any]] = None
        self._steps: list[StepTemplate] = []
        self._env: dict[str, str] = {}

    def axis(self, name: str, *values: Any):
        self._axes.append(axis(name, values))
        return self

    def exclude(self, **cell: Any):
        self._exclude.append(cell)
        return self

    def include(self, **cell: Any):
        self._include.append(cell)
        return self

    def primary(self, **cell: Any):
        self._primary = cell
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def step(self, name: Optional[str], run: str, *, when: Optional[str] = None, **kw: Any):
        self._steps.append(sh(name, run, when=when, **kw))
        return self

    def action(self, action: str, name: Optional[str] = None, *, when: Optional[str] = None, **params: Any):
        self._steps.append(uses(action, name, when=when, **params))
        return self

    def build(self) -> Pipeline:
        if not self._steps:
            raise ValueError(f"Pipeline '{self.name}' has no steps")
        return Pipeline(
            name=self.name,
            matrix=Matrix(
                axes=tuple(self._axes),
                exclude=tuple(self._exclude),
                include=tuple(self._include),
                primary=self._primary,
            ),
            steps=tuple(self._steps),
            env=self._env,
        )


def build(name: str) -> PipelineBuilder:
    """Convenience: build('ci').axis('os', 'ubuntu').step(...).build()"""
    return PipelineBuilder(name)
