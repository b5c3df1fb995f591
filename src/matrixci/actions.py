# actions.py
from __future__ import annotations

import shlex
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import StepResolutionError

# An action renders its parameter bag into one shell command.
ActionFn = Callable[[Mapping[str, Any]], str]


def action_name(ref: str) -> str:
    """`hecrj/setup-rust-action@v1` -> `hecrj/setup-rust-action`."""
    return ref.split("@", 1)[0].strip()


class ActionRegistry:
    """
    Named composite actions, looked up by name with any `@ref` suffix dropped.

    Example:
        registry = ActionRegistry()

        @registry.register("echo")
        def _echo(params):
            return f"echo {params.get('message', '')}"
    """

    def __init__(self, actions: Optional[Dict[str, ActionFn]] = None):
        self._actions: Dict[str, ActionFn] = dict(actions or {})

    def register(self, *names: str) -> Callable[[ActionFn], ActionFn]:
        def deco(fn: ActionFn) -> ActionFn:
            for n in names:
                self._actions[n] = fn
            return fn
        return deco

    def names(self) -> List[str]:
        return sorted(self._actions)

    def __contains__(self, ref: str) -> bool:
        return action_name(ref) in self._actions

    def render(self, ref: str, params: Mapping[str, Any], *, step: Optional[str] = None) -> str:
        fn = self._actions.get(action_name(ref))
        if fn is None:
            raise StepResolutionError(
                f"unknown action {ref!r}",
                step=step,
                known=self.names(),
            )
        try:
            return fn(params)
        except (KeyError, ValueError) as e:
            raise StepResolutionError(
                f"action {ref!r} rejected its parameters: {e}",
                step=step,
            ) from e

    def copy(self) -> ActionRegistry:
        return ActionRegistry(self._actions)


# ---------------------------------------------------------------------
# Built-ins
# ---------------------------------------------------------------------

default_registry = ActionRegistry()


@default_registry.register("actions/checkout", "checkout")
def _checkout(params: Mapping[str, Any]) -> str:
    ref = params.get("ref")
    if not ref:
        # the workspace is already the checked-out tree
        return "git rev-parse HEAD"
    return f"git fetch origin {shlex.quote(str(ref))} && git checkout {shlex.quote(str(ref))}"


@default_registry.register("hecrj/setup-rust-action", "setup-toolchain")
def _setup_toolchain(params: Mapping[str, Any]) -> str:
    version = params.get("rust-version") or params.get("toolchain")
    if not version:
        raise ValueError("missing 'rust-version' (or 'toolchain')")
    v = shlex.quote(str(version))
    cmd = f"rustup toolchain install {v} --profile minimal && rustup default {v}"
    components = params.get("components")
    if components:
        cmd += f" && rustup component add {components}"
    return cmd


@default_registry.register("lint")
def _lint(params: Mapping[str, Any]) -> str:
    tool = params.get("tool")
    if not tool:
        raise ValueError("missing 'tool'")
    parts = [str(tool)]
    args = params.get("args")
    if args:
        parts.extend(shlex.split(str(args)))
    files = params.get("files") or []
    if isinstance(files, str):
        files = [files]
    parts.extend(str(f) for f in files)
    return " ".join(shlex.quote(p) for p in parts)
