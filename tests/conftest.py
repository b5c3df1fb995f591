from __future__ import annotations

import threading
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import pytest

from matrixci.executor import CommandResult
from matrixci.ui.console import Console, set_console


class FakeRunner:
    """
    Scripted command collaborator.

    `script(command, env)` returns an exit code (default 0) or raises.
    Every call is recorded as (command, env).
    """

    def __init__(self, script: Optional[Callable[[str, Mapping[str, str]], int]] = None):
        self.script = script or (lambda command, env: 0)
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self._lock = threading.Lock()

    def run(self, command, env, *, cwd=None, timeout=None) -> CommandResult:
        with self._lock:
            self.calls.append((command, dict(env)))
        code = self.script(command, env)
        return CommandResult(exit_code=code, stdout=f"ran {command}")


@pytest.fixture
def console():
    c = Console(quiet=True)
    set_console(c)
    return c


@pytest.fixture
def fake_runner():
    return FakeRunner()
