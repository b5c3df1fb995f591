# settings.py
from __future__ import annotations

import os
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    return int(raw) if raw else None


WORKERS: Optional[int] = _env_int("MATRIXCI_WORKERS")
FAIL_FAST: bool = _env_bool("MATRIXCI_FAIL_FAST", False)
SHELL: Optional[str] = os.environ.get("MATRIXCI_SHELL") or None
OUTPUT_TAIL: int = int(os.environ.get("MATRIXCI_OUTPUT_TAIL", "4000"))

DEFAULT_WORKFLOW_FILES = ("matrixci.yml", "matrixci.yaml", "matrixci_workflow.py")
