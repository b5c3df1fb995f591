# demo_pipeline.py
# Python flavour of a workflow: run with `matrixci run --workflow demo_pipeline.py`
from __future__ import annotations

from matrixci.dsl import build, matrix, pipeline, sh, uses


def workflow():
    return pipeline(
        "python-demo",
        sh("Show interpreter", "python --version"),
        uses("lint", "Ruff check", tool="ruff", args="check", files=["src/"],
             when="python == '3.12'"),
        sh("Format check", "ruff format --check src/", when="primary"),
        sh("Install package", "pip install -e .[test]"),
        sh("Run pytest", "pytest -q"),
        sh("Print cell", "echo running on $MATRIX_OS with python $MATRIX_PYTHON"),
        matrix=matrix(
            os=["ubuntu-latest", "windows-latest"],
            python=["3.10", "3.12"],
            exclude=[{"os": "windows-latest", "python": "3.10"}],
        ),
        env={"PIP_DISABLE_PIP_VERSION_CHECK": "1"},
    )


# Same pipeline through the builder API
PIPELINE_BUILT = (
    build("python-demo")
    .axis("os", "ubuntu-latest", "windows-latest")
    .axis("python", "3.10", "3.12")
    .exclude(os="windows-latest", python="3.10")
    .step("Show interpreter", "python --version")
    .step("Run pytest", "pytest -q")
    .build()
)
