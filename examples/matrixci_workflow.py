# matrixci_workflow.py
# Same shape as ci.yml, written with the Python DSL and plain shell steps.
from __future__ import annotations

from matrixci import job, matrix, sh, wf

CHANNELS = matrix("python", ["3.11", "3.12"])


def workflow():
    return wf(
        job(
            "format",
            sh("Ruff format check", "ruff format --check ."),
            matrix=CHANNELS,
            title="Format",
        ),
        job(
            "build",
            sh("Install", "python${{ matrix.python }} -m pip install -e ."),
            matrix=CHANNELS,
            title="Check",
        ),
        job(
            "test",
            sh("Run pytest", "python${{ matrix.python }} -m pytest -q"),
            needs=["build"],
            matrix=CHANNELS,
            title="Test",
        ),
        name="Continuous Integration",
        on={"push": {"branches": ["main"]}, "pull_request": None, "workflow_dispatch": None},
    )
