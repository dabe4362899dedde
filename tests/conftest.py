"""Shared fixtures: a recording step delegate and the three-job CI workflow."""

import threading
import time

import pytest

from matrixci.dsl import job, sh, wf
from matrixci.model import StepOutcome


class RecordingDelegate:
    """
    Step delegate that records every command instead of running it.

    Commands listed in `fail` report a failure; `delay` keeps each step busy
    long enough for overlapping executions to be observed.
    """

    def __init__(self, fail=(), delay=0.0, outputs=None, raises=()):
        self.fail = set(fail)
        self.raises = set(raises)
        self.delay = delay
        self.outputs = outputs or {}
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def execute(self, action_ref, params, matrix):
        cmd = params.get("run", action_ref)
        with self._lock:
            self.calls.append(cmd)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
        finally:
            with self._lock:
                self.active -= 1

        if cmd in self.raises:
            raise RuntimeError(f"{cmd} exploded")
        if cmd in self.fail:
            return StepOutcome(False, f"{cmd} broke", exit_code=1)
        return StepOutcome(True, "ok", exit_code=0, outputs=self.outputs.get(cmd, {}))


@pytest.fixture
def delegate():
    return RecordingDelegate()


@pytest.fixture
def ci_spec():
    """format (2), build (2), test needs build (2): six instances."""
    channels = {"rust": ["stable", "nightly"]}
    return wf(
        job("format", sh("Format", "fmt ${{ matrix.rust }}"), matrix=channels),
        job("build", sh("Build", "build ${{ matrix.rust }}"), matrix=channels),
        job("test", sh("Test", "test ${{ matrix.rust }}"), needs=["build"], matrix=channels),
        name="Continuous Integration",
        on={"push": {"branches": ["main"]}, "pull_request": None, "workflow_dispatch": None},
    )


@pytest.fixture
def make_delegate():
    """Factory for delegates with failures, delays or exceptions configured."""
    return RecordingDelegate
