# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, Union

from .expressions import bind_step_outputs, render_value
from .model import SHELL_ACTION, JobFailure, JobInstance, StepOutcome

DelegateResult = Union[StepOutcome, Tuple[bool, str]]
ActionHandler = Callable[[Dict[str, Any], Mapping[str, Any]], DelegateResult]

# Keep this much of a failing command's output for reporting.
OUTPUT_TAIL = 4000

# Seconds a cancelled command gets between SIGTERM and SIGKILL.
KILL_GRACE = 5.0

# Failure diagnostic of a step stopped by a cancel.
CANCELLED = "cancelled"


class StepDelegate(Protocol):
    """Executes one opaque step on behalf of the executor."""

    def execute(
        self,
        action_ref: str,
        params: Dict[str, Any],
        matrix: Mapping[str, Any],
    ) -> DelegateResult:
        ...


def as_outcome(result: DelegateResult) -> StepOutcome:
    """Accept either a StepOutcome or the bare `(success, diagnostic)` pair."""
    if isinstance(result, StepOutcome):
        return result
    success, diagnostic = result
    return StepOutcome(success=bool(success), diagnostic=str(diagnostic or ""))


def _read_outputs(path: Path) -> Dict[str, str]:
    outputs: Dict[str, str] = {}
    if not path.exists():
        return outputs
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        if "=" in line:
            key, value = line.split("=", 1)
            outputs[key.strip()] = value
    return outputs


def _stop(proc: subprocess.Popen) -> None:
    # The shell may have forked children; signal the whole session.
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGTERM)
        else:
            proc.terminate()
    except ProcessLookupError:
        pass
    try:
        proc.communicate(timeout=KILL_GRACE)
    except subprocess.TimeoutExpired:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
        proc.communicate()


class ShellDelegate:
    """
    Runs `run:` steps through the local shell.

    Each step gets the job env, `MATRIX_<AXIS>` variables and a
    `MATRIXCI_OUTPUT` file; `key=value` lines written there become the
    step's outputs. Output is decoded as UTF-8 with undecodable bytes
    replaced.

    When `cancel_event` is set while a command runs, its process group is
    terminated and the step fails with a `cancelled` diagnostic.
    """

    def __init__(
        self,
        repo_root: str | Path = ".",
        env: Optional[Dict[str, str]] = None,
        cancel_event: Optional[threading.Event] = None,
        poll_interval: float = 0.1,
    ):
        self.repo_root = Path(repo_root).resolve()
        self.env = dict(env or {})
        self.cancel_event = cancel_event
        self.poll_interval = poll_interval

    def _communicate(self, proc: subprocess.Popen) -> Optional[Tuple[str, str]]:
        """Wait for the command; None if it was stopped by a cancel."""
        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                _stop(proc)
                return None
            try:
                return proc.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                continue

    def execute(self, action_ref: str, params: Dict[str, Any], matrix: Mapping[str, Any]) -> StepOutcome:
        cmd = params.get("run")
        if not cmd:
            return StepOutcome(False, "shell step has no command")

        cwd = (self.repo_root / (params.get("cwd") or ".")).resolve()
        if not cwd.exists():
            return StepOutcome(False, f"cwd not found: {cwd}")

        with tempfile.TemporaryDirectory(prefix="matrixci-") as tmp:
            output_file = Path(tmp) / "output"
            env = os.environ.copy()
            env.update(self.env)
            env.update({str(k): str(v) for k, v in (params.get("env") or {}).items()})
            env.update({f"MATRIX_{k.upper().replace('-', '_')}": render_value(v) for k, v in matrix.items()})
            env["MATRIXCI_OUTPUT"] = str(output_file)

            proc = subprocess.Popen(
                cmd,
                shell=True,
                cwd=str(cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                start_new_session=os.name == "posix",
            )
            streams = self._communicate(proc)
            if streams is None:
                return StepOutcome(False, CANCELLED)
            outputs = _read_outputs(output_file)

        stdout, stderr = streams
        diagnostic = (stdout[-OUTPUT_TAIL:] + stderr[-OUTPUT_TAIL:]).strip()
        return StepOutcome(
            success=proc.returncode == 0,
            diagnostic=diagnostic,
            exit_code=proc.returncode,
            outputs=outputs,
        )


class ActionRouter:
    """
    Step delegate that dispatches on the action reference.

    `run` goes to the shell delegate; `uses` references are looked up
    without their `@version` suffix in `actions`.
    """

    def __init__(
        self,
        shell: Optional[StepDelegate] = None,
        actions: Optional[Dict[str, ActionHandler]] = None,
        allow_unknown: bool = False,
    ):
        self.shell = shell or ShellDelegate()
        self.actions = dict(actions or {})
        self.allow_unknown = allow_unknown

    def register(self, ref: str, handler: ActionHandler) -> None:
        self.actions[ref.split("@", 1)[0]] = handler

    def execute(self, action_ref: str, params: Dict[str, Any], matrix: Mapping[str, Any]) -> DelegateResult:
        if action_ref == SHELL_ACTION:
            return self.shell.execute(action_ref, params, matrix)

        handler = self.actions.get(action_ref.split("@", 1)[0])
        if handler is not None:
            return handler(params, matrix)
        if self.allow_unknown:
            return StepOutcome(True, f"no handler for action '{action_ref}', treated as no-op")
        return StepOutcome(False, f"no handler registered for action '{action_ref}'")


@dataclass(frozen=True)
class JobOutcome:
    success: bool
    failure: Optional[JobFailure] = None


class JobExecutor:
    """Runs one job instance's steps strictly in order, stopping at the first failure."""

    def __init__(self, delegate: StepDelegate):
        self.delegate = delegate

    def run(self, instance: JobInstance, cancel_event: Optional[threading.Event] = None) -> JobOutcome:
        outputs: Dict[str, Dict[str, str]] = {}
        matrix = instance.matrix

        for index, step in enumerate(instance.steps):
            if cancel_event is not None and cancel_event.is_set():
                return JobOutcome(False, JobFailure(step=step.name, index=index, diagnostic=CANCELLED))

            params = bind_step_outputs(dict(step.params), outputs)
            if step.is_shell and instance.template.env:
                params["env"] = {**instance.template.env, **(params.get("env") or {})}

            try:
                outcome = as_outcome(self.delegate.execute(step.action, params, matrix))
            except Exception as e:
                outcome = StepOutcome(False, f"{type(e).__name__}: {e}")

            if step.id:
                outputs[step.id] = dict(outcome.outputs)

            if not outcome.success:
                return JobOutcome(
                    False,
                    JobFailure(
                        step=step.name,
                        index=index,
                        diagnostic=outcome.diagnostic,
                        exit_code=outcome.exit_code,
                    ),
                )

        return JobOutcome(True)
