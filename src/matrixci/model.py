# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Shell steps use this action reference; everything else is a `uses` ref.
SHELL_ACTION = "run"

AxisValue = Any
MatrixSpec = Dict[str, List[AxisValue]]
MatrixAssignment = Tuple[Tuple[str, AxisValue], ...]


@dataclass(frozen=True)
class Step:
    """A single unit of work (step) inside a CI job."""
    name: str
    action: str
    params: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def is_shell(self) -> bool:
        return self.action == SHELL_ACTION

    @property
    def run(self) -> Optional[str]:
        return self.params.get("run")

    @property
    def cwd(self) -> Optional[str]:
        return self.params.get("cwd")


@dataclass(frozen=True)
class JobTemplate:
    """
    A CI job as declared: steps + dependencies + optional matrix.

    `name` is the job id used by `needs`; `title` is only for display.
    """
    name: str
    steps: Tuple[Step, ...]
    needs: Tuple[str, ...] = ()
    matrix: Optional[MatrixSpec] = None
    env: Dict[str, str] = field(default_factory=dict)
    title: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.title or self.name


@dataclass(frozen=True)
class TriggerRule:
    """One `on:` entry. `branches=None` means no branch filter."""
    event: str
    branches: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class TriggerContext:
    event: str
    branch: Optional[str] = None


@dataclass(frozen=True)
class WorkflowSpec:
    name: str
    jobs: Tuple[JobTemplate, ...]
    triggers: Tuple[TriggerRule, ...] = ()

    def job(self, name: str) -> JobTemplate:
        for template in self.jobs:
            if template.name == name:
                return template
        raise KeyError(name)

    @property
    def job_names(self) -> List[str]:
        return [j.name for j in self.jobs]


class JobStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SKIPPED)


# Allowed status transitions; anything else is a scheduler bug.
TRANSITIONS: Mapping[JobStatus, Tuple[JobStatus, ...]] = {
    JobStatus.PENDING: (JobStatus.READY, JobStatus.SKIPPED),
    JobStatus.READY: (JobStatus.RUNNING, JobStatus.SKIPPED),
    JobStatus.RUNNING: (JobStatus.SUCCEEDED, JobStatus.FAILED),
    JobStatus.SUCCEEDED: (),
    JobStatus.FAILED: (),
    JobStatus.SKIPPED: (),
}


@dataclass(frozen=True, eq=False)
class InstanceId:
    """
    Identity of a job instance: template name + matrix assignment.

    Values compare with their types, so `flag=1` and `flag=True` are
    different instances.
    """
    job: str
    assignment: MatrixAssignment = ()

    def _key(self) -> Tuple[Any, ...]:
        return (self.job, tuple((k, type(v), v) for k, v in self.assignment))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InstanceId):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if not self.assignment:
            return self.job
        values = ", ".join(f"{k}={v}" for k, v in self.assignment)
        return f"{self.job} ({values})"

    @property
    def matrix(self) -> Dict[str, AxisValue]:
        return dict(self.assignment)


@dataclass(frozen=True)
class StepOutcome:
    """What a step delegate reports back for one step."""
    success: bool
    diagnostic: str = ""
    exit_code: Optional[int] = None
    outputs: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class JobFailure:
    """Failing step details, kept for reporting."""
    step: str
    index: int
    diagnostic: str
    exit_code: Optional[int] = None

    def __str__(self) -> str:
        text = f"step '{self.step}' failed"
        if self.exit_code is not None:
            text += f" (exit={self.exit_code})"
        lines = [line for line in self.diagnostic.splitlines() if line.strip()]
        if lines:
            text += f": {lines[-1]}"
        return text


@dataclass
class JobInstance:
    """
    A concrete, schedulable job: one template bound to one matrix assignment.

    Only the scheduler changes `status`.
    """
    id: InstanceId
    template: JobTemplate
    steps: List[Step]
    needs: Tuple[InstanceId, ...] = ()
    status: JobStatus = JobStatus.PENDING
    failure: Optional[JobFailure] = None

    @property
    def name(self) -> str:
        return str(self.id)

    @property
    def display_name(self) -> str:
        if not self.id.assignment:
            return self.template.display_name
        values = ", ".join(str(v) for _, v in self.id.assignment)
        return f"{self.template.display_name} ({values})"

    @property
    def matrix(self) -> Dict[str, AxisValue]:
        return self.id.matrix
