# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(eq=False)
class WorkflowError(Exception):
    """
    Structured build-time error with enough context for:
      - clean CLI output
      - tests asserting on the offending job
    """
    message: str
    job: Optional[str] = None
    details: dict = field(default_factory=dict)

    kind = "WorkflowError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class WorkflowLoadError(WorkflowError):
    kind = "WorkflowLoadError"


class DuplicateJobError(WorkflowError):
    kind = "DuplicateJobError"


class UnknownDependencyError(WorkflowError):
    kind = "UnknownDependencyError"

    @property
    def missing(self) -> str:
        return self.details.get("missing", "")


class CyclicDependencyError(WorkflowError):
    kind = "CyclicDependencyError"

    @property
    def cycle(self) -> List[str]:
        return list(self.details.get("cycle", []))


class InvalidMatrixError(WorkflowError):
    kind = "InvalidMatrixError"


class InvalidTransitionError(WorkflowError):
    kind = "InvalidTransitionError"
