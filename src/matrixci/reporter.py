# reporter.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .dag import JobGraph
from .model import InstanceId, JobFailure, JobInstance, JobStatus


@dataclass
class RunResult:
    """Terminal status per job instance, in expansion order."""
    statuses: Dict[InstanceId, JobStatus]
    failures: Dict[InstanceId, JobFailure] = field(default_factory=dict)
    names: Dict[InstanceId, str] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        # Skipped instances never count against the run.
        return not any(s == JobStatus.FAILED for s in self.statuses.values())

    @property
    def failed(self) -> List[InstanceId]:
        return [i for i, s in self.statuses.items() if s == JobStatus.FAILED]

    @property
    def skipped(self) -> List[InstanceId]:
        return [i for i, s in self.statuses.items() if s == JobStatus.SKIPPED]

    def counts(self) -> Dict[str, int]:
        out = {s.value: 0 for s in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SKIPPED)}
        for s in self.statuses.values():
            out[s.value] = out.get(s.value, 0) + 1
        return out

    def rows(self) -> List[Tuple[str, JobStatus, Optional[JobFailure]]]:
        return [
            (self.names.get(i, str(i)), s, self.failures.get(i))
            for i, s in self.statuses.items()
        ]

    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class RunListener(Protocol):
    def instance_started(self, instance: JobInstance) -> None: ...

    def instance_finished(self, instance: JobInstance) -> None: ...

    def run_finished(self, result: RunResult) -> None: ...


class RunReporter:
    """
    Collects terminal statuses as they arrive and fans them out to listeners.

    The scheduler calls `instance_started` / `instance_finished` as instances
    move, then `finalize` once nothing is left to run.
    """

    def __init__(self, listeners: Iterable[RunListener] = ()):
        self.listeners = list(listeners)
        self._lock = threading.Lock()
        self._finished: Dict[InstanceId, JobStatus] = {}
        self._failures: Dict[InstanceId, JobFailure] = {}
        self.result: Optional[RunResult] = None

    def instance_started(self, instance: JobInstance) -> None:
        for listener in self.listeners:
            listener.instance_started(instance)

    def instance_finished(self, instance: JobInstance) -> None:
        with self._lock:
            self._finished[instance.id] = instance.status
            if instance.failure is not None:
                self._failures[instance.id] = instance.failure
        for listener in self.listeners:
            listener.instance_finished(instance)

    def snapshot(self) -> Dict[InstanceId, JobStatus]:
        """Terminal statuses seen so far, in arrival order."""
        with self._lock:
            return dict(self._finished)

    def finalize(self, graph: JobGraph, *, cancelled: bool = False) -> RunResult:
        with self._lock:
            statuses = {i.id: self._finished.get(i.id, i.status) for i in graph.instances}
            failures = {i: f for i, f in self._failures.items() if i in statuses}
        result = RunResult(
            statuses=statuses,
            failures=failures,
            names={i.id: i.display_name for i in graph.instances},
            cancelled=cancelled,
        )
        self.result = result
        for listener in self.listeners:
            listener.run_finished(result)
        return result
