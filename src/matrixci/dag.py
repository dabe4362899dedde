# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import CyclicDependencyError, DuplicateJobError, UnknownDependencyError
from .expressions import bind_matrix
from .matrix import expand_matrix
from .model import InstanceId, JobInstance, JobTemplate, Step, WorkflowSpec


def validate_templates(jobs: Iterable[JobTemplate]) -> Dict[str, Set[str]]:
    """
    Check job templates before any expansion.

    Requires:
      - job.name: str (unique)
      - job.needs: names of jobs that must run BEFORE this job, all existing
      - no dependency cycle

    Returns the template adjacency (dep -> dependents).
    """
    jobs = list(jobs)
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DuplicateJobError(
            f"Duplicate job names found: {dupes}",
            job=dupes[0],
            details={"duplicates": dupes},
        )

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    for job in jobs:
        for need in job.needs:
            if need not in name_set:
                raise UnknownDependencyError(
                    f"Job '{job.name}' needs missing job '{need}'",
                    job=job.name,
                    details={"missing": need, "known": sorted(name_set)},
                )
            # Edge need -> job.name (need must run before job)
            adj[need].add(job.name)

    cycle = _find_cycle(names, {j.name: list(j.needs) for j in jobs})
    if cycle:
        raise CyclicDependencyError(
            "Dependency cycle: " + " -> ".join(cycle),
            job=cycle[0],
            details={"cycle": cycle},
        )
    return adj


def _find_cycle(names: List[str], needs: Dict[str, List[str]]) -> Optional[List[str]]:
    """Iterative DFS over `needs`; returns the first cycle found as a closed path."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = {n: WHITE for n in names}

    for root in names:
        if color[root] != WHITE:
            continue
        path: List[str] = [root]
        stack: List[Tuple[str, int]] = [(root, 0)]
        color[root] = GREY
        while stack:
            node, idx = stack[-1]
            deps = needs.get(node, [])
            if idx < len(deps):
                stack[-1] = (node, idx + 1)
                nxt = deps[idx]
                if color[nxt] == GREY:
                    start = path.index(nxt)
                    # Report in execution order: dependency first.
                    return list(reversed(path[start:] + [nxt]))
                if color[nxt] == WHITE:
                    color[nxt] = GREY
                    path.append(nxt)
                    stack.append((nxt, 0))
            else:
                color[node] = BLACK
                path.pop()
                stack.pop()
    return None


@dataclass
class JobGraph:
    """Job instances in declaration/expansion order plus their edges."""
    instances: List[JobInstance]
    _by_id: Dict[InstanceId, JobInstance]
    _dependents: Dict[InstanceId, List[InstanceId]]

    def __iter__(self):
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)

    def get(self, instance_id: InstanceId) -> JobInstance:
        return self._by_id[instance_id]

    @property
    def ids(self) -> List[InstanceId]:
        return [i.id for i in self.instances]

    def of_job(self, name: str) -> List[JobInstance]:
        return [i for i in self.instances if i.id.job == name]

    def dependents(self, instance_id: InstanceId) -> List[InstanceId]:
        return list(self._dependents.get(instance_id, []))

    def transitive_dependents(self, instance_id: InstanceId) -> List[InstanceId]:
        seen: Set[InstanceId] = set()
        q = deque(self._dependents.get(instance_id, []))
        while q:
            nxt = q.popleft()
            if nxt in seen:
                continue
            seen.add(nxt)
            q.extend(self._dependents.get(nxt, []))
        return [i.id for i in self.instances if i.id in seen]

    def edges(self) -> Set[Tuple[InstanceId, InstanceId]]:
        return {(dep, inst.id) for inst in self.instances for dep in inst.needs}

    def levels(self) -> List[List[InstanceId]]:
        """
        Convert the DAG into topological "levels" (stages).
        Each stage can run in parallel.
        """
        indeg = {i.id: len(i.needs) for i in self.instances}
        order = {i.id: n for n, i in enumerate(self.instances)}
        q = deque(i.id for i in self.instances if indeg[i.id] == 0)

        levels: List[List[InstanceId]] = []
        while q:
            level: List[InstanceId] = []
            for _ in range(len(q)):
                node = q.popleft()
                level.append(node)
                for child in self._dependents.get(node, []):
                    indeg[child] -= 1
                    if indeg[child] == 0:
                        q.append(child)
            levels.append(sorted(level, key=order.__getitem__))
        return levels


def _bind_steps(template: JobTemplate, instance_id: InstanceId) -> List[Step]:
    matrix = instance_id.matrix
    bound: List[Step] = []
    for step in template.steps:
        bound.append(
            Step(
                name=bind_matrix(step.name, matrix, job=template.name),
                action=bind_matrix(step.action, matrix, job=template.name),
                params=bind_matrix(dict(step.params), matrix, job=template.name),
                id=step.id,
            )
        )
    return bound


def build_graph(spec: WorkflowSpec) -> JobGraph:
    """
    Expand every template and wire the instances together.

    If template T needs D, every instance of T depends on *all* instances
    of D (fan-in join), whatever their matrix assignments.
    """
    validate_templates(spec.jobs)

    ids_by_job: Dict[str, List[InstanceId]] = {}
    for template in spec.jobs:
        assignments = expand_matrix(template.matrix, job=template.name)
        ids_by_job[template.name] = [InstanceId(template.name, a) for a in assignments]

    instances: List[JobInstance] = []
    dependents: Dict[InstanceId, List[InstanceId]] = {}
    for template in spec.jobs:
        needs: List[InstanceId] = []
        for dep in template.needs:
            for dep_id in ids_by_job[dep]:
                if dep_id not in needs:
                    needs.append(dep_id)

        for instance_id in ids_by_job[template.name]:
            instances.append(
                JobInstance(
                    id=instance_id,
                    template=template,
                    steps=_bind_steps(template, instance_id),
                    needs=tuple(needs),
                )
            )
            for dep_id in needs:
                dependents.setdefault(dep_id, []).append(instance_id)

    return JobGraph(
        instances=instances,
        _by_id={i.id: i for i in instances},
        _dependents=dependents,
    )
