# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

from .matrix import expand_matrix
from .model import SHELL_ACTION, JobTemplate, MatrixAssignment, MatrixSpec, Step, TriggerRule, WorkflowSpec
from .trigger import parse_triggers


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None, id: str | None = None) -> Step:
    """Create a shell step."""
    params: Dict[str, Any] = {"run": cmd}
    if cwd is not None:
        params["cwd"] = cwd
    return Step(name=name, action=SHELL_ACTION, params=params, id=id)


def uses(action: str, *, name: str | None = None, id: str | None = None, **with_: Any) -> Step:
    """Create a step delegated to an action, e.g. uses("actions/checkout@v4")."""
    return Step(name=name or action, action=action, params=dict(with_), id=id)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Matrix declaration for a job.

    Example:
        job("test", sh(...), matrix=matrix("rust", ["stable", "nightly"]))
        matrix("os", ["linux", "mac"]).axis("py", ["3.11", "3.12"])
    """
    def __init__(self, key: str | None = None, values: Iterable[Any] | None = None):
        self.axes: MatrixSpec = {}
        if key is not None:
            self.axis(key, values or [])

    def axis(self, key: str, values: Iterable[Any]) -> "Matrix":
        self.axes[key] = list(values)
        return self

    def expand(self) -> List[MatrixAssignment]:
        return expand_matrix(self.axes)

    def __len__(self) -> int:
        return len(self.expand())


def matrix(key: str | None = None, values: Iterable[Any] | None = None, **axes: Iterable[Any]) -> Matrix:
    m = Matrix(key, values)
    for k, v in axes.items():
        m.axis(k, v)
    return m


def _matrix_spec(value: Union[Matrix, MatrixSpec, None]) -> Optional[MatrixSpec]:
    if value is None:
        return None
    if isinstance(value, Matrix):
        return dict(value.axes)
    return {k: list(v) for k, v in value.items()}


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    matrix: Union[Matrix, MatrixSpec, None] = None,
    env: Optional[Dict[str, str]] = None,
    title: Optional[str] = None,
) -> JobTemplate:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    return JobTemplate(
        name=name,
        steps=tuple(steps_final),
        needs=tuple(needs or []),
        matrix=_matrix_spec(matrix),
        env={k: str(v) for k, v in (env or {}).items()},
        title=title,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._title: Optional[str] = None
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._matrix = Matrix()

    def titled(self, title: str):
        self._title = title
        return self

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, id: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd, id=id))
        return self

    def use_action(self, action: str, *, name: str | None = None, id: str | None = None, **with_: Any):
        self._steps.append(uses(action, name=name, id=id, **with_))
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_matrix(self, key: str, values: Iterable[Any]):
        self._matrix.axis(key, values)
        return self

    def build(self) -> JobTemplate:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")
        return job(
            self.name,
            steps_list=self._steps,
            needs=self._needs,
            matrix=self._matrix if self._matrix.axes else None,
            env=self._env,
            title=self._title,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: JobTemplate, name: str = "workflow", on: Any = None) -> WorkflowSpec:
    """
    Workflow definition helper.

    Users can write:
        from matrixci import wf, job, sh

        def workflow():
            return wf(
                job("build", sh("Build", "make"), matrix={"cc": ["gcc", "clang"]}),
                job("test", sh("Test", "make test"), needs=["build"]),
                on={"push": {"branches": ["main"]}, "pull_request": None},
            )

    Or define WORKFLOW = wf(...) directly.
    """
    triggers: tuple[TriggerRule, ...] = parse_triggers(on)
    return WorkflowSpec(name=name, jobs=tuple(jobs), triggers=triggers)
