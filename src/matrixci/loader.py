# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import InvalidMatrixError, WorkflowLoadError
from .model import SHELL_ACTION, JobTemplate, Step, WorkflowSpec
from .trigger import parse_triggers

YAML_SUFFIXES = (".yml", ".yaml")

# Matrix keys that combine rather than enumerate values; not supported.
_MATRIX_MODIFIERS = ("include", "exclude")


def _as_list(value: Any, what: str, job: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return value
    raise WorkflowLoadError(f"'{what}' must be a string or a list", job=job)


def _parse_step(raw: Any, job: str, index: int) -> Step:
    if not isinstance(raw, dict):
        raise WorkflowLoadError(f"Step #{index + 1} must be a mapping", job=job)

    has_run, has_uses = "run" in raw, "uses" in raw
    if has_run == has_uses:
        raise WorkflowLoadError(
            f"Step #{index + 1} must have exactly one of 'run' or 'uses'",
            job=job,
        )

    step_id = raw.get("id")
    if has_run:
        cmd = str(raw["run"])
        params: Dict[str, Any] = {"run": cmd}
        if raw.get("working-directory"):
            params["cwd"] = str(raw["working-directory"])
        if raw.get("env"):
            params["env"] = {str(k): str(v) for k, v in raw["env"].items()}
        first_line = cmd.strip().splitlines()[0] if cmd.strip() else cmd
        name = raw.get("name") or f"Run {first_line}"
        return Step(name=str(name), action=SHELL_ACTION, params=params, id=step_id)

    action = str(raw["uses"])
    with_ = raw.get("with") or {}
    if not isinstance(with_, dict):
        raise WorkflowLoadError(f"Step #{index + 1} 'with' must be a mapping", job=job)
    return Step(name=str(raw.get("name") or action), action=action, params=dict(with_), id=step_id)


def _parse_matrix(raw: Any, job: str):
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidMatrixError("strategy.matrix must be a mapping of axis -> values", job=job)
    for key in _MATRIX_MODIFIERS:
        if key in raw:
            raise InvalidMatrixError(f"matrix '{key}' is not supported", job=job)
    return {str(axis): values for axis, values in raw.items()}


def _parse_job(job_id: str, raw: Any) -> JobTemplate:
    if not isinstance(raw, dict):
        raise WorkflowLoadError(f"Job '{job_id}' must be a mapping", job=job_id)

    steps_raw = raw.get("steps")
    if not isinstance(steps_raw, list) or not steps_raw:
        raise WorkflowLoadError(f"Job '{job_id}' must have at least one step", job=job_id)

    strategy = raw.get("strategy") or {}
    if not isinstance(strategy, dict):
        raise WorkflowLoadError(f"Job '{job_id}' strategy must be a mapping", job=job_id)

    env = raw.get("env") or {}
    return JobTemplate(
        name=job_id,
        title=raw.get("name"),
        steps=tuple(_parse_step(s, job_id, i) for i, s in enumerate(steps_raw)),
        needs=tuple(str(n) for n in _as_list(raw.get("needs"), "needs", job_id)),
        matrix=_parse_matrix(strategy.get("matrix"), job_id),
        env={str(k): str(v) for k, v in env.items()},
    )


def parse_workflow(data: Any, *, default_name: str = "workflow") -> WorkflowSpec:
    """Turn a decoded workflow document into a WorkflowSpec."""
    if not isinstance(data, dict):
        raise WorkflowLoadError("Workflow document must be a mapping")

    # YAML 1.1 reads a bare `on:` key as boolean True.
    on = data.get("on", data.get(True))

    jobs_raw = data.get("jobs")
    if not isinstance(jobs_raw, dict) or not jobs_raw:
        raise WorkflowLoadError("Workflow must define at least one job under 'jobs'")

    return WorkflowSpec(
        name=str(data.get("name") or default_name),
        jobs=tuple(_parse_job(str(job_id), raw) for job_id, raw in jobs_raw.items()),
        triggers=parse_triggers(on),
    )


def load_yaml_workflow(path: Path) -> WorkflowSpec:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise WorkflowLoadError(f"Invalid YAML in {path.name}: {e}") from e
    return parse_workflow(data, default_name=path.stem)


def load_python_workflow(path: Path) -> WorkflowSpec:
    """
    The file must define either:
      - workflow() -> WorkflowSpec
      - WORKFLOW = WorkflowSpec
    """
    module_name = f"matrixci_workflow_{path.stem}"
    globals_dict = runpy.run_path(str(path), run_name=module_name)

    spec = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        spec = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        spec = globals_dict["WORKFLOW"]

    if not isinstance(spec, WorkflowSpec):
        raise WorkflowLoadError(
            "Workflow must return/define a WorkflowSpec. "
            "Define workflow() -> wf(...) or WORKFLOW = wf(...)."
        )
    return spec


def load_workflow(path: str | Path) -> WorkflowSpec:
    """Load a workflow from a YAML document or a python file path."""
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix in YAML_SUFFIXES:
        return load_yaml_workflow(wf_path)
    if wf_path.suffix == ".py":
        return load_python_workflow(wf_path)
    raise WorkflowLoadError(f"Workflow must be a .yml/.yaml or .py file, got: {wf_path.name}")
