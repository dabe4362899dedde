from .dsl import job, sh, uses, matrix, wf, JobBuilder, build
from .runner import run_workflow, run_graph, Scheduler
from .model import JobTemplate, Step, WorkflowSpec, TriggerContext, JobStatus, InstanceId
from .reporter import RunResult

__all__ = [
    "job", "sh", "uses", "matrix", "wf", "JobBuilder", "build",
    "run_workflow", "run_graph", "Scheduler",
    "JobTemplate", "Step", "WorkflowSpec", "TriggerContext", "JobStatus", "InstanceId",
    "RunResult",
]
