from .dsl import job, sh, uses, on_pull_request, on_push, wf, workflow, JobBuilder, build
from .errors import CIError, StepFailure
from .model import Job, Step, Trigger, Workflow, WorkflowError
from .runner import load_workflow, run_workflow

__all__ = [
    "job", "sh", "uses", "on_pull_request", "on_push", "wf", "workflow", "JobBuilder", "build",
    "CIError", "StepFailure",
    "Job", "Step", "Trigger", "Workflow", "WorkflowError",
    "load_workflow", "run_workflow",
]
