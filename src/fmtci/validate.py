# validate.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from . import actions
from .dag import build_dag, topo_levels
from .model import Job, Workflow, WorkflowError

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Finding:
    level: str
    rule: str
    message: str
    job: Optional[str] = None
    step: Optional[str] = None

    def __str__(self) -> str:
        where = ""
        if self.job:
            where = f" [{self.job}" + (f" / {self.step}" if self.step else "") + "]"
        return f"{self.level}: {self.rule}{where}: {self.message}"


def _check_graph(workflow: Workflow) -> List[Finding]:
    try:
        adj, indeg = build_dag(workflow.jobs)
        topo_levels(adj, indeg)
    except WorkflowError as e:
        return [Finding(ERROR, "graph", str(e))]
    return []


def _check_steps(job: Job) -> List[Finding]:
    findings: List[Finding] = []

    checkout_idx = None
    for idx, step in enumerate(job.steps):
        spec = actions.lookup(step)
        if step.is_action:
            if "@" not in (step.uses or ""):
                findings.append(Finding(ERROR, "unpinned-action", f"'{step.uses}' has no @ref", job.name, step.label))
            if spec is None:
                findings.append(Finding(WARNING, "unknown-action", f"'{step.uses}' has no local stand-in", job.name, step.label))
        if spec is not None and spec.kind == actions.CHECKOUT and checkout_idx is None:
            checkout_idx = idx

    if checkout_idx is None:
        findings.append(Finding(ERROR, "missing-checkout", "job never checks out the repository", job.name))
    elif checkout_idx != 0:
        findings.append(Finding(WARNING, "checkout-order", "checkout is not the first step", job.name, job.steps[checkout_idx].label))

    provided: set[str] = set()
    for step in job.steps:
        missing = [t for t in actions.step_requires(step) if t not in provided]
        if missing:
            findings.append(
                Finding(ERROR, "tool-order", f"uses {', '.join(missing)} before any step installs it", job.name, step.label)
            )
        provided.update(actions.step_provides(step))

    for idx, step in enumerate(job.steps):
        spec = actions.lookup(step)
        if spec is None or spec.kind != actions.TOOLCHAIN:
            continue
        later = job.steps[idx + 1:]
        if not any(set(actions.step_requires(s)) & set(spec.provides) for s in later):
            findings.append(Finding(WARNING, "unused-toolchain", "toolchain is installed but never used", job.name, step.label))

    return findings


def check_workflow(workflow: Workflow) -> List[Finding]:
    """Run every configuration rule; errors first, then warnings, in job order."""
    findings: List[Finding] = []
    if not workflow.on:
        findings.append(Finding(ERROR, "no-triggers", "workflow has no triggers"))
    findings.extend(_check_graph(workflow))
    for job in workflow.jobs:
        findings.extend(_check_steps(job))
    return sorted(findings, key=lambda f: f.level != ERROR)


def has_errors(findings: List[Finding]) -> bool:
    return any(f.level == ERROR for f in findings)
