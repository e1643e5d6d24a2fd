# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Tuple

PULL_REQUEST = "pull_request"
PUSH = "push"

EVENTS = (PULL_REQUEST, PUSH)


class WorkflowError(ValueError):
    """Invalid workflow definition (bad schema, bad module, broken invariant)."""


@dataclass(frozen=True)
class Trigger:
    """
    A repository event that starts the workflow.

    `branches` is only meaningful for push events; None means "any branch".
    """
    event: str
    branches: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.event not in EVENTS:
            raise WorkflowError(f"Unsupported trigger event {self.event!r}, expected one of {list(EVENTS)}")
        if self.branches is not None:
            if self.event != PUSH:
                raise WorkflowError(f"Branch filter is only allowed on push triggers, not {self.event!r}")
            # accept lists from callers, store a tuple so the trigger stays hashable
            object.__setattr__(self, "branches", tuple(self.branches))

    def matches(self, event: str, branch: str | None = None) -> bool:
        if event != self.event:
            return False
        if self.event != PUSH or self.branches is None:
            return True
        if branch is None:
            return False
        return any(fnmatchcase(branch, pattern) for pattern in self.branches)


@dataclass(frozen=True)
class Step:
    """
    A single unit of work inside a job: an action reference (`uses`)
    or a shell command (`run`), never both.
    """
    name: str | None = None
    run: str | None = None
    uses: str | None = None
    with_: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: str | None = None

    def __post_init__(self) -> None:
        if (self.run is None) == (self.uses is None):
            raise WorkflowError(f"Step {self.label!r} must define exactly one of 'run' or 'uses'")
        if self.with_ and self.uses is None:
            raise WorkflowError(f"Step {self.label!r} has 'with' parameters but no action to pass them to")

    @property
    def label(self) -> str:
        return self.name or self.uses or self.run or "<step>"

    @property
    def is_action(self) -> bool:
        return self.uses is not None

    @property
    def action(self) -> str | None:
        """Action reference without its version: 'actions/checkout@v2' -> 'actions/checkout'."""
        if self.uses is None:
            return None
        return self.uses.split("@", 1)[0]


@dataclass
class Job:
    """
    A CI job: ordered steps + metadata for scheduling and selection.

    `name` is the job id used in `needs` and in the rendered workflow;
    `display_name` is what the CI platform shows.
    """
    name: str
    steps: list[Step]
    display_name: str | None = None
    runs_on: str = "ubuntu-latest"

    needs: list[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    # Git diff based selection
    paths: Optional[List[str]] = None          # e.g. ["*.rs", "Makefile.toml"]
    diff_enabled: bool = True                  # per-job opt-out

    def __post_init__(self) -> None:
        if not self.steps:
            raise WorkflowError(f"Job '{self.name}' must have at least one step")

    @property
    def title(self) -> str:
        return self.display_name or self.name


@dataclass
class Workflow:
    """A named set of jobs started by repository events."""
    name: str
    on: list[Trigger]
    jobs: list[Job]
    env: Dict[str, str] = field(default_factory=dict)
    file_name: str | None = None

    def __post_init__(self) -> None:
        names = [j.name for j in self.jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise WorkflowError(f"Duplicate job names found: {dupes}")

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(f"Unknown job '{name}'. Known jobs: {[j.name for j in self.jobs]}")

    def triggered_by(self, event: str, branch: str | None = None) -> bool:
        return any(t.matches(event, branch) for t in self.on)

    def job_env(self, job: Job, step: Step | None = None) -> Dict[str, str]:
        """Environment seen by a step: workflow env < job env < step env."""
        env = dict(self.env)
        env.update(job.env)
        if step is not None:
            env.update(step.env)
        return env
