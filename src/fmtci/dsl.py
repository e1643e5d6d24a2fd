# src/fmtci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional

from .model import PULL_REQUEST, PUSH, Job, Step, Trigger, Workflow, WorkflowError


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str | None, cmd: str, *, cwd: str | None = None, env: Optional[Dict[str, str]] = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, env=env or {})


def uses(ref: str, *, name: str | None = None, env: Optional[Dict[str, str]] = None, **params: Any) -> Step:
    """
    Create an action step.

    Keyword arguments become the action's `with:` parameters:
        uses("actions-rs/toolchain@v1", toolchain="stable", override=True)
    """
    return Step(name=name, uses=ref, with_=dict(params), env=env or {})


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_pull_request() -> Trigger:
    return Trigger(PULL_REQUEST)


def on_push(*branches: str) -> Trigger:
    """Push trigger; no branches means any branch."""
    return Trigger(PUSH, tuple(branches) if branches else None)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    display_name: str | None = None,
    runs_on: str = "ubuntu-latest",
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    paths: Optional[List[str]] = None,
    diff_enabled: bool = True,
    cwd: str | None = None,  # default cwd applied to run steps missing cwd
) -> Job:
    steps_final = list(steps)
    if not steps_final:
        raise WorkflowError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None or s.is_action else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        display_name=display_name,
        runs_on=runs_on,
        needs=list(needs or []),
        env=dict(env or {}),
        paths=list(paths) if paths is not None else None,
        diff_enabled=diff_enabled,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._display_name: str | None = None
        self._runs_on: str = "ubuntu-latest"
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._paths: Optional[list[str]] = None
        self._diff_enabled: bool = True

    def titled(self, display_name: str):
        self._display_name = display_name
        return self

    def runs_on(self, image: str):
        self._runs_on = image
        return self

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def define_step(self, name: str | None, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def use_action(self, ref: str, name: str | None = None, **params: Any):
        self._steps.append(uses(ref, name=name, **params))
        return self

    def with_env(self, **env):
        # force values to str, the process environment only holds strings
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_paths(self, *patterns: str):
        self._paths = list(patterns)
        return self

    def enable_diff(self, enabled: bool = True):
        self._diff_enabled = enabled
        return self

    def build(self) -> Job:
        if not self._steps:
            raise WorkflowError(f"Job '{self.name}' has no steps")

        return Job(
            name=self.name,
            steps=list(self._steps),
            display_name=self._display_name,
            runs_on=self._runs_on,
            needs=list(self._needs),
            env=dict(self._env),
            paths=self._paths,
            diff_enabled=self._diff_enabled,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('lint').use_action(...).define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    name: str,
    *jobs: Job,
    on: Optional[List[Trigger]] = None,
    env: Optional[Dict[str, str]] = None,
    file_name: str | None = None,
) -> Workflow:
    """
    Workflow definition helper.

    Users can write:
        from fmtci import wf, job, sh, on_pull_request

        def workflow():
            return wf(
                "CI",
                job("lint", sh("Lint", "ruff check .")),
                on=[on_pull_request()],
            )
    """
    return Workflow(
        name=name,
        on=list(on or []),
        jobs=list(jobs),
        env={k: str(v) for k, v in (env or {}).items()},
        file_name=file_name,
    )


workflow = wf  # alias (avoid naming your own function workflow if you import it)
