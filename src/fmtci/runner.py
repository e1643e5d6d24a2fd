# runner.py
from __future__ import annotations

import os
import runpy
import subprocess
from concurrent.futures import Future, ThreadPoolExecutor, wait, FIRST_COMPLETED
from fnmatch import fnmatch
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import actions
from .dag import build_dag, dependents
from .errors import CIError, StepFailure
from .git_facts.git import changed_files as changed_files_between
from .git_facts.git import head_sha, is_dirty, merge_base, repo_root as git_repo_root, tracked_files, uncommitted_files
from .gha import load_gha_workflow
from .model import Job, Step, Workflow, WorkflowError
from .ui.console import get_console

OK = "ok"
FAILED = "failed"
SKIPPED_NEEDS = "skipped(needs)"
CANCELLED = "cancelled"

OUTPUT_TAIL = 4000


# ----------------------------------------------------------------------
# Git diff facts
# ----------------------------------------------------------------------

def git_functionality(
    compare_ref: str = "origin/main",
    cwd: str | Path = ".",
) -> Tuple[Optional[str], List[str]]:
    """
    Returns:
      recent_commit_head:
        - full SHA for HEAD if repo is clean
        - None if repo has uncommitted changes (dirty)
      changed_files:
        - list of changed file paths relative to repo root
    """
    root = git_repo_root(cwd)

    if is_dirty(root):
        # staged + unstaged + untracked
        return None, uncommitted_files(root)

    head = head_sha(root)
    # Compare HEAD against merge-base with compare_ref, or HEAD~1 without a remote
    try:
        base = merge_base(compare_ref, cwd=root)
    except subprocess.CalledProcessError:
        base = "HEAD~1"

    try:
        changed = changed_files_between(base, "HEAD", cwd=root)
    except subprocess.CalledProcessError:
        # first commit: every tracked file counts as changed
        changed = tracked_files(root)

    return head, changed


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file or a GitHub Actions YAML file.

    A python file must define either:
      - workflow() -> Workflow
      - WORKFLOW = Workflow(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise WorkflowError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix in (".yml", ".yaml"):
        return load_gha_workflow(wf_path)
    if wf_path.suffix != ".py":
        raise WorkflowError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")

    module_name = f"fmtci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    wf = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            wf = globals_dict["workflow"]()
        except TypeError as e:
            if "required positional argument" in str(e):
                raise WorkflowError(
                    "Your workflow() is being called without arguments but the module's `workflow` "
                    "is the DSL helper (name collision). Use the 'wf' helper instead: "
                    "`from fmtci import wf` then `def workflow(): return wf(...)`"
                ) from e
            raise
    elif "WORKFLOW" in globals_dict:
        wf = globals_dict["WORKFLOW"]

    if not isinstance(wf, Workflow):
        raise WorkflowError(
            f"{wf_path.name} must return/define a Workflow. "
            "Define workflow() -> Workflow or WORKFLOW = wf(...)."
        )

    if wf.file_name is None:
        wf.file_name = f"{wf_path.stem.replace('_workflow', '') or 'workflow'}.yml"
    return wf


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _step_cwd(job: Job, step: Step, repo_root: Path) -> Path:
    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.is_dir():
        raise CIError(
            kind="cwd_not_found",
            job=job.name,
            step=step.label,
            message=f"working directory not found: {cwd}",
        )
    return cwd


def _run_step(workflow: Workflow, job: Job, step: Step, repo_root: Path) -> None:
    cwd = _step_cwd(job, step, repo_root)

    env = os.environ.copy()
    env.update(workflow.job_env(job, step))

    if step.is_action:
        actions.run_action(actions.StepContext(job=job.name, step=step, cwd=cwd, env=env))
        return

    proc = subprocess.run(
        step.run,
        shell=True,
        cwd=str(cwd),
        env=env,
        text=True,
        capture_output=True,   # shown on failure
    )

    if proc.returncode != 0:
        raise StepFailure(
            job=job.name,
            step=step.label,
            cmd=step.run or "",
            exit_code=proc.returncode,
            stdout=proc.stdout[-OUTPUT_TAIL:],
            stderr=proc.stderr[-OUTPUT_TAIL:],
        )


def _run_job(workflow: Workflow, job: Job, repo_root: Path) -> Tuple[str, str]:
    """
    Run the steps of one job in order.

    Returns (job_name, "ok"). Raises on the first failing step; the steps
    after it never run.
    """
    console = get_console()
    console.print_job_start(job.title)
    for step in job.steps:
        console.print_step(job.name, step.label)
        _run_step(workflow, job, step, repo_root)
    console.print_success(job.name)
    return job.name, OK


def _report_failure(name: str, exc: BaseException) -> None:
    console = get_console()
    if isinstance(exc, StepFailure):
        output = "\n".join(part for part in (exc.stdout, exc.stderr) if part)
        console.print_failure(name, str(exc), exit_code=exc.exit_code, output=output or None, is_job=True)
    elif isinstance(exc, CIError):
        console.print_failure(name, str(exc), hint=exc.details.get("hint"), is_job=True)
    else:
        console.print_failure(name, f"{type(exc).__name__}: {exc}", is_job=True)


# ----------------------------------------------------------------------
# Job selection
# ----------------------------------------------------------------------

def _matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(path, p) for p in patterns)


def select_jobs(
    jobs: List[Job],
    *,
    use_git_diff: bool,
    compare_ref: str,
    print_plan: bool,
    repo_root: str | Path = ".",
    changed: Optional[List[str]] = None,
) -> List[Job]:
    """
    Keep the jobs whose `paths` match a changed file.

    Jobs without paths, or with diff selection disabled, always run.
    `changed` overrides the git lookup.
    """
    console = get_console()
    if not use_git_diff:
        if print_plan:
            for j in jobs:
                console.print_plan_job(j.name, "git diff disabled")
        return list(jobs)

    if changed is None:
        _head, changed = git_functionality(compare_ref=compare_ref, cwd=repo_root)
    changed_set = set(changed or [])

    selected: List[Job] = []
    for j in jobs:
        if not j.diff_enabled:
            selected.append(j)
            if print_plan:
                console.print_plan_job(j.name, "diff disabled for job")
            continue

        if not j.paths:
            selected.append(j)
            if print_plan:
                console.print_plan_job(j.name, "no paths specified")
            continue

        if any(_matches_any(f, j.paths) for f in changed_set):
            selected.append(j)
            if print_plan:
                console.print_plan_job(j.name, f"matched {j.paths}")
        elif print_plan:
            console.print_plan_job_skipped(j.name, f"no match for {j.paths}")

    return selected


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_workflow(
    workflow: Workflow,
    *,
    repo_root: str | Path = ".",
    event: Optional[str] = None,
    branch: Optional[str] = None,
    only: Optional[Iterable[str]] = None,
    max_workers: int | None = None,
    fail_fast: bool = False,
    use_git_diff: bool = False,
    compare_ref: str = "origin/main",
    print_plan: bool = True,
    changed: Optional[List[str]] = None,
) -> Dict[str, str]:
    """
    Run the workflow's jobs locally.

    Jobs run in parallel, each job's steps in order. Job statuses:
      - "ok"
      - "failed"           a step failed or the environment was unusable
      - "skipped(needs)"   a job it needs did not succeed
      - "cancelled"        fail_fast stopped scheduling after a failure

    Without fail_fast, one failing job never stops the independent ones.
    If `event` is given and the workflow is not triggered by it, nothing runs.
    """
    console = get_console()
    repo_root_p = Path(repo_root).resolve()

    if event is not None and not workflow.triggered_by(event, branch):
        console.print_not_triggered(workflow.name, event, branch)
        return {}

    # validates names/needs against the whole workflow, even if we run a subset
    full_adj, _ = build_dag(workflow.jobs)

    jobs = list(workflow.jobs)
    if only is not None:
        wanted = set(only)
        unknown = sorted(wanted - {j.name for j in jobs})
        if unknown:
            raise WorkflowError(f"Unknown job(s) {unknown}. Known jobs: {[j.name for j in jobs]}")
        jobs = [j for j in jobs if j.name in wanted]

    jobs = select_jobs(
        jobs,
        use_git_diff=use_git_diff,
        compare_ref=compare_ref,
        print_plan=print_plan,
        repo_root=repo_root_p,
        changed=changed,
    )

    # needs on jobs that were not selected count as satisfied
    by_name: Dict[str, Job] = {j.name: j for j in jobs}
    adj: Dict[str, Set[str]] = {name: full_adj[name] & set(by_name) for name in by_name}
    indeg: Dict[str, int] = {name: 0 for name in by_name}
    for deps in adj.values():
        for d in deps:
            indeg[d] += 1

    ready: List[str] = [j.name for j in jobs if indeg[j.name] == 0]
    results: Dict[str, str] = {}
    failed = False

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    in_flight: Dict[Future, str] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            # schedule all currently ready
            while ready and not (fail_fast and failed):
                name = ready.pop(0)
                in_flight[pool.submit(_run_job, workflow, by_name[name], repo_root_p)] = name

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            done, _pending = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                name = in_flight.pop(fut)
                try:
                    _job_name, status = fut.result()
                    results[name] = status
                except Exception as e:
                    results[name] = FAILED
                    failed = True
                    _report_failure(name, e)

                if results[name] == OK:
                    for nxt in sorted(adj[name]):
                        indeg[nxt] -= 1
                        if indeg[nxt] == 0:
                            ready.append(nxt)
                else:
                    for nxt in sorted(dependents(adj, name)):
                        if nxt not in results:
                            results[nxt] = SKIPPED_NEEDS
                            console.print_job_skipped(nxt, f"needs {name}")

    for j in jobs:
        results.setdefault(j.name, CANCELLED)

    return {j.name: results[j.name] for j in jobs}


def any_failed(results: Dict[str, str]) -> bool:
    return any(v in (FAILED, SKIPPED_NEEDS, CANCELLED) for v in results.values())
