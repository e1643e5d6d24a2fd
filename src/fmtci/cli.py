# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from fmtci import settings
from fmtci.dag import stages
from fmtci.gha import default_output_path, to_yaml, validate_with_actionlint
from fmtci.git_facts.git import current_branch, get_remote_url
from fmtci.model import EVENTS, PUSH, Workflow, WorkflowError
from fmtci.runner import any_failed, load_workflow, run_workflow
from fmtci.ui.console import Console, get_console, set_console
from fmtci.validate import check_workflow, has_errors


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / settings.DEFAULT_WORKFLOW_FILE
    if default_workflow.exists():
        return [default_workflow]

    for path in current_dir.glob("*_workflow.py"):
        workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument, FMTCI_WORKFLOW or the current directory.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    workflow_arg = workflow_arg or settings.WORKFLOW
    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix == "":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  fmtci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {settings.DEFAULT_WORKFLOW_FILE}",
                "  *_workflow.py",
            ],
            suggestion=f"Create a workflow file:\n  {settings.DEFAULT_WORKFLOW_FILE}\n\n"
            "Or specify a workflow explicitly:\n  fmtci run --workflow .github/workflows/format.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a workflow explicitly:\n  fmtci run --workflow my_workflow.py",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(ctx: click.Context, workflow_arg: str | None) -> tuple[Path, Workflow]:
    console = get_console()
    workflow_path = discover_workflow(workflow_arg)
    try:
        return workflow_path, load_workflow(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


def _repo_name() -> str:
    try:
        repo_url = get_remote_url("origin")
        return repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(".").resolve().name


def _resolve_branch(event: str | None, branch: str | None) -> str | None:
    if event != PUSH or branch:
        return branch
    console = get_console()
    try:
        branch = current_branch()
    except (subprocess.CalledProcessError, FileNotFoundError):
        branch = None
    if branch is None:
        console.print_error(
            "Could not determine branch",
            "A push event needs a branch and the current checkout has none.",
            suggestion="Specify the branch explicitly:\n  fmtci run --event push --branch main",
        )
        sys.exit(1)
    console.print_debug(f"Using current branch: {branch}")
    return branch


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """fmtci — formatting checks as a declarative, locally runnable CI workflow."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); defaults to fmtci_workflow.py if present")
@click.option("--event", type=click.Choice(EVENTS), default=None, help="Only run if the workflow triggers on this event")
@click.option("--branch", default=None, help="Branch for push events (defaults to the current branch)")
@click.option("--job", "jobs", multiple=True, help="Run only this job (repeatable)")
@click.option("--workers", default=settings.WORKERS, type=int, help="Number of parallel workers")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Stop scheduling new jobs after first failure")
@click.option("--git-diff/--no-git-diff", default=False, help="Select jobs based on git diff and job.paths")
@click.option("--compare-ref", default=settings.COMPARE_REF, show_default=True, help="Git ref to diff against")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print selected/skipped jobs")
@click.pass_context
def run(ctx, workflow, event, branch, jobs, workers, fail_fast, git_diff, compare_ref, print_plan):
    """Run a workflow locally."""
    console = get_console()

    workflow_path, wf = _load(ctx, workflow)
    branch = _resolve_branch(event, branch)

    try:
        console.print_run_started(
            repository=_repo_name(),
            workflow=f"{wf.name} ({workflow_path.name})",
            job_count=len(wf.jobs),
            event=event,
            branch=branch,
        )

        results = run_workflow(
            wf,
            repo_root=".",
            event=event,
            branch=branch,
            only=list(jobs) or None,
            max_workers=workers,
            fail_fast=fail_fast,
            use_git_diff=git_diff,
            compare_ref=compare_ref,
            print_plan=print_plan,
        )

        if results:
            console.print_results(results)

        if any_failed(results):
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); defaults to fmtci_workflow.py if present")
@click.option("--output", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Output file (defaults to .github/workflows/<file_name>)")
@click.option("--stdout", "to_stdout", is_flag=True, default=False, help="Print the YAML instead of writing it")
@click.option("--check", is_flag=True, default=False, help="Fail if the file on disk is not up to date; write nothing")
@click.option("--header/--no-header", default=True, show_default=True, help="Prepend the generated-file header")
@click.pass_context
def render(ctx, workflow, output, to_stdout, check, header):
    """Render a workflow to GitHub Actions YAML."""
    console = get_console()

    workflow_path, wf = _load(ctx, workflow)
    yaml_content = to_yaml(wf, include_header=header, source=workflow_path.name)

    if to_stdout:
        click.echo(yaml_content, nl=False)
        return

    output_file = output or default_output_path(wf, settings.WORKFLOWS_DIR)

    if check:
        existing = output_file.read_text(encoding="utf-8") if output_file.exists() else None
        if existing != yaml_content:
            console.print_error(
                "Workflow out of date",
                f"{output_file} does not match {workflow_path.name}",
                suggestion="Regenerate it:\n  fmtci render",
            )
            sys.exit(1)
        console.print_info(f"{output_file} is up to date")
        return

    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(yaml_content, encoding="utf-8")
    console.print_info(f"Wrote {output_file}")


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); defaults to fmtci_workflow.py if present")
@click.option("--actionlint", "use_actionlint", is_flag=True, default=False, help="Also validate the rendered YAML with actionlint")
@click.pass_context
def check(ctx, workflow, use_actionlint):
    """Check a workflow against the configuration rules."""
    console = get_console()

    workflow_path, wf = _load(ctx, workflow)
    findings = check_workflow(wf)

    console.print_header(f"Checked {wf.name} ({workflow_path.name})")
    for finding in findings:
        console.print_finding(finding)
    if not findings:
        console.print_info("  no findings")

    failed = has_errors(findings)

    if use_actionlint:
        ok, message = validate_with_actionlint(to_yaml(wf))
        console.print_info(f"actionlint: {message.strip()}")
        failed = failed or not ok

    if failed:
        sys.exit(1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml); defaults to fmtci_workflow.py if present")
@click.option("--event", type=click.Choice(EVENTS), default=None, help="Event to evaluate the triggers against")
@click.option("--branch", default=None, help="Branch for push events (defaults to the current branch)")
@click.pass_context
def plan(ctx, workflow, event, branch):
    """Show triggers and job stages, and whether an event starts the workflow."""
    console = get_console()

    _workflow_path, wf = _load(ctx, workflow)
    branch = _resolve_branch(event, branch)

    console.print_header(wf.name)
    console.print_info("Triggers:")
    for t in wf.on:
        branches = f" (branches: {', '.join(t.branches)})" if t.branches else ""
        console.print_info(f"  {t.event}{branches}")
    if wf.env:
        console.print_info("Env:")
        for k, v in wf.env.items():
            console.print_info(f"  {k}={v}")

    if event is not None and not wf.triggered_by(event, branch):
        console.print_not_triggered(wf.name, event, branch)
        return

    try:
        levels = stages(wf.jobs)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    for idx, level in enumerate(levels, 1):
        console.print_info(f"Stage {idx}:")
        for name in level:
            j = wf.job(name)
            console.print_plan_job(name, f"{j.title}, {len(j.steps)} step(s)")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
