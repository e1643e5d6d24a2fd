"""GitHub Actions workflow rendering and loading.

This module provides:
- Conversion of a Workflow into the GitHub Actions mapping layout
- YAML rendering (with an optional generated-file header)
- Loading of GitHub Actions YAML back into a Workflow
- Optional validation via actionlint
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from io import StringIO
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError

from .model import PUSH, Job, Step, Trigger, Workflow, WorkflowError
from .schema import workflow_from_data

DEFAULT_WORKFLOWS_DIR = ".github/workflows"


# =============================================================================
# Workflow -> mapping
# =============================================================================


def step_to_dict(step: Step) -> CommentedMap:
    d = CommentedMap()
    if step.name:
        d["name"] = step.name
    if step.uses is not None:
        d["uses"] = step.uses
        if step.with_:
            d["with"] = CommentedMap(step.with_)
    if step.run is not None:
        d["run"] = step.run
    if step.env:
        d["env"] = CommentedMap(step.env)
    if step.cwd:
        d["working-directory"] = step.cwd
    return d


def job_to_dict(job: Job) -> CommentedMap:
    d = CommentedMap()
    if job.display_name:
        d["name"] = job.display_name
    d["runs-on"] = job.runs_on
    if job.needs:
        d["needs"] = list(job.needs)
    if job.env:
        d["env"] = CommentedMap(job.env)
    d["steps"] = [step_to_dict(s) for s in job.steps]
    return d


def triggers_to_dict(triggers: list[Trigger]) -> CommentedMap:
    d = CommentedMap()
    for t in triggers:
        if t.event == PUSH and t.branches is not None:
            d[t.event] = CommentedMap([("branches", list(t.branches))])
        else:
            d[t.event] = None
    return d


def workflow_to_dict(workflow: Workflow) -> CommentedMap:
    """Convert to a mapping in GitHub Actions layout (name, on, env, jobs)."""
    d = CommentedMap()
    d["name"] = workflow.name
    d["on"] = triggers_to_dict(workflow.on)
    if workflow.env:
        d["env"] = CommentedMap(workflow.env)
    d["jobs"] = CommentedMap((j.name, job_to_dict(j)) for j in workflow.jobs)
    return d


# =============================================================================
# YAML rendering
# =============================================================================


def generate_workflow_header(source: str | None = None) -> str:
    """
    Generate a header comment for generated workflow files.

    Args:
        source: Optional description of what generated this workflow
                (e.g., "fmtci_workflow.py")

    Returns:
        Header comment string to prepend to YAML content.

    """
    lines = [
        "# ============================================================================",
        "# GENERATED FILE - DO NOT EDIT MANUALLY",
        "#",
        "# This workflow is generated by fmtci. To modify:",
        "#   1. Edit the workflow definition",
        "#   2. Run: fmtci render",
        "#   3. Commit the regenerated file",
        "#",
    ]
    if source:
        lines.append(f"# Source: {source}")
    lines.extend(
        [
            "# ============================================================================",
            "",
        ]
    )
    return "\n".join(lines)


def _yaml() -> YAML:
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.indent(mapping=2, sequence=4, offset=2)
    yaml.width = 4096  # keep long run commands on one line
    return yaml


def to_yaml(workflow: Workflow, *, include_header: bool = False, source: str | None = None) -> str:
    """
    Render as YAML string.

    Args:
        workflow: The workflow to render.
        include_header: If True, prepend generated-file header comment.
        source: Source description for header. Defaults to the workflow name.

    Returns:
        YAML string, optionally with header.

    """
    stream = StringIO()
    _yaml().dump(workflow_to_dict(workflow), stream)
    yaml_content = stream.getvalue()

    if include_header:
        header_source = source if source else f"workflow: {workflow.name}"
        return generate_workflow_header(header_source) + yaml_content

    return yaml_content


def default_output_path(workflow: Workflow, workflows_dir: str | Path = DEFAULT_WORKFLOWS_DIR) -> Path:
    file_name = workflow.file_name or f"{_slug(workflow.name)}.yml"
    return Path(workflows_dir) / file_name


def _slug(name: str) -> str:
    out = "".join(c.lower() if c.isalnum() else "-" for c in name)
    return "-".join(part for part in out.split("-") if part) or "workflow"


# =============================================================================
# YAML loading
# =============================================================================


def parse_gha_workflow(text: str, *, file_name: str | None = None) -> Workflow:
    """Parse GitHub Actions YAML text into a Workflow."""
    yaml = YAML(typ="safe")
    try:
        data: Any = yaml.load(text)
    except YAMLError as e:
        raise WorkflowError(f"Could not parse workflow YAML: {e}") from e
    return workflow_from_data(data, file_name=file_name)


def load_gha_workflow(path: str | Path) -> Workflow:
    """Load a GitHub Actions workflow file into a Workflow."""
    wf_path = Path(path).expanduser()
    if not wf_path.exists():
        raise WorkflowError(f"Workflow file not found: {wf_path}")
    return parse_gha_workflow(wf_path.read_text(encoding="utf-8"), file_name=wf_path.name)


# =============================================================================
# actionlint
# =============================================================================


ACTIONLINT_HINT = "Install actionlint (go install github.com/rhysd/actionlint/cmd/actionlint@latest)."


def validate_with_actionlint(yaml_content: str) -> tuple[bool, str]:
    """
    Run actionlint over rendered workflow YAML.

    actionlint only reads files, so the YAML goes through a temporary .yml.
    Returns (ok, message); on failure the message holds actionlint's report.
    """
    actionlint = shutil.which("actionlint")
    if actionlint is None:
        return False, f"actionlint not found. {ACTIONLINT_HINT}"

    with tempfile.TemporaryDirectory(prefix="fmtci-") as tmp:
        wf_path = Path(tmp) / "workflow.yml"
        wf_path.write_text(yaml_content, encoding="utf-8")
        proc = subprocess.run([actionlint, str(wf_path)], capture_output=True, text=True)

    if proc.returncode != 0:
        return False, (proc.stdout + proc.stderr).replace(str(wf_path), "<rendered>")
    return True, "no problems found"
