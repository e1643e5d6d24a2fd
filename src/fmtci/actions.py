# actions.py
"""
Catalog of the `uses:` actions fmtci knows about.

An action only exists on the CI platform, so each catalog entry carries a
local stand-in: checkout is a no-op (we already are in the repo), installers
verify that the tool they would install is present, and linters call the
CLI the action wraps.
"""
from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .errors import TOOL_HINTS, CIError, StepFailure
from .model import Step

CHECKOUT = "checkout"
TOOLCHAIN = "toolchain"
TASK_RUNNER = "task-runner"
LINT = "lint"

# cargo subcommands that come from a separately installed plugin
CARGO_PLUGINS = {"make": "cargo-make"}

OUTPUT_TAIL = 4000


@dataclass(frozen=True)
class StepContext:
    job: str
    step: Step
    cwd: Path
    env: Dict[str, str]


@dataclass(frozen=True)
class ActionSpec:
    name: str                      # reference without version, e.g. "actions/checkout"
    kind: str
    handler: Callable[[StepContext], None]
    provides: Tuple[str, ...] = ()
    requires: Tuple[str, ...] = ()


# ---------------------------------------------------------------------
# Local stand-ins
# ---------------------------------------------------------------------

def _check_tool_available(ctx: StepContext, tool: str, cmd: list[str]) -> None:
    """Check that a tool can be invoked, raise a helpful error if not."""
    hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
    if shutil.which(cmd[0]) is None:
        raise CIError(
            kind="tool_unavailable",
            job=ctx.job,
            step=ctx.step.label,
            message=f"{tool} is not available",
            details={"hint": hint, "tool": tool},
        )
    try:
        subprocess.run(cmd, capture_output=True, check=True, cwd=str(ctx.cwd), env=ctx.env)
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise CIError(
            kind="tool_unavailable",
            job=ctx.job,
            step=ctx.step.label,
            message=f"{tool} is not available",
            details={"hint": hint, "tool": tool, "probe": " ".join(cmd)},
        )


def _checkout(ctx: StepContext) -> None:
    if not ctx.cwd.is_dir():
        raise CIError(
            kind="cwd_not_found",
            job=ctx.job,
            step=ctx.step.label,
            message=f"repository root not found: {ctx.cwd}",
        )


def _rust_toolchain(ctx: StepContext) -> None:
    _check_tool_available(ctx, "cargo", ["cargo", "--version"])


def _cargo_make(ctx: StepContext) -> None:
    _check_tool_available(ctx, "cargo-make", ["cargo", "make", "--version"])


def markdown_lint_command(params: Dict[str, object]) -> list[str]:
    """Translate markdown-lint action inputs into a markdownlint-cli invocation."""
    cmd = ["markdownlint"]
    config = params.get("config")
    if config:
        cmd.extend(["--config", str(config)])
    ignore = params.get("ignore")
    if ignore:
        cmd.extend(["--ignore", str(ignore)])
    if str(params.get("fix", "")).lower() == "true":
        cmd.append("--fix")
    args = params.get("args")
    if args:
        cmd.extend(shlex.split(str(args)))
    return cmd


def _markdown_lint(ctx: StepContext) -> None:
    cmd = markdown_lint_command(ctx.step.with_)
    _check_tool_available(ctx, "markdownlint", ["markdownlint", "--version"])

    proc = subprocess.run(
        cmd,
        shell=False,  # markdownlint expands the globs itself
        cwd=str(ctx.cwd),
        env=ctx.env,
        text=True,
        capture_output=True,
    )
    if proc.returncode != 0:
        raise StepFailure(
            job=ctx.job,
            step=ctx.step.label,
            cmd=shlex.join(cmd),
            exit_code=proc.returncode,
            stdout=proc.stdout[-OUTPUT_TAIL:],
            stderr=proc.stderr[-OUTPUT_TAIL:],
        )


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------

_RUST_TOOLS = ("cargo", "rustc", "rustfmt")

CATALOG: Dict[str, ActionSpec] = {
    spec.name: spec
    for spec in (
        ActionSpec("actions/checkout", CHECKOUT, _checkout),
        ActionSpec("actions-rs/toolchain", TOOLCHAIN, _rust_toolchain, provides=_RUST_TOOLS),
        ActionSpec("dtolnay/rust-toolchain", TOOLCHAIN, _rust_toolchain, provides=_RUST_TOOLS),
        ActionSpec("davidB/rust-cargo-make", TASK_RUNNER, _cargo_make, provides=("cargo-make",), requires=("cargo",)),
        ActionSpec("avto-dev/markdown-lint", LINT, _markdown_lint),
    )
}

# every tool some catalog action can install
INSTALLABLE_TOOLS = frozenset(t for spec in CATALOG.values() for t in spec.provides)


def lookup(step: Step) -> Optional[ActionSpec]:
    if step.action is None:
        return None
    return CATALOG.get(step.action)


def command_tools(cmd: str) -> Tuple[str, ...]:
    """
    Tools a shell command needs, judged from its first words:
      "cargo make rust-fmt-check" -> ("cargo", "cargo-make")
    """
    try:
        words = shlex.split(cmd)
    except ValueError:
        words = cmd.split()
    if not words:
        return ()
    tool = Path(words[0]).name
    if tool == "cargo" and len(words) > 1 and words[1] in CARGO_PLUGINS:
        return (tool, CARGO_PLUGINS[words[1]])
    return (tool,)


def step_requires(step: Step) -> Tuple[str, ...]:
    """Installable tools the step depends on."""
    if step.run is not None:
        return tuple(t for t in command_tools(step.run) if t in INSTALLABLE_TOOLS)
    spec = lookup(step)
    return spec.requires if spec else ()


def step_provides(step: Step) -> Tuple[str, ...]:
    spec = lookup(step)
    return spec.provides if spec else ()


def run_action(ctx: StepContext) -> None:
    spec = lookup(ctx.step)
    if spec is None:
        raise CIError(
            kind="unsupported_action",
            job=ctx.job,
            step=ctx.step.label,
            message=f"no local stand-in for action {ctx.step.uses!r}",
            details={"known": ", ".join(sorted(CATALOG))},
        )
    spec.handler(ctx)
