# workflows/format.py
from __future__ import annotations

from ..dsl import job, on_pull_request, on_push, sh, uses, wf
from ..model import Step, Workflow

CHECKOUT_ACTION = "actions/checkout@v2"
TOOLCHAIN_ACTION = "actions-rs/toolchain@v1"
CARGO_MAKE_ACTION = "davidB/rust-cargo-make@v1"
MARKDOWN_LINT_ACTION = "avto-dev/markdown-lint@v1.5.0"

PUSH_BRANCHES = ("main", "develop", "release")

# Paths each job inspects. Rust formatter and cargo-make config are also toml
# files, so a change to them selects both check_format and check_format_toml.
RUST_PATHS = ["*.rs", "rustfmt.toml", ".rustfmt.toml", "Makefile.toml"]
MARKDOWN_PATHS = ["*.md", ".markdownlint.jsonc"]
TOML_PATHS = ["*.toml"]


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def checkout(name: str | None = None) -> Step:
    return uses(CHECKOUT_ACTION, name=name)


def rust_toolchain(toolchain: str = "stable", *, override: bool = True) -> Step:
    """Install a Rust toolchain and make it the directory override."""
    return uses(TOOLCHAIN_ACTION, toolchain=toolchain, override=override)


def install_cargo_make() -> Step:
    return uses(CARGO_MAKE_ACTION)


def cargo_make(task: str, name: str | None = None) -> Step:
    """Run a task defined in Makefile.toml."""
    return sh(name, f"cargo make {task}")


def markdown_lint(config: str = "./.markdownlint.jsonc", args: str = "*.md", *, name: str | None = None) -> Step:
    return uses(MARKDOWN_LINT_ACTION, name=name, config=config, args=args)


# ---------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------

def format_workflow() -> Workflow:
    """The three formatting checks: rust sources, markdown files, toml files."""
    return wf(
        "👔 Check formatting",
        job(
            "check_format",
            checkout(),
            rust_toolchain(),
            install_cargo_make(),
            cargo_make("rust-fmt-check", name="Check Formatting"),
            display_name="👔 Check formatting",
            paths=RUST_PATHS,
        ),
        job(
            "check_format_markdown",
            checkout("Check out code"),
            markdown_lint(name="Markdown Linting Action"),
            display_name="🖋 Check markdown files",
            paths=MARKDOWN_PATHS,
        ),
        job(
            "check_format_toml",
            checkout("Check out code"),
            rust_toolchain(),
            install_cargo_make(),
            cargo_make("toml-fmt-check"),
            display_name="🪦 Check toml files",
            paths=TOML_PATHS,
        ),
        on=[on_pull_request(), on_push(*PUSH_BRANCHES)],
        env={"CARGO_TERM_COLOR": "always"},
        file_name="format.yml",
    )
