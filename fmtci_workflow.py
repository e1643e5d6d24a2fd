# fmtci_workflow.py
# Formatting checks for this repository: rust sources, markdown files, toml files.
# Render with `fmtci render`, run locally with `fmtci run`.
from __future__ import annotations

from fmtci.workflows.format import format_workflow


def workflow():
    return format_workflow()
