from __future__ import annotations
import os

WORKFLOW = os.environ.get("FMTCI_WORKFLOW")
DEFAULT_WORKFLOW_FILE = "fmtci_workflow.py"
COMPARE_REF = os.environ.get("FMTCI_COMPARE_REF", "origin/main")
WORKERS = int(os.environ["FMTCI_WORKERS"]) if os.environ.get("FMTCI_WORKERS") else None
WORKFLOWS_DIR = os.environ.get("FMTCI_WORKFLOWS_DIR", ".github/workflows")
