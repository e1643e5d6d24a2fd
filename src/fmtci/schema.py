# schema.py
"""Pydantic models for GitHub Actions workflow documents loaded from YAML."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .model import Job, Step, Trigger, Workflow, WorkflowError


def _str_values(v: Any) -> Any:
    # YAML turns `true`/`1` into bool/int; the process environment only holds strings
    if v is None:
        return {}
    if isinstance(v, dict):
        return {str(k): _scalar_str(val) for k, val in v.items()}
    return v


def _scalar_str(v: Any) -> Any:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    return v


class StepDoc(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    uses: Optional[str] = None
    run: Optional[str] = None
    with_: Dict[str, Any] = Field(default_factory=dict, alias="with")
    env: Dict[str, str] = Field(default_factory=dict)
    working_directory: Optional[str] = Field(default=None, alias="working-directory")

    @field_validator("with_", mode="before")
    @classmethod
    def _empty_with(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("env", mode="before")
    @classmethod
    def _env_strings(cls, v: Any) -> Any:
        return _str_values(v)

    @model_validator(mode="after")
    def _uses_or_run(self) -> "StepDoc":
        if (self.uses is None) == (self.run is None):
            raise ValueError("step must define exactly one of 'uses' or 'run'")
        if self.with_ and self.uses is None:
            raise ValueError("'with' is only allowed on 'uses' steps")
        return self

    def to_step(self) -> Step:
        return Step(
            name=self.name,
            run=self.run,
            uses=self.uses,
            with_=dict(self.with_),
            env=dict(self.env),
            cwd=self.working_directory,
        )


class JobDoc(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    runs_on: str = Field(default="ubuntu-latest", alias="runs-on")
    needs: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepDoc] = Field(min_length=1)

    @field_validator("needs", mode="before")
    @classmethod
    def _needs_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("env", mode="before")
    @classmethod
    def _env_strings(cls, v: Any) -> Any:
        return _str_values(v)

    def to_job(self, job_id: str) -> Job:
        return Job(
            name=job_id,
            steps=[s.to_step() for s in self.steps],
            display_name=self.name,
            runs_on=self.runs_on,
            needs=list(self.needs),
            env=dict(self.env),
        )


class EventDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    branches: Optional[List[str]] = None


class WorkflowDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    on: Dict[str, Optional[EventDoc]]
    env: Dict[str, str] = Field(default_factory=dict)
    jobs: Dict[str, JobDoc] = Field(min_length=1)

    @field_validator("on", mode="before")
    @classmethod
    def _normalize_on(cls, v: Any) -> Any:
        # `on: push` and `on: [push, pull_request]` are shorthands for a mapping
        if isinstance(v, str):
            return {v: None}
        if isinstance(v, list):
            return {str(event): None for event in v}
        return v

    @field_validator("env", mode="before")
    @classmethod
    def _env_strings(cls, v: Any) -> Any:
        return _str_values(v)

    def to_workflow(self, file_name: str | None = None) -> Workflow:
        triggers = [
            Trigger(event, tuple(doc.branches) if doc is not None and doc.branches is not None else None)
            for event, doc in self.on.items()
        ]
        return Workflow(
            name=self.name,
            on=triggers,
            jobs=[doc.to_job(job_id) for job_id, doc in self.jobs.items()],
            env=dict(self.env),
            file_name=file_name,
        )


def workflow_from_data(data: Any, file_name: str | None = None) -> Workflow:
    """Validate a parsed YAML document and convert it into a Workflow."""
    if not isinstance(data, dict):
        raise WorkflowError(f"Workflow document must be a mapping, got {type(data).__name__}")

    # YAML 1.1 parsers read the `on` key as boolean true
    if True in data and "on" not in data:
        data = {("on" if k is True else k): v for k, v in data.items()}

    try:
        doc = WorkflowDoc.model_validate(data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise WorkflowError("Invalid workflow document:\n  " + "\n  ".join(problems)) from e

    return doc.to_workflow(file_name=file_name)
