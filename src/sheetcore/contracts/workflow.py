"""Workflow file models for ``sheetcore run``.

A workflow names the table it works on (``target``), run-wide switches
(``defaults``) and an ordered list of steps, each a command plus its args.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class WorkflowTarget(BaseModel):
    file: str = ""
    sheet: str | None = None


class WorkflowDefaults(BaseModel):
    dry_run: bool = False
    stop_on_error: bool = False
    backup: bool = False
    history_limit: int | None = Field(default=None, ge=1)


class WorkflowStep(BaseModel):
    id: str
    run: str
    description: str = ""
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Step id must not be blank")
        return v

    @field_validator("run")
    @classmethod
    def validate_run_command(cls, v: str) -> str:
        from sheetcore.engine.workflow import WORKFLOW_COMMANDS

        if v not in WORKFLOW_COMMANDS:
            raise ValueError(
                f"Unknown workflow step command: '{v}'. "
                f"Supported: {', '.join(sorted(WORKFLOW_COMMANDS))}"
            )
        return v


class WorkflowSpec(BaseModel):
    schema_version: str = "1.0"
    name: str = ""
    target: WorkflowTarget = Field(default_factory=WorkflowTarget)
    defaults: WorkflowDefaults = Field(default_factory=WorkflowDefaults)
    steps: list[WorkflowStep] = Field(default_factory=list)

    @property
    def mutating(self) -> bool:
        from sheetcore.engine.workflow import is_mutating_step

        return any(is_mutating_step(s.run) for s in self.steps)
