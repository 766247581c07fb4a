"""Pydantic models shared by the parser, tasks, orchestrator and API.

Terms used in this file:
- Operation: one discrete, independently revertible action proposed by the model.
- Plan: the JSON object the model answers with (`operations` or `steps`).
- Completed record: what a successful operation leaves behind so it can be undone.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Lifecycle states shared by every task kind.
TaskState = Literal["idle", "proposed", "executed", "undone"]
InteractionStatus = Literal["Thinking...", "Ready", "Error"]
StepStatus = Literal["pending", "awaiting_confirmation", "completed", "failed", "skipped"]


class WireModel(BaseModel):
    """Base model for model-produced payloads: camelCase keys, unknown keys ignored."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class MoveOperation(WireModel):
    """Move one project path to a new location (target includes the file name)."""

    source_path: str = Field(alias="sourcePath", min_length=1)
    target_path: str = Field(alias="targetPath", min_length=1)


class RenameOperation(WireModel):
    """Rename one project path in place; `new_name` carries the extension."""

    original_path: str = Field(alias="originalPath", min_length=1)
    new_name: str = Field(alias="newName", min_length=1)


class CommandOperation(WireModel):
    """One version-control command line plus a human description."""

    description: str = ""
    command: str = Field(min_length=1)


class PlannedStep(WireModel):
    """One step of an orchestrated plan, bound to a registered task kind."""

    tool_name: str = Field(alias="toolName", min_length=1)
    instruction: str = Field(min_length=1)
    # Advisory only; logged and shown, never interpreted.
    reasoning: str = ""


TOp = TypeVar("TOp", bound=WireModel)


class OperationPlan(WireModel, Generic[TOp]):
    """Top-level `{"operations": [...]}` wrapper; a missing or null list is an empty plan."""

    operations: list[TOp] = Field(default_factory=list)

    @field_validator("operations", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class AgentPlan(WireModel):
    """Top-level `{"steps": [...]}` wrapper produced by the planning prompt."""

    steps: list[PlannedStep] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class CompletedMove(BaseModel):
    """Where a moved path came from and where it is now."""

    model_config = ConfigDict(frozen=True)

    original_location: str
    current_location: str


class CompletedRename(BaseModel):
    """Directory plus old/new file names of a finished rename."""

    model_config = ConfigDict(frozen=True)

    directory: str
    old_name: str
    new_name: str


class CreateInteractionRequest(BaseModel):
    """Request body for POST /interactions."""

    task: str = Field(min_length=1)
    instruction: str = Field(min_length=1)
    selection: list[str] = Field(default_factory=list)


class StepView(BaseModel):
    """One orchestrated step as shown to the caller."""

    index: int
    tool_name: str
    instruction: str
    reasoning: str
    status: StepStatus
    error: str | None = None
    task: TaskView | None = None


class TaskView(BaseModel):
    """Serializable snapshot of a task, enough for a front end to render it."""

    kind: str
    display_name: str
    state: TaskState
    can_undo: bool
    status_message: str
    proposal: list[dict[str, Any]] = Field(default_factory=list)
    history_size: int = 0
    result_text: str = ""
    steps: list[StepView] = Field(default_factory=list)
    cursor: int | None = None


class InteractionView(BaseModel):
    """Response body for the interaction endpoints."""

    interaction_id: str
    task_kind: str
    user_prompt: str
    selection: list[str] = Field(default_factory=list)
    status: InteractionStatus
    error_message: str | None = None
    created_at: datetime
    task: TaskView


StepView.model_rebuild()
