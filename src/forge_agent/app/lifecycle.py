"""Shared task lifecycle: idle -> proposed -> executed <-> undone.

Every task kind, reversible or not, follows this contract. Guards live in the
concrete `execute`/`undo` implementations and turn invalid requests into logged
no-ops; `_transition` only protects against programming errors.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from forge_agent.app.models import TaskState, TaskView
from forge_agent.app.parser import ParseError

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    "idle": frozenset({"proposed", "executed"}),
    "proposed": frozenset({"idle", "proposed", "executed"}),
    "executed": frozenset({"undone"}),
    "undone": frozenset({"executed"}),
}


class Task(ABC):
    """One unit of model-assisted work, created fresh for each user request."""

    def __init__(
        self,
        *,
        kind: str,
        display_name: str,
        tool_description: str,
        can_undo: bool,
    ) -> None:
        self.kind = kind
        self.display_name = display_name
        self.tool_description = tool_description
        self.can_undo = can_undo
        self.state: TaskState = "idle"
        self.status_message = ""
        # Output of earlier orchestrated steps, embedded in the next prompt.
        self.context_from_previous_steps = ""
        self.execution_log: list[str] = []
        # Set when the last model response could not be parsed; cleared on success.
        self.last_parse_error: ParseError | None = None

    @abstractmethod
    def generate_prompt(self, instruction: str, selection: Sequence[str]) -> str: ...

    @abstractmethod
    def process_response(self, raw: str | None) -> None: ...

    @abstractmethod
    def execute(self) -> None: ...

    def undo(self) -> None:
        logger.info("task_undo event=unsupported kind=%s", self.kind)

    def redo(self) -> None:
        if self.state != "undone":
            logger.info("task_redo event=ignored kind=%s state=%s", self.kind, self.state)
            return
        self.execute()

    @property
    def result_text(self) -> str:
        """Text handed to a later orchestrated step and shown as output."""
        if self.execution_log:
            return "\n".join(self.execution_log)
        return self.status_message

    def snapshot(self) -> TaskView:
        return TaskView(
            kind=self.kind,
            display_name=self.display_name,
            state=self.state,
            can_undo=self.can_undo,
            status_message=self.status_message,
            result_text=self.result_text,
        )

    def _transition(self, target: TaskState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal task transition {self.state} -> {target} ({self.kind})")
        logger.debug("task_state kind=%s from=%s to=%s", self.kind, self.state, target)
        self.state = target
