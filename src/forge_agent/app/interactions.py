"""Interaction history: one record per user submission, each owning a fresh task."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Sequence

from forge_agent.app.asset_store import AssetStore
from forge_agent.app.lifecycle import Task
from forge_agent.app.llm import MissingCredentialError, ModelClient
from forge_agent.app.models import InteractionStatus, InteractionView
from forge_agent.app.orchestrator import NO_DATA_MESSAGE, OrchestratorTask
from forge_agent.app.registry import TaskDependencies, TaskSpec, create_task
from forge_agent.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Interaction:
    interaction_id: str
    task_kind: str
    user_prompt: str
    selection: list[str]
    task: Task
    status: InteractionStatus = "Thinking..."
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def view(self) -> InteractionView:
        return InteractionView(
            interaction_id=self.interaction_id,
            task_kind=self.task_kind,
            user_prompt=self.user_prompt,
            selection=list(self.selection),
            status=self.status,
            error_message=self.error_message,
            created_at=self.created_at,
            task=self.task.snapshot(),
        )


class InteractionHistory:
    """Ordered interaction records for one workspace.

    Records share nothing but the collaborators; clearing the history drops the
    records while any in-flight request simply finishes on its orphaned record.
    """

    def __init__(
        self,
        *,
        registry: dict[str, TaskSpec],
        store: AssetStore,
        client: ModelClient,
        settings: Settings,
    ) -> None:
        self._registry = registry
        self._store = store
        self._client = client
        self._settings = settings
        self._records: dict[str, Interaction] = {}

    def dependencies(self) -> TaskDependencies:
        credential = self._settings.resolved_openai_api_key()
        if not credential:
            raise MissingCredentialError(
                "No API key configured. Set FORGE_AGENT_OPENAI_API_KEY or OPENAI_API_KEY."
            )
        return TaskDependencies(
            store=self._store,
            client=self._client,
            credential=credential,
            settings=self._settings,
            registry=self._registry,
        )

    async def submit(self, task_kind: str, instruction: str, selection: Sequence[str] = ()) -> Interaction:
        deps = self.dependencies()
        task = create_task(task_kind, deps)
        record = Interaction(
            interaction_id=str(uuid.uuid4()),
            task_kind=task.kind,
            user_prompt=instruction,
            selection=list(selection),
            task=task,
        )
        self._records[record.interaction_id] = record
        logger.info("interaction event=submit id=%s kind=%s", record.interaction_id, task.kind)

        prompt = task.generate_prompt(instruction, record.selection)
        raw = await deps.client.send(prompt, deps.credential)
        if raw is None or not raw.strip():
            record.status = "Error"
            record.error_message = NO_DATA_MESSAGE
            logger.warning("interaction event=no_data id=%s", record.interaction_id)
            return record

        task.process_response(raw)
        record.status = "Ready"
        if record.interaction_id not in self._records:
            logger.info("interaction event=orphaned id=%s", record.interaction_id)
        return record

    def get(self, interaction_id: str) -> Interaction | None:
        return self._records.get(interaction_id)

    def records(self) -> list[Interaction]:
        return list(self._records.values())

    def clear(self) -> int:
        count = len(self._records)
        self._records.clear()
        logger.info("interaction event=cleared count=%d", count)
        return count

    async def confirm(self, record: Interaction) -> Interaction:
        """Execute the proposal; for an orchestrator, confirm or run the current step."""
        task = record.task
        if isinstance(task, OrchestratorTask):
            step = task.current_step
            if step is not None and step.status == "awaiting_confirmation":
                task.execute()
            else:
                await task.run_next_step()
        else:
            task.execute()
        return record

    async def run_next_step(self, record: Interaction) -> Interaction:
        task = _orchestrator(record)
        await task.run_next_step()
        return record

    async def run_plan(self, record: Interaction) -> Interaction:
        task = _orchestrator(record)
        await task.run_plan()
        return record

    def undo(self, record: Interaction) -> Interaction:
        record.task.undo()
        return record

    def redo(self, record: Interaction) -> Interaction:
        record.task.redo()
        return record


class NotAnOrchestratorError(TypeError):
    """Raised when a step operation targets a single-task interaction."""


def _orchestrator(record: Interaction) -> OrchestratorTask:
    if not isinstance(record.task, OrchestratorTask):
        raise NotAnOrchestratorError(
            f"Interaction {record.interaction_id} runs '{record.task_kind}', not a multi-step plan"
        )
    return record.task
