"""Static registry of task kinds: name -> factory and planner-facing description."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from forge_agent.app.asset_store import AssetStore
from forge_agent.app.lifecycle import Task
from forge_agent.app.llm import ModelClient
from forge_agent.app.tasks import (
    CHAT_DESCRIPTION,
    CHAT_KIND_NAME,
    GIT_KIND,
    MOVE_KIND,
    RENAME_KIND,
    MessageTask,
    build_git_command_task,
    build_move_task,
    build_rename_task,
)
from forge_agent.config.settings import Settings

if TYPE_CHECKING:
    from forge_agent.app.orchestrator import OrchestratorTask


class UnknownTaskKindError(KeyError):
    """Raised when a caller asks for a task kind that is not registered."""

    def __init__(self, name: str, known: list[str]) -> None:
        super().__init__(name)
        self.name = name
        self.known = known

    def __str__(self) -> str:
        return f"Unknown task kind '{self.name}'. Known kinds: {', '.join(self.known)}"


@dataclass(frozen=True)
class TaskDependencies:
    """Collaborators a task factory may need."""

    store: AssetStore
    client: ModelClient
    credential: str
    settings: Settings
    registry: dict[str, TaskSpec]


@dataclass(frozen=True)
class TaskSpec:
    name: str
    display_name: str
    description: str
    factory: Callable[[TaskDependencies], Task]
    # The orchestrator itself is hidden from its own planning catalog.
    offered_to_planner: bool = True


@dataclass(frozen=True)
class UnknownTool:
    """Typed marker for a planned step naming a tool that is not registered."""

    name: str
    known: tuple[str, ...]

    @property
    def message(self) -> str:
        return f"Unknown tool '{self.name}'. Available tools: {', '.join(self.known)}"


def _build_orchestrator(deps: TaskDependencies) -> OrchestratorTask:
    from forge_agent.app.orchestrator import OrchestratorTask

    return OrchestratorTask(
        registry=deps.registry,
        deps=deps,
        auto_chain=deps.settings.orchestrator_auto_chain,
        prompt_preview_chars=deps.settings.prompt_preview_chars,
    )


def build_registry() -> dict[str, TaskSpec]:
    return {
        MOVE_KIND.name: TaskSpec(
            name=MOVE_KIND.name,
            display_name=MOVE_KIND.display_name,
            description=MOVE_KIND.tool_description,
            factory=lambda deps: build_move_task(deps.store),
        ),
        RENAME_KIND.name: TaskSpec(
            name=RENAME_KIND.name,
            display_name=RENAME_KIND.display_name,
            description=RENAME_KIND.tool_description,
            factory=lambda deps: build_rename_task(deps.store),
        ),
        GIT_KIND.name: TaskSpec(
            name=GIT_KIND.name,
            display_name=GIT_KIND.display_name,
            description=GIT_KIND.tool_description,
            factory=lambda deps: build_git_command_task(deps.store),
        ),
        CHAT_KIND_NAME: TaskSpec(
            name=CHAT_KIND_NAME,
            display_name="Chat / Analysis",
            description=CHAT_DESCRIPTION,
            factory=lambda _deps: MessageTask(),
        ),
        "auto_agent": TaskSpec(
            name="auto_agent",
            display_name="Auto Agent",
            description="Breaks a goal into steps and runs other tools in sequence.",
            factory=_build_orchestrator,
            offered_to_planner=False,
        ),
    }


def resolve(registry: dict[str, TaskSpec], name: str) -> TaskSpec | UnknownTool:
    spec = registry.get(name.strip())
    if spec is None:
        return UnknownTool(name=name, known=tuple(sorted(registry)))
    return spec


def create_task(name: str, deps: TaskDependencies) -> Task:
    spec = resolve(deps.registry, name)
    if isinstance(spec, UnknownTool):
        raise UnknownTaskKindError(spec.name, list(spec.known))
    return spec.factory(deps)
