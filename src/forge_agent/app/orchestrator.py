"""Multi-step orchestration: plan a goal as tool steps, then run them in order.

Each step instantiates a registered task, feeds it the output accumulated so
far, and drives its prompt -> response -> execute cycle. Steps run strictly one
after another; there is no rollback across steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from forge_agent.app.lifecycle import Task
from forge_agent.app.models import AgentPlan, PlannedStep, StepStatus, StepView, TaskView
from forge_agent.app.parser import ParseError, parse_plan
from forge_agent.app.registry import TaskDependencies, TaskSpec, UnknownTool, resolve

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "AI returned no data."


@dataclass
class OrchestratedStep:
    index: int
    planned: PlannedStep
    task: Task | None = None
    unknown_tool: UnknownTool | None = None
    status: StepStatus = "pending"
    error: str | None = None

    def view(self) -> StepView:
        return StepView(
            index=self.index,
            tool_name=self.planned.tool_name,
            instruction=self.planned.instruction,
            reasoning=self.planned.reasoning,
            status=self.status,
            error=self.error,
            task=self.task.snapshot() if self.task is not None else None,
        )


class OrchestratorTask(Task):
    def __init__(
        self,
        *,
        registry: dict[str, TaskSpec],
        deps: TaskDependencies,
        auto_chain: bool = True,
        prompt_preview_chars: int = 500,
    ) -> None:
        super().__init__(
            kind="auto_agent",
            display_name="Auto Agent",
            tool_description="Breaks a goal into steps and runs other tools in sequence.",
            can_undo=False,
        )
        # Only planner-visible kinds may be bound to steps; this excludes the orchestrator itself.
        self._catalog = {name: spec for name, spec in registry.items() if spec.offered_to_planner}
        self._deps = deps
        self.auto_chain = auto_chain
        self.prompt_preview_chars = prompt_preview_chars
        self.steps: list[OrchestratedStep] = []
        self.cursor = 0
        self.accumulated_context = ""
        self.selection: list[str] = []

    def generate_prompt(self, instruction: str, selection: Sequence[str]) -> str:
        self.selection = list(selection)
        catalog = "\n".join(f"- {spec.name}: {spec.description}" for spec in self._catalog.values())
        selected = "\n".join(f"- {path}" for path in self.selection) or "(none)"
        return (
            "You are an orchestration agent for a game project. Break the user's goal into "
            "an ordered list of steps, each handled by one of the available tools.\n\n"
            f"=== AVAILABLE TOOLS ===\n{catalog}\n\n"
            f"=== SELECTED ASSETS ===\n{selected}\n\n"
            f"USER GOAL: {instruction}\n\n"
            "Respond with JSON in exactly this format:\n"
            '{ "steps": [ { "toolName": "git_operations", "instruction": "Show the last 10 commits", '
            '"reasoning": "Need the history before deciding" } ] }\n\n'
            "Rules:\n"
            "- Output ONLY valid JSON.\n"
            "- toolName must be one of the available tools.\n"
            "- The output of every step is passed to the next step automatically.\n"
            "- When the goal involves commits or history, read the git log first."
        )

    def process_response(self, raw: str | None) -> None:
        if self.state not in ("idle", "proposed") or self.cursor > 0:
            logger.warning("orchestrator_plan event=ignored state=%s cursor=%d", self.state, self.cursor)
            return
        result = parse_plan(raw, AgentPlan)
        if isinstance(result, ParseError):
            logger.warning("orchestrator_plan event=parse_failed reason=%s", result.reason)
            self.last_parse_error = result
            self.status_message = f"Failed to parse AI response: {result.reason}"
            return

        self.last_parse_error = None
        self.steps = []
        for index, planned in enumerate(result.plan.steps):
            resolved = resolve(self._catalog, planned.tool_name)
            if isinstance(resolved, UnknownTool):
                logger.warning(
                    "orchestrator_plan event=unknown_tool index=%d tool=%s", index, planned.tool_name
                )
                self.steps.append(
                    OrchestratedStep(
                        index=index,
                        planned=planned,
                        unknown_tool=resolved,
                        status="skipped",
                        error=resolved.message,
                    )
                )
                continue
            self.steps.append(OrchestratedStep(index=index, planned=planned, task=resolved.factory(self._deps)))
            logger.info(
                "orchestrator_plan event=step index=%d tool=%s reasoning=%s",
                index,
                planned.tool_name,
                planned.reasoning,
            )

        self.cursor = 0
        self.accumulated_context = ""
        if not self.steps:
            if self.state == "proposed":
                self._transition("idle")
            self.status_message = "No steps proposed."
            return
        self._transition("proposed")
        self.status_message = f"Plan generated. {len(self.steps)} steps proposed."

    @property
    def current_step(self) -> OrchestratedStep | None:
        if self.cursor < len(self.steps):
            return self.steps[self.cursor]
        return None

    async def run_next_step(self) -> OrchestratedStep | None:
        """Drive the step under the cursor through prompt, model call and response.

        In auto-chain mode the step is executed and the cursor advances. Otherwise
        the step waits in `awaiting_confirmation` until `execute()` is called.
        A transport or parse failure marks the step `failed` and leaves the cursor
        on it so it can be retried.
        """
        if self.state != "proposed":
            logger.info("orchestrator_step event=ignored state=%s", self.state)
            return None
        self._skip_unresolvable()
        step = self.current_step
        if step is None:
            self._finish()
            return None
        if step.status == "awaiting_confirmation":
            logger.info("orchestrator_step event=awaiting_confirmation index=%d", step.index)
            return step

        task = step.task
        if task is None:
            self._fail(step, f"No task bound to tool '{step.planned.tool_name}'.")
            return step
        step.status = "pending"
        step.error = None
        task.context_from_previous_steps = self.accumulated_context
        prompt = task.generate_prompt(step.planned.instruction, self.selection)
        logger.info(
            "orchestrator_step event=prompt index=%d tool=%s preview=%s",
            step.index,
            task.kind,
            prompt[: self.prompt_preview_chars],
        )
        raw = await self._deps.client.send(prompt, self._deps.credential)
        if raw is None or not raw.strip():
            self._fail(step, NO_DATA_MESSAGE)
            return step

        task.process_response(raw)
        if task.last_parse_error is not None:
            self._fail(step, task.status_message)
            return step

        if task.state == "proposed":
            if not self.auto_chain:
                step.status = "awaiting_confirmation"
                self.status_message = (
                    f"Step {step.index + 1} ({task.kind}) proposed: {task.status_message} "
                    "Awaiting confirmation."
                )
                return step
            task.execute()
        self._complete(step, task)
        return step

    def execute(self) -> None:
        """Confirm the sub-task waiting under the cursor (manual gating mode)."""
        step = self.current_step
        if self.state != "proposed" or step is None or step.status != "awaiting_confirmation":
            logger.info("orchestrator_execute event=ignored state=%s cursor=%d", self.state, self.cursor)
            return
        if step.task is None:
            self._fail(step, f"No task bound to tool '{step.planned.tool_name}'.")
            return
        step.task.execute()
        self._complete(step, step.task)

    async def run_plan(self) -> None:
        """Run steps until the plan finishes, a step fails or a step awaits confirmation."""
        while self.state == "proposed":
            step = await self.run_next_step()
            if step is None or step.status in ("failed", "awaiting_confirmation"):
                return

    @property
    def result_text(self) -> str:
        return self.accumulated_context.strip() or self.status_message

    def snapshot(self) -> TaskView:
        view = super().snapshot()
        view.steps = [step.view() for step in self.steps]
        view.cursor = self.cursor
        return view

    def _complete(self, step: OrchestratedStep, task: Task) -> None:
        step.status = "completed"
        self.accumulated_context += (
            f"\n--- Output of Step {step.index + 1} ({task.kind}) ---\n{task.result_text}\n"
        )
        logger.info(
            "orchestrator_step event=completed index=%d tool=%s status=%s",
            step.index,
            task.kind,
            task.status_message,
        )
        self.cursor += 1
        self.status_message = f"Step {step.index + 1} ({task.kind}): {task.status_message}"
        self._skip_unresolvable()
        if self.current_step is None:
            self._finish()

    def _fail(self, step: OrchestratedStep, reason: str) -> None:
        step.status = "failed"
        step.error = reason
        self.status_message = f"Step {step.index + 1} ({step.planned.tool_name}) failed: {reason}"
        logger.warning("orchestrator_step event=failed index=%d reason=%s", step.index, reason)

    def _skip_unresolvable(self) -> None:
        while self.cursor < len(self.steps) and self.steps[self.cursor].task is None:
            logger.info("orchestrator_step event=skipped index=%d", self.cursor)
            self.cursor += 1

    def _finish(self) -> None:
        if self.state != "proposed":
            return
        completed = sum(1 for step in self.steps if step.status == "completed")
        skipped = sum(1 for step in self.steps if step.status == "skipped")
        self._transition("executed")
        self.status_message = f"Completed {completed} steps" + (
            f" ({skipped} skipped)." if skipped else "."
        )
        logger.info("orchestrator_run event=finish completed=%d skipped=%d", completed, skipped)
