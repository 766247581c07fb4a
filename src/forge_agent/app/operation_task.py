"""Generic engine for tasks made of discrete, independently revertible operations.

The engine owns the proposal, the history stack of completed records and the set
of folders it created. What an operation actually does, and how it is reversed,
comes from an injected `OperationKind`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Generic, Sequence, TypeVar

from pydantic import BaseModel

from forge_agent.app.asset_store import AssetStore, AssetStoreError
from forge_agent.app.lifecycle import Task
from forge_agent.app.models import OperationPlan, TaskView, WireModel
from forge_agent.app.parser import ParseError, parse_plan

logger = logging.getLogger(__name__)

TOp = TypeVar("TOp", bound=WireModel)
TDone = TypeVar("TDone", bound=BaseModel)


@dataclass(frozen=True)
class StepOutcome(Generic[TDone]):
    """Result of applying one operation."""

    record: TDone | None = None
    error: str | None = None
    log_line: str = ""
    # Skipped operations count as neither success nor failure.
    skipped: bool = False


@dataclass(frozen=True)
class OperationKind(Generic[TOp, TDone]):
    name: str
    display_name: str
    tool_description: str
    operation_model: type[TOp]
    build_prompt: Callable[[AssetStore, str, Sequence[str], str], str]
    apply: Callable[[AssetStore, TOp], StepOutcome[TDone]]
    # Folder that must exist before `apply`; missing ancestors are created and tracked.
    target_folder: Callable[[TOp], str | None]
    invert: Callable[[AssetStore, TDone], str | None] | None = None
    restore_folder: Callable[[TDone], str | None] | None = None
    describe_record: Callable[[TDone], str] = str
    keep: Callable[[TOp], bool] = lambda _op: True
    requires_selection: bool = True
    verb: str = "Processed"
    noun: str = "items"
    undo_noun: str = "operations"


class OperationTask(Task, Generic[TOp, TDone]):
    def __init__(self, kind: OperationKind[TOp, TDone], store: AssetStore) -> None:
        super().__init__(
            kind=kind.name,
            display_name=kind.display_name,
            tool_description=kind.tool_description,
            can_undo=kind.invert is not None,
        )
        self._kind = kind
        self._store = store
        self.operations: list[TOp] = []
        self.history: list[TDone] = []
        self.created_folders: set[str] = set()

    def generate_prompt(self, instruction: str, selection: Sequence[str]) -> str:
        if self._kind.requires_selection and not selection:
            logger.info("task_prompt event=no_selection kind=%s", self.kind)
            return instruction
        return self._kind.build_prompt(
            self._store, instruction, list(selection), self.context_from_previous_steps
        )

    def process_response(self, raw: str | None) -> None:
        if self.state in ("executed", "undone"):
            logger.warning("task_parse event=ignored kind=%s state=%s", self.kind, self.state)
            return
        result = parse_plan(raw, OperationPlan[self._kind.operation_model])
        if isinstance(result, ParseError):
            logger.warning(
                "task_parse event=failed kind=%s reason=%s payload=%.200s",
                self.kind,
                result.reason,
                result.payload,
            )
            self.last_parse_error = result
            self.status_message = f"Failed to parse AI response: {result.reason}"
            return

        self.last_parse_error = None
        parsed = list(result.plan.operations)
        self.operations = [op for op in parsed if self._kind.keep(op)]
        if len(self.operations) != len(parsed):
            logger.info(
                "task_parse event=filtered kind=%s dropped=%d",
                self.kind,
                len(parsed) - len(self.operations),
            )
        if not self.operations:
            if self.state == "proposed":
                self._transition("idle")
            self.status_message = "No operations proposed."
            return
        self._transition("proposed")
        self.status_message = f"Plan generated. {len(self.operations)} operations proposed."
        logger.info("task_parse event=proposed kind=%s operations=%d", self.kind, len(self.operations))

    def execute(self) -> None:
        if self.state == "executed":
            logger.info("task_execute event=ignored kind=%s reason=already_executed", self.kind)
            return
        if self.state == "idle":
            logger.info("task_execute event=ignored kind=%s reason=nothing_proposed", self.kind)
            return

        self.history.clear()
        self.created_folders.clear()
        self.execution_log = []
        errors: list[str] = []
        attempted = 0
        succeeded = 0
        logger.info("task_execute event=start kind=%s operations=%d", self.kind, len(self.operations))
        for operation in self.operations:
            folder = self._kind.target_folder(operation)
            if folder:
                try:
                    self._ensure_folder(folder, track=True)
                except AssetStoreError as exc:
                    attempted += 1
                    errors.append(str(exc))
                    self.execution_log.append(f"[ERROR] {exc}")
                    continue

            outcome = self._kind.apply(self._store, operation)
            if outcome.log_line:
                self.execution_log.append(outcome.log_line)
            if outcome.skipped:
                continue
            attempted += 1
            if outcome.error:
                errors.append(outcome.error)
                logger.warning("task_execute event=operation_failed kind=%s error=%s", self.kind, outcome.error)
                continue
            succeeded += 1
            if outcome.record is not None:
                self.history.append(outcome.record)

        self._transition("executed")
        self.status_message = self._summary(succeeded, attempted, errors)
        logger.info(
            "task_execute event=finish kind=%s succeeded=%d attempted=%d history=%d",
            self.kind,
            succeeded,
            attempted,
            len(self.history),
        )

    def undo(self) -> None:
        invert = self._kind.invert
        if invert is None:
            logger.info("task_undo event=unsupported kind=%s", self.kind)
            return
        if self.state != "executed" or not self.history:
            logger.info(
                "task_undo event=ignored kind=%s state=%s history=%d",
                self.kind,
                self.state,
                len(self.history),
            )
            return

        self.execution_log.append("--- UNDO OPERATIONS ---")
        reverted = 0
        while self.history:
            record = self.history.pop()
            description = self._kind.describe_record(record)
            restore = self._kind.restore_folder(record) if self._kind.restore_folder else None
            try:
                if restore:
                    self._ensure_folder(restore, track=False)
            except AssetStoreError as exc:
                self.execution_log.append(f"[ERROR] Undo failed for {description}: {exc}")
                logger.warning("task_undo event=revert_failed kind=%s error=%s", self.kind, exc)
                continue
            error = invert(self._store, record)
            if error:
                self.execution_log.append(f"[ERROR] Undo failed for {description}: {error}")
                logger.warning("task_undo event=revert_failed kind=%s error=%s", self.kind, error)
                continue
            reverted += 1
            self.execution_log.append(f"[UNDO] Reverted {description}")

        for folder in sorted(self.created_folders, key=len, reverse=True):
            if self._store.delete_if_empty(folder):
                self.execution_log.append(f"[CLEANUP] Removed empty folder: {folder}")
        self.created_folders.clear()

        self._transition("undone")
        self.status_message = f"Undid {reverted} {self._kind.undo_noun}."
        logger.info("task_undo event=finish kind=%s reverted=%d", self.kind, reverted)

    def snapshot(self) -> TaskView:
        view = super().snapshot()
        view.proposal = [op.model_dump(by_alias=True) for op in self.operations]
        view.history_size = len(self.history)
        return view

    def _ensure_folder(self, folder: str, *, track: bool) -> None:
        current = PurePosixPath()
        for part in PurePosixPath(folder).parts:
            current = current / part
            path = current.as_posix()
            if self._store.directory_exists(path):
                continue
            self._store.create_directory(path)
            if track:
                self.created_folders.add(path)

    def _summary(self, succeeded: int, attempted: int, errors: list[str]) -> str:
        verb, noun = self._kind.verb, self._kind.noun
        if not errors:
            return f"Success! {verb} all {succeeded} {noun}."
        return f"{verb} {succeeded}/{attempted} {noun}. Errors: {', '.join(errors)}"
