"""Concrete task kinds: batch move, batch rename, git commands and chat."""

from __future__ import annotations

import logging
import shlex
from pathlib import PurePosixPath
from typing import Sequence

from pydantic import BaseModel

from forge_agent.app.asset_store import AssetStore, AssetStoreError
from forge_agent.app.lifecycle import Task
from forge_agent.app.models import (
    CommandOperation,
    CompletedMove,
    CompletedRename,
    MoveOperation,
    RenameOperation,
)
from forge_agent.app.operation_task import OperationKind, OperationTask, StepOutcome

logger = logging.getLogger(__name__)

LOG_SEPARATOR = "----------------"
_SHELL_OPERATOR_CHARS = frozenset("();<>|&")


def _selection_block(selection: Sequence[str]) -> str:
    return "\n".join(f"- {path}" for path in selection)


def _context_block(context: str) -> str:
    if not context.strip():
        return ""
    return f"\n=== CONTEXT FROM PREVIOUS STEPS ===\n{context.strip()}\n"


# ---------------------------------------------------------------------------
# Batch move


def _move_prompt(_store: AssetStore, instruction: str, selection: Sequence[str], context: str) -> str:
    return (
        "You are a project asset database expert. Output ONLY valid JSON.\n"
        f"Selected assets:\n{_selection_block(selection)}\n"
        f"{_context_block(context)}"
        f"\nUSER INSTRUCTION: {instruction}\n\n"
        "Respond with JSON in exactly this format:\n"
        '{ "operations": [ { "sourcePath": "Assets/A.mat", "targetPath": "Assets/Folder/A.mat" } ] }\n\n'
        "Rules:\n"
        "- Ensure target paths include the file name and extension.\n"
        "- Only use paths from the selected assets as sources.\n"
        "- Missing target folders are created automatically."
    )


def _apply_move(store: AssetStore, op: MoveOperation) -> StepOutcome[CompletedMove]:
    error = store.move_or_rename(op.source_path, op.target_path)
    if error:
        return StepOutcome(
            error=f"{op.source_path}: {error}",
            log_line=f"[ERROR] Failed to move {op.source_path}: {error}",
        )
    return StepOutcome(
        record=CompletedMove(original_location=op.source_path, current_location=op.target_path),
        log_line=f"[MOVED] {op.source_path} -> {op.target_path}",
    )


def _invert_move(store: AssetStore, record: CompletedMove) -> str | None:
    return store.move_or_rename(record.current_location, record.original_location)


def _parent(path: str) -> str:
    return PurePosixPath(path).parent.as_posix()


MOVE_KIND: OperationKind[MoveOperation, CompletedMove] = OperationKind(
    name="batch_move",
    display_name="Batch Move",
    tool_description=(
        "Moves the selected files into other folders. Creates missing folders and can be undone."
    ),
    operation_model=MoveOperation,
    build_prompt=_move_prompt,
    apply=_apply_move,
    target_folder=lambda op: _parent(op.target_path),
    invert=_invert_move,
    restore_folder=lambda record: _parent(record.original_location),
    describe_record=lambda record: f"{record.current_location} -> {record.original_location}",
    requires_selection=True,
    verb="Moved",
    noun="files",
    undo_noun="moves",
)


# ---------------------------------------------------------------------------
# Batch rename


def _rename_prompt(_store: AssetStore, instruction: str, selection: Sequence[str], context: str) -> str:
    selected = _selection_block(selection) if selection else "(none, use the context below)"
    return (
        "You are a naming convention expert. Output ONLY valid JSON.\n"
        f"Files:\n{selected}\n"
        f"{_context_block(context)}"
        f"\nUSER INSTRUCTION: {instruction}\n\n"
        "Respond with JSON in exactly this format:\n"
        '{ "operations": [ { "originalPath": "Assets/old_name.png", "newName": "NewName.png" } ] }\n\n'
        "Rules:\n"
        "- Only include files whose name actually changes.\n"
        "- newName is a file name only, never a path.\n"
        "- Preserve the original file extension."
    )


def _name_unchanged(op: RenameOperation) -> bool:
    return PurePosixPath(op.original_path).name == op.new_name


def _apply_rename(store: AssetStore, op: RenameOperation) -> StepOutcome[CompletedRename]:
    source = PurePosixPath(op.original_path)
    if source.name == op.new_name:
        return StepOutcome(skipped=True, log_line=f"[SKIP] {op.original_path} already named {op.new_name}")
    if "/" in op.new_name or "\\" in op.new_name or op.new_name in (".", ".."):
        error = f"invalid new name {op.new_name!r}"
        return StepOutcome(
            error=f"{op.original_path}: {error}",
            log_line=f"[ERROR] Failed to rename {op.original_path}: {error}",
        )
    target = source.with_name(op.new_name).as_posix()
    error = store.move_or_rename(op.original_path, target)
    if error:
        return StepOutcome(
            error=f"{op.original_path}: {error}",
            log_line=f"[ERROR] Failed to rename {op.original_path}: {error}",
        )
    return StepOutcome(
        record=CompletedRename(
            directory=source.parent.as_posix(),
            old_name=source.name,
            new_name=op.new_name,
        ),
        log_line=f"[RENAMED] {op.original_path} -> {op.new_name}",
    )


def _invert_rename(store: AssetStore, record: CompletedRename) -> str | None:
    directory = PurePosixPath(record.directory)
    return store.move_or_rename(
        (directory / record.new_name).as_posix(),
        (directory / record.old_name).as_posix(),
    )


RENAME_KIND: OperationKind[RenameOperation, CompletedRename] = OperationKind(
    name="batch_rename",
    display_name="Batch Rename",
    tool_description=(
        "Renames files in place following a naming convention. Extensions are preserved "
        "and renames can be undone."
    ),
    operation_model=RenameOperation,
    build_prompt=_rename_prompt,
    apply=_apply_rename,
    target_folder=lambda _op: None,
    invert=_invert_rename,
    restore_folder=lambda record: record.directory,
    describe_record=lambda record: f"{record.directory}/{record.new_name} -> {record.old_name}",
    keep=lambda op: not _name_unchanged(op),
    requires_selection=False,
    verb="Renamed",
    noun="files",
    undo_noun="renames",
)


# ---------------------------------------------------------------------------
# Git commands


def _git_output(store: AssetStore, args: list[str]) -> str:
    try:
        result = store.run_external_command(["git", *args])
    except AssetStoreError as exc:
        return f"(unavailable: {exc})"
    text = result.stdout.strip() if result.ok else result.stderr.strip()
    return text or "(empty)"


def _git_prompt(store: AssetStore, instruction: str, _selection: Sequence[str], context: str) -> str:
    status = _git_output(store, ["status"])
    recent = _git_output(store, ["log", "-n", "5", "--oneline"])
    return (
        "You are a git expert working inside a game project repository. Output ONLY valid JSON.\n"
        f"\n=== GIT STATUS ===\n{status}\n"
        f"\n=== RECENT COMMITS ===\n{recent}\n"
        f"{_context_block(context)}"
        f"\nUSER INSTRUCTION: {instruction}\n\n"
        "Respond with JSON in exactly this format:\n"
        '{ "operations": [ { "description": "Stage all changes", "command": "git add -A" } ] }\n\n'
        "Rules:\n"
        "- One git command per operation, executed in order.\n"
        "- No pipes, redirection, `&&` or other shell syntax.\n"
        "- Use double quotes for commit messages.\n"
        "- Never use interactive commands (rebase -i, add -p, commit without -m).\n"
        "- Prefer `git restore` and `git revert` over destructive history rewrites."
    )


def split_git_command(command: str) -> list[str]:
    """Tokenize a git command line without a shell; reject shell operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    tokens = list(lexer)
    for token in tokens:
        if token and set(token) <= _SHELL_OPERATOR_CHARS:
            raise ValueError(f"shell operator {token!r} is not allowed")
    if not tokens:
        raise ValueError("empty command")
    if tokens[0] != "git":
        tokens.insert(0, "git")
    if len(tokens) == 1:
        raise ValueError("missing git subcommand")
    return tokens


def _apply_command(store: AssetStore, op: CommandOperation) -> StepOutcome[BaseModel]:
    try:
        args = split_git_command(op.command)
    except ValueError as exc:
        return StepOutcome(
            error=f"{op.command}: {exc}",
            log_line=f"> {op.command}\n[Rejected]: {exc}\n{LOG_SEPARATOR}",
        )
    try:
        result = store.run_external_command(args)
    except AssetStoreError as exc:
        return StepOutcome(
            error=f"{op.command}: {exc}",
            log_line=f"> {op.command}\n[System Error]: {exc}\n{LOG_SEPARATOR}",
        )
    output = result.stdout.rstrip()
    if result.stderr.strip():
        label = "[Git Error]" if not result.ok else "[stderr]"
        output = f"{output}\n{label}: {result.stderr.rstrip()}".lstrip("\n")
    log_line = f"> {shlex.join(args)}\n{output}\n{LOG_SEPARATOR}"
    if not result.ok:
        return StepOutcome(error=f"{op.command}: exit code {result.returncode}", log_line=log_line)
    return StepOutcome(log_line=log_line)


GIT_KIND: OperationKind[CommandOperation, BaseModel] = OperationKind(
    name="git_operations",
    display_name="Git Operations",
    tool_description=(
        "Runs git commands in the project repository (status, log, diff, add, commit, "
        "restore, revert). Use it first to read history or logs. Cannot be undone."
    ),
    operation_model=CommandOperation,
    build_prompt=_git_prompt,
    apply=_apply_command,
    target_folder=lambda _op: None,
    requires_selection=False,
    verb="Ran",
    noun="commands",
)


def build_move_task(store: AssetStore) -> OperationTask[MoveOperation, CompletedMove]:
    return OperationTask(MOVE_KIND, store)


def build_rename_task(store: AssetStore) -> OperationTask[RenameOperation, CompletedRename]:
    return OperationTask(RENAME_KIND, store)


def build_git_command_task(store: AssetStore) -> OperationTask[CommandOperation, BaseModel]:
    return OperationTask(GIT_KIND, store)


# ---------------------------------------------------------------------------
# Chat / analysis

CHAT_KIND_NAME = "chat"
CHAT_DESCRIPTION = (
    "Answers questions or analyzes text, such as the output of a previous step. "
    "Makes no changes to the project."
)


class MessageTask(Task):
    """Free-form answer; the response is the result, nothing to confirm or undo."""

    def __init__(self) -> None:
        super().__init__(
            kind=CHAT_KIND_NAME,
            display_name="Chat / Analysis",
            tool_description=CHAT_DESCRIPTION,
            can_undo=False,
        )

    def generate_prompt(self, instruction: str, selection: Sequence[str]) -> str:
        parts = ["You are a helpful assistant for a game project. Answer concisely."]
        if selection:
            parts.append(f"Selected assets:\n{_selection_block(selection)}")
        if self.context_from_previous_steps.strip():
            parts.append(f"=== DATA TO ANALYZE ===\n{self.context_from_previous_steps.strip()}")
        parts.append(f"USER INSTRUCTION: {instruction}")
        return "\n\n".join(parts)

    def process_response(self, raw: str | None) -> None:
        if self.state != "idle":
            logger.warning("task_parse event=ignored kind=%s state=%s", self.kind, self.state)
            return
        answer = (raw or "").strip()
        self.execution_log = [answer] if answer else []
        self._transition("executed")
        self.status_message = "Response received."

    def execute(self) -> None:
        logger.info("task_execute event=ignored kind=%s reason=answer_only", self.kind)
