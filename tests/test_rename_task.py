from __future__ import annotations

from pathlib import Path

from fakes import RecordingCommandStore, operations_json

from forge_agent.app.models import RenameOperation
from forge_agent.app.tasks import RENAME_KIND, build_rename_task


def _rename(path: str, new_name: str) -> dict[str, str]:
    return {"originalPath": path, "newName": new_name}


def test_unchanged_names_never_reach_the_proposal(store: RecordingCommandStore) -> None:
    task = build_rename_task(store)

    task.process_response(
        operations_json(
            _rename("Assets/a.png", "a.png"),
            _rename("Assets/b.mat", "M_B.mat"),
        )
    )

    assert task.operations == [RenameOperation(original_path="Assets/b.mat", new_name="M_B.mat")]
    assert task.status_message == "Plan generated. 1 operations proposed."


def test_all_unchanged_names_leave_task_idle(store: RecordingCommandStore) -> None:
    task = build_rename_task(store)

    task.process_response(operations_json(_rename("Assets/a.png", "a.png")))

    assert task.state == "idle"
    assert task.operations == []


def test_rename_and_undo_restore_names(project: Path, store: RecordingCommandStore) -> None:
    task = build_rename_task(store)
    task.process_response(
        operations_json(
            _rename("Assets/a.png", "T_A.png"),
            _rename("Assets/hero_idle.anim", "HeroIdle.anim"),
        )
    )

    task.execute()

    assert (project / "Assets/T_A.png").exists()
    assert (project / "Assets/T_A.png.meta").exists()
    assert (project / "Assets/HeroIdle.anim").exists()
    assert task.status_message == "Success! Renamed all 2 files."
    assert [record.new_name for record in task.history] == ["T_A.png", "HeroIdle.anim"]
    assert task.history[0].directory == "Assets"
    assert task.history[0].old_name == "a.png"

    task.undo()

    assert (project / "Assets/a.png").exists()
    assert (project / "Assets/a.png.meta").exists()
    assert (project / "Assets/hero_idle.anim").exists()
    assert not (project / "Assets/T_A.png").exists()
    assert task.status_message == "Undid 2 renames."


def test_rename_collision_is_collected_and_batch_continues(project: Path, store: RecordingCommandStore) -> None:
    task = build_rename_task(store)
    task.process_response(
        operations_json(
            _rename("Assets/a.png", "b.mat"),
            _rename("Assets/hero_idle.anim", "HeroIdle.anim"),
        )
    )

    task.execute()

    assert len(task.history) == 1
    assert task.status_message.startswith("Renamed 1/2 files. Errors:")
    assert "Destination already exists" in task.status_message
    assert (project / "Assets/a.png").exists()
    assert (project / "Assets/HeroIdle.anim").exists()


def test_new_name_with_path_separator_fails_that_operation(project: Path, store: RecordingCommandStore) -> None:
    task = build_rename_task(store)
    task.process_response(operations_json(_rename("Assets/a.png", "Other/a2.png")))

    task.execute()

    assert task.history == []
    assert "invalid new name" in task.status_message
    assert (project / "Assets/a.png").exists()


def test_unchanged_name_is_skipped_again_at_execution(store: RecordingCommandStore) -> None:
    outcome = RENAME_KIND.apply(store, RenameOperation(original_path="Assets/a.png", new_name="a.png"))

    assert outcome.skipped is True
    assert outcome.record is None
    assert outcome.error is None


def test_rename_prompt_works_without_selection_and_embeds_context(store: RecordingCommandStore) -> None:
    task = build_rename_task(store)
    task.context_from_previous_steps = "--- Output of Step 1 (git_operations) ---\nAssets/a.png"

    prompt = task.generate_prompt("Use PascalCase", [])

    assert "Use PascalCase" in prompt
    assert "Assets/a.png" in prompt
    assert '"newName"' in prompt
