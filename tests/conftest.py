from __future__ import annotations

from pathlib import Path

import pytest
from fakes import RecordingCommandStore, ScriptedModelClient
from fastapi.testclient import TestClient

from forge_agent.config.settings import Settings
from forge_agent.main import create_app


@pytest.fixture
def project(tmp_path: Path) -> Path:
    assets = tmp_path / "Assets"
    assets.mkdir()
    (assets / "a.png").write_text("png-a", encoding="utf-8")
    (assets / "a.png.meta").write_text("guid: a", encoding="utf-8")
    (assets / "b.mat").write_text("mat-b", encoding="utf-8")
    (assets / "hero_idle.anim").write_text("anim", encoding="utf-8")
    return tmp_path


@pytest.fixture
def store(project: Path) -> RecordingCommandStore:
    return RecordingCommandStore(project)


@pytest.fixture
def model_client() -> ScriptedModelClient:
    return ScriptedModelClient()


@pytest.fixture
def settings(project: Path) -> Settings:
    return Settings(
        _env_file=None,
        project_root=project,
        openai_api_key="test-key",
        orchestrator_auto_chain=True,
    )


@pytest.fixture
def client(
    settings: Settings,
    model_client: ScriptedModelClient,
    store: RecordingCommandStore,
) -> TestClient:
    app = create_app(settings_override=settings, model_client=model_client, store=store)
    return TestClient(app)
