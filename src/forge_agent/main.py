"""FastAPI application wiring for the asset assistant.

Terms used in this file:
- Interaction: one user submission (task kind + instruction + selected paths)
  and the task created for it.
- app.state: shared runtime objects (settings, asset store, model client, history).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException

from .app.asset_store import AssetStore, LocalAssetStore
from .app.interactions import Interaction, InteractionHistory, NotAnOrchestratorError
from .app.llm import MissingCredentialError, ModelClient, build_model_client
from .app.models import CreateInteractionRequest, InteractionView
from .app.registry import UnknownTaskKindError, build_registry
from .config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings_override: Settings | None = None,
    model_client: ModelClient | None = None,
    store: AssetStore | None = None,
) -> FastAPI:
    """Application factory.

    Collaborators can be injected so tests run against a temporary project
    directory and a scripted model instead of the network.
    """
    settings = settings_override or get_settings()
    registry = build_registry()
    asset_store = store or LocalAssetStore(
        settings.project_root,
        sidecar_suffixes=settings.sidecar_suffixes,
        command_timeout_s=settings.command_timeout_s,
    )
    client = model_client or build_model_client(settings)
    history = InteractionHistory(
        registry=registry,
        store=asset_store,
        client=client,
        settings=settings,
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = asset_store
    app.state.history = history
    logger.info(
        "app event=created project_root=%s model=%s auto_chain=%s",
        settings.project_root,
        settings.llm_model,
        settings.orchestrator_auto_chain,
    )

    def _get_interaction(interaction_id: str) -> Interaction:
        record = history.get(interaction_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Interaction not found")
        return record

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def list_tools() -> dict[str, list[dict[str, str | bool]]]:
        return {
            "tools": [
                {
                    "name": spec.name,
                    "display_name": spec.display_name,
                    "description": spec.description,
                    "offered_to_planner": spec.offered_to_planner,
                }
                for spec in registry.values()
            ]
        }

    @app.post("/interactions", response_model=InteractionView)
    async def create_interaction(payload: CreateInteractionRequest) -> InteractionView:
        try:
            record = await history.submit(payload.task, payload.instruction, payload.selection)
        except UnknownTaskKindError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except MissingCredentialError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return record.view()

    @app.get("/interactions", response_model=list[InteractionView])
    def list_interactions() -> list[InteractionView]:
        return [record.view() for record in history.records()]

    @app.delete("/interactions")
    async def clear_interactions() -> dict[str, int]:
        return {"cleared": history.clear()}

    @app.get("/interactions/{interaction_id}", response_model=InteractionView)
    def get_interaction(interaction_id: str) -> InteractionView:
        return _get_interaction(interaction_id).view()

    @app.post("/interactions/{interaction_id}/execute", response_model=InteractionView)
    async def execute_interaction(interaction_id: str) -> InteractionView:
        record = await history.confirm(_get_interaction(interaction_id))
        return record.view()

    @app.post("/interactions/{interaction_id}/undo", response_model=InteractionView)
    async def undo_interaction(interaction_id: str) -> InteractionView:
        return history.undo(_get_interaction(interaction_id)).view()

    @app.post("/interactions/{interaction_id}/redo", response_model=InteractionView)
    async def redo_interaction(interaction_id: str) -> InteractionView:
        return history.redo(_get_interaction(interaction_id)).view()

    @app.post("/interactions/{interaction_id}/steps/next", response_model=InteractionView)
    async def next_step(interaction_id: str) -> InteractionView:
        record = _get_interaction(interaction_id)
        try:
            await history.run_next_step(record)
        except NotAnOrchestratorError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return record.view()

    @app.post("/interactions/{interaction_id}/run", response_model=InteractionView)
    async def run_plan(interaction_id: str) -> InteractionView:
        record = _get_interaction(interaction_id)
        try:
            await history.run_plan(record)
        except NotAnOrchestratorError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return record.view()

    return app


# Module-level app for `uvicorn forge_agent.main:app`.
app = create_app()
