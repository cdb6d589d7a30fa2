"""Entry point for the FastAPI-powered episode tracker."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Literal

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from .config import settings
from .database import Database
from .errors import EpisodeNotFoundError, StoreError
from .services.catalog import CatalogClient
from .services.seen_store import SqlSeenStore
from .services.tracker import TrackerService
from .services.view import EpisodeView

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class SelectionRequest(BaseModel):
    """Body of a selection change."""

    action: Literal["select", "deselect", "toggle", "clear"] = "select"
    episode_ids: list[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("episodeIds", "episode_ids", "ids"),
    )


class CommitRequest(BaseModel):
    """Body of a batch commit."""

    mark_seen: bool = Field(
        default=True,
        validation_alias=AliasChoices("markSeen", "mark_seen", "seen"),
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    catalog_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.catalog_api_url,
            timeout=httpx.Timeout(settings.catalog_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    catalog_client = CatalogClient(settings, catalog_http_client)
    seen_store = SqlSeenStore(
        database.session_factory,
        serialize_writes=database.engine.dialect.name == "sqlite",
    )
    tracker_service = TrackerService(settings, catalog_client, seen_store)

    app.state.tracker_service = tracker_service
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Episode progress tracking reconciled against a per-user seen record",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_tracker_service(app: FastAPI) -> TrackerService:
    service = getattr(app.state, "tracker_service", None)
    if not isinstance(service, TrackerService):
        raise RuntimeError("Tracker service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    async def _open_view(
        user_id: str,
        *,
        mode: str | None = None,
        reload: bool = False,
    ) -> EpisodeView:
        service = get_tracker_service(fastapi_app)
        try:
            view = await service.open_view(user_id, mode=mode, reload=reload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not view.loaded and view.last_error is not None:
            raise HTTPException(status_code=502, detail=str(view.last_error))
        return view

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/users/{user_id}/episodes")
    async def list_episodes(
        user_id: str,
        filter_mode: str | None = Query(default=None, alias="filter"),
        reload: bool = False,
    ) -> JSONResponse:
        view = await _open_view(user_id, mode=filter_mode, reload=reload)
        return JSONResponse(view.to_payload())

    @fastapi_app.get("/users/{user_id}/episodes/{episode_id}")
    async def episode_detail(user_id: str, episode_id: int) -> JSONResponse:
        view = await _open_view(user_id)
        try:
            detail = await view.detail(episode_id)
        except EpisodeNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse(detail.to_payload())

    async def _set_seen(user_id: str, episode_id: int, seen: bool) -> JSONResponse:
        view = await _open_view(user_id)
        try:
            episode = await view.set_seen(episode_id, seen)
        except EpisodeNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except StoreError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return JSONResponse(episode.to_payload())

    @fastapi_app.put("/users/{user_id}/episodes/{episode_id}/seen")
    async def mark_seen(user_id: str, episode_id: int) -> JSONResponse:
        return await _set_seen(user_id, episode_id, True)

    @fastapi_app.delete("/users/{user_id}/episodes/{episode_id}/seen")
    async def mark_unseen(user_id: str, episode_id: int) -> JSONResponse:
        return await _set_seen(user_id, episode_id, False)

    @fastapi_app.post("/users/{user_id}/selection")
    async def change_selection(user_id: str, request: Request) -> JSONResponse:
        payload = await _read_json(request)
        try:
            body = SelectionRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        view = await _open_view(user_id)
        if body.action == "clear":
            await view.clear_selection()
        elif body.action == "deselect":
            await view.deselect(body.episode_ids)
        elif body.action == "toggle":
            for episode_id in body.episode_ids:
                await view.toggle(episode_id)
        else:
            await view.select(body.episode_ids)
        return JSONResponse(
            {
                "selection": sorted(view.selection, key=int),
                "selecting": view.selection_mode,
            }
        )

    @fastapi_app.post("/users/{user_id}/selection/commit")
    async def commit_selection(user_id: str, request: Request) -> JSONResponse:
        payload = await _read_json(request)
        try:
            body = CommitRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        view = await _open_view(user_id)
        result = await view.commit_selection(mark_seen=body.mark_seen)
        return JSONResponse(
            {
                **result.to_payload(),
                "progress": view.progress().to_payload(),
            }
        )

    @fastapi_app.get("/users/{user_id}/progress")
    async def progress(user_id: str) -> JSONResponse:
        service = get_tracker_service(fastapi_app)
        try:
            stats, result = await service.progress(user_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if result.error is not None:
            raise HTTPException(status_code=502, detail=str(result.error))
        return JSONResponse(stats.to_payload())


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
