"""FastAPI app exposing the weekly timeline."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from ..config import PlannerConfig
from ..errors import NormalizationError, SourceError, TaskNotFoundError
from ..service import PlannerService
from ..sources.interfaces import TaskSource
from ..timeline.board import FilterChip
from ..timeline.model import TaskKind
from ..timeline.mutations import MutationResult
from ..utils import parse_day
from .models import (
    DelayRequest,
    ExpandRequest,
    MutationResponse,
    RecordResponse,
    RescheduleRequest,
    ScheduleRequest,
    WindowInfo,
)


def _mutation_response(result: MutationResult) -> JSONResponse:
    body = MutationResponse(**result.to_dict())
    return JSONResponse(status_code=200 if result.ok else 502, content=body.model_dump(mode="json"))


def _parse_kind(raw: Optional[str]) -> Optional[TaskKind]:
    if not raw:
        return None
    try:
        return TaskKind.parse(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_timeline_router(service: PlannerService) -> APIRouter:
    router = APIRouter(prefix="/api/timeline", tags=["timeline"])
    started = asyncio.Lock()

    async def _ready() -> PlannerService:
        async with started:
            if not service.feed.is_running:
                await service.start()
        return service

    def _window_info() -> WindowInfo:
        r = service.window.range
        return WindowInfo(
            start=r.start,
            end=r.end,
            is_all_loaded=service.window.is_all_loaded,
            last_error=service.store.last_error,
            applied_seq=service.store.applied_seq,
        )

    @router.get("/week")
    async def get_week(
        date: Optional[str] = Query(None, description="Any day of the week to show (ISO date)"),
        kind: Optional[str] = Query(None, description="CONTENT or TASK"),
        chip: Optional[list[str]] = Query(None, description="TYPE:VALUE[:exclude]"),
        member: Optional[list[str]] = Query(None),
    ) -> dict[str, Any]:
        svc = await _ready()
        day = parse_day(date) if date else svc.today()
        if day is None:
            raise HTTPException(status_code=400, detail=f"Invalid date: {date!r}")
        try:
            chips = [FilterChip.parse(c) for c in chip or []]
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        board = await svc.board_for(day, members=member or None, filters=chips, kind=_parse_kind(kind))
        return board.to_dict()

    @router.get("/window")
    async def get_window() -> WindowInfo:
        await _ready()
        return _window_info()

    @router.post("/window/expand")
    async def expand_window(request: ExpandRequest) -> dict[str, Any]:
        svc = await _ready()
        changed = await svc.expand(request.date)
        return {"changed": changed, "window": _window_info().model_dump(mode="json")}

    @router.post("/window/load-all")
    async def load_all() -> dict[str, Any]:
        svc = await _ready()
        changed = await svc.load_all()
        return {"changed": changed, "window": _window_info().model_dump(mode="json")}

    @router.get("/unscheduled")
    async def get_unscheduled() -> dict[str, Any]:
        svc = await _ready()
        return {"tasks": [t.to_dict() for t in svc.unscheduled()]}

    @router.post("/tasks/{task_id}/reschedule")
    async def reschedule(task_id: str, request: RescheduleRequest) -> JSONResponse:
        svc = await _ready()
        return _mutation_response(await svc.reschedule(task_id, request.owner_id, request.date))

    @router.post("/tasks/{task_id}/delay")
    async def delay(task_id: str, request: DelayRequest) -> JSONResponse:
        svc = await _ready()
        return _mutation_response(await svc.delay(task_id, request.date, request.reason, request.user_id))

    @router.post("/tasks/{task_id}/schedule")
    async def schedule(task_id: str, request: ScheduleRequest) -> JSONResponse:
        svc = await _ready()
        return _mutation_response(await svc.schedule(task_id, request.date))

    @router.get("/tasks/{task_id}/logs")
    async def task_logs(task_id: str, limit: int = Query(100, ge=1, le=1000)) -> dict[str, Any]:
        svc = await _ready()
        return {"logs": await svc.source.list_logs(task_id, limit=limit)}

    @router.post("/records/{kind}", status_code=201)
    async def insert_record(kind: str, record: dict[str, Any] = Body(...)) -> RecordResponse:
        svc = await _ready()
        row = await svc.insert_record(TaskKind.parse(kind), record)
        return RecordResponse(id=row["id"], record=row)

    return router


def create_app(
    project_dir: Optional[Path] = None,
    *,
    source: Optional[TaskSource] = None,
    config: Optional[PlannerConfig] = None,
    service: Optional[PlannerService] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create the timeline API.

    Args:
        project_dir: Directory holding `.team_planner/` (defaults to cwd).
        source: Backend override; the YAML file source is used otherwise.
        config: Config override; read from the project otherwise.
        service: A fully built service, mostly for tests.
        enable_cors: Whether to enable CORS.
    """
    svc = service or PlannerService(project_dir or Path.cwd(), source=source, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        svc.ws.attach_loop(asyncio.get_running_loop())
        if not svc.feed.is_running:
            await svc.start()
        logger.info("Timeline API ready for {}", svc.project_dir)
        try:
            yield
        finally:
            await svc.stop()

    app = FastAPI(
        title="Team Planner Timeline",
        description="Weekly timeline layout for team tasks and content",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = svc

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(TaskNotFoundError)
    async def _not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NormalizationError)
    async def _bad_record(request: Request, exc: NormalizationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _bad_value(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SourceError)
    async def _source_failed(request: Request, exc: SourceError) -> JSONResponse:
        logger.error("Source failure on {}: {}", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {"name": "Team Planner Timeline", "version": "1.0.0", "status": "running"}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await svc.ws.handle_connection(websocket)

    app.include_router(create_timeline_router(svc))
    return app
