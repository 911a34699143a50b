"""FastAPI application exposing the timer engine over HTTP."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .clock import Clock, ensure_utc
from .config import TimerSettings
from .db import database_connection, fetch_categories, fetch_tasks, insert_category, upsert_task
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    TimerError,
    TransportError,
)
from .models import Category, Task
from .paths import get_db_path
from .payloads import (
    activities_payload,
    category_payload,
    stats_payload,
    status_payload,
    stop_payload,
    task_payload,
    timer_payload,
)
from .queries import TimerQueries
from .state_machine import TimerStateMachine

logger = logging.getLogger(__name__)

OWNER_HEADER = "X-Owner-Id"

STATUS_CODES: dict[type[TimerError], int] = {
    ConflictError: 409,
    InvalidStateError: 400,
    NotFoundError: 404,
    StorageError: 503,
    TransportError: 502,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class StartPayload(_CamelModel):
    task_id: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    is_break: bool = False


class PausePayload(_CamelModel):
    reason: Optional[str] = None


class StopPayload(_CamelModel):
    description: Optional[str] = None


class CategoryPayload(_CamelModel):
    name: str
    color: str = "#64748b"
    is_billable: bool = False


class TaskPayload(_CamelModel):
    title: str
    id: Optional[str] = None


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TimerSettings] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or TimerSettings()
    machine = TimerStateMachine(resolved_db_path, clock=clock)
    queries = TimerQueries(resolved_db_path, clock=machine.clock, settings=resolved_settings)

    app = FastAPI(title="Flow Timer", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.machine = machine
    app.state.queries = queries

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        logger.info("Timer API using database %s", resolved_db_path)

    @app.exception_handler(TimerError)
    async def _timer_error(request: Request, exc: TimerError) -> JSONResponse:
        status_code = STATUS_CODES.get(type(exc), 500)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "detail": str(exc)},
        )

    @app.get("/api/health")
    def health(request: Request) -> Dict[str, Any]:
        return {
            "status": "ok",
            "database_path": str(request.app.state.db_path),
            "poll_seconds": resolved_settings.poll_interval.total_seconds(),
        }

    @app.get("/api/timer/status")
    def status(
        request: Request, owner_id: Optional[str] = Header(None, alias=OWNER_HEADER)
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        return status_payload(request.app.state.machine.get_status(owner))

    @app.post("/api/timer/start", status_code=201)
    def start(
        request: Request,
        payload: Optional[StartPayload] = None,
        owner_id: Optional[str] = Header(None, alias=OWNER_HEADER),
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        payload = payload or StartPayload()
        timer_machine: TimerStateMachine = request.app.state.machine
        timer = timer_machine.start(
            owner,
            task_id=payload.task_id,
            description=payload.description,
            is_break=payload.is_break,
            category_id=payload.category_id,
        )
        task_title, category_name = timer_machine.display_labels(timer.task_id, timer.category_id)
        return timer_payload(
            timer,
            timer_machine.clock.now(),
            task_title=task_title,
            category_name=category_name,
        )

    @app.post("/api/timer/pause")
    def pause(
        request: Request,
        payload: Optional[PausePayload] = None,
        owner_id: Optional[str] = Header(None, alias=OWNER_HEADER),
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        reason = payload.reason if payload else None
        timer = request.app.state.machine.pause(owner, reason=reason)
        return {
            "pausedAt": timer.paused_at.isoformat() if timer.paused_at else None,
            "reason": timer.pause_reason,
        }

    @app.post("/api/timer/resume")
    def resume(
        request: Request, owner_id: Optional[str] = Header(None, alias=OWNER_HEADER)
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        result = request.app.state.machine.resume(owner)
        return {
            "pausedDuration": result.paused_duration,
            "totalPausedDuration": result.total_paused_duration,
        }

    @app.post("/api/timer/stop")
    def stop(
        request: Request,
        payload: Optional[StopPayload] = None,
        owner_id: Optional[str] = Header(None, alias=OWNER_HEADER),
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        description = payload.description if payload else None
        timer_machine: TimerStateMachine = request.app.state.machine
        entry = timer_machine.stop(owner, description=description)
        task_title, category_name = timer_machine.display_labels(entry.task_id, entry.category_id)
        return stop_payload(entry, task_title=task_title, category_name=category_name)

    @app.get("/api/stats")
    def stats(
        request: Request,
        start_date: Optional[str] = Query(
            default=None,
            description="Start date in YYYY-MM-DD format (inclusive).",
        ),
        end_date: Optional[str] = Query(
            default=None,
            description="End date in YYYY-MM-DD format (inclusive).",
        ),
        owner_id: Optional[str] = Header(None, alias=OWNER_HEADER),
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        try:
            snapshot = request.app.state.queries.stats(
                owner, _parse_date(start_date), _parse_date(end_date)
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return stats_payload(snapshot)

    @app.get("/api/activities")
    def activities(
        request: Request,
        start_date: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
        end_date: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
        limit: Optional[int] = Query(
            default=None, ge=1, le=resolved_settings.max_activity_limit
        ),
        owner_id: Optional[str] = Header(None, alias=OWNER_HEADER),
    ) -> Dict[str, Any]:
        owner = _require_owner(owner_id)
        try:
            result = request.app.state.queries.activities(
                owner, _parse_date(start_date), _parse_date(end_date), limit
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return activities_payload(result)

    @app.get("/api/categories")
    def list_categories(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            categories = fetch_categories(conn)
        return {"categories": [category_payload(category) for category in categories]}

    @app.post("/api/categories", status_code=201)
    def create_category(payload: CategoryPayload, request: Request) -> Dict[str, Any]:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Category name is required")
        category = Category(
            id=str(uuid.uuid4()),
            name=name,
            color=payload.color,
            is_billable=payload.is_billable,
        )
        with database_connection(request.app.state.db_path) as conn:
            try:
                insert_category(conn, category)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"category": category_payload(category)}

    @app.get("/api/tasks")
    def list_tasks(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            tasks = fetch_tasks(conn)
        return {"tasks": [task_payload(task) for task in tasks]}

    @app.post("/api/tasks", status_code=201)
    def save_task(payload: TaskPayload, request: Request) -> Dict[str, Any]:
        title = payload.title.strip()
        if not title:
            raise HTTPException(status_code=400, detail="Task title is required")
        task = Task(id=payload.id or str(uuid.uuid4()), title=title)
        with database_connection(request.app.state.db_path) as conn:
            upsert_task(conn, task)
        return {"task": task_payload(task)}

    return app


def _require_owner(owner_id: Optional[str]) -> str:
    owner = (owner_id or "").strip()
    if not owner:
        raise HTTPException(status_code=400, detail=f"{OWNER_HEADER} header is required")
    return owner


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        if "T" not in value and " " not in value:
            return date.fromisoformat(value)
        # Full timestamps name the UTC day they fall on.
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00"))).date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
