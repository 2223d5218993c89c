"""Pydantic models for API requests and responses."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExpandRequest(BaseModel):
    date: dt.date


class RescheduleRequest(BaseModel):
    """Drag-and-drop target: a day and optionally a member lane."""

    date: dt.date
    owner_id: Optional[str] = None


class DelayRequest(BaseModel):
    date: dt.date
    reason: str
    user_id: Optional[str] = None


class ScheduleRequest(BaseModel):
    date: dt.date


class WindowInfo(BaseModel):
    start: dt.date
    end: dt.date
    is_all_loaded: bool
    last_error: Optional[str] = None
    applied_seq: int = 0


class MutationResponse(BaseModel):
    ok: bool
    task: dict[str, Any]
    previous: dict[str, Any]
    error: Optional[str] = None
    changed: list[str] = Field(default_factory=list)


class RecordResponse(BaseModel):
    id: str
    record: dict[str, Any]
