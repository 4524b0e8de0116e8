from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..models.dialer_run import CallerIdStrategy, RunStatus


class RunCreate(BaseModel):
    list_id: str = Field(..., min_length=1)
    caller_ids: list[str] | None = None
    max_lines: int | None = Field(default=None, ge=1)
    caller_id_strategy: CallerIdStrategy | None = None
    user_id: str | None = None
    draft: bool = False
    start: bool = False
    force: bool = False


class RunControlRequest(BaseModel):
    action: Literal["start", "pause", "resume", "stop"]
    force: bool = False


class RunStatsOut(BaseModel):
    attempted: int = 0
    answered: int = 0
    no_answer: int = 0
    voicemail: int = 0
    busy: int = 0
    failed: int = 0
    canceled: int = 0
    talk_seconds: int = 0


class RunStateOut(BaseModel):
    id: str
    list_id: str
    status: RunStatus
    max_lines: int
    caller_id_strategy: CallerIdStrategy
    caller_ids: list[str]
    cursor: int
    total_contacts: int
    active_calls: int = 0
    stats: RunStatsOut
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
