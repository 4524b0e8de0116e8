from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.db import Base


class RunStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED)


class CallerIdStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    SINGLE_NUMBER = "single_number"
    RANDOM = "random"


class DialerRun(Base):
    __tablename__ = "dialer_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    list_id: Mapped[str] = mapped_column(ForeignKey("dialer_lists.id"), index=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), index=True, default=RunStatus.PENDING.value, nullable=False)
    max_lines: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    caller_id_strategy: Mapped[str] = mapped_column(String(32), default=CallerIdStrategy.ROUND_ROBIN.value)
    selected_numbers: Mapped[list] = mapped_column(JSON, default=list)
    cursor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_contacts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    total_attempted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_answered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_no_answer: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_voicemail: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_busy: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_canceled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_talk_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    dialer_list = relationship("DialerList")
    legs = relationship("DialerRunLeg", back_populates="run")


class DialerRunLeg(Base):
    """One origination attempt within a run."""

    __tablename__ = "dialer_run_legs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    run_id: Mapped[str] = mapped_column(ForeignKey("dialer_runs.id"), index=True, nullable=False)
    list_entry_id: Mapped[int | None] = mapped_column(ForeignKey("dialer_list_entries.id"), nullable=True)
    contact_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    call_control_id: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    from_number: Mapped[str] = mapped_column(String(32), nullable=False)
    to_number: Mapped[str] = mapped_column(String(32), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    amd_result: Mapped[str | None] = mapped_column(String(16), nullable=True)
    hangup_cause: Mapped[str | None] = mapped_column(String(64), nullable=True)
    talk_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    answered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    run = relationship("DialerRun", back_populates="legs")
