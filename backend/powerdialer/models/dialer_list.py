from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.db import Base


class ListEntryStatus(str, Enum):
    PENDING = "PENDING"
    CALLING = "CALLING"
    ANSWERED = "ANSWERED"
    NO_ANSWER = "NO_ANSWER"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    REMOVED = "REMOVED"


class DialerList(Base):
    __tablename__ = "dialer_lists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_lines: Mapped[int | None] = mapped_column(Integer, nullable=True)
    caller_id_strategy: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="ACTIVE", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    entries = relationship("DialerListEntry", back_populates="dialer_list", order_by="DialerListEntry.position")


class DialerListEntry(Base):
    __tablename__ = "dialer_list_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    list_id: Mapped[str] = mapped_column(ForeignKey("dialer_lists.id"), index=True, nullable=False)
    contact_id: Mapped[str] = mapped_column(ForeignKey("contacts.id"), index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=ListEntryStatus.PENDING.value, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    disposition: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_called_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    dialer_list = relationship("DialerList", back_populates="entries")
    contact = relationship("Contact")
