from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, JSON, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.db import Base


class DispositionActionType(str, Enum):
    ADD_TAG = "ADD_TAG"
    REMOVE_TAG = "REMOVE_TAG"
    ADD_TO_DNC = "ADD_TO_DNC"
    REMOVE_FROM_DNC = "REMOVE_FROM_DNC"
    CREATE_TASK = "CREATE_TASK"
    TRIGGER_SEQUENCE = "TRIGGER_SEQUENCE"
    SEND_SMS = "SEND_SMS"
    SEND_EMAIL = "SEND_EMAIL"
    UPDATE_DEAL_STAGE = "UPDATE_DEAL_STAGE"
    REQUEUE_CONTACT = "REQUEUE_CONTACT"
    REMOVE_FROM_QUEUE = "REMOVE_FROM_QUEUE"
    MARK_BAD_NUMBER = "MARK_BAD_NUMBER"


class CallDisposition(Base):
    __tablename__ = "call_dispositions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    marks_dnc: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    actions = relationship(
        "DispositionAction",
        back_populates="disposition",
        order_by="DispositionAction.sort_order",
        cascade="all, delete-orphan",
    )


class DispositionAction(Base):
    __tablename__ = "disposition_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    disposition_id: Mapped[int] = mapped_column(ForeignKey("call_dispositions.id", ondelete="CASCADE"), index=True)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    disposition = relationship("CallDisposition", back_populates="actions")


class DispositionLog(Base):
    __tablename__ = "disposition_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    disposition_id: Mapped[int] = mapped_column(ForeignKey("call_dispositions.id"), index=True)
    contact_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    run_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    list_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actions_executed: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
