import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy import select

from ..core.errors import ListNotFoundError
from ..models.contact import Contact
from ..models.dialer_list import DialerList, DialerListEntry, ListEntryStatus
from .run_registry import Target

logger = logging.getLogger(__name__)


class ListDefaults(NamedTuple):
    max_lines: int | None
    caller_id_strategy: str | None


class TargetSource(ABC):
    """Where a run gets the contacts it dials and reports per-entry progress."""

    @abstractmethod
    def list_defaults(self, list_id: str) -> ListDefaults: ...

    @abstractmethod
    def load_targets(self, list_id: str) -> list[Target]: ...

    @abstractmethod
    def mark_entry(self, entry_id: int | None, status: ListEntryStatus, attempted: bool = False) -> None: ...


class SqlTargetSource(TargetSource):
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def list_defaults(self, list_id: str) -> ListDefaults:
        with self.session_factory() as db:
            dialer_list = db.get(DialerList, list_id)
            if dialer_list is None:
                raise ListNotFoundError(list_id)
            return ListDefaults(dialer_list.max_lines, dialer_list.caller_id_strategy)

    def load_targets(self, list_id: str) -> list[Target]:
        with self.session_factory() as db:
            rows = db.execute(
                select(DialerListEntry, Contact)
                .join(Contact, Contact.id == DialerListEntry.contact_id)
                .where(DialerListEntry.list_id == list_id)
                .order_by(DialerListEntry.position, DialerListEntry.id)
            ).all()
            return [
                Target(
                    entry_id=entry.id,
                    contact_id=contact.id,
                    phone=entry.phone or contact.phone1,
                    dnc=bool(contact.dnc),
                    status=entry.status,
                )
                for entry, contact in rows
            ]

    def mark_entry(self, entry_id, status, attempted=False) -> None:
        if entry_id is None:
            return
        with self.session_factory() as db:
            entry = db.get(DialerListEntry, entry_id)
            if entry is None:
                logger.warning("List entry %s vanished before status %s could be stored", entry_id, status.value)
                return
            entry.status = status.value
            if attempted:
                entry.attempt_count = (entry.attempt_count or 0) + 1
                entry.last_called_at = datetime.now(timezone.utc)
            db.commit()
