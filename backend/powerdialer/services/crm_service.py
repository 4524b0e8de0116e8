import contextlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..models.contact import Contact, ContactTag, Deal, ScheduledMessage, SequenceEnrollment, Tag, Task
from ..models.dialer_list import DialerListEntry, ListEntryStatus

logger = logging.getLogger(__name__)

DEFAULT_TAG_COLOR = "#3b82f6"


class ContactNotFound(LookupError):
    pass


class CrmBackend(ABC):
    """CRM operations that disposition actions fan out to."""

    def action_scope(self):
        """Context each disposition action runs in; a failure is undone within it."""
        return contextlib.nullcontext()

    @abstractmethod
    def contact_fields(self, contact_id: str) -> dict: ...

    @abstractmethod
    def add_tag(self, contact_id: str, tag_name: str) -> int: ...

    @abstractmethod
    def remove_tag(self, contact_id: str, tag_name: str) -> bool: ...

    @abstractmethod
    def set_dnc(self, contact_id: str, dnc: bool, reason: str | None = None) -> None: ...

    @abstractmethod
    def enroll_in_sequence(self, contact_id: str, sequence_id: str) -> bool: ...

    @abstractmethod
    def schedule_message(self, contact_id: str, channel: str, body: str, scheduled_at: datetime, **fields) -> None: ...

    @abstractmethod
    def create_task(self, contact_id: str, title: str, **fields) -> None: ...

    @abstractmethod
    def update_deal_stage(self, contact_id: str, stage: str, pipeline_id: str | None = None) -> None: ...

    @abstractmethod
    def set_entry_status(
        self,
        contact_id: str,
        status: ListEntryStatus,
        list_id: str | None = None,
        count_attempt: bool = False,
    ) -> int: ...

    @abstractmethod
    def mark_bad_number(self, contact_id: str, reason: str) -> None: ...


class SqlCrmBackend(CrmBackend):
    def __init__(self, db: Session):
        self.db = db

    def action_scope(self):
        # a failed flush rolls back to this savepoint and the session stays usable
        return self.db.begin_nested()

    def _contact(self, contact_id: str) -> Contact:
        contact = self.db.get(Contact, contact_id)
        if contact is None:
            raise ContactNotFound(f"Contact {contact_id} not found")
        return contact

    def contact_fields(self, contact_id: str) -> dict:
        contact = self._contact(contact_id)
        return {
            "firstName": contact.first_name or "",
            "lastName": contact.last_name or "",
            "phone": contact.phone1 or "",
            "email": contact.email1 or "",
            "companyName": contact.company_name or "",
            "propertyAddress": contact.property_address or "",
        }

    def add_tag(self, contact_id: str, tag_name: str) -> int:
        self._contact(contact_id)
        tag = self.db.execute(select(Tag).where(Tag.name == tag_name)).scalar_one_or_none()
        if tag is None:
            tag = Tag(name=tag_name, color=DEFAULT_TAG_COLOR)
            self.db.add(tag)
            self.db.flush()
        if self.db.get(ContactTag, (contact_id, tag.id)) is None:
            self.db.add(ContactTag(contact_id=contact_id, tag_id=tag.id))
            self.db.flush()
        return tag.id

    def remove_tag(self, contact_id: str, tag_name: str) -> bool:
        tag = self.db.execute(select(Tag).where(Tag.name == tag_name)).scalar_one_or_none()
        if tag is None:
            return False
        self.db.execute(delete(ContactTag).where(ContactTag.contact_id == contact_id, ContactTag.tag_id == tag.id))
        self.db.flush()
        return True

    def set_dnc(self, contact_id: str, dnc: bool, reason: str | None = None) -> None:
        contact = self._contact(contact_id)
        contact.dnc = dnc
        contact.dnc_reason = reason if dnc else None
        self.db.flush()

    def enroll_in_sequence(self, contact_id: str, sequence_id: str) -> bool:
        self._contact(contact_id)
        existing = self.db.execute(
            select(SequenceEnrollment).where(
                SequenceEnrollment.contact_id == contact_id,
                SequenceEnrollment.sequence_id == sequence_id,
                SequenceEnrollment.status.in_(["active", "paused"]),
            )
        ).scalar_one_or_none()
        if existing is not None:
            return False
        self.db.add(SequenceEnrollment(contact_id=contact_id, sequence_id=sequence_id, status="active", current_step_index=0))
        self.db.flush()
        return True

    def schedule_message(self, contact_id, channel, body, scheduled_at, **fields) -> None:
        self.db.add(
            ScheduledMessage(
                contact_id=contact_id,
                channel=channel,
                status="PENDING",
                scheduled_at=scheduled_at,
                body=body,
                source="disposition",
                **fields,
            )
        )
        self.db.flush()

    def create_task(self, contact_id, title, **fields) -> None:
        self._contact(contact_id)
        self.db.add(Task(contact_id=contact_id, title=title, **fields))
        self.db.flush()

    def update_deal_stage(self, contact_id, stage, pipeline_id=None) -> None:
        self._contact(contact_id)
        deal = self.db.execute(
            select(Deal).where(Deal.contact_id == contact_id, Deal.pipeline_id == pipeline_id)
        ).scalar_one_or_none()
        if deal is None:
            self.db.add(Deal(contact_id=contact_id, pipeline_id=pipeline_id, stage=stage))
        else:
            deal.stage = stage
        self.db.flush()

    def set_entry_status(self, contact_id, status, list_id=None, count_attempt=False) -> int:
        stmt = update(DialerListEntry).where(DialerListEntry.contact_id == contact_id)
        if list_id:
            stmt = stmt.where(DialerListEntry.list_id == list_id)
        values = {"status": status.value}
        if count_attempt:
            values["attempt_count"] = DialerListEntry.attempt_count + 1
            values["last_called_at"] = datetime.now(timezone.utc)
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        return result.rowcount

    def mark_bad_number(self, contact_id, reason) -> None:
        contact = self._contact(contact_id)
        contact.phone1_valid = False
        contact.phone1_invalid_reason = reason
        self.set_entry_status(contact_id, ListEntryStatus.REMOVED)
        self.db.flush()
