import pytest
from fastapi import HTTPException
from sqlalchemy import select

from powerdialer.models.contact import Contact, ContactTag, Tag, Task
from powerdialer.models.dialer_list import DialerList, DialerListEntry
from powerdialer.models.disposition import CallDisposition, DispositionLog
from powerdialer.schemas.disposition import DispositionActionIn, DispositionApply, DispositionCreate
from powerdialer.services import disposition_service


@pytest.fixture
def contact(db):
    contact = Contact(id="c1", first_name="Dana", last_name="Reyes", phone1="+15551230000")
    db.add(contact)
    db.add(DialerList(id="list-1", name="Expired listings"))
    db.add(DialerListEntry(list_id="list-1", contact_id="c1", position=1))
    db.commit()
    return contact


def _tags(db, contact_id):
    return set(
        db.execute(
            select(Tag.name).join(ContactTag, ContactTag.tag_id == Tag.id).where(ContactTag.contact_id == contact_id)
        ).scalars()
    )


def _create(db, name, *actions, marks_dnc=False):
    return disposition_service.create_disposition(
        db,
        DispositionCreate(name=name, marks_dnc=marks_dnc, actions=[DispositionActionIn(**a) for a in actions]),
    )


def test_dnc_disposition_sets_flag_without_dnc_action(db, contact):
    disposition = _create(db, "DNC - Hostile", {"action_type": "ADD_TAG", "config": {"tagName": "Hostile"}})

    result = disposition_service.apply_disposition(
        db, DispositionApply(contactId="c1", dispositionId=disposition.id, listId="list-1")
    )

    db.refresh(contact)
    assert result["dnc_applied"] is True
    assert contact.dnc is True
    assert _tags(db, "c1") == {"Hostile"}
    entry = db.execute(select(DialerListEntry)).scalar_one()
    assert entry.status == "REMOVED"
    assert entry.disposition == "DNC - Hostile"


def test_apply_records_history_and_keeps_going_after_failures(db, contact):
    disposition = _create(
        db,
        "Interested",
        {"action_type": "TRIGGER_SEQUENCE", "config": {}, "sort_order": 1},
        {"action_type": "ADD_TAG", "config": {"tagName": "Interested"}, "sort_order": 2},
    )

    result = disposition_service.apply_disposition(
        db, DispositionApply(contactId="c1", dispositionId=disposition.id, notes="wants a CMA", listId="list-1")
    )

    assert result["actions_executed"] == 2
    assert [r["success"] for r in result["results"]] == [False, True]
    db.refresh(contact)
    assert contact.custom_fields["lastDisposition"] == "Interested"
    assert contact.custom_fields["dialAttempts"] == 1
    assert "wants a CMA" in contact.notes
    assert db.execute(select(DispositionLog)).scalar_one().contact_id == "c1"
    task = db.execute(select(Task).where(Task.type == "call")).scalar_one()
    assert task.title == "Power Dialer Call - Interested"
    assert db.execute(select(DialerListEntry)).scalar_one().status == "COMPLETED"


def test_update_swaps_previous_disposition_tags(db, contact):
    first = _create(db, "Callback", {"action_type": "ADD_TAG", "config": {"tagName": "Callback"}})
    second = _create(db, "Interested", {"action_type": "ADD_TAG", "config": {"tagName": "Interested"}})
    disposition_service.apply_disposition(db, DispositionApply(contactId="c1", dispositionId=first.id))

    disposition_service.apply_disposition(
        db,
        DispositionApply(contactId="c1", dispositionId=second.id, isUpdate=True, previousDispositionId=first.id),
    )

    db.refresh(contact)
    assert _tags(db, "c1") == {"Interested"}
    assert contact.custom_fields["dialAttempts"] == 1


def test_apply_unknown_contact_is_404(db):
    disposition = _create(db, "Interested")
    with pytest.raises(HTTPException) as excinfo:
        disposition_service.apply_disposition(db, DispositionApply(contactId="nobody", dispositionId=disposition.id))
    assert excinfo.value.status_code == 404


def test_seed_is_idempotent_and_defaults_cannot_be_deleted(db):
    created, updated = disposition_service.seed_default_dispositions(db)
    assert "Do Not Call" in created
    assert updated == []

    created, updated = disposition_service.seed_default_dispositions(db)
    assert created == []
    assert len(updated) == len(disposition_service.DEFAULT_DISPOSITIONS)

    dnc = db.execute(select(CallDisposition).where(CallDisposition.name == "Do Not Call")).scalar_one()
    assert dnc.marks_dnc is True
    with pytest.raises(HTTPException) as excinfo:
        disposition_service.delete_disposition(db, dnc.id)
    assert excinfo.value.status_code == 400


def test_duplicate_name_is_rejected(db):
    _create(db, "Interested")
    with pytest.raises(HTTPException):
        _create(db, "Interested")


def test_failed_flush_is_rolled_back_and_later_actions_still_run(db, contact):
    disposition = _create(
        db,
        "Not interested",
        {"action_type": "CREATE_TASK", "config": {"taskPriority": ["high"]}, "sort_order": 1},
        {"action_type": "ADD_TAG", "config": {"tagName": "Not interested"}, "sort_order": 2},
    )

    result = disposition_service.apply_disposition(
        db, DispositionApply(contactId="c1", dispositionId=disposition.id, listId="list-1")
    )

    assert [r["success"] for r in result["results"]] == [False, True]
    assert _tags(db, "c1") == {"Not interested"}
    assert db.execute(select(DispositionLog)).scalar_one().disposition_id == disposition.id
    tasks = db.execute(select(Task)).scalars().all()
    assert [t.type for t in tasks] == ["call"]
    db.refresh(contact)
    assert contact.custom_fields["lastDisposition"] == "Not interested"
