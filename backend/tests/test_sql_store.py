from datetime import datetime, timezone

import pytest

from powerdialer.core.errors import ListNotFoundError
from powerdialer.models.contact import Contact
from powerdialer.models.dialer_list import DialerList, DialerListEntry, ListEntryStatus
from powerdialer.models.dialer_run import DialerRunLeg, RunStatus
from powerdialer.services.list_service import SqlTargetSource
from powerdialer.services.run_registry import LegRecord, RunState, SqlRunStore


@pytest.fixture
def seeded(db):
    db.add(DialerList(id="list-1", name="Expired listings", max_lines=2, caller_id_strategy="random"))
    db.add_all(
        [
            Contact(id="c1", phone1="+15551000001"),
            Contact(id="c2", phone1="+15551000002", dnc=True),
            Contact(id="c3", phone1="+15551000003"),
        ]
    )
    db.add_all(
        [
            DialerListEntry(list_id="list-1", contact_id="c3", position=1, phone="+15559990003"),
            DialerListEntry(list_id="list-1", contact_id="c1", position=2),
            DialerListEntry(list_id="list-1", contact_id="c2", position=3),
        ]
    )
    db.commit()


def _run(run_id, status=RunStatus.PENDING):
    return RunState(id=run_id, list_id="list-1", status=status, numbers=["+15550001111"], total_contacts=3)


def test_save_and_load_round_trip(session_factory, seeded):
    store = SqlRunStore(session_factory)
    state = _run("run-1")
    state.cursor = 2
    state.attempted = 2
    state.voicemail = 1
    store.save(state)

    loaded = store.load("run-1")
    assert loaded.cursor == 2
    assert loaded.counters()["voicemail"] == 1
    assert loaded.numbers == ["+15550001111"]
    assert store.load("missing") is None


def test_exclusive_claim_reports_blocking_run(session_factory, seeded):
    store = SqlRunStore(session_factory)
    store.save(_run("run-1"))
    store.save(_run("run-2"))

    assert store.claim_running("run-1", [RunStatus.PENDING], exclusive=True).claimed

    refused = store.claim_running("run-2", [RunStatus.PENDING], exclusive=True)
    assert not refused.claimed
    assert refused.blocking_run_id == "run-1"
    assert refused.current_status == "pending"

    assert store.claim_running("run-2", [RunStatus.PENDING], exclusive=False).claimed


def test_claim_from_wrong_status_reports_current_status(session_factory, seeded):
    store = SqlRunStore(session_factory)
    store.save(_run("run-1", RunStatus.COMPLETED))

    refused = store.claim_running("run-1", [RunStatus.PAUSED], exclusive=True)
    assert not refused.claimed
    assert refused.blocking_run_id is None
    assert refused.current_status == "completed"


def test_load_recoverable_returns_running_and_paused(session_factory, seeded):
    store = SqlRunStore(session_factory)
    store.save(_run("a", RunStatus.RUNNING))
    store.save(_run("b", RunStatus.PAUSED))
    store.save(_run("c", RunStatus.CANCELLED))
    assert {s.id for s in store.load_recoverable()} == {"a", "b"}


def test_legs_are_recorded_and_updated(session_factory, seeded, db):
    store = SqlRunStore(session_factory)
    store.save(_run("run-1"))
    store.record_leg(
        LegRecord(
            id="leg-1",
            run_id="run-1",
            from_number="+15550001111",
            to_number="+15551000001",
            status="initiated",
            started_at=datetime.now(timezone.utc),
        )
    )
    store.update_leg("leg-1", status="voicemail", amd_result="machine")

    leg = db.get(DialerRunLeg, "leg-1")
    assert (leg.status, leg.amd_result) == ("voicemail", "machine")


def test_targets_follow_list_order_and_carry_dnc(session_factory, seeded):
    source = SqlTargetSource(session_factory)
    targets = source.load_targets("list-1")

    assert [t.contact_id for t in targets] == ["c3", "c1", "c2"]
    assert targets[0].phone == "+15559990003"
    assert targets[1].phone == "+15551000001"
    assert [t.dialable for t in targets] == [True, True, False]
    assert source.list_defaults("list-1") == (2, "random")


def test_unknown_list_raises(session_factory):
    with pytest.raises(ListNotFoundError):
        SqlTargetSource(session_factory).list_defaults("nope")


def test_mark_entry_counts_attempts(session_factory, seeded, db):
    source = SqlTargetSource(session_factory)
    entry_id = source.load_targets("list-1")[0].entry_id

    source.mark_entry(entry_id, ListEntryStatus.CALLING, attempted=True)

    entry = db.get(DialerListEntry, entry_id)
    assert entry.status == "CALLING"
    assert entry.attempt_count == 1
    assert entry.last_called_at is not None
