"""
Live dialer runs and their durable mirror.

``RunRegistry`` is the in-process map the controller works against; every
mutation of a ``RunState`` happens while holding ``state.lock``. ``RunStore``
persists snapshots so a restarted process can pick runs back up, and owns the
atomic claim that moves a run into ``running``.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import select, update
from sqlalchemy.orm import aliased

from ..models.dialer_run import CallerIdStrategy, DialerRun, DialerRunLeg, RunStatus

logger = logging.getLogger(__name__)

COUNTERS = ("attempted", "answered", "no_answer", "voicemail", "busy", "failed", "canceled", "talk_seconds")


@dataclass
class Target:
    entry_id: int | None
    contact_id: str | None
    phone: str | None
    dnc: bool = False
    status: str = "PENDING"

    @property
    def dialable(self) -> bool:
        return bool(self.phone) and not self.dnc and self.status != "REMOVED"


@dataclass
class RunState:
    id: str
    list_id: str
    status: RunStatus = RunStatus.PENDING
    max_lines: int = 3
    strategy: CallerIdStrategy = CallerIdStrategy.ROUND_ROBIN
    numbers: list[str] = field(default_factory=list)
    targets: list[Target] = field(default_factory=list)
    cursor: int = 0
    total_contacts: int = 0
    user_id: str | None = None

    attempted: int = 0
    answered: int = 0
    no_answer: int = 0
    voicemail: int = 0
    busy: int = 0
    failed: int = 0
    canceled: int = 0
    talk_seconds: int = 0

    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def remaining(self) -> int:
        return max(len(self.targets) - self.cursor, 0)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.targets)

    def counters(self) -> dict:
        return {name: getattr(self, name) for name in COUNTERS}

    def snapshot(self) -> "RunState":
        """Detached copy without targets, safe to hand to a store or a response."""
        return replace(self, targets=[], numbers=list(self.numbers), lock=asyncio.Lock())


@dataclass
class LegRecord:
    id: str
    run_id: str
    from_number: str
    to_number: str
    status: str
    started_at: datetime
    list_entry_id: int | None = None
    contact_id: str | None = None
    call_control_id: str | None = None
    line_number: int = 1
    amd_result: str | None = None
    hangup_cause: str | None = None
    talk_seconds: int = 0
    answered_at: datetime | None = None
    ended_at: datetime | None = None


class ClaimResult(NamedTuple):
    claimed: bool
    blocking_run_id: str | None = None
    current_status: str | None = None


class RunRegistry:
    def __init__(self):
        self._runs: dict[str, RunState] = {}

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def add(self, state: RunState) -> RunState:
        return self._runs.setdefault(state.id, state)

    def get(self, run_id: str) -> RunState | None:
        return self._runs.get(run_id)

    def values(self) -> list[RunState]:
        return list(self._runs.values())

    def running(self, exclude: str | None = None) -> list[RunState]:
        return [r for r in self._runs.values() if r.status is RunStatus.RUNNING and r.id != exclude]


class RunStore(ABC):
    @abstractmethod
    def save(self, state: RunState) -> None: ...

    @abstractmethod
    def load(self, run_id: str) -> RunState | None: ...

    @abstractmethod
    def load_recoverable(self) -> list[RunState]: ...

    @abstractmethod
    def claim_running(self, run_id: str, from_statuses: list[RunStatus], exclusive: bool) -> ClaimResult:
        """Atomically move a run to running if it is in one of ``from_statuses``.

        With ``exclusive`` the transition also requires that no other run is
        running; the blocking run id is reported when it is not.
        """

    @abstractmethod
    def record_leg(self, leg: LegRecord) -> None: ...

    @abstractmethod
    def update_leg(self, leg_id: str, **values) -> None: ...


class MemoryRunStore(RunStore):
    def __init__(self):
        self.runs: dict[str, RunState] = {}
        self.legs: dict[str, LegRecord] = {}

    def save(self, state: RunState) -> None:
        self.runs[state.id] = state.snapshot()

    def load(self, run_id: str) -> RunState | None:
        stored = self.runs.get(run_id)
        return stored.snapshot() if stored else None

    def load_recoverable(self) -> list[RunState]:
        return [
            s.snapshot() for s in self.runs.values() if s.status in (RunStatus.RUNNING, RunStatus.PAUSED)
        ]

    def claim_running(self, run_id, from_statuses, exclusive) -> ClaimResult:
        stored = self.runs.get(run_id)
        if stored is None or stored.status not in from_statuses:
            return ClaimResult(False, current_status=stored.status.value if stored else None)
        if exclusive:
            for other in self.runs.values():
                if other.id != run_id and other.status is RunStatus.RUNNING:
                    return ClaimResult(False, blocking_run_id=other.id, current_status=stored.status.value)
        stored.status = RunStatus.RUNNING
        return ClaimResult(True)

    def record_leg(self, leg: LegRecord) -> None:
        self.legs[leg.id] = leg

    def update_leg(self, leg_id: str, **values) -> None:
        leg = self.legs.get(leg_id)
        if leg is None:
            return
        for key, value in values.items():
            setattr(leg, key, value)


class SqlRunStore(RunStore):
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def save(self, state: RunState) -> None:
        with self.session_factory() as db:
            row = db.get(DialerRun, state.id)
            if row is None:
                row = DialerRun(id=state.id, list_id=state.list_id)
                db.add(row)
            row.user_id = state.user_id
            row.status = state.status.value
            row.max_lines = state.max_lines
            row.caller_id_strategy = state.strategy.value
            row.selected_numbers = list(state.numbers)
            row.cursor = state.cursor
            row.total_contacts = state.total_contacts
            for name in COUNTERS:
                setattr(row, f"total_{name}", getattr(state, name))
            row.started_at = state.started_at
            row.paused_at = state.paused_at
            row.completed_at = state.completed_at
            db.commit()

    def load(self, run_id: str) -> RunState | None:
        with self.session_factory() as db:
            row = db.get(DialerRun, run_id)
            return _state_from_row(row) if row is not None else None

    def load_recoverable(self) -> list[RunState]:
        with self.session_factory() as db:
            rows = db.execute(
                select(DialerRun).where(
                    DialerRun.status.in_([RunStatus.RUNNING.value, RunStatus.PAUSED.value])
                )
            ).scalars().all()
            return [_state_from_row(row) for row in rows]

    def claim_running(self, run_id, from_statuses, exclusive) -> ClaimResult:
        allowed = [s.value for s in from_statuses]
        stmt = (
            update(DialerRun)
            .where(DialerRun.id == run_id, DialerRun.status.in_(allowed))
            .values(status=RunStatus.RUNNING.value)
            .execution_options(synchronize_session=False)
        )
        if exclusive:
            other = aliased(DialerRun)
            busy = select(other.id).where(other.status == RunStatus.RUNNING.value, other.id != run_id)
            stmt = stmt.where(~busy.exists())
        with self.session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount == 1:
                return ClaimResult(True)
            current = db.execute(select(DialerRun.status).where(DialerRun.id == run_id)).scalar_one_or_none()
            blocking = None
            if exclusive and current in allowed:
                blocking = db.execute(
                    select(DialerRun.id)
                    .where(DialerRun.status == RunStatus.RUNNING.value, DialerRun.id != run_id)
                    .limit(1)
                ).scalar_one_or_none()
            logger.info("Run %s claim refused (status=%s blocking=%s)", run_id, current, blocking)
            return ClaimResult(False, blocking_run_id=blocking, current_status=current)

    def record_leg(self, leg: LegRecord) -> None:
        with self.session_factory() as db:
            db.add(DialerRunLeg(**{f.name: getattr(leg, f.name) for f in fields(leg)}))
            db.commit()

    def update_leg(self, leg_id: str, **values) -> None:
        if not values:
            return
        with self.session_factory() as db:
            db.execute(update(DialerRunLeg).where(DialerRunLeg.id == leg_id).values(**values))
            db.commit()


def _state_from_row(row: DialerRun) -> RunState:
    state = RunState(
        id=row.id,
        list_id=row.list_id,
        status=RunStatus(row.status),
        max_lines=row.max_lines,
        strategy=CallerIdStrategy(row.caller_id_strategy or CallerIdStrategy.ROUND_ROBIN.value),
        numbers=list(row.selected_numbers or []),
        cursor=row.cursor,
        total_contacts=row.total_contacts,
        user_id=row.user_id,
        started_at=row.started_at,
        paused_at=row.paused_at,
        completed_at=row.completed_at,
    )
    for name in COUNTERS:
        setattr(state, name, getattr(row, f"total_{name}") or 0)
    return state
