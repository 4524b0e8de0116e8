"""
PendingCallRegistry - process-local view of calls the provider has not yet hung up.

The provider's webhooks carry only the call-control id, so this store bridges
"call originated" and "webhook arrived". It is an optimisation: every webhook
path must still work when an entry is missing (sweep, restart).

Invariants:
- exactly one entry per live call-control id
- AMD result is set-once: a later ``unknown`` never overwrites ``human``/``machine``
- entries leave on ``call.hangup`` or when the sweep finds them stale
"""
import asyncio
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class CallStatus(str, Enum):
    INITIATED = "initiated"
    RINGING = "ringing"
    ANSWERED = "answered"
    AMD_CHECKING = "amd_checking"
    HUMAN_DETECTED = "human_detected"
    VOICEMAIL = "voicemail"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    FAILED = "failed"
    ENDED = "ended"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {CallStatus.VOICEMAIL, CallStatus.NO_ANSWER, CallStatus.BUSY, CallStatus.FAILED, CallStatus.ENDED}
)


class AmdResult(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"
    FAX = "fax"
    UNKNOWN = "unknown"

    @property
    def is_definitive(self) -> bool:
        return self is not AmdResult.UNKNOWN


@dataclass
class PendingCall:
    session_id: str
    contact_id: str | None
    from_number: str
    to_number: str
    run_id: str | None = None
    leg_id: str | None = None
    list_entry_id: int | None = None
    user_id: str | None = None
    line_number: int = 1
    status: CallStatus = CallStatus.INITIATED
    amd_result: AmdResult | None = None
    amd_enabled: bool = True
    started_at: float = field(default_factory=time.time)
    answered_at: float | None = None
    human_at: float | None = None
    hangup_cause: str | None = None
    # Set once the run counters have been charged for this call.
    outcome_recorded: bool = False
    fallback_task: asyncio.Task | None = field(default=None, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def cancel_fallback(self) -> None:
        task = self.fallback_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self.fallback_task = None


class PendingCallRegistry:
    def __init__(self, clock=time.time):
        self._calls: dict[str, PendingCall] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: defaultdict[str, int] = defaultdict(int)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._calls

    @asynccontextmanager
    async def locked(self, session_id: str):
        """Serialize handlers that touch the same call across await points."""
        self._lock_users[session_id] += 1
        try:
            async with self._locks[session_id]:
                yield self._calls.get(session_id)
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] <= 0:
                self._lock_users.pop(session_id, None)
                self._locks.pop(session_id, None)

    def register(self, call: PendingCall) -> PendingCall:
        existing = self._calls.get(call.session_id)
        if existing is not None:
            logger.warning("Pending call %s registered twice; keeping first entry", call.session_id)
            return existing
        self._calls[call.session_id] = call
        logger.debug("Pending call registered session=%s run=%s to=%s", call.session_id, call.run_id, call.to_number)
        return call

    def get(self, session_id: str) -> PendingCall | None:
        return self._calls.get(session_id)

    def update_status(
        self,
        session_id: str,
        status: CallStatus,
        *,
        amd_result: AmdResult | None = None,
        hangup_cause: str | None = None,
    ) -> PendingCall | None:
        call = self._calls.get(session_id)
        if call is None:
            return None
        call.status = status
        if amd_result is not None and (call.amd_result is None or not call.amd_result.is_definitive):
            call.amd_result = amd_result
        if hangup_cause is not None:
            call.hangup_cause = hangup_cause
        now = self._clock()
        if status in (CallStatus.ANSWERED, CallStatus.AMD_CHECKING) and call.answered_at is None:
            call.answered_at = now
        if status is CallStatus.HUMAN_DETECTED and call.human_at is None:
            call.human_at = now
        return call

    def remove(self, session_id: str) -> PendingCall | None:
        call = self._calls.pop(session_id, None)
        if call is not None:
            call.cancel_fallback()
            logger.debug("Pending call removed session=%s status=%s", session_id, call.status.value)
        return call

    def active_for_run(self, run_id: str) -> list[PendingCall]:
        return [c for c in self._calls.values() if c.run_id == run_id and c.is_active]

    def count_active(self, run_id: str) -> int:
        return len(self.active_for_run(run_id))

    def for_run(self, run_id: str) -> list[PendingCall]:
        return [c for c in self._calls.values() if c.run_id == run_id]

    def sweep(self, max_age_seconds: float) -> list[PendingCall]:
        cutoff = self._clock() - max_age_seconds
        stale = [c for c in self._calls.values() if c.started_at <= cutoff]
        for call in stale:
            self.remove(call.session_id)
        if stale:
            logger.info("Swept %s stale pending calls older than %ss", len(stale), max_age_seconds)
        return stale

