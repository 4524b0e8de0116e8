"""
Power dialer run controller.

One ``DialerController`` per process owns every live run. Lock order is
always per-call lock (``PendingCallRegistry.locked``) first, then the run's
``RunState.lock``; nothing holding a run lock waits on a call lock.

The number of in-flight calls for a run is always read from the pending-call
registry, never from a separate counter.
"""
import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from uuid import uuid4

from ..core.config import MANUAL_CALL_AMD_CONFIG, POWER_DIALER_AMD_CONFIG, Settings, get_settings
from ..core.errors import (
    GatewayError,
    InvalidTransitionError,
    NoCallerIdError,
    NoRemainingContactsError,
    RunConflictError,
    RunNotFoundError,
)
from ..models.dialer_list import ListEntryStatus
from ..models.dialer_run import CallerIdStrategy, RunStatus
from .amd import DETECTION_EVENTS, WAIT, Action, CallEvent, Decision, EventType, decide, fallback_decision
from .client_state import CallKind, ClientState, encode_client_state
from .list_service import TargetSource
from .pending_calls import CallStatus, PendingCall, PendingCallRegistry
from .run_registry import LegRecord, RunRegistry, RunState, RunStore, Target
from .telnyx_gateway import CallGateway

logger = logging.getLogger(__name__)

STARTABLE = (RunStatus.DRAFT, RunStatus.PENDING, RunStatus.PAUSED)

_BUSY_CAUSES = {"USER_BUSY", "BUSY"}
_FAILED_CAUSES = {"CALL_REJECTED", "UNALLOCATED_NUMBER", "NUMBER_CHANGED"}

_RUN_COUNTER = {
    CallStatus.VOICEMAIL: "voicemail",
    CallStatus.NO_ANSWER: "no_answer",
    CallStatus.BUSY: "busy",
    CallStatus.FAILED: "failed",
}

_ENTRY_STATUS = {
    CallStatus.VOICEMAIL: ListEntryStatus.NO_ANSWER,
    CallStatus.NO_ANSWER: ListEntryStatus.NO_ANSWER,
    CallStatus.BUSY: ListEntryStatus.NO_ANSWER,
    CallStatus.FAILED: ListEntryStatus.FAILED,
}


def outcome_for_hangup(cause: str | None) -> CallStatus:
    value = (cause or "").strip().upper()
    if value in _BUSY_CAUSES:
        return CallStatus.BUSY
    if value in _FAILED_CAUSES:
        return CallStatus.FAILED
    # NO_ANSWER, TIMEOUT, ORIGINATOR_CANCEL and unrecognised causes
    return CallStatus.NO_ANSWER


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DialerController:
    def __init__(
        self,
        gateway: CallGateway,
        store: RunStore,
        targets: TargetSource,
        calls: PendingCallRegistry | None = None,
        settings: Settings | None = None,
        clock=time.time,
        rng: random.Random | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.targets = targets
        self.calls = calls or PendingCallRegistry(clock=clock)
        self.settings = settings or get_settings()
        self.runs = RunRegistry()
        self._clock = clock
        self._rng = rng or random.Random()
        self._claim_lock = asyncio.Lock()

    # ------------------------------------------------------------------ runs

    def create_run(
        self,
        list_id: str,
        numbers: list[str] | None = None,
        max_lines: int | None = None,
        strategy: str | None = None,
        user_id: str | None = None,
        draft: bool = False,
    ) -> RunState:
        defaults = self.targets.list_defaults(list_id)
        pool = [n for n in (numbers or self.settings.default_caller_ids) if n]
        if not pool:
            raise NoCallerIdError()
        requested = max_lines or defaults.max_lines or self.settings.default_max_lines
        lines = max(1, min(requested, self.settings.max_allowed_lines, len(pool)))
        targets = self.targets.load_targets(list_id)
        run = RunState(
            id=uuid4().hex,
            list_id=list_id,
            status=RunStatus.DRAFT if draft else RunStatus.PENDING,
            max_lines=lines,
            strategy=CallerIdStrategy(strategy or defaults.caller_id_strategy or CallerIdStrategy.ROUND_ROBIN.value),
            numbers=pool,
            targets=targets,
            total_contacts=len(targets),
            user_id=user_id,
        )
        self.store.save(run)
        self.runs.add(run)
        logger.info(
            "Run %s created for list %s (%s contacts, %s lines, %s caller ids)",
            run.id,
            list_id,
            len(targets),
            lines,
            len(pool),
        )
        return run

    def get_run(self, run_id: str) -> RunState:
        run = self.runs.get(run_id)
        if run is not None:
            return run
        stored = self.store.load(run_id)
        if stored is None:
            raise RunNotFoundError(run_id)
        return stored

    def list_runs(self) -> list[RunState]:
        return self.runs.values()

    async def start(self, run_id: str, force: bool = False) -> RunState:
        run = self._live(run_id)
        async with run.lock:
            if run.status not in STARTABLE:
                raise InvalidTransitionError(run.id, "start", run.status.value)
            if self._nothing_left(run):
                if run.status is RunStatus.PAUSED:
                    self._complete(run)
                    return run
                raise NoRemainingContactsError(run.id)
            await self._claim(run, "start", STARTABLE, force)
            run.started_at = run.started_at or _utcnow()
            run.paused_at = None
            logger.info("Run %s started (force=%s)", run.id, force)
            await self._fill_lines(run)
        return run

    async def pause(self, run_id: str) -> RunState:
        run = self._live(run_id)
        async with run.lock:
            if run.status is not RunStatus.RUNNING:
                raise InvalidTransitionError(run.id, "pause", run.status.value)
            run.status = RunStatus.PAUSED
            run.paused_at = _utcnow()
            self.store.save(run)
            logger.info(
                "Run %s paused at cursor %s with %s calls in flight",
                run.id,
                run.cursor,
                self.calls.count_active(run.id),
            )
        return run

    async def resume(self, run_id: str, force: bool = False) -> RunState:
        run = self._live(run_id)
        async with run.lock:
            if run.status is not RunStatus.PAUSED:
                raise InvalidTransitionError(run.id, "resume", run.status.value)
            if self._nothing_left(run):
                self._complete(run)
                return run
            await self._claim(run, "resume", (RunStatus.PAUSED,), force)
            run.paused_at = None
            logger.info("Run %s resumed from cursor %s", run.id, run.cursor)
            await self._fill_lines(run)
        return run

    async def stop(self, run_id: str) -> RunState:
        run = self._live(run_id)
        async with run.lock:
            if run.status.is_terminal:
                raise InvalidTransitionError(run.id, "stop", run.status.value)
            run.status = RunStatus.CANCELLED
            run.completed_at = _utcnow()
            in_flight = self.calls.active_for_run(run.id)
            # Charge every call before the first await so a hangup webhook
            # arriving mid-stop finds the outcome already recorded.
            for call in in_flight:
                call.cancel_fallback()
                call.outcome_recorded = True
                if call.status is not CallStatus.HUMAN_DETECTED:
                    self.targets.mark_entry(call.list_entry_id, ListEntryStatus.PENDING)
                self.calls.update_status(call.session_id, CallStatus.ENDED, hangup_cause="run_cancelled")
                run.canceled += 1
                if call.leg_id:
                    self.store.update_leg(call.leg_id, status="canceled", hangup_cause="run_cancelled", ended_at=_utcnow())
            self.store.save(run)
            results = await asyncio.gather(
                *(self.gateway.hangup(call.session_id) for call in in_flight),
                return_exceptions=True,
            )
            for call, result in zip(in_flight, results):
                if isinstance(result, Exception):
                    logger.warning("Hangup of %s while stopping run %s failed: %s", call.session_id, run.id, result)
            logger.info("Run %s cancelled; %s in-flight calls hung up", run.id, len(in_flight))
        return run

    def recover(self) -> int:
        """Reload persisted runs after a restart.

        Calls that were in flight belong to the previous process, so a run that
        was running comes back paused and must be resumed explicitly.
        """
        recovered = 0
        for state in self.store.load_recoverable():
            if state.id in self.runs:
                continue
            if state.status is RunStatus.RUNNING:
                state.status = RunStatus.PAUSED
                state.paused_at = state.paused_at or _utcnow()
                self.store.save(state)
                logger.warning("Run %s was running before restart; recovered as paused", state.id)
            state.targets = self.targets.load_targets(state.list_id)
            self.runs.add(state)
            recovered += 1
        if recovered:
            logger.info("Recovered %s dialer runs", recovered)
        return recovered

    # --------------------------------------------------------------- webhooks

    async def handle_event(self, event: CallEvent) -> Decision:
        async with self.calls.locked(event.session_id) as call:
            if call is None:
                call = await self._wait_for_registration(event)
            event_type = event.event_type
            if event_type == EventType.INITIATED.value:
                logger.debug("Call %s initiated", event.session_id)
            elif event_type == EventType.RINGING.value:
                if call is not None and call.status is CallStatus.INITIATED:
                    self.calls.update_status(event.session_id, CallStatus.RINGING)
            elif event_type == EventType.ANSWERED.value:
                self._on_answered(call)
            elif event_type in DETECTION_EVENTS:
                decision = decide(event, call)
                logger.info(
                    "AMD result for %s: %s -> %s",
                    event.session_id,
                    event.result,
                    decision.action.value,
                )
                await self._apply_decision(event.session_id, call, decision)
                return decision
            elif event_type == EventType.HANGUP.value:
                await self._on_hangup(event, call)
            else:
                logger.debug("Ignoring %s for %s", event_type, event.session_id)
        return WAIT

    async def _wait_for_registration(self, event: CallEvent) -> PendingCall | None:
        # A webhook can beat the originate response; the run lock is held until
        # the call is registered.
        state = event.client_state
        if state is None or state.run_id is None:
            return None
        run = self.runs.get(state.run_id)
        if run is None:
            return None
        async with run.lock:
            pass
        return self.calls.get(event.session_id)

    def _on_answered(self, call: PendingCall | None) -> None:
        if call is None or not call.is_active or call.status is CallStatus.HUMAN_DETECTED:
            return
        status = CallStatus.AMD_CHECKING if call.amd_enabled else CallStatus.ANSWERED
        self.calls.update_status(call.session_id, status)
        if call.leg_id:
            self.store.update_leg(call.leg_id, status=status.value, answered_at=_utcnow())
        if call.amd_enabled and call.amd_result is None and call.fallback_task is None:
            self._arm_fallback(call)

    def _arm_fallback(self, call: PendingCall) -> None:
        delay = self.settings.amd_fallback_seconds
        if delay <= 0:
            return
        call.fallback_task = asyncio.create_task(self._fallback_after(call.session_id, delay))

    async def _fallback_after(self, session_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            async with self.calls.locked(session_id) as call:
                if call is None or call.status not in (CallStatus.ANSWERED, CallStatus.AMD_CHECKING):
                    return
                call.fallback_task = None
                decision = fallback_decision(call, self.settings.amd_fallback_action)
                logger.warning(
                    "No AMD result for %s within %ss of answer; applying %s",
                    session_id,
                    delay,
                    decision.action.value,
                )
                await self._apply_decision(session_id, call, decision)
        except Exception:
            logger.exception("AMD fallback for %s failed", session_id)

    async def _apply_decision(self, session_id: str, call: PendingCall | None, decision: Decision) -> None:
        if decision.action is Action.WAIT:
            return
        if call is not None:
            if call.status is CallStatus.HUMAN_DETECTED or not call.is_active:
                logger.info("Ignoring repeated %s for %s (status=%s)", decision.action.value, session_id, call.status.value)
                return
            call.cancel_fallback()
        if decision.action is Action.TRANSFER_TO_AGENT:
            await self._connect_agent(session_id, call, decision)
        else:
            await self._drop_machine(session_id, call, decision)

    async def _connect_agent(self, session_id: str, call: PendingCall | None, decision: Decision) -> None:
        if call is not None:
            self.calls.update_status(session_id, CallStatus.HUMAN_DETECTED, amd_result=decision.amd_result)
            await self._record_answer(call)
        destination = self.settings.agent_sip_uri
        if not destination:
            logger.error("Human answered %s but no agent SIP destination is configured; hanging up", session_id)
            await self._hangup_quietly(session_id)
            return
        if self.settings.agent_hold_audio_url:
            try:
                await self.gateway.start_playback(session_id, self.settings.agent_hold_audio_url, "infinity")
            except GatewayError as exc:
                logger.warning("Hold audio on %s failed: %s", session_id, exc)
        try:
            await self.gateway.transfer(session_id, destination, decision.caller_id)
        except GatewayError as exc:
            if exc.already_ended:
                logger.info("Call %s ended before it could be transferred", session_id)
            else:
                logger.error("Transfer of %s to %s failed: %s", session_id, destination, exc)

    async def _drop_machine(self, session_id: str, call: PendingCall | None, decision: Decision) -> None:
        if call is not None:
            self.calls.update_status(session_id, CallStatus.VOICEMAIL, amd_result=decision.amd_result)
        await self._hangup_quietly(session_id)
        if call is not None and not call.outcome_recorded:
            call.outcome_recorded = True
            await self._settle(
                call,
                CallStatus.VOICEMAIL,
                leg_values={"status": CallStatus.VOICEMAIL.value, "amd_result": decision.amd_result.value},
            )

    async def _record_answer(self, call: PendingCall) -> None:
        if call.leg_id:
            self.store.update_leg(
                call.leg_id,
                status=CallStatus.HUMAN_DETECTED.value,
                amd_result=call.amd_result.value if call.amd_result else None,
            )
        self.targets.mark_entry(call.list_entry_id, ListEntryStatus.ANSWERED)
        run = self.runs.get(call.run_id) if call.run_id else None
        if run is None:
            return
        async with run.lock:
            run.answered += 1
            self.store.save(run)

    async def _on_hangup(self, event: CallEvent, call: PendingCall | None) -> None:
        session_id = event.session_id
        if call is None:
            logger.debug("Hangup for untracked call %s", session_id)
            state = event.client_state
            if state is not None and state.run_id:
                await self._backfill(state.run_id)
            return
        talk_seconds = int(self._clock() - call.human_at) if call.human_at else 0
        was_human = call.status is CallStatus.HUMAN_DETECTED
        outcome = None
        if not call.outcome_recorded:
            call.outcome_recorded = True
            if call.status is not CallStatus.HUMAN_DETECTED:
                outcome = outcome_for_hangup(event.hangup_cause)
        self.calls.update_status(session_id, outcome or CallStatus.ENDED, hangup_cause=event.hangup_cause)
        self.calls.remove(session_id)
        logger.info(
            "Call %s hung up (cause=%s outcome=%s talk=%ss)",
            session_id,
            event.hangup_cause,
            outcome.value if outcome else "ended",
            talk_seconds,
        )
        leg_values = {"hangup_cause": event.hangup_cause, "talk_seconds": talk_seconds, "ended_at": _utcnow()}
        if outcome is not None or was_human:
            # voicemail and cancelled legs keep the status recorded when they were decided
            leg_values["status"] = (outcome or CallStatus.ENDED).value
        await self._settle(call, outcome, talk_seconds=talk_seconds, leg_values=leg_values)

    async def _settle(
        self,
        call: PendingCall,
        outcome: CallStatus | None,
        talk_seconds: int = 0,
        leg_values: dict | None = None,
    ) -> None:
        """Charge a finished call to its run and backfill the freed line."""
        if call.leg_id and leg_values:
            self.store.update_leg(call.leg_id, **leg_values)
        entry_status = _ENTRY_STATUS.get(outcome)
        if entry_status is not None:
            self.targets.mark_entry(call.list_entry_id, entry_status)
        run = self.runs.get(call.run_id) if call.run_id else None
        if run is None:
            return
        async with run.lock:
            counter = _RUN_COUNTER.get(outcome)
            if counter:
                setattr(run, counter, getattr(run, counter) + 1)
            run.talk_seconds += talk_seconds
            await self._fill_lines(run)

    async def _hangup_quietly(self, session_id: str) -> None:
        try:
            await self.gateway.hangup(session_id)
        except GatewayError as exc:
            if exc.already_ended:
                logger.debug("Call %s already ended", session_id)
            else:
                logger.warning("Hangup of %s failed: %s", session_id, exc)

    # ---------------------------------------------------------------- dialing

    async def _backfill(self, run_id: str) -> None:
        run = self.runs.get(run_id)
        if run is None:
            return
        async with run.lock:
            await self._fill_lines(run)

    async def _fill_lines(self, run: RunState) -> None:
        # caller holds run.lock
        while run.status is RunStatus.RUNNING and self.calls.count_active(run.id) < run.max_lines:
            target = self._next_target(run)
            if target is None:
                break
            await self._originate(run, target)
        if run.status is RunStatus.RUNNING and self._nothing_left(run):
            self._complete(run)
            return
        self.store.save(run)

    def _next_target(self, run: RunState) -> Target | None:
        while not run.exhausted:
            target = run.targets[run.cursor]
            run.cursor += 1
            if target.dialable:
                return target
            logger.info(
                "Run %s skipping entry %s (phone=%s dnc=%s status=%s)",
                run.id,
                target.entry_id,
                target.phone,
                target.dnc,
                target.status,
            )
            if target.status != ListEntryStatus.REMOVED.value:
                self.targets.mark_entry(target.entry_id, ListEntryStatus.SKIPPED)
        return None

    async def _originate(self, run: RunState, target: Target) -> PendingCall | None:
        from_number = self._caller_id(run)
        line_number = self._free_line(run)
        leg_id = uuid4().hex
        state = ClientState(
            kind=CallKind.POWER_DIALER,
            run_id=run.id,
            leg_id=leg_id,
            list_entry_id=target.entry_id,
            contact_id=target.contact_id,
            user_id=run.user_id,
            from_number=from_number,
        )
        started_at = _utcnow()
        run.attempted += 1
        try:
            session_id = await self.gateway.originate(
                from_number,
                target.phone,
                POWER_DIALER_AMD_CONFIG,
                self.settings.call_webhook_url,
                encode_client_state(state),
            )
        except GatewayError as exc:
            run.failed += 1
            logger.warning("Run %s could not dial %s: %s", run.id, target.phone, exc)
            self.store.record_leg(
                LegRecord(
                    id=leg_id,
                    run_id=run.id,
                    list_entry_id=target.entry_id,
                    contact_id=target.contact_id,
                    from_number=from_number,
                    to_number=target.phone,
                    line_number=line_number,
                    status=CallStatus.FAILED.value,
                    hangup_cause="originate_failed",
                    started_at=started_at,
                    ended_at=started_at,
                )
            )
            self.targets.mark_entry(target.entry_id, ListEntryStatus.FAILED, attempted=True)
            return None

        call = self.calls.register(
            PendingCall(
                session_id=session_id,
                contact_id=target.contact_id,
                from_number=from_number,
                to_number=target.phone,
                run_id=run.id,
                leg_id=leg_id,
                list_entry_id=target.entry_id,
                user_id=run.user_id,
                line_number=line_number,
                started_at=self._clock(),
            )
        )
        self.store.record_leg(
            LegRecord(
                id=leg_id,
                run_id=run.id,
                list_entry_id=target.entry_id,
                contact_id=target.contact_id,
                call_control_id=session_id,
                from_number=from_number,
                to_number=target.phone,
                line_number=line_number,
                status=CallStatus.INITIATED.value,
                started_at=started_at,
            )
        )
        self.targets.mark_entry(target.entry_id, ListEntryStatus.CALLING, attempted=True)
        logger.info("Run %s line %s dialing %s from %s (%s)", run.id, line_number, target.phone, from_number, session_id)
        return call

    def _caller_id(self, run: RunState) -> str:
        if not run.numbers:
            raise NoCallerIdError()
        if run.strategy is CallerIdStrategy.SINGLE_NUMBER:
            return run.numbers[0]
        if run.strategy is CallerIdStrategy.RANDOM:
            return self._rng.choice(run.numbers)
        return run.numbers[run.attempted % len(run.numbers)]

    def _free_line(self, run: RunState) -> int:
        used = {call.line_number for call in self.calls.active_for_run(run.id)}
        for line in range(1, run.max_lines + 1):
            if line not in used:
                return line
        return len(used) + 1

    def _nothing_left(self, run: RunState) -> bool:
        if not run.exhausted or self.calls.count_active(run.id):
            return False
        return True

    def _complete(self, run: RunState) -> None:
        run.status = RunStatus.COMPLETED
        run.completed_at = _utcnow()
        self.store.save(run)
        logger.info("Run %s completed: %s", run.id, run.counters())

    async def _claim(self, run: RunState, action: str, allowed, force: bool) -> None:
        exclusive = self.settings.single_active_run and not force
        async with self._claim_lock:
            if exclusive:
                others = self.runs.running(exclude=run.id)
                if others:
                    raise RunConflictError(run.id, others[0].id)
            result = self.store.claim_running(run.id, list(allowed), exclusive)
        if not result.claimed:
            if result.blocking_run_id:
                raise RunConflictError(run.id, result.blocking_run_id)
            raise InvalidTransitionError(run.id, action, result.current_status or run.status.value)
        run.status = RunStatus.RUNNING

    def _live(self, run_id: str) -> RunState:
        run = self.runs.get(run_id)
        if run is not None:
            return run
        stored = self.store.load(run_id)
        if stored is None:
            raise RunNotFoundError(run_id)
        stored.targets = self.targets.load_targets(stored.list_id)
        return self.runs.add(stored)

    # ------------------------------------------------------------ manual calls

    async def dial_manual(
        self,
        to_number: str,
        from_number: str | None = None,
        contact_id: str | None = None,
        user_id: str | None = None,
    ) -> PendingCall:
        from_number = from_number or next(iter(self.settings.default_caller_ids), None)
        if not from_number:
            raise NoCallerIdError()
        state = ClientState(kind=CallKind.MANUAL, contact_id=contact_id, user_id=user_id, from_number=from_number)
        session_id = await self.gateway.originate(
            from_number,
            to_number,
            MANUAL_CALL_AMD_CONFIG,
            self.settings.manual_call_webhook_url,
            encode_client_state(state),
        )
        logger.info("Manual AMD call %s -> %s (%s)", from_number, to_number, session_id)
        return self.calls.register(
            PendingCall(
                session_id=session_id,
                contact_id=contact_id,
                from_number=from_number,
                to_number=to_number,
                user_id=user_id,
                started_at=self._clock(),
            )
        )

    # ------------------------------------------------------------ maintenance

    async def sweep_stale(self) -> int:
        stale = self.calls.sweep(self.settings.pending_call_max_age_seconds)
        for call in stale:
            if call.outcome_recorded:
                if call.run_id:
                    await self._backfill(call.run_id)
                continue
            call.outcome_recorded = True
            if call.status is CallStatus.HUMAN_DETECTED:
                talk_seconds = int(self._clock() - call.human_at) if call.human_at else 0
                await self._settle(call, None, talk_seconds=talk_seconds, leg_values={"talk_seconds": talk_seconds})
            else:
                await self._settle(
                    call,
                    CallStatus.FAILED,
                    leg_values={"status": CallStatus.FAILED.value, "hangup_cause": "swept", "ended_at": _utcnow()},
                )
        return len(stale)

    async def run_sweeper(self, interval: float | None = None) -> None:
        interval = interval or self.settings.pending_call_sweep_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_stale()
            except Exception:
                logger.exception("Pending call sweep failed")
