"""Answering-machine detection decisions.

``decide`` is pure: it looks only at the event and, optionally, the tracked
call, and never touches the provider. The webhook handler carries out the
returned action.
"""
from dataclasses import dataclass, field
from enum import Enum

from .client_state import ClientState
from .pending_calls import AmdResult, PendingCall


class EventType(str, Enum):
    INITIATED = "call.initiated"
    RINGING = "call.ringing"
    ANSWERED = "call.answered"
    DETECTION_ENDED = "call.machine.detection.ended"
    PREMIUM_DETECTION_ENDED = "call.machine.premium.detection.ended"
    HANGUP = "call.hangup"


DETECTION_EVENTS = frozenset({EventType.DETECTION_ENDED.value, EventType.PREMIUM_DETECTION_ENDED.value})

_HUMAN_RESULTS = {"human", "human_detected", "human_residence", "human_business"}
_MACHINE_RESULTS = {
    "machine",
    "machine_start",
    "machine_detected",
    "machine_end_beep",
    "machine_end_silence",
    "machine_end_other",
}


class Action(str, Enum):
    WAIT = "wait"
    TRANSFER_TO_AGENT = "transfer_to_agent"
    HANGUP = "hangup"


@dataclass(frozen=True)
class CallEvent:
    event_type: str
    session_id: str
    result: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    hangup_cause: str | None = None
    client_state: ClientState | None = field(default=None, compare=False)


@dataclass(frozen=True)
class Decision:
    action: Action
    caller_id: str | None = None
    amd_result: AmdResult | None = None


WAIT = Decision(Action.WAIT)


def normalize_amd_result(result: str | None) -> AmdResult:
    value = (result or "").strip().lower()
    if value in _HUMAN_RESULTS:
        return AmdResult.HUMAN
    if value in _MACHINE_RESULTS:
        return AmdResult.MACHINE
    if value == "fax":
        return AmdResult.FAX
    return AmdResult.UNKNOWN


def caller_id_for(event: CallEvent, call: PendingCall | None = None) -> str | None:
    if call is not None and call.from_number:
        return call.from_number
    if event.client_state is not None and event.client_state.from_number:
        return event.client_state.from_number
    return event.from_number


def decide(event: CallEvent, call: PendingCall | None = None) -> Decision:
    if event.event_type not in DETECTION_EVENTS:
        return WAIT
    amd_result = normalize_amd_result(event.result)
    if amd_result is AmdResult.HUMAN:
        return Decision(Action.TRANSFER_TO_AGENT, caller_id_for(event, call), amd_result)
    # machine, fax and anything unclassified all end the call
    return Decision(Action.HANGUP, caller_id_for(event, call), amd_result)


def fallback_decision(call: PendingCall, policy: str = "transfer") -> Decision:
    """Decision for an answered call whose detection result never arrived."""
    if policy == "hangup":
        return Decision(Action.HANGUP, call.from_number, AmdResult.UNKNOWN)
    return Decision(Action.TRANSFER_TO_AGENT, call.from_number, AmdResult.UNKNOWN)
