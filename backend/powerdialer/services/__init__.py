from .amd import Action, CallEvent, Decision, decide, fallback_decision
from .client_state import CallKind, ClientState, encode_client_state, decode_client_state
from .pending_calls import AmdResult, CallStatus, PendingCall, PendingCallRegistry

__all__ = [
    "Action",
    "CallEvent",
    "Decision",
    "decide",
    "fallback_decision",
    "CallKind",
    "ClientState",
    "encode_client_state",
    "decode_client_state",
    "AmdResult",
    "CallStatus",
    "PendingCall",
    "PendingCallRegistry",
]
