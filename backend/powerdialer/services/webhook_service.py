import logging

from .amd import CallEvent
from .client_state import decode_client_state

logger = logging.getLogger(__name__)

ACK = {"received": True}


def parse_call_event(body) -> CallEvent | None:
    """Build a ``CallEvent`` from a provider webhook body.

    Accepts the enveloped ``{"data": {"event_type", "payload"}}`` shape as well
    as a flat ``{"event_type", "payload"}`` one. Returns None when the body does
    not identify both an event type and a call.
    """
    if not isinstance(body, dict):
        return None
    data = body.get("data") if isinstance(body.get("data"), dict) else body
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
    event_type = data.get("event_type") or body.get("event_type")
    session_id = payload.get("call_control_id") or data.get("call_control_id")
    if not event_type or not session_id:
        return None
    blob = payload.get("client_state") or data.get("client_state") or body.get("client_state")
    return CallEvent(
        event_type=str(event_type),
        session_id=str(session_id),
        result=payload.get("result"),
        from_number=payload.get("from"),
        to_number=payload.get("to"),
        hangup_cause=payload.get("hangup_cause"),
        client_state=decode_client_state(blob),
    )


async def handle_call_webhook(controller, body) -> dict:
    event = parse_call_event(body)
    if event is None:
        logger.warning("Dropping call webhook without event type or call id: %.200r", body)
        return ACK
    logger.debug("Webhook %s for %s", event.event_type, event.session_id)
    try:
        await controller.handle_event(event)
    except Exception:
        # The provider does not usefully retry; acknowledge and keep the trace.
        logger.exception("Handling %s for %s failed", event.event_type, event.session_id)
    return ACK
