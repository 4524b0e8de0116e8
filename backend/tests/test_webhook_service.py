from powerdialer.services.client_state import ClientState, encode_client_state
from powerdialer.services.webhook_service import ACK, handle_call_webhook, parse_call_event


def test_parse_enveloped_event():
    blob = encode_client_state(ClientState(run_id="run-1", from_number="+15550001111"))
    body = {
        "data": {
            "event_type": "call.machine.premium.detection.ended",
            "payload": {
                "call_control_id": "v3:abc",
                "result": "human_residence",
                "from": "+15550001111",
                "to": "+15551230000",
                "client_state": blob,
            },
        }
    }
    event = parse_call_event(body)
    assert event.event_type == "call.machine.premium.detection.ended"
    assert event.session_id == "v3:abc"
    assert event.result == "human_residence"
    assert event.client_state.run_id == "run-1"


def test_parse_flat_event():
    event = parse_call_event(
        {"event_type": "call.hangup", "payload": {"call_control_id": "v3:abc", "hangup_cause": "USER_BUSY"}}
    )
    assert event.hangup_cause == "USER_BUSY"
    assert event.client_state is None


def test_parse_rejects_bodies_without_type_or_call():
    assert parse_call_event(None) is None
    assert parse_call_event(["call.hangup"]) is None
    assert parse_call_event({"data": {"event_type": "call.hangup", "payload": {}}}) is None
    assert parse_call_event({"data": {"payload": {"call_control_id": "v3:abc"}}}) is None


def test_garbled_client_state_does_not_break_parsing():
    event = parse_call_event(
        {"data": {"event_type": "call.answered", "payload": {"call_control_id": "v3:abc", "client_state": "%%%"}}}
    )
    assert event.session_id == "v3:abc"
    assert event.client_state is None


class _ExplodingController:
    def __init__(self):
        self.events = []

    async def handle_event(self, event):
        self.events.append(event)
        raise RuntimeError("boom")


async def test_handler_errors_are_acknowledged():
    controller = _ExplodingController()
    body = {"data": {"event_type": "call.answered", "payload": {"call_control_id": "v3:abc"}}}
    assert await handle_call_webhook(controller, body) == ACK
    assert len(controller.events) == 1


async def test_malformed_body_is_acknowledged_without_dispatch():
    controller = _ExplodingController()
    assert await handle_call_webhook(controller, {"unexpected": True}) == ACK
    assert controller.events == []
