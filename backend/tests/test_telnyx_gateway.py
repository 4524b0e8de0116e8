import json

import httpx
import pytest

from powerdialer.core.config import POWER_DIALER_AMD_CONFIG
from powerdialer.core.errors import GatewayError
from powerdialer.services.telnyx_gateway import TelnyxGateway


def _gateway(settings, handler):
    client = httpx.AsyncClient(base_url="https://api.telnyx.test/v2", transport=httpx.MockTransport(handler))
    return TelnyxGateway(settings, client=client)


async def test_originate_sends_premium_amd(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": {"call_control_id": "v3:abc"}})

    gateway = _gateway(settings, handler)
    session_id = await gateway.originate(
        "+15550001111", "+15551230000", POWER_DIALER_AMD_CONFIG, settings.call_webhook_url, "b64state"
    )
    await gateway.aclose()

    assert session_id == "v3:abc"
    body = json.loads(seen[0].content)
    assert seen[0].url.path == "/v2/calls"
    assert seen[0].headers["Authorization"] == "Bearer KEY_test"
    assert body["connection_id"] == "conn-1"
    assert body["answering_machine_detection"] == "premium"
    assert body["answering_machine_detection_config"]["total_analysis_time_millis"] == 2500
    assert body["webhook_url"] == "https://dialer.example.com/api/dialer/webhooks/calls"
    assert body["client_state"] == "b64state"


async def test_transfer_passes_caller_id(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": {"result": "ok"}})

    gateway = _gateway(settings, handler)
    await gateway.transfer("v3:abc", "sip:agent1@sip.telnyx.com", "+15550001111")

    assert seen[0].url.path == "/v2/calls/v3:abc/actions/transfer"
    assert json.loads(seen[0].content) == {"to": "sip:agent1@sip.telnyx.com", "from": "+15550001111"}


async def test_error_status_becomes_gateway_error(settings):
    def handler(request):
        return httpx.Response(422, json={"errors": [{"code": "90018", "title": "Call has already ended"}]})

    gateway = _gateway(settings, handler)
    with pytest.raises(GatewayError) as excinfo:
        await gateway.hangup("v3:gone")

    assert excinfo.value.status_code == 422
    assert excinfo.value.already_ended
    assert excinfo.value.payload["errors"][0]["code"] == "90018"


async def test_transport_failure_becomes_gateway_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = _gateway(settings, handler)
    with pytest.raises(GatewayError) as excinfo:
        await gateway.hangup("v3:abc")
    assert excinfo.value.status_code is None


async def test_originate_without_call_control_id_fails(settings):
    gateway = _gateway(settings, lambda request: httpx.Response(200, json={"data": {}}))
    with pytest.raises(GatewayError):
        await gateway.originate("+15550001111", "+15551230000", None, settings.call_webhook_url, "x")
