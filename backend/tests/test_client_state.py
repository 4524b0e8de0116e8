import base64
import json

import pytest

from powerdialer.services.client_state import CallKind, ClientState, decode_client_state, encode_client_state


def _b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def test_round_trip():
    state = ClientState(run_id="run-1", leg_id="leg-1", list_entry_id=7, contact_id="c1", from_number="+15550001111")
    assert decode_client_state(encode_client_state(state)) == state


def test_unknown_keys_are_ignored():
    blob = _b64(json.dumps({"kind": "manual", "contact_id": "c9", "extra": 1}))
    state = decode_client_state(blob)
    assert state.kind is CallKind.MANUAL
    assert state.contact_id == "c9"


@pytest.mark.parametrize(
    "blob",
    [
        None,
        "",
        12345,
        "not base64 at all!",
        _b64("{broken json"),
        _b64(json.dumps(["run-1"])),
        _b64(json.dumps({"list_entry_id": "seven"})),
        base64.b64encode(b"\xff\xfe").decode("ascii"),
    ],
)
def test_bad_blobs_decode_to_none(blob):
    assert decode_client_state(blob) is None
