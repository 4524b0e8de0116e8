"""Opaque context round-tripped through the telephony provider.

The provider echoes ``client_state`` on every webhook for a call, so it is how a
webhook recovers which run/contact a call belongs to without a lookup. The
blob comes back from an uncontrolled system: decoding never raises.
"""
import base64
import binascii
import json
import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class CallKind(str, Enum):
    POWER_DIALER = "power_dialer"
    MANUAL = "manual"


class ClientState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: CallKind = CallKind.POWER_DIALER
    run_id: str | None = None
    leg_id: str | None = None
    list_entry_id: int | None = None
    contact_id: str | None = None
    user_id: str | None = None
    from_number: str | None = None


def encode_client_state(state: ClientState) -> str:
    raw = state.model_dump_json(exclude_none=True).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_client_state(blob: str | None) -> ClientState | None:
    if not blob or not isinstance(blob, str):
        return None
    try:
        raw = base64.b64decode(blob, validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Ignoring undecodable client_state: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring client_state that is not an object: %r", type(data).__name__)
        return None
    try:
        return ClientState.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring client_state with unexpected shape: %s", exc.errors()[:3])
        return None
