import logging
from abc import ABC, abstractmethod

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import GatewayError

logger = logging.getLogger(__name__)


class CallGateway(ABC):
    """Call-control capabilities the dialer needs from a telephony provider."""

    @abstractmethod
    async def originate(
        self,
        from_number: str,
        to_number: str,
        amd_config: dict | None,
        webhook_url: str,
        client_state: str,
    ) -> str:
        """Place an outbound call and return the provider's call-control id."""

    @abstractmethod
    async def hangup(self, session_id: str) -> None: ...

    @abstractmethod
    async def transfer(self, session_id: str, destination: str, caller_id: str | None) -> None: ...

    @abstractmethod
    async def start_playback(self, session_id: str, audio_url: str, loop_count: int | str = 1) -> None: ...


class TelnyxGateway(CallGateway):
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.telnyx_api_base,
            timeout=self.settings.gateway_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.settings.telnyx_api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            resp = await self._client.post(path, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewayError(f"Telnyx request {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {"raw": resp.text[:500]}
            raise GatewayError(f"Telnyx API error {resp.status_code} on {path}", resp.status_code, body)
        try:
            return resp.json()
        except ValueError:
            return {}

    async def originate(self, from_number, to_number, amd_config, webhook_url, client_state) -> str:
        payload = {
            "connection_id": self.settings.telnyx_connection_id,
            "to": to_number,
            "from": from_number,
            "webhook_url": webhook_url,
            "client_state": client_state,
            "timeout_secs": self.settings.call_timeout_seconds,
            "time_limit_secs": self.settings.call_time_limit_seconds,
        }
        if amd_config is not None:
            payload["answering_machine_detection"] = "premium"
            payload["answering_machine_detection_config"] = amd_config
        body = await self._post("/calls", payload)
        call_control_id = (body.get("data") or {}).get("call_control_id")
        if not call_control_id:
            raise GatewayError("Telnyx did not return a call_control_id", payload=body)
        logger.info("Call originated %s -> %s (call_control_id=%s)", from_number, to_number, call_control_id)
        return call_control_id

    async def hangup(self, session_id: str) -> None:
        await self._post(f"/calls/{session_id}/actions/hangup", {})
        logger.info("Hangup sent for %s", session_id)

    async def transfer(self, session_id: str, destination: str, caller_id: str | None) -> None:
        payload = {"to": destination}
        if caller_id:
            payload["from"] = caller_id
        await self._post(f"/calls/{session_id}/actions/transfer", payload)
        logger.info("Transfer sent for %s -> %s", session_id, destination)

    async def start_playback(self, session_id: str, audio_url: str, loop_count: int | str = 1) -> None:
        await self._post(
            f"/calls/{session_id}/actions/playback_start",
            {"audio_url": audio_url, "loop": loop_count},
        )
        logger.debug("Playback started on %s (%s)", session_id, audio_url)
