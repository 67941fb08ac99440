import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..errors import VerificationError

logger = logging.getLogger(__name__)

APPROVED = "approved"
CODE_NOT_FOUND = 20404


class VerifyClient:
    """Thin passthrough to Twilio Verify for SMS one-time codes."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.base_url = settings.twilio_verify_base.rstrip("/")
        self.service_sid = settings.twilio_verify_service_sid
        self.transport = transport

    async def send(self, phone_number: str) -> str:
        data = await self._post("Verifications", {"To": phone_number, "Channel": "sms"})
        logger.info(f"OTP sent to {phone_number}: {data.get('status')}")
        return data.get("status")

    async def verify(self, phone_number: str, code: str) -> str:
        data = await self._post("VerificationCheck", {"To": phone_number, "Code": code})
        logger.info(f"OTP verification for {phone_number}: {data.get('status')}")
        return data.get("status")

    async def _post(self, resource: str, form: Dict[str, str]) -> Dict[str, Any]:
        if not (self.settings.twilio_configured and self.service_sid):
            raise VerificationError("Twilio Verify is not configured")
        url = f"{self.base_url}/Services/{self.service_sid}/{resource}"
        auth = httpx.BasicAuth(self.settings.twilio_account_sid, self.settings.twilio_auth_token)
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(url, data=form, auth=auth, timeout=self.settings.http_timeout)
        except httpx.RequestError as e:
            raise VerificationError(f"Verify request failed: {e}") from e
        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise VerificationError(
                body.get("message") or f"Verify returned {response.status_code}",
                status_code=response.status_code,
                code=body.get("code"),
            )
        return response.json()
