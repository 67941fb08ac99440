import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import Settings
from ..errors import FetchError

# Set up logger
logger = logging.getLogger(__name__)


@dataclass
class CallInfo:
    call_sid: str
    caller: Optional[str]
    to: Optional[str] = None
    status: Optional[str] = None


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable


class TwilioClient:
    """Call metadata and recording audio from the Twilio REST API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.account_sid = settings.twilio_account_sid
        self.base_url = settings.twilio_api_base.rstrip("/")
        self.transport = transport

        if not settings.twilio_configured:
            logger.warning("TwilioClient initialized without credentials; fetches will fail")

    def _auth(self) -> httpx.BasicAuth:
        if not self.settings.twilio_configured:
            raise FetchError("Twilio credentials are not configured")
        return httpx.BasicAuth(self.settings.twilio_account_sid, self.settings.twilio_auth_token)

    def recording_audio_url(self, recording_sid: str) -> str:
        return f"{self.base_url}/Accounts/{self.account_sid}/Recordings/{recording_sid}.wav"

    async def fetch_call(self, call_sid: str) -> CallInfo:
        """Look up the originating call to recover the caller's number."""
        url = f"{self.base_url}/Accounts/{self.account_sid}/Calls/{call_sid}.json"
        response = await self._get(url, what=f"call {call_sid}")
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Twilio returned a non-JSON body for call {call_sid}")
            raise FetchError(f"Unreadable call details for {call_sid}") from e
        if not isinstance(data, dict):
            raise FetchError(f"Unexpected call details for {call_sid}")
        info = CallInfo(call_sid=call_sid, caller=data.get("from"), to=data.get("to"), status=data.get("status"))
        logger.info(f"Caller for {call_sid}: {info.caller}")
        return info

    async def fetch_recording(self, recording_sid: str) -> bytes:
        """Download the finished recording as WAV bytes. No size cap is applied."""
        response = await self._get(self.recording_audio_url(recording_sid), what=f"recording {recording_sid}")
        audio = response.content
        logger.info(f"Fetched recording {recording_sid}: {len(audio)} bytes")
        return audio

    async def _get(self, url: str, what: str) -> httpx.Response:
        auth = self._auth()
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            wait=wait_exponential(min=self.settings.retry_wait_min, max=self.settings.retry_wait_max),
            stop=stop_after_attempt(self.settings.fetch_max_attempts),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get_once(url, auth, what)
        raise FetchError(f"Failed to fetch {what}")

    async def _get_once(self, url: str, auth: httpx.BasicAuth, what: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as client:
                response = await client.get(url, auth=auth, timeout=self.settings.http_timeout)
        except httpx.RequestError as e:
            logger.warning(f"Twilio request error fetching {what}: {str(e)}")
            raise FetchError(f"Transfer of {what} interrupted: {e}", retryable=True) from e
        if not response.is_success:
            logger.error(f"Twilio returned {response.status_code} for {what}")
            raise FetchError(
                f"Twilio returned {response.status_code} for {what}",
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        return response
