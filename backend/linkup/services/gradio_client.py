import json
import logging
from typing import Any, Optional

import httpx

from ..config import Settings
from ..errors import ResultError, SubmitError, UploadError

# Set up logger
logger = logging.getLogger(__name__)


class GradioClient:
    """Speech-to-text Space reached through the Gradio HTTP API.

    Transcription is asynchronous: ``submit`` returns an event id and the
    transcript is read later with ``fetch_result``.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = settings.gradio_base_url.rstrip("/")
        self.job_name = settings.gradio_job_name
        self.timeout = settings.http_timeout
        self.transport = transport

    async def submit(self, audio: bytes, filename: str = "recording.wav", mime_type: str = "audio/wav") -> str:
        path = await self.upload(audio, filename, mime_type)
        return await self.submit_uploaded(path)

    async def upload(self, audio: bytes, filename: str, mime_type: str) -> str:
        """Upload raw audio and return the Space's storage path for it."""
        files = {"files": (filename, audio, mime_type)}
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/gradio_api/upload", files=files, timeout=self.timeout)
        except httpx.RequestError as e:
            logger.error(f"Gradio upload request error: {str(e)}")
            raise UploadError(f"Upload failed: {e}") from e
        if not response.is_success:
            logger.error(f"Gradio upload HTTP error: {response.status_code} - {response.text[:200]}")
            raise UploadError(f"Upload failed with status {response.status_code}", status_code=response.status_code)
        try:
            paths = response.json()
            path = paths[0]
        except (ValueError, IndexError, KeyError, TypeError) as e:
            raise UploadError(f"Unexpected upload response: {response.text[:200]}") from e
        logger.info(f"Uploaded {len(audio)} bytes to {path}")
        return path

    async def submit_uploaded(self, path: str) -> str:
        """Queue a transcription for an already uploaded file and return its event id."""
        payload = {"data": [{"path": path, "meta": {"_type": "gradio.FileData"}}]}
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/gradio_api/call/{self.job_name}",
                    json=payload,
                    timeout=self.timeout,
                )
        except httpx.RequestError as e:
            logger.error(f"Gradio submit request error: {str(e)}")
            raise SubmitError(f"Submit failed: {e}", storage_path=path) from e
        if not response.is_success:
            logger.error(f"Gradio submit HTTP error: {response.status_code} - {response.text[:200]}")
            raise SubmitError(
                f"Submit failed with status {response.status_code}",
                status_code=response.status_code,
                storage_path=path,
            )
        try:
            event_id = response.json()["event_id"]
        except (ValueError, KeyError, TypeError) as e:
            raise SubmitError(f"Unexpected submit response: {response.text[:200]}", storage_path=path) from e
        logger.info(f"Transcription queued with event id {event_id}")
        return event_id

    async def fetch_result(self, event_id: str) -> Optional[str]:
        """Return the transcript for ``event_id``, or None while it is not ready."""
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}/gradio_api/call/{self.job_name}/{event_id}",
                    timeout=self.timeout,
                )
        except httpx.RequestError as e:
            raise ResultError(f"Result request failed: {e}") from e
        if not response.is_success:
            raise ResultError(f"Result fetch failed with status {response.status_code}", status_code=response.status_code)
        return parse_event_stream(response.text)


def parse_event_stream(body: str) -> Optional[str]:
    """Pull the first value out of the first ``data:`` line of an SSE body."""
    for line in str(body).split("\n"):
        if line.strip() == "event: error":
            raise ResultError("Transcription job reported an error")
        if not line.startswith("data:"):
            continue
        raw = line[len("data:"):].strip()
        try:
            value: Any = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring non-JSON data line: {raw[:100]}")
            continue
        if isinstance(value, list) and value:
            return value[0] if isinstance(value[0], str) else json.dumps(value[0])
        if isinstance(value, str):
            return value
    return None
