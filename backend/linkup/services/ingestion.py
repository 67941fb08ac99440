import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import FetchError, GatewayError, StoreError, ValidationError
from ..schemas.pydantic_schemas import RecordingCallback, VoiceJobCreate
from .gradio_client import GradioClient
from .notifier import CompletionNotifier
from .twilio_client import TwilioClient

logger = logging.getLogger(__name__)

RECEIVED = "ReceivedCallback"
FETCHED_AUDIO = "FetchedAudio"
UPLOADED = "UploadedForTranscription"
PERSISTED = "RecordPersisted"
NOTIFIED = "NotifiedCompletion"


@dataclass
class IngestionResult:
    success: bool
    stage: str
    event_id: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None
    duplicate: bool = False

    def to_response(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "eventId": self.event_id}
        return {"error": self.error}


@dataclass
class OrphanedTranscription:
    """A transcription job that is running with no voice_jobs row to land in."""

    event_id: str
    recording_sid: str
    call_sid: str
    caller_phone: Optional[str]
    recording_url: str
    error: str


def parse_callback(payload: Dict[str, Any]) -> RecordingCallback:
    try:
        return RecordingCallback.model_validate(payload)
    except PydanticValidationError as e:
        missing = sorted(
            str(err["loc"][0]) for err in e.errors() if err.get("loc")
        )
        raise ValidationError(f"Missing or empty fields: {', '.join(missing)}") from e


def log_orphan(orphan: OrphanedTranscription) -> None:
    logger.error(
        f"orphaned_transcription event_id={orphan.event_id} recording_sid={orphan.recording_sid} "
        f"call_sid={orphan.call_sid} caller={orphan.caller_phone} error={orphan.error}"
    )


class IngestionOrchestrator:
    """Runs one recording callback through fetch, transcription submit and persistence.

    The pipeline is strictly linear. Failures before the row is written end
    the request with an error result; nothing is retried here beyond what
    the clients themselves do. Once the row exists the request has
    succeeded, whatever happens to the completion trigger.
    """

    def __init__(
        self,
        twilio: TwilioClient,
        gateway: GradioClient,
        store,
        notifier: CompletionNotifier,
        on_orphan: Callable[[OrphanedTranscription], None] = log_orphan,
    ) -> None:
        self.twilio = twilio
        self.gateway = gateway
        self.store = store
        self.notifier = notifier
        self.on_orphan = on_orphan

    async def ingest(self, callback: RecordingCallback) -> IngestionResult:
        try:
            return await self._ingest(callback)
        except Exception as e:
            logger.exception(f"Unexpected error ingesting recording {callback.recording_sid}")
            return IngestionResult(success=False, stage=RECEIVED, error=f"Internal error: {type(e).__name__}")

    async def _ingest(self, callback: RecordingCallback) -> IngestionResult:
        recording_sid = callback.recording_sid
        logger.info(f"Recording callback received: recording={recording_sid} call={callback.call_sid}")

        try:
            existing = await asyncio.to_thread(self.store.find_by_recording_sid, recording_sid)
        except StoreError as e:
            logger.error(f"Duplicate check failed for {recording_sid}: {e}")
            return IngestionResult(success=False, stage=RECEIVED, error=str(e))
        if existing:
            logger.info(f"Recording {recording_sid} already ingested as job {existing.get('id')}; ignoring redelivery")
            return self._duplicate(existing)

        try:
            call = await self.twilio.fetch_call(callback.call_sid)
            audio = await self.twilio.fetch_recording(recording_sid)
        except FetchError as e:
            logger.error(f"Fetch failed for recording {recording_sid}: {e}")
            return IngestionResult(success=False, stage=RECEIVED, error=str(e))

        try:
            event_id = await self.gateway.submit(audio, filename="recording.wav", mime_type="audio/wav")
        except GatewayError as e:
            logger.error(f"Transcription {e.stage} failed for recording {recording_sid}: {e}")
            return IngestionResult(success=False, stage=FETCHED_AUDIO, error=str(e))

        recording_url = callback.recording_url + ".wav"
        job = VoiceJobCreate(
            caller_phone=call.caller,
            recording_sid=recording_sid,
            recording_url=recording_url,
            gradio_event_id=event_id,
            status="processing",
        )
        orphan = OrphanedTranscription(
            event_id=event_id,
            recording_sid=recording_sid,
            call_sid=callback.call_sid,
            caller_phone=call.caller,
            recording_url=recording_url,
            error="",
        )
        try:
            row, created = await asyncio.to_thread(self.store.create_or_get, job)
        except StoreError as e:
            logger.error(f"Persisting voice job failed for recording {recording_sid}: {e}")
            orphan.error = str(e)
            self._report_orphan(orphan)
            return IngestionResult(success=False, stage=UPLOADED, event_id=event_id, error=str(e))

        if not created:
            # An overlapping delivery stored this recording first
            logger.info(f"Recording {recording_sid} stored concurrently as job {row.get('id')}; dropping event {event_id}")
            orphan.error = f"recording already stored as job {row.get('id')}"
            self._report_orphan(orphan)
            return self._duplicate(row)

        job_id = row.get("id")
        logger.info(f"Voice job {job_id} saved for recording {recording_sid}; triggering completion")
        self.notifier.trigger(event_id)
        return IngestionResult(success=True, stage=NOTIFIED, event_id=event_id, job_id=job_id)

    def _duplicate(self, row: Dict[str, Any]) -> IngestionResult:
        return IngestionResult(
            success=True,
            stage=PERSISTED,
            event_id=row.get("gradio_event_id"),
            job_id=row.get("id"),
            duplicate=True,
        )

    def _report_orphan(self, orphan: OrphanedTranscription) -> None:
        try:
            self.on_orphan(orphan)
        except Exception:
            logger.exception(f"Orphan hook failed for event {orphan.event_id}")
