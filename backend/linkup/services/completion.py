import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..db import STATUS_COMPLETED, STATUS_FAILED, TERMINAL_STATUSES
from ..errors import GatewayError, NotFoundError
from .categorization import categorize
from .gradio_client import GradioClient
from .location_client import LocationCorrector
from .notifier import CompletionNotifier
from .openai_client import OpenAIClient, detect_patois_markers, is_patois

logger = logging.getLogger(__name__)

OUTCOME_COMPLETED = "completed"
OUTCOME_RETRYING = "retrying"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


@dataclass
class CompletionOutcome:
    status: str
    event_id: str
    attempt: int = 1
    category: Optional[str] = None
    indicators: List[str] = field(default_factory=list)
    locations_corrected: bool = False

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status, "event_id": self.event_id, "attempt": self.attempt}
        if self.category:
            body["category"] = self.category
        if self.locations_corrected:
            body["locations_corrected"] = True
        return body


class CompletionProcessor:
    """Finishes a voice job once its transcription is ready.

    Each invocation polls the gateway a few times. If the transcript is still
    not ready it re-triggers itself with the next attempt number until the
    attempt budget runs out, then marks the job failed.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: GradioClient,
        store,
        notifier: CompletionNotifier,
        translator: Optional[OpenAIClient] = None,
        locator: Optional[LocationCorrector] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.notifier = notifier
        self.translator = translator if settings.patois_translation_enabled else None
        self.locator = locator if settings.location_correction_enabled else None
        self.polls = settings.completion_polls
        self.poll_interval = settings.completion_poll_interval
        self.max_attempts = settings.completion_max_attempts

    async def complete(self, event_id: str, attempt: int = 1) -> CompletionOutcome:
        logger.info(f"Completion attempt {attempt} for {event_id}")
        job = await asyncio.to_thread(self.store.find_by_event_id, event_id)
        if job is None:
            raise NotFoundError(f"No voice job for event {event_id}")
        if job.get("status") in TERMINAL_STATUSES:
            logger.info(f"Voice job {job.get('id')} already {job.get('status')}; nothing to do")
            return CompletionOutcome(status=OUTCOME_SKIPPED, event_id=event_id, attempt=attempt)

        raw = await self._poll(event_id)
        if raw is None:
            if attempt < self.max_attempts:
                logger.info(f"Transcript for {event_id} not ready; re-triggering as attempt {attempt + 1}")
                self.notifier.trigger(event_id, attempt + 1)
                return CompletionOutcome(status=OUTCOME_RETRYING, event_id=event_id, attempt=attempt)
            logger.error(f"Transcript for {event_id} never became ready; marking failed")
            await asyncio.to_thread(self.store.update_by_event_id, event_id, {"status": STATUS_FAILED})
            return CompletionOutcome(status=OUTCOME_FAILED, event_id=event_id, attempt=attempt)

        corrected = await self._correct_locations(raw)
        patois = is_patois(raw)
        final = corrected
        if patois and self.translator is not None:
            logger.info(f"Patois detected ({', '.join(detect_patois_markers(raw))}); translating")
            final = await self._translate(corrected)

        result = categorize(final)
        logger.info(
            f"Categorized {event_id}: seeking={result.seeking_score} hiring={result.hiring_score} "
            f"-> {result.category} ({result.confidence})"
        )
        await asyncio.to_thread(self.store.update_by_event_id, event_id, {
            "transcription": final,
            "raw_transcription": raw,
            "is_patois": patois,
            "gig_type": result.category,
            "category_confidence": result.confidence,
            "category_indicators": result.indicators,
            "status": STATUS_COMPLETED,
        })
        return CompletionOutcome(
            status=OUTCOME_COMPLETED,
            event_id=event_id,
            attempt=attempt,
            category=result.category,
            indicators=result.indicators,
            locations_corrected=corrected != raw,
        )

    async def _poll(self, event_id: str) -> Optional[str]:
        for i in range(self.polls):
            logger.debug(f"Poll {i + 1}/{self.polls} for {event_id}")
            try:
                text = await self.gateway.fetch_result(event_id)
            except GatewayError as e:
                logger.warning(f"Result poll for {event_id} failed: {e}")
                text = None
            if text is not None:
                return text
            if i + 1 < self.polls:
                await asyncio.sleep(self.poll_interval)
        return None

    async def _correct_locations(self, text: str) -> str:
        if self.locator is None:
            return text
        try:
            return await self.locator.correct(text)
        except Exception as e:
            logger.error(f"Location correction failed: {type(e).__name__}: {e}")
            return text

    async def _translate(self, text: str) -> str:
        try:
            translated = await self.translator.translate_patois(text)
        except Exception as e:
            logger.error(f"Patois translation failed: {type(e).__name__}: {e}")
            return text
        return translated or text


async def recategorize_all(store) -> int:
    """Re-run categorization over every transcribed job; return how many labels changed."""
    jobs = await asyncio.to_thread(store.list_transcribed)
    logger.info(f"Found {len(jobs)} jobs to re-categorize")
    fixed = 0
    for job in jobs:
        result = categorize(job.get("transcription") or "")
        if job.get("gig_type") == result.category:
            continue
        logger.info(f"Fixing {job['id']}: {job.get('gig_type')} -> {result.category}")
        try:
            await asyncio.to_thread(store.update, job["id"], {
                "gig_type": result.category,
                "category_confidence": result.confidence,
                "category_indicators": result.indicators,
            })
        except NotFoundError:
            logger.warning(f"Voice job {job['id']} vanished during re-categorization")
            continue
        fixed += 1
    logger.info(f"Fixed {fixed} categorizations")
    return fixed
