from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import uuid4
from datetime import datetime, timezone
import logging
import threading

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Settings
from .errors import InvalidTransitionError, NotFoundError, StoreConnectivityError, StoreError
from .schemas.pydantic_schemas import VoiceJobCreate

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_FAILED}

UNIQUE_VIOLATION = "23505"


def allowed_sources(target: str) -> List[str]:
    """Statuses a row may be in for a patch setting ``status=target`` to apply."""
    if target == STATUS_PROCESSING:
        return [STATUS_PROCESSING]
    return [STATUS_PROCESSING, target]


class InMemoryStore:
    """Process-local voice job store used when Supabase is not configured."""

    def __init__(self) -> None:
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create(self, job: VoiceJobCreate) -> str:
        row, _ = self.create_or_get(job)
        return row["id"]

    def create_or_get(self, job: VoiceJobCreate) -> Tuple[Dict[str, Any], bool]:
        """Insert ``job`` unless its recording is already stored; return the row and whether it is new."""
        with self._lock:
            existing = self._by_field("recording_sid", job.recording_sid)
            if existing:
                logger.info(f"Recording {job.recording_sid} already stored as {existing['id']}; skipping insert")
                return dict(existing), False
            jid = str(uuid4())
            row = job.model_dump()
            row.update({
                "id": jid,
                "transcription": None,
                "raw_transcription": None,
                "is_patois": None,
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
            self.jobs[jid] = row
            return dict(row), True

    def update(self, job_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row = self.jobs.get(str(job_id))
            if row is None:
                raise NotFoundError(f"Voice job {job_id} not found")
            return self._apply(row, patch)

    def update_by_event_id(self, event_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row = self._by_field("gradio_event_id", event_id)
            if row is None:
                raise NotFoundError(f"No voice job for event {event_id}")
            return self._apply(row, patch)

    def find_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.jobs.get(str(job_id))
            return dict(row) if row else None

    def find_by_event_id(self, event_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._by_field("gradio_event_id", event_id)
            return dict(row) if row else None

    def find_by_recording_sid(self, recording_sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._by_field("recording_sid", recording_sid)
            return dict(row) if row else None

    def list_jobs(self, status: Optional[str], gig_type: Optional[str], page: int, page_size: int) -> Tuple[List[Dict[str, Any]], int]:
        with self._lock:
            items = [dict(j) for j in self.jobs.values()]
        items.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        if status:
            items = [j for j in items if j.get("status") == status]
        if gig_type:
            items = [j for j in items if j.get("gig_type") == gig_type]
        total = len(items)
        start = (page - 1) * page_size
        return items[start:start + page_size], total

    def list_transcribed(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(j) for j in self.jobs.values() if j.get("transcription") is not None]

    def _by_field(self, key: str, value: Any) -> Optional[Dict[str, Any]]:
        # Caller holds self._lock
        for row in self.jobs.values():
            if row.get(key) == value:
                return row
        return None

    def _apply(self, row: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
        target = patch.get("status")
        if target and row.get("status") not in allowed_sources(target):
            raise InvalidTransitionError(row.get("status"), target)
        row.update(patch)
        return dict(row)


class SupabaseStore:
    """voice_jobs table behind the Supabase REST API."""

    def __init__(self, client: Client, table: str = "voice_jobs", max_attempts: int = 3,
                 wait_min: float = 0.5, wait_max: float = 5.0) -> None:
        self.client = client
        self.table_name = table
        self.max_attempts = max_attempts
        self.wait_min = wait_min
        self.wait_max = wait_max

    def _table(self):
        return self.client.table(self.table_name)

    def _run(self, op: Callable[[], T]) -> T:
        """Run one PostgREST call, mapping errors and retrying connectivity failures."""
        retrying = Retrying(
            retry=retry_if_exception_type(StoreConnectivityError),
            wait=wait_exponential(min=self.wait_min, max=self.wait_max),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                try:
                    return op()
                except httpx.HTTPError as e:
                    logger.warning(f"Supabase unreachable (attempt {attempt.retry_state.attempt_number}): {e}")
                    raise StoreConnectivityError(str(e)) from e
        raise StoreError("unreachable")

    def create(self, job: VoiceJobCreate) -> str:
        row, _ = self.create_or_get(job)
        return str(row["id"])

    def create_or_get(self, job: VoiceJobCreate) -> Tuple[Dict[str, Any], bool]:
        existing = self.find_by_recording_sid(job.recording_sid)
        if existing:
            logger.info(f"Recording {job.recording_sid} already stored as {existing['id']}; skipping insert")
            return existing, False
        row = job.model_dump()
        try:
            res = self._run(lambda: self._table().insert(row).execute())
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                # Concurrent delivery of the same recording won the insert
                winner = self.find_by_recording_sid(job.recording_sid)
                if winner:
                    return winner, False
            raise StoreError(f"Insert failed: {e.message}") from e
        data = res.data or []
        if not data:
            raise StoreError("Insert returned no row")
        return data[0], True

    def update(self, job_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._update("id", str(job_id), patch)

    def update_by_event_id(self, event_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._update("gradio_event_id", event_id, patch)

    def _update(self, key: str, value: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        target = patch.get("status")

        def op():
            query = self._table().update(patch).eq(key, value)
            if target:
                query = query.in_("status", allowed_sources(target))
            return query.execute()

        try:
            res = self._run(op)
        except APIError as e:
            raise StoreError(f"Update failed: {e.message}") from e
        if res.data:
            return res.data[0]
        current = self._find(key, value)
        if current is None:
            raise NotFoundError(f"No voice job with {key}={value}")
        raise InvalidTransitionError(current.get("status"), target)

    def find_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._find("id", str(job_id))

    def find_by_event_id(self, event_id: str) -> Optional[Dict[str, Any]]:
        return self._find("gradio_event_id", event_id)

    def find_by_recording_sid(self, recording_sid: str) -> Optional[Dict[str, Any]]:
        return self._find("recording_sid", recording_sid)

    def _find(self, key: str, value: str) -> Optional[Dict[str, Any]]:
        try:
            res = self._run(lambda: self._table().select("*").eq(key, value).limit(1).execute())
        except APIError as e:
            raise StoreError(f"Lookup failed: {e.message}") from e
        return res.data[0] if res.data else None

    def list_jobs(self, status: Optional[str], gig_type: Optional[str], page: int, page_size: int) -> Tuple[List[Dict[str, Any]], int]:
        def op():
            query = self._table().select("*", count="exact")
            if status:
                query = query.eq("status", status)
            if gig_type:
                query = query.eq("gig_type", gig_type)
            start = (page - 1) * page_size
            return query.order("created_at", desc=True).range(start, start + page_size - 1).execute()

        try:
            res = self._run(op)
        except APIError as e:
            raise StoreError(f"List failed: {e.message}") from e
        items = res.data or []
        total = res.count if res.count is not None else len(items)
        return items, total

    def list_transcribed(self) -> List[Dict[str, Any]]:
        try:
            res = self._run(lambda: self._table().select("id,transcription,gig_type").not_.is_("transcription", "null").execute())
        except APIError as e:
            raise StoreError(f"List failed: {e.message}") from e
        return res.data or []


def build_store(settings: Settings):
    if settings.supabase_configured:
        logger.info("Using Supabase voice job store")
        client = create_client(settings.supabase_url, settings.supabase_key)
        return SupabaseStore(
            client,
            table=settings.voice_jobs_table,
            max_attempts=settings.store_max_attempts,
            wait_min=settings.retry_wait_min,
            wait_max=settings.retry_wait_max,
        )
    logger.info("SUPABASE_URL not set; using in-memory voice job store")
    return InMemoryStore()
