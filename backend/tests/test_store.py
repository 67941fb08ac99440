import threading
from uuid import uuid4

import httpx
import pytest
from postgrest.exceptions import APIError

from linkup.config import Settings
from linkup.db import InMemoryStore, SupabaseStore, build_store
from linkup.errors import InvalidTransitionError, NotFoundError, StoreConnectivityError
from linkup.schemas.pydantic_schemas import VoiceJobCreate


def make_job(recording_sid="RE1", event_id="evt-1") -> VoiceJobCreate:
    return VoiceJobCreate(
        caller_phone="+18765550100",
        recording_sid=recording_sid,
        recording_url=f"https://api.twilio.com/rec/{recording_sid}.wav",
        gradio_event_id=event_id,
    )


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Just enough of the postgrest query builder for SupabaseStore."""

    def __init__(self, db, op, payload=None):
        self.db = db
        self.op = op
        self.payload = payload
        self.filters = []

    def eq(self, key, value):
        self.filters.append(lambda r: r.get(key) == value)
        return self

    def in_(self, key, values):
        self.filters.append(lambda r: r.get(key) in values)
        return self

    def limit(self, n):
        return self

    def _match(self):
        return [r for r in self.db.rows if all(f(r) for f in self.filters)]

    def execute(self):
        if self.db.failures:
            self.db.failures -= 1
            raise httpx.ConnectError("connection refused")
        if self.op == "insert":
            if self.db.force_conflict or any(r["recording_sid"] == self.payload["recording_sid"] for r in self.db.rows):
                if self.db.force_conflict:
                    self.db.rows.append(dict(self.payload, id="winner"))
                    self.db.force_conflict = False
                raise APIError({"message": "duplicate key value", "code": "23505"})
            row = dict(self.payload, id=str(uuid4()))
            self.db.rows.append(row)
            return FakeResult([dict(row)])
        if self.op == "update":
            matched = self._match()
            for r in matched:
                r.update(self.payload)
            return FakeResult([dict(r) for r in matched])
        return FakeResult([dict(r) for r in self._match()])


class FakeTable:
    def __init__(self, db):
        self.db = db

    def insert(self, row):
        return FakeQuery(self.db, "insert", row)

    def update(self, patch):
        return FakeQuery(self.db, "update", patch)

    def select(self, *args, **kwargs):
        return FakeQuery(self.db, "select")


class FakeSupabase:
    def __init__(self):
        self.rows = []
        self.failures = 0
        self.force_conflict = False

    def table(self, name):
        return FakeTable(self)


@pytest.fixture(params=["memory", "supabase"])
def store(request):
    if request.param == "memory":
        return InMemoryStore()
    return SupabaseStore(FakeSupabase(), max_attempts=3, wait_min=0, wait_max=0)


def test_create_assigns_id_in_processing(store):
    job_id = store.create(make_job())
    row = store.find_by_id(job_id)
    assert row["status"] == "processing"
    assert row["gradio_event_id"] == "evt-1"
    assert row["caller_phone"] == "+18765550100"


def test_duplicate_create_returns_existing_row(store):
    first = store.create(make_job())
    second = store.create(make_job(event_id="evt-2"))
    assert first == second
    assert store.find_by_recording_sid("RE1")["gradio_event_id"] == "evt-1"


def test_create_or_get_reports_whether_row_is_new(store):
    row, created = store.create_or_get(make_job())
    again, created_again = store.create_or_get(make_job(event_id="evt-2"))
    assert created is True and created_again is False
    assert again["id"] == row["id"]
    assert again["gradio_event_id"] == "evt-1"


def test_update_is_idempotent(store):
    job_id = store.create(make_job())
    patch = {"status": "completed", "transcription": "I need a job", "gig_type": "work_request"}
    once = store.update(job_id, patch)
    twice = store.update(job_id, patch)
    assert once["status"] == twice["status"] == "completed"
    assert store.find_by_id(job_id)["transcription"] == "I need a job"


def test_update_by_event_id(store):
    store.create(make_job())
    row = store.update_by_event_id("evt-1", {"status": "failed"})
    assert row["status"] == "failed"
    assert store.find_by_event_id("evt-1")["status"] == "failed"


def test_update_missing_row_is_not_found(store):
    with pytest.raises(NotFoundError):
        store.update("does-not-exist", {"status": "completed"})
    with pytest.raises(NotFoundError):
        store.update_by_event_id("nope", {"status": "completed"})


def test_terminal_row_rejects_other_status(store):
    job_id = store.create(make_job())
    store.update(job_id, {"status": "completed"})
    with pytest.raises(InvalidTransitionError):
        store.update(job_id, {"status": "failed"})
    assert store.find_by_id(job_id)["status"] == "completed"


def test_supabase_retries_connectivity_errors():
    client = FakeSupabase()
    store = SupabaseStore(client, max_attempts=3, wait_min=0, wait_max=0)
    client.failures = 2
    job_id = store.create(make_job())
    assert store.find_by_id(job_id) is not None


def test_supabase_gives_up_after_max_attempts():
    client = FakeSupabase()
    store = SupabaseStore(client, max_attempts=2, wait_min=0, wait_max=0)
    client.failures = 5
    with pytest.raises(StoreConnectivityError):
        store.find_by_recording_sid("RE1")


def test_supabase_insert_race_resolves_to_winner():
    client = FakeSupabase()
    store = SupabaseStore(client, wait_min=0, wait_max=0)
    client.force_conflict = True
    assert store.create(make_job()) == "winner"
    assert len(client.rows) == 1


def test_supabase_insert_race_is_not_reported_as_new():
    client = FakeSupabase()
    store = SupabaseStore(client, wait_min=0, wait_max=0)
    client.force_conflict = True
    row, created = store.create_or_get(make_job(event_id="evt-2"))
    assert created is False
    assert row["id"] == "winner"


def test_in_memory_list_filters_and_pages():
    store = InMemoryStore()
    for i in range(5):
        jid = store.create(make_job(recording_sid=f"RE{i}", event_id=f"evt-{i}"))
        if i % 2:
            store.update(jid, {"status": "completed", "gig_type": "job_posting", "transcription": "x"})
    items, total = store.list_jobs(status="completed", gig_type=None, page=1, page_size=1)
    assert total == 2
    assert len(items) == 1
    assert len(store.list_transcribed()) == 2


def test_in_memory_reads_are_safe_during_concurrent_inserts():
    store = InMemoryStore()
    errors = []

    def writer():
        for i in range(500):
            store.create(make_job(recording_sid=f"RE{i}", event_id=f"evt-{i}"))

    def reader():
        try:
            for _ in range(500):
                store.find_by_recording_sid("missing")
                store.list_jobs(status=None, gig_type=None, page=1, page_size=10)
        except RuntimeError as e:
            errors.append(e)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert len(store.jobs) == 500


def test_build_store_without_supabase_is_in_memory():
    assert isinstance(build_store(Settings()), InMemoryStore)
