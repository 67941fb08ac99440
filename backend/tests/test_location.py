import asyncio

import httpx

from linkup.db import InMemoryStore
from linkup.schemas.pydantic_schemas import VoiceJobCreate
from linkup.services.completion import CompletionProcessor
from linkup.services.gradio_client import GradioClient
from linkup.services.location_client import LocationCorrector, find_candidates, similarity
from linkup.services.notifier import CompletionNotifier

PORTMORE = [{"name": "Portmore", "address": {"town": "Portmore", "country_code": "jm"}}]


def test_find_candidates_after_locatives():
    text = "Mi live inna Portmoor, looking for work in Kingston or near Portmoor"
    assert find_candidates(text) == ["Portmoor", "Kingston"]


def test_find_candidates_ignores_lowercase_words():
    assert find_candidates("I need someone to fix my roof") == []


def test_similarity_is_positional():
    assert similarity("portmoor", "portmore") == 0.75
    assert similarity("kingston", "kingston") == 1.0
    assert similarity("mandevile", "spanish town") < 0.6


def test_close_match_is_substituted(settings, transport, fake_remote):
    fake_remote.places["Portmoor"] = PORTMORE
    corrector = LocationCorrector(settings, transport=transport)
    text = asyncio.run(corrector.correct("I need a painter in Portmoor"))

    assert text == "I need a painter in Portmore"
    lookup = fake_remote.sent_to("nominatim")[0]
    assert lookup.url.params["countrycodes"] == "jm"
    assert lookup.url.params["q"] == "Portmoor"
    assert lookup.headers["user-agent"] == "LinkUpWork/1.0"


def test_distant_match_is_left_alone(settings, transport, fake_remote):
    fake_remote.places["Mandevile"] = [{"name": "Spanish Town", "address": {"town": "Spanish Town"}}]
    corrector = LocationCorrector(settings, transport=transport)
    assert asyncio.run(corrector.correct("Work in Mandevile")) == "Work in Mandevile"


def test_lookup_failure_keeps_text(settings, transport, fake_remote):
    fake_remote.nominatim_status = 503
    corrector = LocationCorrector(settings, transport=transport)
    assert asyncio.run(corrector.correct("I need a painter in Portmoor")) == "I need a painter in Portmoor"


def test_lookup_timeout_keeps_text(settings):
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    corrector = LocationCorrector(settings, transport=httpx.MockTransport(handler))
    assert asyncio.run(corrector.correct("Work in Portmoor")) == "Work in Portmoor"


def test_lookups_are_capped(settings, transport, fake_remote):
    settings.location_max_lookups = 2
    corrector = LocationCorrector(settings, transport=transport)
    asyncio.run(corrector.correct("from Negril to Ocho Rios near Kingston at Portmore"))
    assert len(fake_remote.sent_to("nominatim")) == 2


def test_completion_stores_corrected_transcript(settings, transport, fake_remote):
    fake_remote.result_body = 'data: ["I need someone to paint my house in Portmoor"]\n'
    fake_remote.places["Portmoor"] = PORTMORE
    store = InMemoryStore()
    store.create(VoiceJobCreate(
        caller_phone="+18765550100",
        recording_sid="RE1",
        recording_url="https://example.test/RE1.wav",
        gradio_event_id="evt-1",
    ))
    processor = CompletionProcessor(
        settings,
        GradioClient(settings, transport=transport),
        store,
        CompletionNotifier(settings, transport=transport),
        locator=LocationCorrector(settings, transport=transport),
    )

    outcome = asyncio.run(processor.complete("evt-1"))

    row = store.find_by_event_id("evt-1")
    assert outcome.locations_corrected is True
    assert outcome.to_response()["locations_corrected"] is True
    assert row["transcription"] == "I need someone to paint my house in Portmore"
    assert row["raw_transcription"] == "I need someone to paint my house in Portmoor"
    assert row["gig_type"] == "job_posting"
