import json

import httpx
import pytest

from linkup.config import Settings

TWILIO_BASE = "https://api.twilio.com/2010-04-01"
GRADIO_BASE = "https://asr.example.test"
COMPLETION_URL = "https://hooks.example.test/complete-transcription"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_verify_service_sid="VA123",
        gradio_base_url=GRADIO_BASE,
        completion_url=COMPLETION_URL,
        notify_timeout=0.2,
        completion_polls=2,
        completion_poll_interval=0,
        completion_max_attempts=3,
        location_lookup_delay=0,
        retry_wait_min=0,
        retry_wait_max=0,
    )


class FakeTelephonyAndGateway:
    """httpx handler standing in for Twilio, the Gradio Space, Nominatim and the completion hook."""

    def __init__(self, caller="+18765550100", audio=b"RIFF....WAVE", event_id="evt-1"):
        self.caller = caller
        self.audio = audio
        self.event_id = event_id
        self.recording_status = 200
        self.upload_status = 200
        self.submit_status = 200
        self.completion_status = 200
        self.call_body = None
        self.places = {}
        self.nominatim_status = 200
        self.result_body = 'event: complete\ndata: ["I need someone to fix my roof"]\n\n'
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if "/Calls/" in url:
            if self.call_body is not None:
                return httpx.Response(200, text=self.call_body)
            return httpx.Response(200, json={"from": self.caller, "to": "+18765550000", "status": "completed"})
        if "/Recordings/" in url:
            if self.recording_status != 200:
                return httpx.Response(self.recording_status, text="nope")
            return httpx.Response(200, content=self.audio)
        if url.endswith("/gradio_api/upload"):
            if self.upload_status != 200:
                return httpx.Response(self.upload_status, text="upload broke")
            return httpx.Response(200, json=["/tmp/gradio/abc/recording.wav"])
        if url.endswith("/gradio_api/call/transcribe"):
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, text="queue full")
            return httpx.Response(200, json={"event_id": self.event_id})
        if "/gradio_api/call/transcribe/" in url:
            return httpx.Response(200, text=self.result_body)
        if request.url.host == "nominatim.openstreetmap.org":
            if self.nominatim_status != 200:
                return httpx.Response(self.nominatim_status, text="slow down")
            return httpx.Response(200, json=self.places.get(request.url.params.get("q"), []))
        if url == COMPLETION_URL:
            return httpx.Response(self.completion_status, json={"ok": True})
        return httpx.Response(404, text=f"unexpected {url}")

    def sent_to(self, fragment: str):
        return [r for r in self.requests if fragment in str(r.url)]

    def json_sent_to(self, fragment: str):
        return [json.loads(r.content) for r in self.sent_to(fragment)]


@pytest.fixture
def fake_remote() -> FakeTelephonyAndGateway:
    return FakeTelephonyAndGateway()


@pytest.fixture
def transport(fake_remote) -> httpx.MockTransport:
    return httpx.MockTransport(fake_remote)
