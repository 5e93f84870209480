"""
Pytest fixtures shared by the test suite.
"""

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from pydantic import Field

from app.main import create_app
from config.settings import Settings
from tutor.clients.realtime import RealtimeBroker
from tutor.clients.speech import SpeechClient
from tutor.conversation import ConversationService
from tutor.core.sessions import SessionRegistry
from tutor.curriculum import Curriculum


# ============================================================================
# Doubles
# ============================================================================

class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingChatModel(FakeListChatModel):
    """Fake chat model that remembers the messages and options of each call."""

    calls: List[Dict[str, Any]] = Field(default_factory=list)

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls.append({"messages": list(messages), "options": dict(kwargs)})
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


class FailingChatModel(FakeListChatModel):
    responses: List[str] = Field(default_factory=lambda: ["unused"])

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        raise RuntimeError("upstream timed out")


# ============================================================================
# Configuration
# ============================================================================

UNITS_DOCUMENT = {
    "units": [
        {
            "unit": 1,
            "title": "Hallo!",
            "description": "Sich vorstellen",
            "vocabulary": ["hallo", "heißen", "der Name", "die Seite"],
            "phrases": ["Wie heißt du?", "Ich heiße ..."],
            "grammar": ["Personalpronomen ich, du"],
            "communicative_goals": ["sich vorstellen"],
        },
        {
            "unit": 2,
            "vocabulary": ["wohnen", "kommen", "woher"],
            "phrases": ["Wo wohnst du?", "Woher kommst du?"],
            "grammar": ["W-Fragen"],
        },
        {
            "unit": 4,
            "title": "Hobbys",
            "vocabulary": ["spielen", "gerne"],
            "phrases": ["Was machst du gerne?"],
            "grammar": [],
            "textbook_page": 42,
        },
    ]
}


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings()
    s.openai_api_key = "sk-test-server-key"
    s.openai_base_url = "https://api.test/v1"
    s.max_unit = 10
    s.reserved_units = frozenset({3})
    s.session_ttl_seconds = 3600.0
    s.sweep_interval_seconds = 3600.0
    s.upload_dir = str(tmp_path / "uploads")
    s.max_upload_bytes = 1024
    s.static_dir = str(tmp_path / "no-static")
    s.cors_origins = ["*"]
    return s


@pytest.fixture
def curriculum() -> Curriculum:
    return Curriculum.from_document(UNITS_DOCUMENT)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> SessionRegistry:
    return SessionRegistry(ttl_seconds=3600.0, clock=clock)


@pytest.fixture
def chat_model() -> RecordingChatModel:
    return RecordingChatModel(responses=["Hallo! Wie heißt du?", "Freut mich! Wo wohnst du?"])


@pytest.fixture
def service(curriculum, registry, chat_model) -> ConversationService:
    return ConversationService(
        curriculum,
        registry,
        chat_model,
        max_unit=10,
        reserved_units={3},
        presence_penalty=0.6,
        frequency_penalty=0.3,
    )


# ============================================================================
# Upstream HTTP
# ============================================================================

class UpstreamRecorder:
    """httpx.MockTransport handler with canned OpenAI audio/realtime replies."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.transcript = "Ich heiße Anna"
        self.audio = b"ID3fake-mp3-bytes"
        self.secret = "ek_ephemeral_123"
        self.status = 200
        self.transcription_body: Any = None
        self.realtime_body: Any = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"message": "boom"}})
        path = request.url.path
        if path.endswith("/audio/transcriptions"):
            if self.transcription_body is not None:
                return httpx.Response(200, json=self.transcription_body)
            return httpx.Response(200, json={"text": self.transcript})
        if path.endswith("/audio/speech"):
            return httpx.Response(200, content=self.audio, headers={"content-type": "audio/mpeg"})
        if path.endswith("/realtime/sessions"):
            if self.realtime_body is not None:
                return httpx.Response(200, json=self.realtime_body)
            return httpx.Response(
                200,
                json={"id": "sess_1", "client_secret": {"value": self.secret, "expires_at": 0}},
            )
        return httpx.Response(404)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def speech(settings, upstream) -> SpeechClient:
    return SpeechClient.from_settings(settings, transport=httpx.MockTransport(upstream))


@pytest.fixture
def broker(settings, upstream) -> RealtimeBroker:
    return RealtimeBroker.from_settings(settings, transport=httpx.MockTransport(upstream))


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def make_client(settings, curriculum, registry, speech, broker) -> Callable[..., TestClient]:
    def _make(chat_model=None) -> TestClient:
        app = create_app(
            settings=settings,
            curriculum=curriculum,
            chat_model=chat_model,
            speech=speech,
            broker=broker,
            registry=registry,
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client, chat_model) -> TestClient:
    return make_client(chat_model)
