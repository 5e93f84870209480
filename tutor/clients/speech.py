from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional

import httpx

from config.settings import Settings
from tutor.errors import InvalidRequest, TranscriptionFailure, UpstreamFailure


logger = logging.getLogger("sprachpartner.speech")

MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}

UPLOAD_TYPES = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".mpga": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
}


def upload_media_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in UPLOAD_TYPES:
        return UPLOAD_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


class SpeechClient:
    """Speech-to-text and text-to-speech against the OpenAI audio endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transcription_model: str = "whisper-1",
        language: str = "de",
        tts_model: str = "tts-1-hd",
        voice: str = "onyx",
        speed: float = 1.0,
        response_format: str = "mp3",
        max_chars: int = 4096,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transcription_model = transcription_model
        self.language = language
        self.tts_model = tts_model
        self.voice = voice
        self.speed = speed
        self.response_format = response_format
        self.max_chars = max_chars
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "SpeechClient":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.upstream_timeout,
            transcription_model=settings.transcription_model,
            language=settings.transcription_language,
            tts_model=settings.tts_model,
            voice=settings.tts_voice,
            speed=settings.tts_speed,
            response_format=settings.tts_format,
            max_chars=settings.tts_max_chars,
            **kwargs,
        )

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES.get(self.response_format, "application/octet-stream")

    def _client(self) -> httpx.Client:
        if not self.api_key:
            raise UpstreamFailure("OPENAI_API_KEY is not configured")
        return httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    def transcribe(self, audio_path: str | Path) -> str:
        audio_path = Path(audio_path)
        if audio_path.stat().st_size == 0:
            raise TranscriptionFailure("Audio recording is empty")

        data = {"model": self.transcription_model, "language": self.language}
        try:
            with self._client() as client, audio_path.open("rb") as fh:
                response = client.post(
                    "/audio/transcriptions",
                    data=data,
                    files={"file": (audio_path.name, fh, upload_media_type(audio_path))},
                )
                response.raise_for_status()
                body: Any = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"Transcription API call failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamFailure(f"Transcription API returned invalid JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise UpstreamFailure("Transcription API returned an unexpected body")
        text = body.get("text")
        if text is not None and not isinstance(text, str):
            raise UpstreamFailure("Transcription API returned a non-text transcript")
        text = (text or "").strip()
        if not text:
            raise TranscriptionFailure()
        logger.info("Transcribed %s bytes into %s chars", audio_path.stat().st_size, len(text))
        return text

    def synthesize(self, text: str) -> bytes:
        text = (text or "").strip()
        if not text:
            raise InvalidRequest("No text provided")
        if len(text) > self.max_chars:
            raise InvalidRequest(f"Text too long (>{self.max_chars} chars)")

        payload = {
            "model": self.tts_model,
            "voice": self.voice,
            "input": text,
            "speed": self.speed,
            "response_format": self.response_format,
        }
        try:
            with self._client() as client:
                response = client.post("/audio/speech", json=payload)
                response.raise_for_status()
                audio = response.content
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"Speech API call failed: {exc}") from exc

        if not audio:
            raise UpstreamFailure("Speech API returned no audio")
        return audio
