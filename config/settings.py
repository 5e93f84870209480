from __future__ import annotations

import os
from functools import lru_cache
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv


load_dotenv()


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. The OpenAI key stays on
    the server; only short-lived realtime credentials are handed to browsers.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    port: int = int(os.getenv("PORT", "3000"))

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))

    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4-turbo")
    chat_temperature: float = float(os.getenv("CHAT_TEMPERATURE", "0.8"))
    chat_max_tokens: int = int(os.getenv("CHAT_MAX_TOKENS", "100"))
    chat_presence_penalty: float = float(os.getenv("CHAT_PRESENCE_PENALTY", "0.6"))
    chat_frequency_penalty: float = float(os.getenv("CHAT_FREQUENCY_PENALTY", "0.3"))

    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    transcription_language: str = os.getenv("TRANSCRIPTION_LANGUAGE", "de")

    tts_model: str = os.getenv("TTS_MODEL", "tts-1-hd")
    tts_voice: str = os.getenv("TTS_VOICE", "onyx")
    tts_speed: float = float(os.getenv("TTS_SPEED", "1.0"))
    tts_format: str = os.getenv("TTS_FORMAT", "mp3")
    tts_max_chars: int = int(os.getenv("TTS_MAX_CHARS", "4096"))

    realtime_model: str = os.getenv(
        "REALTIME_MODEL", "gpt-4o-realtime-preview-2024-12-17"
    )
    realtime_voice: str = os.getenv("REALTIME_VOICE", "verse")

    session_ttl_seconds: float = float(os.getenv("SESSION_TTL_SECONDS", "3600"))
    sweep_interval_seconds: float = float(
        os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "3600")
    )

    max_unit: int = int(os.getenv("MAX_UNIT", "104"))
    reserved_units: FrozenSet[int] = frozenset(
        int(n) for n in _csv(os.getenv("RESERVED_UNITS", "3"))
    )
    curriculum_path: str = os.getenv("CURRICULUM_PATH", "curriculum/units.json")

    upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    static_dir: str = os.getenv("STATIC_DIR", "public")
    cors_origins: List[str] = _csv(os.getenv("CORS_ORIGINS", "*"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
