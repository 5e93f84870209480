from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from config.settings import Settings
from tutor.errors import UpstreamFailure


logger = logging.getLogger("sprachpartner.realtime")


class RealtimeBroker:
    """Mints short-lived realtime credentials for the browser.

    The browser then negotiates the WebRTC session with the provider directly;
    this server takes no further part in it.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-realtime-preview-2024-12-17",
        voice: str = "verse",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.voice = voice
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RealtimeBroker":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.realtime_model,
            voice=settings.realtime_voice,
            timeout=settings.upstream_timeout,
            **kwargs,
        )

    def issue_ephemeral_credential(self) -> str:
        if not self.api_key:
            raise UpstreamFailure("OPENAI_API_KEY is not configured")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/realtime/sessions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"model": self.model, "voice": self.voice},
                )
                logger.info("Realtime session response status: %s", response.status_code)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"Realtime session request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamFailure(f"Realtime session returned invalid JSON: {exc}") from exc

        client_secret = data.get("client_secret") if isinstance(data, dict) else None
        secret = client_secret.get("value") if isinstance(client_secret, dict) else None
        if not isinstance(secret, str) or not secret:
            raise UpstreamFailure("Realtime session response has no client secret")
        return secret
