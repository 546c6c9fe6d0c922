"""
ElevenLabs text-to-speech client.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import Config
from ..credentials import ElevenLabsKeyProvider, KeyStore
from ..exceptions import APIError, MissingAPIKeyError, ParseError
from .http import RetryPolicy, client_session, resilient_request

logger = logging.getLogger(__name__)

SERVICE_NAME = "ElevenLabs"
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"


@dataclass
class ElevenLabsVoice:
    """A voice available to the account."""
    voice_id: str
    name: str
    preview_url: Optional[str] = None
    category: Optional[str] = None

    @property
    def id(self) -> str:
        return self.voice_id


class ElevenLabsService:
    """Async client for ElevenLabs speech synthesis and voice listing."""

    def __init__(
        self,
        keys: KeyStore,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.keys = keys
        self.config = config or Config()
        self._http_client = http_client
        self._sleep = sleep

    @property
    def api_key(self) -> Optional[str]:
        return self.keys.read(ElevenLabsKeyProvider.key_name)

    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        api_key = self.api_key
        if not api_key:
            raise MissingAPIKeyError(SERVICE_NAME, ElevenLabsKeyProvider.id)
        return {"xi-api-key": api_key}

    async def _request(self, method: str, url: str, timeout: float, **kwargs) -> httpx.Response:
        policy = RetryPolicy(self.config.max_attempts, self.config.retry_base_delay, timeout)
        async with client_session(self._http_client) as client:
            response = await resilient_request(
                client, method, url,
                policy=policy,
                service=SERVICE_NAME,
                sleep=self._sleep,
                **kwargs
            )

        if response.status_code != 200:
            raise APIError(SERVICE_NAME, response.status_code, response.text, label="ElevenLabs API")
        return response

    async def synthesize(self, text: str, voice_id: str = DEFAULT_VOICE_ID) -> bytes:
        """
        Synthesize speech with an ElevenLabs voice.

        Args:
            text: Text to speak
            voice_id: ElevenLabs voice id

        Returns:
            MP3 audio bytes.
        """
        if not text.strip():
            raise ValueError("Text cannot be empty")
        if not voice_id:
            raise ValueError("Voice id cannot be empty")

        headers = self._headers()
        payload = {
            "text": text,
            "model_id": self.config.elevenlabs_model,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.75
            }
        }
        response = await self._request(
            "POST",
            f"{self.config.elevenlabs_base_url}/text-to-speech/{voice_id}",
            self.config.tts_timeout,
            headers=headers,
            json=payload
        )
        logger.info(f"ElevenLabs synthesized {len(response.content)} bytes with voice {voice_id}")
        return response.content

    async def get_voices(self) -> List[ElevenLabsVoice]:
        """List the voices available to the account."""
        headers = self._headers()
        response = await self._request(
            "GET",
            f"{self.config.elevenlabs_base_url}/voices",
            self.config.validation_timeout,
            headers=headers
        )

        try:
            data = response.json()
            return [
                ElevenLabsVoice(
                    voice_id=item["voice_id"],
                    name=item["name"],
                    preview_url=item.get("preview_url"),
                    category=item.get("category")
                )
                for item in data["voices"]
            ]
        except (ValueError, KeyError, TypeError) as e:
            raise ParseError(SERVICE_NAME) from e
