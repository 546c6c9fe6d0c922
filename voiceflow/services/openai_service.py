"""
OpenAI API access: Whisper transcription, TTS, chat summaries and DALL-E.

All calls run through the shared retry policy. The SDK's own retries are
disabled so 429/503 handling stays in one place.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Awaitable, Callable, Optional

try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None

from ..config import Config
from ..credentials import KeyStore, OpenAIKeyProvider
from ..exceptions import (
    APIError,
    ConfigurationError,
    MissingAPIKeyError,
    NetworkError,
    ParseError,
    RetryExhaustedError,
)
from .http import RETRYABLE_STATUS_CODES, RetryPolicy, call_with_retries, is_retryable_sdk_error

logger = logging.getLogger(__name__)

SERVICE_NAME = "OpenAI"

OPENAI_VOICES = ["alloy", "echo", "fable", "onyx", "nova", "shimmer"]

DEFAULT_SUMMARY_PROMPT = (
    "You are a helpful assistant. Summarize the following text concisely "
    "while keeping key points."
)


def audio_mime_type(filename: str) -> str:
    """MIME type sent with an uploaded audio file."""
    lowered = filename.lower()
    if lowered.endswith(".wav"):
        return "audio/wav"
    if lowered.endswith(".mp3"):
        return "audio/mpeg"
    return "audio/m4a"


def _is_retryable(error: Exception) -> bool:
    if OPENAI_AVAILABLE and isinstance(error, openai.APIConnectionError):
        return True
    return is_retryable_sdk_error(error)


def _error_body(error: Exception) -> str:
    response = getattr(error, "response", None)
    text = getattr(response, "text", None)
    return text or getattr(error, "message", None) or str(error)


class OpenAIService:
    """Async client for the OpenAI endpoints VoiceFlow uses."""

    def __init__(
        self,
        keys: KeyStore,
        config: Optional[Config] = None,
        client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the service.

        Args:
            keys: Key store holding OPENAI_API_KEY
            config: Endpoints, models and timeouts
            client: Pre-built AsyncOpenAI-compatible client (mainly for tests)
            sleep: Backoff sleep function
        """
        self.keys = keys
        self.config = config or Config()
        self._client = client
        self._client_key: Optional[str] = None
        self._sleep = sleep

    @property
    def api_key(self) -> Optional[str]:
        return self.keys.read(OpenAIKeyProvider.key_name)

    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> Any:
        api_key = self.api_key
        if not api_key:
            raise MissingAPIKeyError(SERVICE_NAME, OpenAIKeyProvider.id)

        if self._client is not None and (self._client_key is None or self._client_key == api_key):
            return self._client

        if not OPENAI_AVAILABLE:
            raise ConfigurationError("openai package not available. Install with: pip install openai")

        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.openai_base_url,
            max_retries=0
        )
        self._client_key = api_key
        return self._client

    def _policy(self, timeout: float) -> RetryPolicy:
        return RetryPolicy(self.config.max_attempts, self.config.retry_base_delay, timeout)

    async def _call(self, label: str, operation: Callable[[], Awaitable[Any]], timeout: float) -> Any:
        """Run one SDK call with retries and map SDK errors to ServiceErrors."""
        try:
            return await call_with_retries(
                operation,
                policy=self._policy(timeout),
                is_retryable=_is_retryable,
                service=SERVICE_NAME,
                sleep=self._sleep
            )
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            if isinstance(status_code, int):
                if status_code in RETRYABLE_STATUS_CODES:
                    raise RetryExhaustedError(
                        SERVICE_NAME, status_code, self.config.max_attempts, _error_body(e)
                    ) from e
                raise APIError(SERVICE_NAME, status_code, _error_body(e), label=label) from e
            if _is_retryable(e):
                raise NetworkError(SERVICE_NAME, e) from e
            raise

    async def transcribe(
        self,
        audio_data: bytes,
        filename: str = "audio.m4a",
        language: Optional[str] = None
    ) -> str:
        """
        Transcribe audio with Whisper.

        Args:
            audio_data: Encoded audio file contents
            filename: Name sent with the upload; its extension picks the MIME type
            language: ISO language code, or None / "auto" to auto-detect

        Returns:
            The transcribed text.
        """
        if not audio_data:
            raise ValueError("Audio data cannot be empty")

        client = self._get_client()
        params = {
            "model": self.config.whisper_model,
            "file": (filename, audio_data, audio_mime_type(filename)),
            "timeout": self.config.whisper_timeout,
        }
        if language and language != "auto":
            params["language"] = language

        result = await self._call(
            "Whisper API",
            lambda: client.audio.transcriptions.create(**params),
            self.config.whisper_timeout
        )
        text = getattr(result, "text", None)
        if text is None:
            raise ParseError(SERVICE_NAME)
        return text

    async def synthesize(self, text: str, voice: str = "alloy") -> bytes:
        """Synthesize speech as MP3 bytes."""
        if not text.strip():
            raise ValueError("Text cannot be empty")

        client = self._get_client()
        response = await self._call(
            "TTS API",
            lambda: client.audio.speech.create(
                model=self.config.tts_model,
                input=text,
                voice=voice,
                response_format="mp3",
                timeout=self.config.tts_timeout
            ),
            self.config.tts_timeout
        )
        return await response.aread()

    async def summarize(self, text: str, system_prompt: Optional[str] = None) -> str:
        """
        Run a chat completion with a system prompt over the given text.

        Used for summaries and, with a different system prompt, for
        image prompt enhancement.
        """
        if not text.strip():
            raise ValueError("Text cannot be empty")

        client = self._get_client()
        response = await self._call(
            "Chat API",
            lambda: client.chat.completions.create(
                model=self.config.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt or DEFAULT_SUMMARY_PROMPT},
                    {"role": "user", "content": text}
                ],
                temperature=0.3,
                timeout=self.config.chat_timeout
            ),
            self.config.chat_timeout
        )

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def generate_image(self, prompt: str, size: str = "1024x1024", quality: str = "standard") -> bytes:
        """Generate one DALL-E 3 image and return the decoded bytes."""
        client = self._get_client()
        response = await self._call(
            "DALL-E API",
            lambda: client.images.generate(
                model=self.config.dalle_model,
                prompt=prompt,
                n=1,
                size=size,
                quality=quality,
                response_format="b64_json",
                timeout=self.config.image_timeout
            ),
            self.config.image_timeout
        )

        try:
            return base64.b64decode(response.data[0].b64_json, validate=True)
        except (AttributeError, IndexError, TypeError, binascii.Error) as e:
            raise ParseError("DALL-E 3") from e
