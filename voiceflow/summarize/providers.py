"""
Summary provider abstractions.

Each provider turns a block of text into a summary using a system prompt
built from the user's summarize settings. Failures are reported on the
returned SummaryResult rather than raised, so callers can fall back to the
next provider.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

try:
    import anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False
    anthropic = None

from ..config import Config
from ..credentials import AnthropicKeyProvider, KeyStore
from ..exceptions import VoiceFlowError
from ..services.http import RetryPolicy, call_with_retries, is_retryable_sdk_error
from ..services.openai_service import DEFAULT_SUMMARY_PROMPT, OpenAIService

logger = logging.getLogger(__name__)


@dataclass
class SummaryResult:
    """Result of one summarization attempt."""
    input_text: str
    summary: str
    provider: str
    processing_time: float
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


class SummaryProvider(ABC):
    """Abstract base class for summary providers."""

    def __init__(self, name: str):
        self.name = name
        self.usage_stats = {"requests": 0, "successful": 0, "failed": 0}

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the provider can be used (package and key present)."""
        pass

    @abstractmethod
    async def _summarize(self, text: str, system_prompt: str) -> str:
        """Produce the summary text or raise."""
        pass

    async def summarize(self, text: str, system_prompt: Optional[str] = None) -> SummaryResult:
        """Summarize text, recording any failure on the result."""
        start_time = time.time()
        self.usage_stats["requests"] += 1

        if not self.is_available():
            self.usage_stats["failed"] += 1
            return SummaryResult(
                input_text=text,
                summary="",
                provider=self.name,
                processing_time=0.0,
                error=f"{self.name} not available (missing API key or package)"
            )

        try:
            summary = await self._summarize(text, system_prompt or DEFAULT_SUMMARY_PROMPT)
        except (VoiceFlowError, ValueError) as e:
            self.usage_stats["failed"] += 1
            logger.warning(f"{self.name} summary failed: {e}")
            return SummaryResult(
                input_text=text,
                summary="",
                provider=self.name,
                processing_time=time.time() - start_time,
                error=_error_message(e)
            )

        self.usage_stats["successful"] += 1
        return SummaryResult(
            input_text=text,
            summary=summary.strip(),
            provider=self.name,
            processing_time=time.time() - start_time
        )


class OpenAISummaryProvider(SummaryProvider):
    """Summaries through the OpenAI chat endpoint."""

    def __init__(self, service: OpenAIService):
        super().__init__("OpenAI")
        self.service = service

    def is_available(self) -> bool:
        return self.service.has_api_key()

    async def _summarize(self, text: str, system_prompt: str) -> str:
        return await self.service.summarize(text, system_prompt=system_prompt)


class ClaudeSummaryProvider(SummaryProvider):
    """Summaries through Anthropic Claude, under the shared retry policy."""

    def __init__(
        self,
        keys: KeyStore,
        config: Optional[Config] = None,
        client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_tokens: int = 1024
    ):
        super().__init__("Claude")
        self.keys = keys
        self.config = config or Config()
        self.max_tokens = max_tokens
        self._client = client
        self._client_key: Optional[str] = None
        self._sleep = sleep

    @property
    def api_key(self) -> Optional[str]:
        return self.keys.read(AnthropicKeyProvider.key_name)

    def is_available(self) -> bool:
        if not self.api_key:
            return False
        return self._client is not None or ANTHROPIC_AVAILABLE

    def _get_client(self) -> Any:
        api_key = self.api_key
        if self._client is not None and (self._client_key is None or self._client_key == api_key):
            return self._client
        self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self._client_key = api_key
        return self._client

    @staticmethod
    def _is_retryable(error: Exception) -> bool:
        if ANTHROPIC_AVAILABLE and isinstance(error, anthropic.APIConnectionError):
            return True
        return is_retryable_sdk_error(error)

    async def _summarize(self, text: str, system_prompt: str) -> str:
        client = self._get_client()
        policy = RetryPolicy(self.config.max_attempts, self.config.retry_base_delay, self.config.chat_timeout)
        try:
            response = await call_with_retries(
                lambda: client.messages.create(
                    model=self.config.claude_model,
                    max_tokens=self.max_tokens,
                    system=system_prompt,
                    messages=[{"role": "user", "content": text}],
                    timeout=self.config.chat_timeout
                ),
                policy=policy,
                is_retryable=self._is_retryable,
                service="Anthropic",
                sleep=self._sleep
            )
        except Exception as e:
            if ANTHROPIC_AVAILABLE and isinstance(e, anthropic.APIError):
                raise VoiceFlowError(f"Claude API error: {_error_message(e)}") from e
            raise

        parts = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
        return "".join(parts)
