"""
API key storage and per-service key validation.

Keys are read from the environment first and then from the `.env` file in
the VoiceFlow home directory. Saving and deleting goes through
python-dotenv so the file stays a plain, editable env file.
"""

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict, List, MutableMapping, Optional

import httpx
from dotenv import dotenv_values, set_key, unset_key

from .config import Config
from .services.http import client_session

logger = logging.getLogger(__name__)


class KeyStore:
    """Reads and writes API keys for the external services."""

    def __init__(self, env_path: Path, environ: Optional[MutableMapping[str, str]] = None):
        """
        Initialize the key store.

        Args:
            env_path: `.env` file holding saved keys
            environ: Environment mapping to consult first (defaults to os.environ)
        """
        self.env_path = Path(env_path)
        self.environ = os.environ if environ is None else environ

    def read(self, key_name: str) -> Optional[str]:
        """Return the key, preferring the environment over the saved file."""
        value = self.environ.get(key_name)
        if value:
            return value
        if self.env_path.exists():
            value = dotenv_values(self.env_path).get(key_name)
        return value or None

    def save(self, key_name: str, value: Optional[str]) -> None:
        """Save a key; an empty value deletes it instead."""
        if not value or not value.strip():
            self.delete(key_name)
            return

        value = value.strip()
        self.env_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.env_path.exists():
            self.env_path.touch(mode=0o600)
        set_key(str(self.env_path), key_name, value)
        self.environ[key_name] = value
        logger.info(f"Saved {key_name} to {self.env_path}")

    def delete(self, key_name: str) -> None:
        """Remove a key from the saved file and the current environment."""
        if self.env_path.exists() and key_name in dotenv_values(self.env_path):
            unset_key(str(self.env_path), key_name)
        self.environ.pop(key_name, None)

    def has(self, key_name: str) -> bool:
        return bool(self.read(key_name))


class APIKeyStatus(Enum):
    """Result of checking a stored key."""
    UNTESTED = "Untested"
    VALID = "Valid"
    INVALID = "Invalid"
    TESTING = "Testing..."


class ServiceProvider(ABC):
    """A third-party service that needs an API key."""

    id: str = ""
    name: str = ""
    key_name: str = ""

    def __init__(
        self,
        keys: KeyStore,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.keys = keys
        self.config = config or Config()
        self._http_client = http_client

    @property
    def api_key(self) -> Optional[str]:
        return self.keys.read(self.key_name)

    @api_key.setter
    def api_key(self, value: Optional[str]) -> None:
        self.keys.save(self.key_name, value)

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def validate(self, api_key: str) -> bool:
        """Check whether the given key is accepted by the service."""
        pass

    async def check(self) -> APIKeyStatus:
        """Validate the stored key, if any."""
        api_key = self.api_key
        if not api_key:
            return APIKeyStatus.UNTESTED
        return APIKeyStatus.VALID if await self.validate(api_key) else APIKeyStatus.INVALID

    async def _get_ok(self, url: str, headers: Dict[str, str]) -> bool:
        """GET a URL and report whether it answered 200."""
        try:
            async with client_session(self._http_client) as client:
                response = await client.get(
                    url, headers=headers, timeout=self.config.validation_timeout
                )
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} key validation failed: {e}")
            return False
        return response.status_code == 200


class OpenAIKeyProvider(ServiceProvider):
    id = "openai"
    name = "OpenAI"
    key_name = "OPENAI_API_KEY"

    async def validate(self, api_key: str) -> bool:
        return await self._get_ok(
            self.config.models_endpoint,
            {"Authorization": f"Bearer {api_key}"}
        )


class ElevenLabsKeyProvider(ServiceProvider):
    id = "elevenlabs"
    name = "ElevenLabs"
    key_name = "ELEVENLABS_API_KEY"

    async def validate(self, api_key: str) -> bool:
        return await self._get_ok(
            f"{self.config.elevenlabs_base_url}/voices",
            {"xi-api-key": api_key}
        )


class GeminiKeyProvider(ServiceProvider):
    id = "gemini"
    name = "Gemini"
    key_name = "GEMINI_API_KEY"

    async def validate(self, api_key: str) -> bool:
        return await self._get_ok(
            f"{self.config.gemini_base_url}/models",
            {"x-goog-api-key": api_key}
        )


class FalKeyProvider(ServiceProvider):
    """fal.ai has no cheap endpoint to test a key, so presence is all we check."""
    id = "fal"
    name = "fal.ai"
    key_name = "FAL_KEY"

    async def validate(self, api_key: str) -> bool:
        return bool(api_key and api_key.strip())


class AnthropicKeyProvider(ServiceProvider):
    id = "anthropic"
    name = "Anthropic"
    key_name = "ANTHROPIC_API_KEY"

    async def validate(self, api_key: str) -> bool:
        return await self._get_ok(
            self.config.anthropic_models_endpoint,
            {"x-api-key": api_key, "anthropic-version": "2023-06-01"}
        )


PROVIDER_CLASSES = [
    OpenAIKeyProvider,
    ElevenLabsKeyProvider,
    GeminiKeyProvider,
    FalKeyProvider,
    AnthropicKeyProvider,
]


def get_providers(
    keys: KeyStore,
    config: Optional[Config] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> List[ServiceProvider]:
    """Instantiate every known provider."""
    return [cls(keys, config, http_client) for cls in PROVIDER_CLASSES]


def find_provider(
    provider_id: str,
    keys: KeyStore,
    config: Optional[Config] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> ServiceProvider:
    """
    Look up a provider by id.

    Raises:
        KeyError: If no provider has that id.
    """
    for cls in PROVIDER_CLASSES:
        if cls.id == provider_id:
            return cls(keys, config, http_client)
    raise KeyError(f"Unknown provider '{provider_id}'. Known: {', '.join(c.id for c in PROVIDER_CLASSES)}")
