"""
Image generation backends.

Four models share one interface: DALL-E 3 (OpenAI), Gemini image output,
Imagen 4 (both Google) and Flux (fal.ai). Each returns raw image bytes.
"""

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..config import Config
from ..credentials import FalKeyProvider, GeminiKeyProvider, KeyStore
from ..exceptions import (
    APIError,
    ImageDownloadError,
    InvalidResponseError,
    InvalidURLError,
    MissingAPIKeyError,
    NoImageInResponseError,
    ParseError,
    ServiceError,
)
from .http import RetryPolicy, client_session, resilient_request
from .openai_service import OpenAIService

logger = logging.getLogger(__name__)


class ImageModel(Enum):
    GEMINI = "Gemini"
    DALLE3 = "DALL-E 3"
    IMAGEN4 = "Imagen 4"
    FLUX = "Flux"


class ImageGenerationService(ABC):
    """Common interface for image generation backends."""

    model_name: str = ""
    requires_api_key: bool = True

    @property
    @abstractmethod
    def has_valid_api_key(self) -> bool:
        """Whether a non-empty key is stored for this backend."""
        pass

    @abstractmethod
    async def generate_image(self, prompt: str) -> bytes:
        """Generate one image for the prompt and return its bytes."""
        pass


class DallEImageService(ImageGenerationService):
    model_name = "DALL-E 3"

    def __init__(self, openai_service: OpenAIService):
        self.openai_service = openai_service

    @property
    def has_valid_api_key(self) -> bool:
        return self.openai_service.has_api_key()

    async def generate_image(self, prompt: str) -> bytes:
        return await self.openai_service.generate_image(prompt)


class RestImageService(ImageGenerationService):
    """Base for backends called with plain JSON over HTTP."""

    key_provider = GeminiKeyProvider

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
        return self.keys.read(self.key_provider.key_name)

    @property
    def has_valid_api_key(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> str:
        api_key = self.api_key
        if not api_key:
            raise MissingAPIKeyError(self.key_provider.name, self.key_provider.id)
        return api_key

    def _policy(self, timeout: float) -> RetryPolicy:
        return RetryPolicy(self.config.max_attempts, self.config.retry_base_delay, timeout)

    async def _post_json(
        self,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        timeout: float
    ) -> Dict[str, Any]:
        """POST a JSON body and return the decoded JSON response."""
        if not url.startswith(("http://", "https://")):
            raise InvalidURLError(self.model_name, url)
        async with client_session(self._http_client) as client:
            response = await resilient_request(
                client, "POST", url,
                policy=self._policy(timeout),
                service=self.model_name,
                sleep=self._sleep,
                headers=headers,
                json=payload
            )

        if response.status_code != 200:
            raise APIError(self.model_name, response.status_code, response.text, label=f"{self.model_name} API")

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(self.model_name) from e
        if not isinstance(data, dict):
            raise InvalidResponseError(self.model_name)
        return data


def _decode_base64(value: Any, service: str) -> bytes:
    if not isinstance(value, str):
        raise ParseError(service)
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ParseError(service) from e


class GeminiImageService(RestImageService):
    model_name = "Gemini"

    async def generate_image(self, prompt: str) -> bytes:
        api_key = self._require_key()
        url = f"{self.config.gemini_base_url}/models/{self.config.gemini_image_model}:generateContent"
        payload = {
            "contents": [
                {"parts": [{"text": prompt}]}
            ],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"]
            }
        }
        data = await self._post_json(url, {"x-goog-api-key": api_key}, payload, self.config.image_timeout)

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(self.model_name) from e

        for part in parts:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if inline and inline.get("data"):
                return _decode_base64(inline["data"], self.model_name)

        raise NoImageInResponseError(self.model_name)


class ImagenService(RestImageService):
    model_name = "Imagen 4"

    async def generate_image(self, prompt: str) -> bytes:
        api_key = self._require_key()
        url = f"{self.config.gemini_base_url}/models/{self.config.imagen_model}:predict"
        payload = {
            "instances": [
                {"prompt": prompt}
            ],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": "1:1"
            }
        }
        data = await self._post_json(url, {"x-goog-api-key": api_key}, payload, self.config.image_timeout)

        try:
            encoded = data["predictions"][0]["bytesBase64Encoded"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(self.model_name) from e
        return _decode_base64(encoded, self.model_name)


class FluxImageService(RestImageService):
    model_name = "Flux"
    key_provider = FalKeyProvider

    async def generate_image(self, prompt: str) -> bytes:
        api_key = self._require_key()
        payload = {
            "prompt": prompt,
            "image_size": "square_hd",
            "num_images": 1
        }
        data = await self._post_json(
            self.config.flux_endpoint,
            {"Authorization": f"Key {api_key}"},
            payload,
            self.config.flux_timeout
        )

        try:
            image_url = data["images"][0]["url"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError("fal.ai") from e
        if not isinstance(image_url, str):
            raise ParseError("fal.ai")
        if not image_url.startswith(("http://", "https://")):
            raise InvalidURLError("fal.ai", image_url)

        logger.debug(f"Downloading Flux image from {image_url}")
        try:
            async with client_session(self._http_client) as client:
                response = await resilient_request(
                    client, "GET", image_url,
                    policy=self._policy(self.config.flux_timeout),
                    service=self.model_name,
                    sleep=self._sleep
                )
        except ServiceError as e:
            raise ImageDownloadError(self.model_name) from e

        if response.status_code != 200:
            raise ImageDownloadError(self.model_name)
        return response.content


class ImageModelManager:
    """Maps an ImageModel to its backend."""

    def __init__(
        self,
        keys: KeyStore,
        openai_service: OpenAIService,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._services = {
            ImageModel.GEMINI: GeminiImageService(keys, config, http_client),
            ImageModel.DALLE3: DallEImageService(openai_service),
            ImageModel.IMAGEN4: ImagenService(keys, config, http_client),
            ImageModel.FLUX: FluxImageService(keys, config, http_client),
        }

    def service_for(self, model: ImageModel) -> ImageGenerationService:
        return self._services[model]
