"""Tests for the image generation backends."""

import base64
import json

import httpx
import pytest

from conftest import mock_client
from voiceflow.exceptions import (
    APIError,
    ImageDownloadError,
    InvalidResponseError,
    InvalidURLError,
    MissingAPIKeyError,
    NoImageInResponseError,
    ParseError,
)
from voiceflow.services.images import (
    DallEImageService,
    FluxImageService,
    GeminiImageService,
    ImageModel,
    ImageModelManager,
    ImagenService,
)
from voiceflow.services.openai_service import OpenAIService

PNG = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG).decode()


@pytest.fixture
def google_keys(keys):
    keys.save("GEMINI_API_KEY", "g-key")
    return keys


@pytest.mark.asyncio
class TestGemini:

    async def test_returns_inline_image(self, google_keys, config, sleep):
        seen = []
        body = {"candidates": [{"content": {"parts": [
            {"text": "Here is your image"},
            {"inlineData": {"mimeType": "image/png", "data": PNG_B64}},
        ]}}]}

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=body)

        async with mock_client(handler) as client:
            data = await GeminiImageService(google_keys, config, client, sleep=sleep).generate_image("a fox")

        assert data == PNG
        assert seen[0].url.path.endswith(":generateContent")
        assert seen[0].headers["x-goog-api-key"] == "g-key"
        sent = json.loads(seen[0].content)
        assert sent["contents"][0]["parts"][0]["text"] == "a fox"
        assert sent["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]

    async def test_text_only_answer(self, google_keys, config, sleep):
        body = {"candidates": [{"content": {"parts": [{"text": "I cannot draw that"}]}}]}
        async with mock_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(NoImageInResponseError):
                await GeminiImageService(google_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_error_status(self, google_keys, config, sleep):
        async with mock_client(lambda request: httpx.Response(400, text="bad prompt")) as client:
            with pytest.raises(APIError, match=r"Gemini API error \(400\): bad prompt"):
                await GeminiImageService(google_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_missing_key(self, keys, config):
        with pytest.raises(MissingAPIKeyError, match="No Gemini API key"):
            await GeminiImageService(keys, config).generate_image("a fox")


@pytest.mark.asyncio
class TestImagen:

    async def test_returns_prediction(self, google_keys, config, sleep):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"predictions": [{"bytesBase64Encoded": PNG_B64}]})

        async with mock_client(handler) as client:
            data = await ImagenService(google_keys, config, client, sleep=sleep).generate_image("a fox")

        assert data == PNG
        assert seen[0].url.path.endswith(":predict")
        sent = json.loads(seen[0].content)
        assert sent["instances"] == [{"prompt": "a fox"}]
        assert sent["parameters"] == {"sampleCount": 1, "aspectRatio": "1:1"}

    async def test_empty_predictions(self, google_keys, config, sleep):
        async with mock_client(lambda request: httpx.Response(200, json={"predictions": []})) as client:
            with pytest.raises(ParseError):
                await ImagenService(google_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_body_that_is_not_an_object(self, google_keys, config, sleep):
        async with mock_client(lambda request: httpx.Response(200, json=["not", "an", "object"])) as client:
            with pytest.raises(InvalidResponseError, match="Invalid response from server"):
                await ImagenService(google_keys, config, client, sleep=sleep).generate_image("a fox")


@pytest.mark.asyncio
class TestFlux:

    @pytest.fixture
    def fal_keys(self, keys):
        keys.save("FAL_KEY", "fal-key")
        return keys

    async def test_posts_then_downloads(self, fal_keys, config, sleep):
        seen = []

        def handler(request):
            seen.append(request)
            if request.method == "POST":
                return httpx.Response(200, json={"images": [{"url": "https://cdn.fal.test/out.png"}]})
            return httpx.Response(200, content=PNG)

        async with mock_client(handler) as client:
            data = await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

        assert data == PNG
        assert seen[0].headers["Authorization"] == "Key fal-key"
        assert json.loads(seen[0].content) == {"prompt": "a fox", "image_size": "square_hd", "num_images": 1}
        assert str(seen[1].url) == "https://cdn.fal.test/out.png"

    async def test_missing_url(self, fal_keys, config, sleep):
        async with mock_client(lambda request: httpx.Response(200, json={"images": []})) as client:
            with pytest.raises(ParseError, match="fal.ai"):
                await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_non_http_image_url(self, fal_keys, config, sleep):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"images": [{"url": "file:///etc/passwd"}]})

        async with mock_client(handler) as client:
            with pytest.raises(InvalidURLError, match="Invalid API URL") as excinfo:
                await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

        assert excinfo.value.url == "file:///etc/passwd"
        assert len(seen) == 1

    async def test_bad_endpoint(self, fal_keys, config, sleep):
        config.flux_endpoint = "fal.run/fal-ai/flux/dev"
        async with mock_client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(InvalidURLError):
                await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_download_failure(self, fal_keys, config, sleep):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"images": [{"url": "https://cdn.fal.test/out.png"}]})
            return httpx.Response(404)

        async with mock_client(handler) as client:
            with pytest.raises(ImageDownloadError):
                await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_download_network_failure(self, fal_keys, config, sleep):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"images": [{"url": "https://cdn.fal.test/out.png"}]})
            raise httpx.ConnectError("cdn down")

        async with mock_client(handler) as client:
            with pytest.raises(ImageDownloadError):
                await FluxImageService(fal_keys, config, client, sleep=sleep).generate_image("a fox")

    async def test_missing_key(self, keys, config):
        with pytest.raises(MissingAPIKeyError, match="No fal.ai API key"):
            await FluxImageService(keys, config).generate_image("a fox")


class TestImageModelManager:

    def test_maps_every_model(self, keys, config, openai_client):
        manager = ImageModelManager(keys, OpenAIService(keys, config, client=openai_client), config)
        assert isinstance(manager.service_for(ImageModel.GEMINI), GeminiImageService)
        assert isinstance(manager.service_for(ImageModel.DALLE3), DallEImageService)
        assert isinstance(manager.service_for(ImageModel.IMAGEN4), ImagenService)
        assert isinstance(manager.service_for(ImageModel.FLUX), FluxImageService)

    def test_key_presence(self, keys, config, openai_client):
        manager = ImageModelManager(keys, OpenAIService(keys, config, client=openai_client), config)
        assert not manager.service_for(ImageModel.FLUX).has_valid_api_key
        keys.save("FAL_KEY", "fal-key")
        assert manager.service_for(ImageModel.FLUX).has_valid_api_key

    @pytest.mark.asyncio
    async def test_dalle_delegates_to_openai(self, keys, config, openai_client):
        keys.save("OPENAI_API_KEY", "sk-test")
        service = DallEImageService(OpenAIService(keys, config, client=openai_client))
        assert (await service.generate_image("a fox")).startswith(b"\x89PNG")
        assert openai_client.images.generate.call_args.kwargs["prompt"] == "a fox"
