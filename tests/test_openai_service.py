"""Tests for the OpenAI service wrapper."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from conftest import FakeStatusError
from voiceflow.exceptions import APIError, MissingAPIKeyError, ParseError, RetryExhaustedError
from voiceflow.services.openai_service import (
    DEFAULT_SUMMARY_PROMPT,
    OPENAI_VOICES,
    OpenAIService,
    audio_mime_type,
)


@pytest.fixture
def service(keys, config, openai_client, sleep):
    keys.save("OPENAI_API_KEY", "sk-test")
    return OpenAIService(keys, config, client=openai_client, sleep=sleep)


class TestHelpers:

    @pytest.mark.parametrize("filename, mime", [
        ("clip.wav", "audio/wav"),
        ("CLIP.MP3", "audio/mpeg"),
        ("memo.m4a", "audio/m4a"),
        ("unknown.ogg", "audio/m4a"),
    ])
    def test_audio_mime_type(self, filename, mime):
        assert audio_mime_type(filename) == mime

    def test_voice_list(self):
        assert OPENAI_VOICES == ["alloy", "echo", "fable", "onyx", "nova", "shimmer"]


@pytest.mark.asyncio
class TestTranscribe:

    async def test_sends_file_and_model(self, service, openai_client):
        text = await service.transcribe(b"RIFF....", filename="take.wav")
        assert text == "hello world"

        kwargs = openai_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["file"] == ("take.wav", b"RIFF....", "audio/wav")
        assert "language" not in kwargs

    async def test_auto_language_is_omitted(self, service, openai_client):
        await service.transcribe(b"data", language="auto")
        assert "language" not in openai_client.audio.transcriptions.create.call_args.kwargs

    async def test_explicit_language_is_sent(self, service, openai_client):
        await service.transcribe(b"data", language="de")
        assert openai_client.audio.transcriptions.create.call_args.kwargs["language"] == "de"

    async def test_empty_audio_rejected(self, service):
        with pytest.raises(ValueError):
            await service.transcribe(b"")

    async def test_missing_key(self, keys, config, openai_client):
        service = OpenAIService(keys, config, client=openai_client)
        with pytest.raises(MissingAPIKeyError) as exc_info:
            await service.transcribe(b"data")
        assert exc_info.value.message.startswith("No OpenAI API key.")
        openai_client.audio.transcriptions.create.assert_not_called()

    async def test_error_status_is_labelled(self, service, openai_client, sleep):
        openai_client.audio.transcriptions.create = AsyncMock(side_effect=FakeStatusError(400, "bad audio"))
        with pytest.raises(APIError) as exc_info:
            await service.transcribe(b"data")
        assert exc_info.value.message == "Whisper API error (400): bad audio"
        assert exc_info.value.status_code == 400
        assert sleep.delays == []

    async def test_rate_limit_retried_then_exhausted(self, service, openai_client, sleep):
        openai_client.audio.transcriptions.create = AsyncMock(side_effect=FakeStatusError(429))
        with pytest.raises(RetryExhaustedError) as exc_info:
            await service.transcribe(b"data")
        assert openai_client.audio.transcriptions.create.call_count == 3
        assert sleep.delays == [0.5, 1.0]
        assert exc_info.value.attempts == 3

    async def test_recovers_after_503(self, service, openai_client, sleep):
        openai_client.audio.transcriptions.create = AsyncMock(side_effect=[
            FakeStatusError(503),
            SimpleNamespace(text="recovered"),
        ])
        assert await service.transcribe(b"data") == "recovered"
        assert sleep.delays == [0.5]


@pytest.mark.asyncio
class TestSpeechAndChat:

    async def test_synthesize_returns_audio(self, service, openai_client):
        audio = await service.synthesize("Hello there", voice="nova")
        assert audio == b"ID3-mp3-bytes"
        kwargs = openai_client.audio.speech.create.call_args.kwargs
        assert kwargs["model"] == "tts-1"
        assert kwargs["voice"] == "nova"
        assert kwargs["input"] == "Hello there"
        assert kwargs["response_format"] == "mp3"

    async def test_synthesize_error_label(self, service, openai_client):
        openai_client.audio.speech.create = AsyncMock(side_effect=FakeStatusError(401, "bad key"))
        with pytest.raises(APIError, match=r"TTS API error \(401\): bad key"):
            await service.synthesize("Hello")

    async def test_summarize_uses_default_prompt(self, service, openai_client):
        assert await service.summarize("Long text") == "A short summary."
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [
            {"role": "system", "content": DEFAULT_SUMMARY_PROMPT},
            {"role": "user", "content": "Long text"},
        ]

    async def test_summarize_custom_prompt(self, service, openai_client):
        await service.summarize("Long text", system_prompt="Be brief.")
        messages = openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0]["content"] == "Be brief."

    async def test_summarize_no_choices_is_empty(self, service, openai_client):
        openai_client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        assert await service.summarize("Long text") == ""

    async def test_chat_error_label(self, service, openai_client):
        openai_client.chat.completions.create = AsyncMock(side_effect=FakeStatusError(500, ""))
        with pytest.raises(APIError, match=r"Chat API error \(500\)"):
            await service.summarize("Long text")


@pytest.mark.asyncio
class TestDallE:

    async def test_decodes_image(self, service, openai_client):
        data = await service.generate_image("a red fox")
        assert data.startswith(b"\x89PNG")
        kwargs = openai_client.images.generate.call_args.kwargs
        assert kwargs["model"] == "dall-e-3"
        assert kwargs["size"] == "1024x1024"
        assert kwargs["quality"] == "standard"
        assert kwargs["response_format"] == "b64_json"

    async def test_missing_image_data(self, service, openai_client):
        openai_client.images.generate = AsyncMock(return_value=SimpleNamespace(data=[]))
        with pytest.raises(ParseError, match="DALL-E 3"):
            await service.generate_image("a red fox")
