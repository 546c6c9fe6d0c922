"""Tests for persisted settings and enum parsing."""

import json

import pytest

from voiceflow.exceptions import ConfigurationError
from voiceflow.services.images import ImageModel
from voiceflow.settings import (
    SettingsStore,
    SpeechSettings,
    STTProvider,
    STTSettings,
    SummarizeSettings,
    SummaryFormat,
    SummaryLength,
    TTSProvider,
    enum_from_value,
    parse_enum,
)


@pytest.fixture
def store(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


class TestSettingsStore:

    def test_missing_file_reads_empty(self, store):
        assert store.all() == {}
        assert store.get("anything", "fallback") == "fallback"

    def test_set_persists_json(self, store):
        store.set("a", "1")
        assert json.loads(store.path.read_text()) == {"a": "1"}
        assert SettingsStore(store.path).get("a") == "1"

    def test_remove(self, store):
        store.set("a", "1")
        store.remove("a")
        assert store.get("a") is None

    def test_corrupt_file_is_ignored(self, store):
        store.path.write_text("{not json")
        assert store.all() == {}


class TestSummarizeSettings:

    def test_defaults(self, store):
        settings = SummarizeSettings(store)
        assert settings.length == SummaryLength.STANDARD
        assert settings.format == SummaryFormat.PROSE

    def test_default_system_prompt(self, store):
        assert SummarizeSettings(store).build_system_prompt() == (
            "You are a helpful assistant. Summarize the following text.\n"
            "Provide a concise summary in a paragraph.\n"
            "Format as flowing prose paragraphs.\n"
            "Keep key information and main points."
        )

    def test_changes_persist_and_shape_prompt(self, store):
        settings = SummarizeSettings(store)
        settings.length = SummaryLength.BRIEF
        settings.format = SummaryFormat.KEY_TAKEAWAYS

        reloaded = SummarizeSettings(store)
        assert reloaded.length == SummaryLength.BRIEF
        prompt = reloaded.build_system_prompt()
        assert "Provide a very brief summary in 1-2 sentences." in prompt
        assert "Format as numbered key takeaways." in prompt
        assert store.get("summarize_format") == "Key Takeaways"

    def test_unknown_stored_value_falls_back(self, store):
        store.set("summarize_length", "Epic")
        assert SummarizeSettings(store).length == SummaryLength.STANDARD


class TestSTTSettings:

    def test_defaults_to_cloud_auto(self, store):
        settings = STTSettings(store)
        assert settings.provider == STTProvider.CLOUD
        assert settings.language == "auto"
        assert settings.request_language is None

    def test_language_normalized(self, store):
        settings = STTSettings(store)
        settings.language = " DE "
        assert STTSettings(store).request_language == "de"

    def test_empty_language_means_auto(self, store):
        settings = STTSettings(store)
        settings.language = ""
        assert settings.request_language is None

    def test_provider_persists(self, store):
        STTSettings(store).provider = STTProvider.LOCAL
        assert STTSettings(store).provider == STTProvider.LOCAL


class TestSpeechSettings:

    def test_defaults(self, store):
        settings = SpeechSettings(store)
        assert settings.provider == TTSProvider.OPENAI
        assert settings.voice == "alloy"
        assert settings.elevenlabs_voice_id == "21m00Tcm4TlvDq8ikWAM"

    def test_changes_persist(self, store):
        settings = SpeechSettings(store)
        settings.provider = TTSProvider.ELEVENLABS
        settings.voice = "nova"
        reloaded = SpeechSettings(store)
        assert reloaded.provider == TTSProvider.ELEVENLABS
        assert reloaded.voice == "nova"


class TestEnumParsing:

    @pytest.mark.parametrize("text, expected", [
        ("brief", SummaryLength.BRIEF),
        ("DETAILED", SummaryLength.DETAILED),
    ])
    def test_length_names(self, text, expected):
        assert parse_enum(SummaryLength, text) == expected

    @pytest.mark.parametrize("text", ["key-takeaways", "Key Takeaways", "key_takeaways"])
    def test_format_spellings(self, text):
        assert parse_enum(SummaryFormat, text) == SummaryFormat.KEY_TAKEAWAYS

    @pytest.mark.parametrize("text, expected", [
        ("dalle3", ImageModel.DALLE3),
        ("DALL-E 3", ImageModel.DALLE3),
        ("imagen4", ImageModel.IMAGEN4),
        ("flux", ImageModel.FLUX),
    ])
    def test_image_models(self, text, expected):
        assert parse_enum(ImageModel, text) == expected

    def test_unknown_value_lists_choices(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_enum(TTSProvider, "polly")
        assert "OpenAI" in str(exc_info.value)
        assert "ElevenLabs" in str(exc_info.value)

    def test_enum_from_value(self):
        assert enum_from_value(STTProvider, None, STTProvider.CLOUD) == STTProvider.CLOUD
        assert enum_from_value(STTProvider, "On-Device (faster-whisper)", STTProvider.CLOUD) == STTProvider.LOCAL
