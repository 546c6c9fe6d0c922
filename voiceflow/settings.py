"""
Persisted user settings.

Settings live in a small JSON file of string values. Each settings class
reads its values on construction and writes them back whenever a property
is assigned, so two instances over the same file always agree.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class SettingsStore:
    """JSON-backed key/value store for simple settings."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._load().get(key, default)
        return value if isinstance(value, str) else default

    def set(self, key: str, value: Optional[str]) -> None:
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
        except OSError as e:
            raise ConfigurationError(f"Failed to save settings to {self.path}: {e}") from e

    def remove(self, key: str) -> None:
        self.set(key, None)

    def all(self) -> Dict[str, Any]:
        return self._load()


def enum_from_value(enum_cls: Type[E], value: Optional[str], default: E) -> E:
    """Parse an enum by value, falling back to the default for unknown input."""
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return default


def parse_enum(enum_cls: Type[E], text: str) -> E:
    """
    Parse user input into an enum member by value or by name, ignoring case.

    Raises:
        ConfigurationError: If nothing matches.
    """
    def normalize(s: str) -> str:
        return s.strip().lower().replace("-", "").replace("_", "").replace(" ", "")

    wanted = normalize(text)
    for member in enum_cls:
        if wanted in (normalize(member.name), normalize(str(member.value))):
            return member
    choices = ", ".join(str(m.value) for m in enum_cls)
    raise ConfigurationError(f"Unknown value '{text}'. Choose one of: {choices}")


class SummaryLength(Enum):
    BRIEF = "Brief"
    STANDARD = "Standard"
    DETAILED = "Detailed"

    @property
    def system_prompt(self) -> str:
        return {
            SummaryLength.BRIEF: "Provide a very brief summary in 1-2 sentences.",
            SummaryLength.STANDARD: "Provide a concise summary in a paragraph.",
            SummaryLength.DETAILED: "Provide a comprehensive summary covering all key points.",
        }[self]


class SummaryFormat(Enum):
    PROSE = "Prose"
    BULLETS = "Bullets"
    KEY_TAKEAWAYS = "Key Takeaways"

    @property
    def system_prompt(self) -> str:
        return {
            SummaryFormat.PROSE: "Format as flowing prose paragraphs.",
            SummaryFormat.BULLETS: "Format as bullet points.",
            SummaryFormat.KEY_TAKEAWAYS: "Format as numbered key takeaways.",
        }[self]


class SummarizeSettings:
    """Length and format used to build the summarization system prompt."""

    LENGTH_KEY = "summarize_length"
    FORMAT_KEY = "summarize_format"

    def __init__(self, store: SettingsStore):
        self._store = store
        self._length = enum_from_value(SummaryLength, store.get(self.LENGTH_KEY), SummaryLength.STANDARD)
        self._format = enum_from_value(SummaryFormat, store.get(self.FORMAT_KEY), SummaryFormat.PROSE)

    @property
    def length(self) -> SummaryLength:
        return self._length

    @length.setter
    def length(self, value: SummaryLength) -> None:
        self._length = value
        self._store.set(self.LENGTH_KEY, value.value)

    @property
    def format(self) -> SummaryFormat:
        return self._format

    @format.setter
    def format(self, value: SummaryFormat) -> None:
        self._format = value
        self._store.set(self.FORMAT_KEY, value.value)

    def build_system_prompt(self) -> str:
        return (
            "You are a helpful assistant. Summarize the following text.\n"
            f"{self.length.system_prompt}\n"
            f"{self.format.system_prompt}\n"
            "Keep key information and main points."
        )


class STTProvider(Enum):
    CLOUD = "Cloud (OpenAI Whisper)"
    LOCAL = "On-Device (faster-whisper)"


class STTSettings:
    """Speech-to-text provider and language ("auto" lets Whisper detect)."""

    PROVIDER_KEY = "stt_provider"
    LANGUAGE_KEY = "stt_language"
    AUTO_LANGUAGE = "auto"

    def __init__(self, store: SettingsStore):
        self._store = store
        self._provider = enum_from_value(STTProvider, store.get(self.PROVIDER_KEY), STTProvider.CLOUD)
        self._language = store.get(self.LANGUAGE_KEY) or self.AUTO_LANGUAGE

    @property
    def provider(self) -> STTProvider:
        return self._provider

    @provider.setter
    def provider(self, value: STTProvider) -> None:
        self._provider = value
        self._store.set(self.PROVIDER_KEY, value.value)

    @property
    def language(self) -> str:
        return self._language

    @language.setter
    def language(self, value: Optional[str]) -> None:
        self._language = (value or self.AUTO_LANGUAGE).strip().lower()
        self._store.set(self.LANGUAGE_KEY, self._language)

    @property
    def request_language(self) -> Optional[str]:
        """Language to send to the API, or None for auto-detection."""
        return None if self._language == self.AUTO_LANGUAGE else self._language


class TTSProvider(Enum):
    OPENAI = "OpenAI"
    ELEVENLABS = "ElevenLabs"


class SpeechSettings:
    """Text-to-speech provider and the voice used for each provider."""

    PROVIDER_KEY = "tts_provider"
    VOICE_KEY = "tts_voice"
    ELEVENLABS_VOICE_KEY = "elevenlabs_voice_id"

    DEFAULT_VOICE = "alloy"
    DEFAULT_ELEVENLABS_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"

    def __init__(self, store: SettingsStore):
        self._store = store
        self._provider = enum_from_value(TTSProvider, store.get(self.PROVIDER_KEY), TTSProvider.OPENAI)
        self._voice = store.get(self.VOICE_KEY) or self.DEFAULT_VOICE
        self._elevenlabs_voice_id = store.get(self.ELEVENLABS_VOICE_KEY) or self.DEFAULT_ELEVENLABS_VOICE_ID

    @property
    def provider(self) -> TTSProvider:
        return self._provider

    @provider.setter
    def provider(self, value: TTSProvider) -> None:
        self._provider = value
        self._store.set(self.PROVIDER_KEY, value.value)

    @property
    def voice(self) -> str:
        return self._voice

    @voice.setter
    def voice(self, value: str) -> None:
        self._voice = value
        self._store.set(self.VOICE_KEY, value)

    @property
    def elevenlabs_voice_id(self) -> str:
        return self._elevenlabs_voice_id

    @elevenlabs_voice_id.setter
    def elevenlabs_voice_id(self, value: str) -> None:
        self._elevenlabs_voice_id = value
        self._store.set(self.ELEVENLABS_VOICE_KEY, value)
