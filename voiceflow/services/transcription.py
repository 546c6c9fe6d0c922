"""
Speech-to-text facade.

Chooses between OpenAI Whisper in the cloud and the on-device
faster-whisper model according to the user's STT settings.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..exceptions import TranscriptionError
from ..settings import STTProvider, STTSettings
from .local_whisper import LocalWhisperTranscriber
from .openai_service import OpenAIService

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResult:
    """Transcribed text plus what produced it."""
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    provider: STTProvider = STTProvider.CLOUD
    processing_time: Optional[float] = None


class Transcriber:
    """Routes transcription requests to the configured provider."""

    def __init__(
        self,
        openai_service: OpenAIService,
        settings: STTSettings,
        local: Optional[LocalWhisperTranscriber] = None
    ):
        self.openai_service = openai_service
        self.settings = settings
        self._local = local

    @property
    def local(self) -> LocalWhisperTranscriber:
        if self._local is None:
            self._local = LocalWhisperTranscriber()
        return self._local

    async def transcribe(
        self,
        audio_data: bytes,
        filename: str = "audio.wav",
        duration: Optional[float] = None
    ) -> TranscriptionResult:
        """
        Transcribe audio bytes with the current provider.

        Args:
            audio_data: Encoded audio
            filename: Upload name; its extension selects the MIME type
            duration: Recording length, when the caller knows it

        Returns:
            TranscriptionResult for the audio.
        """
        if not audio_data:
            raise TranscriptionError("No audio to transcribe")

        provider = self.settings.provider
        language = self.settings.request_language
        start_time = time.time()
        logger.debug(f"Transcribing {len(audio_data)} bytes with {provider.value}, language={language or 'auto'}")

        if provider == STTProvider.LOCAL:
            local_result = await self.local.transcribe(audio_data, language=language)
            return TranscriptionResult(
                text=local_result.text,
                language=local_result.language,
                duration=duration if duration is not None else local_result.duration,
                provider=provider,
                processing_time=local_result.processing_time
            )

        text = await self.openai_service.transcribe(audio_data, filename=filename, language=language)
        return TranscriptionResult(
            text=text,
            language=language,
            duration=duration,
            provider=provider,
            processing_time=time.time() - start_time
        )

    async def transcribe_file(self, path: Union[str, Path]) -> TranscriptionResult:
        """Transcribe an audio file from disk."""
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Audio file not found: {path}")
        return await self.transcribe(path.read_bytes(), filename=path.name)
