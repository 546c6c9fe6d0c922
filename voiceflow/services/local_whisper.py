"""
On-device speech-to-text with faster-whisper.

Used when the speech-to-text provider is set to local. The model is loaded
lazily on first use, falling back to smaller models and to the CPU when the
preferred combination cannot be loaded.
"""

import asyncio
import logging
import os
import platform
import tempfile
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False
    psutil = None

try:
    from faster_whisper import WhisperModel
    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None

from ..exceptions import LocalModelError

logger = logging.getLogger(__name__)


@dataclass
class LocalSegment:
    """One timed piece of a local transcription."""
    start: float
    end: float
    text: str


@dataclass
class LocalTranscription:
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    processing_time: Optional[float] = None
    segments: List[LocalSegment] = field(default_factory=list)


class LocalWhisperTranscriber:
    """
    faster-whisper model wrapper.

    The default model is ``base`` so that first use stays reasonably quick on
    a laptop CPU; larger models can be requested explicitly.
    """

    MODEL_FALLBACKS = ["large-v3-turbo", "medium", "small", "base", "tiny"]

    def __init__(
        self,
        model_size: str = "base",
        device: str = "auto",
        compute_type: str = "auto",
        vad_filter: bool = True,
        beam_size: int = 5
    ):
        self.model_size = model_size
        self.device = self._detect_device() if device == "auto" else device
        self.compute_type = self._detect_compute_type() if compute_type == "auto" else compute_type
        self.vad_filter = vad_filter
        self.beam_size = beam_size
        self._model: Optional[Any] = None

    @staticmethod
    def is_available() -> bool:
        return FASTER_WHISPER_AVAILABLE

    def _detect_device(self) -> str:
        try:
            import torch
            if torch.cuda.is_available():
                return "cuda"
        except ImportError:
            pass

        # faster-whisper has no MPS backend
        if platform.system() == "Darwin":
            logger.debug("macOS detected, using CPU for faster-whisper")
        return "cpu"

    def _detect_compute_type(self) -> str:
        if self.device == "cuda":
            return "float16"
        if PSUTIL_AVAILABLE:
            available_gb = psutil.virtual_memory().available / (1024 ** 3)
            return "int8" if available_gb < 4 else "float32"
        return "int8"

    def _models_to_try(self) -> List[str]:
        models = [self.model_size]
        # Only fall back to models no larger than the one requested
        if self.model_size in self.MODEL_FALLBACKS:
            start = self.MODEL_FALLBACKS.index(self.model_size) + 1
            models.extend(self.MODEL_FALLBACKS[start:])
        return models

    def load_model(self) -> None:
        """
        Load the model, trying smaller models and the CPU on failure.

        Raises:
            LocalModelError: If faster-whisper is missing or no model loads.
        """
        if not FASTER_WHISPER_AVAILABLE:
            raise LocalModelError(
                "On-device transcription needs faster-whisper. "
                "Install with: pip install 'voiceflow[local]'"
            )
        if self._model is not None:
            return

        devices = [self.device] if self.device == "cpu" else [self.device, "cpu"]
        last_error: Optional[Exception] = None

        for model_size in self._models_to_try():
            for device in devices:
                compute_type = self.compute_type
                if device == "cpu" and compute_type == "float16":
                    compute_type = "int8"
                try:
                    logger.info(f"Loading Whisper model {model_size} on {device} ({compute_type})")
                    self._model = WhisperModel(model_size, device=device, compute_type=compute_type)
                except Exception as e:
                    logger.warning(f"Failed to load model '{model_size}' on '{device}': {e}")
                    last_error = e
                    continue

                self.model_size = model_size
                self.device = device
                self.compute_type = compute_type
                return

        raise LocalModelError(f"Failed to load any Whisper model. Last error: {last_error}")

    def is_model_loaded(self) -> bool:
        return self._model is not None

    async def transcribe(self, audio_data: bytes, language: Optional[str] = None) -> LocalTranscription:
        """
        Transcribe encoded audio bytes.

        Args:
            audio_data: Audio file contents (WAV, MP3, M4A...)
            language: ISO language code, or None to auto-detect

        Raises:
            ValueError: If audio_data is empty.
            LocalModelError: If the model cannot be loaded or fails.
        """
        if not audio_data:
            raise ValueError("Audio data cannot be empty")

        self.load_model()
        start_time = time.time()

        fd, temp_path = tempfile.mkstemp(suffix=".audio")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(audio_data)

            params: Dict[str, Any] = {
                "language": language,
                "beam_size": self.beam_size,
                "vad_filter": self.vad_filter,
            }
            loop = asyncio.get_running_loop()
            segments, info = await loop.run_in_executor(
                None,
                lambda: self._run_model(temp_path, params)
            )
        except LocalModelError:
            raise
        except Exception as e:
            logger.error(f"Local transcription failed: {e}")
            raise LocalModelError(f"Local transcription failed: {e}") from e
        finally:
            os.unlink(temp_path)

        parts = [s for s in segments if s.text]
        processing_time = time.time() - start_time
        duration = getattr(info, "duration", None)
        if duration:
            logger.info(
                f"Transcribed {duration:.2f}s of audio locally in {processing_time:.2f}s "
                f"(RTF {processing_time / duration:.2f})"
            )

        return LocalTranscription(
            text=" ".join(s.text for s in parts),
            language=getattr(info, "language", language),
            duration=duration,
            processing_time=processing_time,
            segments=parts
        )

    def _run_model(self, path: str, params: Dict[str, Any]):
        # faster-whisper yields segments lazily; consume them on the worker thread
        raw_segments, info = self._model.transcribe(path, **params)
        segments = [
            LocalSegment(start=s.start, end=s.end, text=s.text.strip())
            for s in raw_segments
        ]
        return segments, info

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "model_size": self.model_size,
            "device": self.device,
            "compute_type": self.compute_type,
            "vad_filter": self.vad_filter,
            "loaded": self.is_model_loaded(),
            "available": FASTER_WHISPER_AVAILABLE,
        }
