"""Audio capture and silence-based segmentation."""

from .recorder import (
    AudioRecorder,
    AudioRecorderError,
    ContinuousRecorder,
    DeviceError,
    MicrophonePermissionError,
    encode_wav,
)
from .segmenter import SILENCE_FLOOR_DB, SilenceSegmenter, audio_level_db

__all__ = [
    "AudioRecorder",
    "AudioRecorderError",
    "ContinuousRecorder",
    "DeviceError",
    "MicrophonePermissionError",
    "SILENCE_FLOOR_DB",
    "SilenceSegmenter",
    "audio_level_db",
    "encode_wav",
]
