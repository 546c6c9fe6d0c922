"""
Microphone recording with PyAudio.

AudioRecorder captures one take and returns it as WAV bytes.
ContinuousRecorder keeps recording and emits a WAV segment every time the
speaker pauses, using a SilenceSegmenter to find the pauses.
"""

import asyncio
import inspect
import io
import logging
import wave
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

try:
    import pyaudio
    PYAUDIO_AVAILABLE = True
except ImportError:
    PYAUDIO_AVAILABLE = False
    pyaudio = None

from .segmenter import SILENCE_FLOOR_DB, SilenceSegmenter, audio_level_db

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2  # 16-bit PCM

SegmentCallback = Callable[[bytes], Union[None, Awaitable[None]]]


class AudioRecorderError(Exception):
    """Base exception for audio recorder errors."""
    pass


class MicrophonePermissionError(AudioRecorderError):
    """Raised when the microphone cannot be opened for permission reasons."""
    pass


class DeviceError(AudioRecorderError):
    """Raised when no audio input device is available."""
    pass


def encode_wav(frames: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """Wrap raw 16-bit PCM frames in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(frames)
    return buffer.getvalue()


class AudioRecorder:
    """
    Async recorder capturing 16 kHz mono 16-bit audio from the default input.

    Each captured chunk is kept in memory and, if ``on_chunk`` is given,
    passed to it as soon as it arrives. With ``keep_frames=False`` chunks
    only go to ``on_chunk`` and ``stop_recording`` returns an empty WAV. ``level_db`` always holds the level
    of the latest chunk so a UI can show a live meter.

    Example:
        >>> recorder = AudioRecorder()
        >>> await recorder.start_recording()
        >>> # ... user speaks ...
        >>> wav_bytes = await recorder.stop_recording()
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        on_chunk: Optional[Callable[[bytes], None]] = None,
        keep_frames: bool = True
    ):
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        if channels not in (1, 2):
            raise ValueError(f"Channels must be 1 or 2, got {channels}")

        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.on_chunk = on_chunk
        self.keep_frames = keep_frames
        self.level_db = SILENCE_FLOOR_DB

        self._audio: Optional[Any] = None
        self._stream: Optional[Any] = None
        self._is_recording = False
        self._frames: List[bytes] = []
        self._captured_bytes = 0
        self._recording_task: Optional[asyncio.Task] = None

    @property
    def duration(self) -> float:
        """Seconds of audio captured so far."""
        return self._captured_bytes / (self.sample_rate * self.channels * SAMPLE_WIDTH)

    def is_recording(self) -> bool:
        return self._is_recording

    async def start_recording(self) -> None:
        """
        Open the default input device and start capturing.

        Raises:
            RuntimeError: If already recording
            MicrophonePermissionError: If the device refuses to open
            DeviceError: If no input devices exist
            AudioRecorderError: If PyAudio is missing or fails to start
        """
        if self._is_recording:
            raise RuntimeError("Recording already in progress")
        if not PYAUDIO_AVAILABLE:
            raise AudioRecorderError(
                "Recording needs PyAudio. Install with: pip install 'voiceflow[audio]'"
            )

        try:
            self._audio = pyaudio.PyAudio()
            if not self._has_input_devices():
                raise DeviceError("No audio input devices found")

            try:
                self._stream = self._audio.open(
                    format=pyaudio.paInt16,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size
                )
            except OSError as e:
                if "device" in str(e).lower() or "input" in str(e).lower():
                    raise MicrophonePermissionError(self._permission_help()) from e
                raise AudioRecorderError(f"Failed to open audio stream: {e}") from e
        except AudioRecorderError:
            self._cleanup_resources()
            raise
        except Exception as e:
            self._cleanup_resources()
            raise AudioRecorderError(f"Failed to start recording: {e}") from e

        self._frames = []
        self._captured_bytes = 0
        self.level_db = SILENCE_FLOOR_DB
        self._is_recording = True
        self._recording_task = asyncio.create_task(self._record_loop())
        logger.info(f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s)")

    async def stop_recording(self) -> bytes:
        """
        Stop capturing and return everything recorded as WAV bytes.

        Raises:
            RuntimeError: If not currently recording
        """
        if not self._is_recording:
            raise RuntimeError("Not currently recording")

        self._is_recording = False
        try:
            if self._recording_task:
                await self._recording_task
        finally:
            self._recording_task = None
            self._cleanup_resources()

        wav_data = encode_wav(b"".join(self._frames), self.sample_rate, self.channels)
        logger.info(f"Recording stopped: {self.duration:.1f}s, {len(wav_data)} bytes")
        return wav_data

    def _read_chunk(self) -> bytes:
        return self._stream.read(self.chunk_size, exception_on_overflow=False)

    async def _record_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._is_recording and self._stream is not None:
            try:
                data = await loop.run_in_executor(None, self._read_chunk)
            except OSError as e:
                logger.error(f"Audio read error, stopping capture: {e}")
                break
            if data:
                self.feed(data)

    def feed(self, data: bytes) -> None:
        """Record one chunk of PCM data."""
        self._captured_bytes += len(data)
        if self.keep_frames:
            self._frames.append(data)
        self.level_db = audio_level_db(data)
        if self.on_chunk is not None:
            self.on_chunk(data)

    def _has_input_devices(self) -> bool:
        for i in range(self._audio.get_device_count()):
            info = self._audio.get_device_info_by_index(i)
            if info.get("maxInputChannels", 0) > 0:
                return True
        return False

    @staticmethod
    def _permission_help() -> str:
        return (
            "Microphone access denied.\n"
            "On macOS enable microphone access for your terminal under\n"
            "System Settings > Privacy & Security > Microphone, then try again."
        )

    def _cleanup_resources(self) -> None:
        if self._stream is not None:
            try:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
            self._stream = None
        if self._audio is not None:
            self._audio.terminate()
            self._audio = None

    async def __aenter__(self) -> "AudioRecorder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._is_recording:
            await self.stop_recording()
        self._cleanup_resources()


class ContinuousRecorder:
    """
    Records until stopped, cutting a new segment at each pause.

    Every closed segment that contains speech is encoded as WAV and passed
    to ``on_segment``, which may be a plain function or a coroutine
    function. Segments that never rose above the silence threshold are
    dropped. Stopping flushes whatever was captured since the last cut.
    """

    def __init__(
        self,
        on_segment: SegmentCallback,
        segmenter: Optional[SilenceSegmenter] = None,
        recorder: Optional[AudioRecorder] = None
    ):
        self.on_segment = on_segment
        self.segmenter = segmenter or SilenceSegmenter()
        self.recorder = recorder or AudioRecorder()
        self.recorder.on_chunk = self._handle_chunk
        # Segments hold the audio; the whole-session buffer is never read
        self.recorder.keep_frames = False
        self.segments_emitted = 0
        self._frames: List[bytes] = []
        self._pending: Set[asyncio.Task] = set()

    @property
    def level_db(self) -> float:
        return self.recorder.level_db

    def _chunk_duration(self, data: bytes) -> float:
        bytes_per_second = self.recorder.sample_rate * self.recorder.channels * SAMPLE_WIDTH
        return len(data) / bytes_per_second

    def process_chunk(self, data: bytes, duration: Optional[float] = None) -> Optional[bytes]:
        """
        Add a chunk to the current segment.

        Returns:
            WAV bytes of the segment that this chunk closed, or None when the
            segment continues or was dropped for containing no speech.
        """
        if duration is None:
            duration = self._chunk_duration(data)
        self._frames.append(data)

        if not self.segmenter.update(audio_level_db(data), duration):
            return None

        frames, self._frames = self._frames, []
        if not self.segmenter.closed_had_speech:
            logger.debug("Dropping segment without speech")
            return None
        return encode_wav(b"".join(frames), self.recorder.sample_rate, self.recorder.channels)

    def flush(self) -> Optional[bytes]:
        """Close the current segment regardless of silence."""
        frames, self._frames = self._frames, []
        had_speech = self.segmenter.has_speech
        self.segmenter.reset()
        if not frames or not had_speech:
            return None
        return encode_wav(b"".join(frames), self.recorder.sample_rate, self.recorder.channels)

    def _handle_chunk(self, data: bytes) -> None:
        segment = self.process_chunk(data)
        if segment is not None:
            self._dispatch(segment)

    def _dispatch(self, segment: bytes) -> None:
        self.segments_emitted += 1
        logger.info(f"Segment {self.segments_emitted} ready ({len(segment)} bytes)")
        task = asyncio.create_task(self._deliver(segment))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, segment: bytes) -> None:
        result = self.on_segment(segment)
        if inspect.isawaitable(result):
            await result

    async def start(self) -> None:
        self._frames = []
        self.segmenter.reset()
        self.segments_emitted = 0
        await self.recorder.start_recording()

    async def stop(self) -> int:
        """
        Stop recording, flush the final segment and wait for all callbacks.

        Returns:
            Number of segments handed to the callback.
        """
        await self.recorder.stop_recording()
        segment = self.flush()
        if segment is not None:
            self._dispatch(segment)

        if self._pending:
            results = await asyncio.gather(*list(self._pending), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Segment handler failed: {result}")
        return self.segments_emitted

    def is_recording(self) -> bool:
        return self.recorder.is_recording()
