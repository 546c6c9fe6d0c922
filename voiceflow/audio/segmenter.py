"""
Silence detection for continuous recording.

The recorder measures the level of every captured chunk and feeds it to a
SilenceSegmenter, which decides when enough silence has followed enough
audio to close the current segment.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

SILENCE_FLOOR_DB = -160.0


def audio_level_db(chunk: bytes) -> float:
    """
    RMS level of 16-bit little-endian PCM in dBFS.

    Returns SILENCE_FLOOR_DB for empty or all-zero input.
    """
    usable = len(chunk) - (len(chunk) % 2)
    if usable <= 0:
        return SILENCE_FLOOR_DB

    samples = np.frombuffer(chunk[:usable], dtype="<i2").astype(np.float64)
    rms = float(np.sqrt(np.mean(np.square(samples))))
    if rms <= 0:
        return SILENCE_FLOOR_DB
    return max(SILENCE_FLOOR_DB, 20.0 * float(np.log10(rms / 32768.0)))


class SilenceSegmenter:
    """
    Timer-based silence detector.

    Args:
        threshold_db: Levels below this count as silence
        silence_duration: Seconds of continuous silence that end a segment
        min_segment_duration: Segments shorter than this are never cut
    """

    def __init__(
        self,
        threshold_db: float = -40.0,
        silence_duration: float = 1.5,
        min_segment_duration: float = 2.0
    ):
        if silence_duration <= 0:
            raise ValueError(f"silence_duration must be positive, got {silence_duration}")
        if min_segment_duration < 0:
            raise ValueError(f"min_segment_duration cannot be negative, got {min_segment_duration}")

        self.threshold_db = threshold_db
        self.silence_duration = silence_duration
        self.min_segment_duration = min_segment_duration
        self.closed_had_speech = False
        self.reset()

    def reset(self) -> None:
        """Start a new segment."""
        self.segment_elapsed = 0.0
        self.silence_elapsed = 0.0
        self.has_speech = False

    def is_silent(self, level_db: float) -> bool:
        return level_db < self.threshold_db

    def update(self, level_db: float, dt: float) -> bool:
        """
        Account for ``dt`` seconds of audio at ``level_db``.

        Returns:
            True when the current segment should be closed. The segmenter
            resets itself before returning True; ``closed_had_speech`` then
            tells whether the closed segment ever rose above the threshold.
        """
        self.segment_elapsed += dt
        if self.is_silent(level_db):
            self.silence_elapsed += dt
        else:
            self.silence_elapsed = 0.0
            self.has_speech = True

        if (self.silence_elapsed >= self.silence_duration
                and self.segment_elapsed >= self.min_segment_duration):
            logger.debug(
                f"Segment cut after {self.segment_elapsed:.2f}s "
                f"({self.silence_elapsed:.2f}s of silence)"
            )
            self.closed_had_speech = self.has_speech
            self.reset()
            return True
        return False
