"""
History record types.

One record type per feature. Records are flat dataclasses identified by a
UUID string and stamped with their creation time.
"""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional

SOURCE_RECORDING = "recording"
SOURCE_IMPORT = "import"
SOURCE_CONTINUOUS = "continuous"
SOURCE_TYPES = (SOURCE_RECORDING, SOURCE_IMPORT, SOURCE_CONTINUOUS)


def _new_id() -> str:
    return str(uuid.uuid4())


class Record:
    """Serialization shared by all record types."""

    kind = "record"
    id: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["timestamp"] = datetime.fromisoformat(values["timestamp"])
        return cls(**values)

    @property
    def search_text(self) -> str:
        """Text matched by history search."""
        return ""


@dataclass
class TranscriptionRecord(Record):
    transcribed_text: str
    source_type: str = SOURCE_RECORDING
    duration: Optional[float] = None
    language: Optional[str] = None
    edited_text: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    kind = "transcriptions"

    def __post_init__(self):
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source type '{self.source_type}'")

    @property
    def display_text(self) -> str:
        """Edited text when present, otherwise the original transcription."""
        return self.edited_text or self.transcribed_text

    @property
    def search_text(self) -> str:
        return self.display_text


@dataclass
class TTSRecord(Record):
    input_text: str
    voice_used: str
    audio_file_path: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    kind = "speech"

    @property
    def search_text(self) -> str:
        return self.input_text


@dataclass
class SummaryRecord(Record):
    input_text: str
    summary_text: str
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    kind = "summaries"

    @property
    def search_text(self) -> str:
        return f"{self.input_text}\n{self.summary_text}"


@dataclass
class PromptRecord(Record):
    original_text: str
    enhanced_text: str
    preset: Optional[str] = None
    is_favorite: bool = False
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=datetime.now)

    kind = "prompts"

    @property
    def search_text(self) -> str:
        return f"{self.original_text}\n{self.enhanced_text}"
