"""Persistent history of transcriptions, speech, summaries and prompts."""

from .history_store import HistoryStores, RecordStore
from .records import (
    SOURCE_CONTINUOUS,
    SOURCE_IMPORT,
    SOURCE_RECORDING,
    PromptRecord,
    Record,
    SummaryRecord,
    TranscriptionRecord,
    TTSRecord,
)

__all__ = [
    "HistoryStores",
    "RecordStore",
    "Record",
    "TranscriptionRecord",
    "TTSRecord",
    "SummaryRecord",
    "PromptRecord",
    "SOURCE_RECORDING",
    "SOURCE_IMPORT",
    "SOURCE_CONTINUOUS",
]
