"""
JSONL-backed history storage.

Each record type gets its own append-only file under the history
directory. Reads load the whole file; rewrites (update, delete, eviction)
replace it in one pass.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Callable, Generic, List, Optional, Type, TypeVar

from ..exceptions import StorageError
from .records import PromptRecord, Record, SummaryRecord, TranscriptionRecord, TTSRecord

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


class RecordStore(Generic[R]):
    """Persistent list of one record type, oldest first on disk."""

    MAX_ENTRIES = 1000

    def __init__(self, record_cls: Type[R], directory: Path, max_entries: Optional[int] = None):
        """
        Initialize the store.

        Args:
            record_cls: Record dataclass stored in this file
            directory: History directory; the file is ``<kind>.jsonl`` inside it
            max_entries: Cap on stored records (defaults to MAX_ENTRIES)
        """
        self.record_cls = record_cls
        self.path = Path(directory) / f"{record_cls.kind}.jsonl"
        self.max_entries = max_entries or self.MAX_ENTRIES
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self.path.touch()
        except OSError as e:
            raise StorageError(f"Failed to initialize storage at {self.path}: {e}") from e

    def _read_all(self) -> List[R]:
        records = []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        records.append(self.record_cls.from_dict(json.loads(line)))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e
        return records

    def _write_all(self, records: List[R]) -> None:
        tmp_path = self.path.with_suffix(".jsonl.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record.to_dict()) + "\n")
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    def add(self, record: R) -> R:
        """Append a record, evicting the oldest ones beyond the cap."""
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record.to_dict()) + "\n")
            except OSError as e:
                raise StorageError(f"Failed to save {self.record_cls.kind} record: {e}") from e

            records = self._read_all()
            if len(records) > self.max_entries:
                logger.debug(f"Evicting {len(records) - self.max_entries} old {self.record_cls.kind} records")
                self._write_all(records[-self.max_entries:])
        logger.debug(f"Saved {self.record_cls.kind} record {record.id}")
        return record

    def get(self, record_id: str) -> Optional[R]:
        """
        Look up a record by id or by a unique id prefix.

        Raises:
            StorageError: If the prefix matches more than one record.
        """
        with self._lock:
            records = self._read_all()
        matches = [r for r in records if r.id == record_id]
        if matches:
            return matches[0]
        matches = [r for r in records if r.id.startswith(record_id)]
        if len(matches) > 1:
            raise StorageError(f"Id prefix '{record_id}' matches {len(matches)} records")
        return matches[0] if matches else None

    def recent(self, limit: int = 50) -> List[R]:
        """Most recent records, newest first."""
        with self._lock:
            records = self._read_all()
        if limit <= 0:
            return []
        return records[-limit:][::-1]

    def search(self, query: str, limit: int = 50) -> List[R]:
        """Case-insensitive substring search, newest first."""
        if not query or not query.strip():
            return []
        query = query.strip().lower()
        with self._lock:
            records = self._read_all()
        matches = [r for r in records if query in r.search_text.lower()]
        if limit <= 0:
            return []
        return matches[-limit:][::-1]

    def update(self, record_id: str, change: Callable[[R], None]) -> R:
        """
        Apply ``change`` to a stored record and save it.

        Raises:
            StorageError: If no record has that id.
        """
        with self._lock:
            records = self._read_all()
            for record in records:
                if record.id == record_id:
                    change(record)
                    self._write_all(records)
                    return record
        raise StorageError(f"No {self.record_cls.kind} record with id {record_id}")

    def delete(self, record_id: str) -> bool:
        with self._lock:
            records = self._read_all()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            self._write_all(remaining)
            return True

    def clear(self) -> int:
        """Remove every record. Returns how many were removed."""
        with self._lock:
            count = len(self._read_all())
            self._write_all([])
            return count

    def count(self) -> int:
        with self._lock:
            return len(self._read_all())


class HistoryStores:
    """The four record stores living in one history directory."""

    def __init__(self, directory: Path, max_entries: Optional[int] = None):
        self.transcriptions: RecordStore[TranscriptionRecord] = RecordStore(TranscriptionRecord, directory, max_entries)
        self.speech: RecordStore[TTSRecord] = RecordStore(TTSRecord, directory, max_entries)
        self.summaries: RecordStore[SummaryRecord] = RecordStore(SummaryRecord, directory, max_entries)
        self.prompts: RecordStore[PromptRecord] = RecordStore(PromptRecord, directory, max_entries)

    def by_kind(self, kind: str) -> RecordStore:
        """
        Store for a record kind name.

        Raises:
            KeyError: For an unknown kind.
        """
        stores = {
            "transcriptions": self.transcriptions,
            "speech": self.speech,
            "summaries": self.summaries,
            "prompts": self.prompts,
        }
        return stores[kind]
