# file: station_finder/history.py

import logging
import os
import threading
from typing import Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from station_finder import config
from station_finder.errors import HistoryIoError
from station_finder.models import HistoryEntry

_entries_adapter = TypeAdapter(List[HistoryEntry])


class HistoryStore:
    """
    Saved station snapshots kept newest-first in a JSON file.

    Reads degrade to an empty history and failed writes leave both the file and
    the in-memory sequence untouched; neither raises to the caller.
    """

    def __init__(self, path: str = config.HISTORY_FILE):
        self.path = path
        self._lock = threading.Lock()
        self._entries: List[HistoryEntry] = []
        self.load()

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, index: int) -> Optional[HistoryEntry]:
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def load(self) -> Tuple[HistoryEntry, ...]:
        """(Re)load the history file; an absent or unparseable file reads as empty history."""
        with self._lock:
            self._entries = self._read()
            return tuple(self._entries)

    def append(self, entry: HistoryEntry) -> bool:
        with self._lock:
            return self._commit([entry] + self._entries)

    def remove_at(self, index: int) -> bool:
        with self._lock:
            if index < 0 or index >= len(self._entries):
                return False
            return self._commit(self._entries[:index] + self._entries[index + 1:])

    def clear(self) -> bool:
        with self._lock:
            return self._commit([])

    def query_by_city(self, city: str) -> List[HistoryEntry]:
        """Latest saved entry per station among entries whose city matches case-insensitively."""
        latest: Dict[int, HistoryEntry] = {}
        wanted = city.lower()
        for entry in self._entries:
            if entry.station.city_name.lower() != wanted:
                continue
            current = latest.get(entry.station.id)
            if current is None or entry.saved_at > current.saved_at:
                latest[entry.station.id] = entry
        return list(latest.values())

    def _read(self) -> List[HistoryEntry]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "rb") as f:
                return _entries_adapter.validate_json(f.read())
        except (OSError, ValidationError, ValueError) as e:
            logging.warning(f"Ignoring unreadable history file {self.path}: {e}")
            return []

    def _write(self, entries: List[HistoryEntry]) -> None:
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "wb") as f:
                f.write(_entries_adapter.dump_json(entries, indent=2))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise HistoryIoError(f"Cannot write history file {self.path}: {e}") from e

    def _commit(self, entries: List[HistoryEntry]) -> bool:
        try:
            self._write(entries)
        except HistoryIoError as e:
            logging.error(str(e))
            return False
        self._entries = entries
        return True
