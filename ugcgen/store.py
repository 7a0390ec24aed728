"""
Flat-file key-value store for account records.

The whole mapping lives in one JSON file. It is read once on first access
and cached for the life of the process; every mutation rewrites the file.

Consistency contract:
  - Every public call is atomic with respect to every other call in the
    same process (one lock guards both cache and file).
  - update() is read-merge-write under that lock, so concurrent partial
    updates to different fields of one record are all kept. Concurrent
    writes of the same field resolve last-writer-wins.
  - There is no coordination between processes.
"""

import os
import json
import logging
import threading
from typing import Callable, Iterator, Optional, Tuple

from .errors import StoreError

logger = logging.getLogger(__name__)


class JsonFileStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._cache: Optional[dict[str, dict]] = None

    # ── Internals (call with _lock held) ─────────────────────────────────

    def _records(self) -> dict[str, dict]:
        if self._cache is None:
            if os.path.exists(self.path):
                try:
                    with open(self.path, "r", encoding="utf-8") as f:
                        data = json.load(f)
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    logger.error(f"Account store {self.path} is unreadable: {e}")
                    raise StoreError(f"Account store {self.path} is corrupt; fix or remove it")
                self._cache = data if isinstance(data, dict) else {}
                logger.info(f"Loaded {len(self._cache)} record(s) from {self.path}")
            else:
                self._cache = {}
        return self._cache

    def _flush(self):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._cache, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    # ── Public API ───────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            record = self._records().get(key)
            return dict(record) if record is not None else None

    def put(self, key: str, record: dict):
        with self._lock:
            self._records()[key] = dict(record)
            self._flush()

    def update(self, key: str, fn: Callable[[dict], dict]) -> dict:
        """
        Replace the record at `key` with fn(current). Raises KeyError if
        the key is absent. Returns a copy of the stored result.
        """
        with self._lock:
            records = self._records()
            if key not in records:
                raise KeyError(key)
            updated = dict(fn(dict(records[key])))
            records[key] = updated
            self._flush()
            return dict(updated)

    def delete(self, key: str) -> bool:
        with self._lock:
            records = self._records()
            if key not in records:
                return False
            del records[key]
            self._flush()
            return True

    def find(self, predicate: Callable[[dict], bool]) -> Optional[Tuple[str, dict]]:
        """First (key, record) for which predicate(record) is true."""
        with self._lock:
            for key, record in self._records().items():
                if predicate(record):
                    return key, dict(record)
        return None

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._records().keys()))

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._records()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records())
