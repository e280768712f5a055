"""
Sentinel Monitor — Observation Cache Stores

Per-cell sparse observation series, one store per sensor domain
(optical, radar). The sync engine only talks to the ``CacheStore``
interface, so the JSON file can be swapped for any key-value store.

Document layout::

    {"<cell_id>": [{"date": "2024-05-01", "value": 0.31, "secondary_value": null}, ...]}

Files written by older dashboard builds stored full ISO timestamps and an
``ndmiValue`` key; both are read transparently.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class CacheStore:
    """Interface: cell id -> ordered list of raw observations."""

    def get(self, cell_id: str) -> List[Dict]:
        raise NotImplementedError

    def put_all(self, series: Dict[str, List[Dict]]) -> None:
        """Upsert the given cells and persist them in one write."""
        raise NotImplementedError


class InMemoryCacheStore(CacheStore):
    """Dict-backed store; counts writes so callers can assert on I/O."""

    def __init__(self, initial: Optional[Dict[str, List[Dict]]] = None):
        self.data = {k: [dict(o) for o in v] for k, v in (initial or {}).items()}
        self.write_count = 0

    def get(self, cell_id: str) -> List[Dict]:
        return [dict(o) for o in self.data.get(cell_id, [])]

    def put_all(self, series: Dict[str, List[Dict]]) -> None:
        for cell_id, observations in series.items():
            self.data[cell_id] = [dict(o) for o in observations]
        self.write_count += 1


class JsonFileCacheStore(CacheStore):
    """
    Whole-file JSON store.

    The file is read once, on first access, and every ``put_all`` rewrites
    the full document through a temp file + ``os.replace`` so a crash never
    leaves a truncated cache behind.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._data = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, List[Dict]]:
        if self._data is not None:
            return self._data
        with self._lock:
            if self._data is None:
                self._data = self._read_file()
        return self._data

    def _read_file(self) -> Dict[str, List[Dict]]:
        if not self.path.exists():
            logger.info("Cache file %s not found. A new one will be created.", self.path)
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning("Cache file %s is unreadable (%s). Starting empty.", self.path, e)
            return {}

        if not isinstance(raw, dict):
            logger.warning("Cache file %s has unexpected layout. Starting empty.", self.path)
            return {}

        data = {}
        for cell_id, entries in raw.items():
            if not isinstance(entries, list):
                logger.warning("Dropping malformed cache entry for %s", cell_id)
                continue
            data[cell_id] = [e for e in (_normalise_entry(x) for x in entries) if e is not None]
        return data

    def get(self, cell_id: str) -> List[Dict]:
        return [dict(o) for o in self._load().get(cell_id, [])]

    def put_all(self, series: Dict[str, List[Dict]]) -> None:
        data = self._load()
        with self._lock:
            for cell_id, observations in series.items():
                data[cell_id] = [dict(o) for o in observations]
            try:
                _write_atomic(self.path, data)
            except OSError:
                logger.exception("Failed to write cache file %s", self.path)
                return
        logger.info("Cache file %s updated (%d cells changed).", self.path, len(series))


def _write_atomic(path: Path, data: Dict) -> None:
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def _normalise_entry(entry) -> Optional[Dict]:
    if not isinstance(entry, dict) or not entry.get("date"):
        return None
    secondary = entry.get("secondary_value", entry.get("ndmiValue"))
    if entry.get("value") is None and secondary is None:
        return None
    return {
        "date": str(entry["date"])[:10],
        "value": entry.get("value"),
        "secondary_value": secondary,
    }
