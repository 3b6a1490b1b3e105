"""
Local key-value persistence for the KPI Report backend.

The dashboard persists three kinds of values: the Anthropic API key, cached
narrative text and the agents' personal-best records. All of them go
through a minimal get/set interface so the engine never depends on a
particular storage medium.

Key Components:
- KeyValueStore: abstract get/set/delete interface
- InMemoryStore: process-local dict store (default, and used by tests)
- JsonFileStore: single JSON document on disk (STORE_PATH)
- Global store singleton (_store) with init_store()/get_store()/close_store()
- Typed helpers for the API key, cached narratives and agent records

Usage:
    # At application startup (in FastAPI lifespan)
    init_store()

    # In services or endpoints
    store = get_store()
    save_api_key(store, "sk-ant-...")
    api_key = load_api_key(store)

    # At application shutdown
    close_store()
"""

import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from kpi_report.core.config import get_settings
from kpi_report.models import AllRecords

logger = logging.getLogger(__name__)

# Storage keys, kept compatible with the browser dashboard's localStorage names
API_KEY_STORAGE_KEY = 'kpi-report-anthropic-api-key'
NARRATIVE_STORAGE_PREFIX = 'kpi-report-narrative:'
RECORDS_STORAGE_KEY = 'kpi-report-agent-records'


# =============================================================================
# Store Implementations
# =============================================================================


class KeyValueStore(ABC):
    """
    Minimal string key-value store interface.

    Implementations must return None for missing keys and must never raise
    for a missing key on delete.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryStore(KeyValueStore):
    """Dict-backed store; contents live as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """
    Store persisted as one JSON object on disk.

    The whole document is rewritten on every set/delete (write to a temp file,
    then replace). Every read and read-modify-write holds a per-instance lock,
    so concurrent writers never drop each other's keys or share the temp
    file mid-write. A missing or corrupt file reads as an empty store; the
    corruption is logged and the file is overwritten on the next write.

    Attributes:
        path: Location of the JSON document.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open('r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read key-value store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Key-value store {self.path} is not a JSON object; ignoring")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with tmp_path.open('w', encoding='utf-8') as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


# =============================================================================
# Global Store Singleton
# =============================================================================

_store: Optional[KeyValueStore] = None


def init_store(path: Optional[str] = None) -> KeyValueStore:
    """
    Initialize the global key-value store.

    Args:
        path: JSON file location. Defaults to settings.store_path; when neither
            is set an InMemoryStore is used.

    Returns:
        KeyValueStore: The initialized store.
    """
    global _store

    store_path = path if path is not None else get_settings().store_path
    if store_path:
        _store = JsonFileStore(store_path)
        logger.info(f"Key-value store backed by {store_path}")
    else:
        _store = InMemoryStore()
        logger.info("Key-value store running in memory")
    return _store


def get_store() -> KeyValueStore:
    """Return the global store, initializing it on first use."""
    if _store is None:
        return init_store()
    return _store


def close_store() -> None:
    """Drop the global store reference (next get_store() re-initializes)."""
    global _store
    _store = None


# =============================================================================
# Typed Helpers
# =============================================================================


def load_api_key(store: KeyValueStore) -> str:
    """Return the saved Anthropic API key, or '' when none is saved."""
    return store.get(API_KEY_STORAGE_KEY) or ''


def save_api_key(store: KeyValueStore, api_key: str) -> None:
    store.set(API_KEY_STORAGE_KEY, api_key.strip())


def narrative_cache_key(prompt: str) -> str:
    """Cache key for a narrative: the prompt's SHA-256 digest."""
    digest = hashlib.sha256(prompt.encode('utf-8')).hexdigest()
    return f"{NARRATIVE_STORAGE_PREFIX}{digest}"


def load_cached_narrative(store: KeyValueStore, prompt: str) -> Optional[str]:
    return store.get(narrative_cache_key(prompt))


def save_cached_narrative(store: KeyValueStore, prompt: str, text: str) -> None:
    store.set(narrative_cache_key(prompt), text)


def load_records(store: KeyValueStore) -> AllRecords:
    """Saved personal bests; a missing or unreadable document reads as empty."""
    raw = store.get(RECORDS_STORAGE_KEY)
    if raw is None:
        return AllRecords()
    try:
        return AllRecords.model_validate_json(raw)
    except ValidationError as e:
        logger.error(f"Discarding unreadable agent records: {e}")
        return AllRecords()


def save_records(store: KeyValueStore, records: AllRecords) -> None:
    store.set(RECORDS_STORAGE_KEY, records.model_dump_json())


def clear_records(store: KeyValueStore) -> None:
    store.delete(RECORDS_STORAGE_KEY)
