"""
Durable state for the pattern engine.

Each engine instance persists two documents: the pattern-id to record map and
the behavior aggregate. Writes are decoupled from the request path by the
StateFlusher, which batches mutations and flushes on a timer.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..utils import logger
from .confidence import ConfidenceModel
from .errors import StorageReadError, StorageWriteError
from .models import AdaptationReason, Pattern, UserBehaviorAggregate


def patterns_key(domain: str) -> str:
    return f"{domain}/patterns"


def behavior_key(domain: str) -> str:
    return f"{domain}/behavior"


class BlobStore(ABC):
    """Opaque key to JSON-document storage."""

    @abstractmethod
    def read(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the document stored under ``key`` or None if absent."""

    @abstractmethod
    def write(self, key: str, document: Dict[str, Any]):
        """Store ``document`` under ``key``, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a document; True if something was deleted."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored keys."""


class MemoryBlobStore(BlobStore):
    """In-process blob store for tests and throwaway sessions."""

    def __init__(self):
        self._blobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            raw = self._blobs.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageReadError(f"Corrupt blob '{key}': {e}")

    def write(self, key: str, document: Dict[str, Any]):
        try:
            raw = json.dumps(document)
        except (TypeError, ValueError) as e:
            raise StorageWriteError(f"Cannot serialize blob '{key}': {e}")
        with self._lock:
            self._blobs[key] = raw

    def write_raw(self, key: str, raw: str):
        """Store text verbatim; lets tests plant corrupt blobs."""
        with self._lock:
            self._blobs[key] = raw

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._blobs.keys())


class SqliteBlobStore(BlobStore):
    """Blob store backed by a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS blobs (
                    key TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("SELECT document FROM blobs WHERE key = ?", (key,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(f"Cannot read blob '{key}': {e}")

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            raise StorageReadError(f"Corrupt blob '{key}': {e}")

    def write(self, key: str, document: Dict[str, Any]):
        try:
            raw = json.dumps(document)
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO blobs VALUES (?, ?, ?)",
                    (key, raw, datetime.now().isoformat())
                )
        except (TypeError, ValueError, sqlite3.Error) as e:
            raise StorageWriteError(f"Cannot write blob '{key}': {e}")

    def delete(self, key: str) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageWriteError(f"Cannot delete blob '{key}': {e}")

    def keys(self) -> List[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                return [row[0] for row in conn.execute("SELECT key FROM blobs ORDER BY key")]
        except sqlite3.Error as e:
            raise StorageReadError(f"Cannot list blobs: {e}")


def _read_patterns(
    blob_store: BlobStore,
    domain: str,
    model: ConfidenceModel,
    now: datetime
) -> List[Pattern]:
    document = blob_store.read(patterns_key(domain))
    if document is None:
        logger.info(f"No persisted patterns for domain '{domain}'")
        return []
    if not isinstance(document, dict):
        raise StorageReadError(f"Pattern blob for '{domain}' is not a mapping")

    # Documents without a schema version are the editor host's flat id -> record map
    if 'schema_version' in document:
        records = document.get('patterns') or {}
    else:
        records = document
    if not isinstance(records, dict):
        raise StorageReadError(f"Pattern map for '{domain}' is not a mapping")

    patterns = []
    for key, data in records.items():
        try:
            pattern = Pattern.from_dict(data, now=now)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Skipping malformed stored pattern {key}: {e}")
            continue

        clamped = model.clamp(pattern.confidence)
        if clamped != pattern.confidence:
            pattern.record_adaptation(
                AdaptationReason.CONFIDENCE_THRESHOLD,
                pattern.confidence,
                clamped,
                "Stored confidence clamped into configured bounds",
                now
            )
            pattern.confidence = clamped
        patterns.append(pattern)

    return patterns


def load_state(
    blob_store: BlobStore,
    domain: str,
    model: ConfidenceModel,
    now: Optional[datetime] = None
) -> Tuple[List[Pattern], UserBehaviorAggregate]:
    """Load persisted patterns and behavior, falling back to empty state."""
    now = now or datetime.now()

    try:
        patterns = _read_patterns(blob_store, domain, model, now)
    except StorageReadError as e:
        logger.error(f"Could not load patterns for '{domain}', starting empty: {e}")
        patterns = []

    behavior = UserBehaviorAggregate(domain=domain)
    try:
        document = blob_store.read(behavior_key(domain))
        if document is not None:
            if not isinstance(document, dict):
                raise StorageReadError(f"Behavior blob for '{domain}' is not a mapping")
            behavior = UserBehaviorAggregate.from_dict(document, domain=domain)
    except (StorageReadError, ValueError, TypeError) as e:
        logger.error(f"Could not load behavior for '{domain}', starting empty: {e}")

    logger.info(f"Loaded {len(patterns)} learned patterns for domain '{domain}'")
    return patterns, behavior


def save_state(store, blob_store: BlobStore):
    """Write the store's current documents; raises StorageWriteError."""
    patterns_doc, behavior_doc = store.export_documents()
    blob_store.write(patterns_key(store.domain), patterns_doc)
    blob_store.write(behavior_key(store.domain), behavior_doc)


class StateFlusher:
    """Background writer that persists the store after batches of mutations.

    ``mark_dirty`` is cheap and never blocks on I/O. A flush happens when
    ``batch_size`` mutations have accumulated or every ``interval`` seconds,
    whichever comes first. Failed writes stay dirty and are retried.
    """

    def __init__(
        self,
        store,
        blob_store: BlobStore,
        interval: float = 30.0,
        batch_size: int = 20
    ):
        self.store = store
        self.blob_store = blob_store
        self.interval = interval
        self.batch_size = batch_size

        self.flush_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self._wake = threading.Event()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._dirty = 0

        self.flush_count = 0
        self.failure_count = 0
        self.last_flush: Optional[datetime] = None

    @property
    def pending(self) -> int:
        with self._lock:
            return self._dirty

    def mark_dirty(self):
        with self._lock:
            self._dirty += 1
            full = self._dirty >= self.batch_size
        if full:
            self._wake.set()

    def start(self):
        if self.flush_thread and self.flush_thread.is_alive():
            return
        self.stop_event.clear()
        self.flush_thread = threading.Thread(
            target=self._flush_loop,
            name=f"state-flusher-{self.store.domain}",
            daemon=True
        )
        self.flush_thread.start()

    def stop(self) -> bool:
        """Stop the loop and perform a final flush."""
        self.stop_event.set()
        self._wake.set()
        if self.flush_thread:
            self.flush_thread.join(timeout=10)
        return self.flush()

    def _flush_loop(self):
        while not self.stop_event.is_set():
            self._wake.wait(self.interval)
            self._wake.clear()
            if self.stop_event.is_set():
                break
            self.flush()

    def flush(self, force: bool = False) -> bool:
        """Write state if dirty. Returns False when the write failed."""
        with self._flush_lock:
            with self._lock:
                pending = self._dirty
            if pending == 0 and not force:
                return True

            try:
                save_state(self.store, self.blob_store)
            except StorageWriteError as e:
                self.failure_count += 1
                logger.error(f"Flush failed, will retry on next tick: {e}")
                return False

            with self._lock:
                self._dirty = max(0, self._dirty - pending)
            self.flush_count += 1
            self.last_flush = datetime.now()
            logger.debug(f"Flushed {pending} pending mutations for domain '{self.store.domain}'")
            return True
