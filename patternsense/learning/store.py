"""
Pattern record store.

All mutations (upserts, feedback, decay, cleanup) run on one dedicated writer
thread that drains a FIFO queue, so read-modify-write updates of a record can
never interleave. Writers work on copies and commit them by swapping the
reference under a short lock; readers take the references under the same lock.
Committed records are never mutated in place, which is what makes a snapshot
consistent without copying the whole store up front.
"""

import queue
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..constants import SCHEMA_VERSION
from ..utils import logger
from .confidence import ConfidenceModel
from .errors import EngineStoppedError
from .models import (
    Pattern, PatternKind, UsageStats, UserBehaviorAggregate, normalize_context, pattern_id_for
)

_STOP = object()


class PatternSnapshot(Sequence):
    """Immutable, restartable view of the store at one instant.

    Iteration yields copies, so callers may modify what they get without
    touching the store.
    """

    def __init__(self, records: Tuple[Pattern, ...]):
        self._records = records

    def __iter__(self) -> Iterator[Pattern]:
        for record in self._records:
            yield record.copy()

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [r.copy() for r in self._records[index]]
        return self._records[index].copy()

    def ids(self) -> List[str]:
        return [r.pattern_id for r in self._records]


class StoreTransaction:
    """Write access handed to mutation functions on the writer thread."""

    def __init__(self, store: 'PatternStore'):
        self._store = store

    def get(self, pattern_id: str) -> Optional[Pattern]:
        """Working copy of a record; changes apply only after ``put``."""
        record = self._store._records.get(pattern_id)
        return record.copy() if record else None

    def put(self, pattern: Pattern):
        committed = pattern.copy()
        with self._store._lock:
            self._store._records[pattern.pattern_id] = committed

    def remove(self, pattern_id: str) -> bool:
        with self._store._lock:
            return self._store._records.pop(pattern_id, None) is not None

    def pattern_ids(self) -> List[str]:
        return list(self._store._records.keys())

    def behavior(self) -> UserBehaviorAggregate:
        return self._store._behavior.copy()

    def put_behavior(self, behavior: UserBehaviorAggregate):
        committed = behavior.copy()
        with self._store._lock:
            self._store._behavior = committed

    def replace_all(self, records: Iterable[Pattern], behavior: Optional[UserBehaviorAggregate] = None):
        fresh = {r.pattern_id: r.copy() for r in records}
        with self._store._lock:
            self._store._records = fresh
            if behavior is not None:
                self._store._behavior = behavior.copy()

    @property
    def now(self) -> datetime:
        return self._store.clock()


class PatternStore:
    """Keyed collection of patterns with single-writer mutation semantics."""

    def __init__(
        self,
        model: Optional[ConfidenceModel] = None,
        domain: str = "general",
        clock: Optional[Callable[[], datetime]] = None,
        on_mutation: Optional[Callable[[], None]] = None
    ):
        self.model = model or ConfidenceModel()
        self.domain = domain
        self.clock = clock or datetime.now
        self.on_mutation = on_mutation

        self._records: Dict[str, Pattern] = {}
        self._behavior = UserBehaviorAggregate(domain=domain)
        self._lock = threading.Lock()

        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._state_lock = threading.Lock()
        self._accepting = False
        self._writer: Optional[threading.Thread] = None
        self._txn = StoreTransaction(self)

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._writer is not None and self._writer.is_alive()

    def start(self):
        """Start the writer thread."""
        with self._state_lock:
            if self._accepting:
                logger.debug("Pattern store writer is already running")
                return
            self._writer = threading.Thread(
                target=self._writer_loop,
                name=f"pattern-store-{self.domain}",
                daemon=True
            )
            self._accepting = True
            self._writer.start()
        logger.debug(f"Pattern store writer started for domain '{self.domain}'")

    def stop(self, timeout: Optional[float] = 10.0):
        """Stop accepting mutations, finish the queued ones, then exit."""
        with self._state_lock:
            if not self._accepting:
                return
            self._accepting = False
            self._queue.put(_STOP)

        if self._writer and threading.current_thread() is not self._writer:
            self._writer.join(timeout=timeout)
        logger.debug(f"Pattern store writer stopped for domain '{self.domain}'")

    def _writer_loop(self):
        while True:
            request = self._queue.get()
            if request is _STOP:
                break

            fn, future = request
            if not future.set_running_or_notify_cancel():
                continue

            try:
                result = fn(self._txn)
            except Exception as e:
                logger.error(f"Pattern store mutation failed: {e}")
                future.set_exception(e)
                continue

            future.set_result(result)
            if self.on_mutation:
                self.on_mutation()

    # Mutation entry points

    def submit(self, fn: Callable[[StoreTransaction], Any]) -> Future:
        """Queue a mutation for the writer thread."""
        if self._writer is not None and threading.current_thread() is self._writer:
            # Nested call from a running mutation; already serialized
            future: Future = Future()
            future.set_result(fn(self._txn))
            return future

        with self._state_lock:
            if not self._accepting:
                raise EngineStoppedError("pattern store is not accepting mutations")
            future = Future()
            self._queue.put((fn, future))
        return future

    def execute(self, fn: Callable[[StoreTransaction], Any], timeout: Optional[float] = None) -> Any:
        """Run a mutation on the writer thread and wait for its result."""
        return self.submit(fn).result(timeout=timeout)

    def upsert(
        self,
        kind: Any,
        content: str,
        language: str,
        context: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> str:
        """Create a pattern on first observation, otherwise refresh its usage."""
        kind = PatternKind.parse(kind)
        context = normalize_context(context)
        pattern_id = pattern_id_for(kind, content, language, context)
        count_observation = self.model.config.count_observations_as_suggested

        def mutation(txn: StoreTransaction) -> str:
            timestamp = now or txn.now
            pattern = txn.get(pattern_id)

            if pattern is None:
                pattern = Pattern(
                    pattern_id=pattern_id,
                    kind=kind,
                    content=content,
                    language=language,
                    context=context,
                    confidence=self.model.initial_confidence,
                    usage=UsageStats(
                        suggested_count=1 if count_observation else 0,
                        last_used=timestamp
                    ),
                    created_at=timestamp
                )
                logger.debug(f"Learned new pattern {pattern_id} ({kind.value}, {language})")
            else:
                if count_observation:
                    pattern.usage.suggested_count += 1
                pattern.usage.last_used = timestamp

            txn.put(pattern)
            return pattern_id

        return self.execute(mutation)

    def mark_surfaced(self, pattern_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        """Count patterns as suggested because they were shown to the user."""
        ids = list(pattern_ids)

        def mutation(txn: StoreTransaction) -> int:
            timestamp = now or txn.now
            updated = 0
            for pattern_id in ids:
                pattern = txn.get(pattern_id)
                if pattern is None:
                    continue
                pattern.usage.suggested_count += 1
                pattern.usage.last_used = timestamp
                txn.put(pattern)
                updated += 1
            return updated

        return self.execute(mutation)

    def remove(self, pattern_id: str) -> bool:
        """Delete a pattern. Reserved for maintenance sweeps."""
        return self.execute(lambda txn: txn.remove(pattern_id))

    def restore(self, patterns: Iterable[Pattern], behavior: Optional[UserBehaviorAggregate] = None):
        """Replace the whole state, e.g. with what was loaded from storage."""
        records = list(patterns)
        if self.is_running:
            self.execute(lambda txn: txn.replace_all(records, behavior))
        else:
            self._txn.replace_all(records, behavior)

    # Reads

    def get(self, pattern_id: str) -> Optional[Pattern]:
        with self._lock:
            record = self._records.get(pattern_id)
        return record.copy() if record else None

    def all(self) -> PatternSnapshot:
        """Snapshot of every pattern in insertion order."""
        with self._lock:
            records = tuple(self._records.values())
        return PatternSnapshot(records)

    def behavior(self) -> UserBehaviorAggregate:
        with self._lock:
            behavior = self._behavior
        return behavior.copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, pattern_id: str) -> bool:
        with self._lock:
            return pattern_id in self._records

    def export_documents(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Serializable pattern map and behavior aggregate at one instant."""
        with self._lock:
            records = tuple(self._records.values())
            behavior = self._behavior

        patterns_doc = {
            'schema_version': SCHEMA_VERSION,
            'domain': self.domain,
            'patterns': {r.pattern_id: r.to_dict() for r in records},
        }
        return patterns_doc, behavior.to_dict()
