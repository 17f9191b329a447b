"""
Engine facade: wires store, persistence, feedback, maintenance and retrieval
for one analysis domain.

Engines are constructed explicitly and passed to whoever needs them; there is
no process-wide instance. ``init()`` loads persisted state and starts the
background threads, ``shutdown()`` stops them and guarantees a final flush of
every mutation accepted before it was called.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from ..config import PatternSenseConfig
from ..utils import logger
from .confidence import ConfidenceModel
from .errors import EngineStoppedError, InvalidFeedbackError, MalformedObservationError
from .feedback import FeedbackOutcome, FeedbackProcessor
from .insights import acceptance_summary, adaptation_stats, behavior_insights
from .models import FeedbackEvent, Observation, Pattern, PatternKind
from .persistence import BlobStore, MemoryBlobStore, SqliteBlobStore, StateFlusher, load_state
from .retriever import Suggestion, SuggestionRetriever
from .scheduler import MaintenanceReport, MaintenanceScheduler
from .store import PatternStore

Clock = Callable[[], datetime]


@dataclass
class DomainProfile:
    """Per-domain extension point: handled kinds, feedback deltas and
    strategy weight overrides."""
    name: str
    kinds: List[PatternKind] = field(default_factory=list)
    accept_delta: float = 0.1
    reject_delta: float = 0.15
    strategy_weights: Dict[str, float] = field(default_factory=dict)

    def handles(self, kind: Any) -> bool:
        return PatternKind.parse(kind) in self.kinds


def build_domain_profiles(config: PatternSenseConfig) -> Dict[str, DomainProfile]:
    """Domain profiles from configuration; a ``general`` profile always exists."""
    confidence = config.confidence
    profiles = {}

    for name, domain in config.domains.items():
        kinds = []
        for kind in domain.kinds:
            try:
                kinds.append(PatternKind.parse(kind))
            except ValueError:
                logger.warning(f"Domain '{name}' lists unknown pattern kind: {kind}")
        profiles[name] = DomainProfile(
            name=name,
            kinds=kinds,
            accept_delta=confidence.accept_delta if domain.accept_delta is None else domain.accept_delta,
            reject_delta=confidence.reject_delta if domain.reject_delta is None else domain.reject_delta,
            strategy_weights=dict(domain.strategy_weights),
        )

    if 'general' not in profiles:
        profiles['general'] = DomainProfile(
            name='general',
            accept_delta=confidence.accept_delta,
            reject_delta=confidence.reject_delta,
        )
    return profiles


def create_blob_store(config: PatternSenseConfig) -> BlobStore:
    """Blob store selected by ``storage.backend``."""
    if config.storage.backend == 'memory':
        return MemoryBlobStore()
    return SqliteBlobStore(config.storage.db_path)


@dataclass
class ObservationBatchResult:
    """Ids of recorded observations and reasons for dropped ones."""
    pattern_ids: List[str] = field(default_factory=list)
    dropped: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def recorded(self) -> int:
        return len(self.pattern_ids)


class AdaptiveEngine:
    """Adaptive pattern confidence engine of one domain."""

    def __init__(
        self,
        config: Optional[PatternSenseConfig] = None,
        blob_store: Optional[BlobStore] = None,
        domain: str = "general",
        clock: Optional[Clock] = None,
        profile: Optional[DomainProfile] = None
    ):
        self.config = config or PatternSenseConfig()
        self.domain = domain
        self.clock = clock or datetime.now
        self.blob_store = blob_store or MemoryBlobStore()

        if profile is None:
            profiles = build_domain_profiles(self.config)
            profile = profiles.get(domain) or DomainProfile(
                name=domain,
                accept_delta=self.config.confidence.accept_delta,
                reject_delta=self.config.confidence.reject_delta,
            )
        self.profile = profile

        self.model = ConfidenceModel(self.config.confidence, profile.strategy_weights)
        self.store = PatternStore(
            self.model,
            domain=domain,
            clock=self.clock,
            on_mutation=self._on_mutation
        )
        self.flusher = StateFlusher(
            self.store,
            self.blob_store,
            interval=self.config.storage.flush_interval,
            batch_size=self.config.storage.flush_batch_size
        )
        self.feedback_processor = FeedbackProcessor(
            self.store,
            accept_delta=profile.accept_delta,
            reject_delta=profile.reject_delta
        )
        self.retriever = SuggestionRetriever(self.store)
        self.scheduler = MaintenanceScheduler(self.store, self.config.scheduler, self.clock)
        self._running = False

    def _on_mutation(self):
        self.flusher.mark_dirty()

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    def init(self, start_scheduler: Optional[bool] = None) -> 'AdaptiveEngine':
        """Load persisted state and start the writer, flusher and scheduler."""
        if self._running:
            logger.info(f"Engine for domain '{self.domain}' is already running")
            return self

        patterns, behavior = load_state(self.blob_store, self.domain, self.model, now=self.clock())
        self.store.restore(patterns, behavior)
        self.store.start()
        self.flusher.start()

        if start_scheduler is None:
            start_scheduler = self.config.scheduler.enabled
        if start_scheduler:
            self.scheduler.start()

        self._running = True
        logger.info(f"Adaptive engine started for domain '{self.domain}' with {len(self.store)} patterns")
        return self

    def shutdown(self) -> bool:
        """Stop background work and flush. Returns False if the final flush failed."""
        if not self._running:
            return True
        self._running = False

        self.scheduler.stop()
        self.store.stop()
        flushed = self.flusher.stop()

        if flushed:
            logger.info(f"Adaptive engine stopped for domain '{self.domain}'")
        else:
            logger.error(f"Adaptive engine for '{self.domain}' stopped with unflushed state")
        return flushed

    def __enter__(self) -> 'AdaptiveEngine':
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    # Observations

    def observe(self, observation: Union[Observation, Mapping[str, Any]]) -> Optional[str]:
        """Record one observation; returns the pattern id or None when dropped."""
        try:
            if not isinstance(observation, Observation):
                observation = Observation.from_dict(observation)
            clean = observation.validate()
        except (MalformedObservationError, AttributeError) as e:
            logger.warning(f"Dropping malformed observation: {e}")
            return None

        try:
            return self.store.upsert(clean.kind, clean.content, clean.language, clean.context)
        except EngineStoppedError as e:
            logger.warning(f"Observation not recorded: {e}")
            return None

    def observe_batch(self, observations: Iterable[Union[Observation, Mapping[str, Any]]]) -> ObservationBatchResult:
        """Record many observations; malformed ones are dropped individually."""
        result = ObservationBatchResult()
        for index, observation in enumerate(observations):
            try:
                if not isinstance(observation, Observation):
                    observation = Observation.from_dict(observation)
                clean = observation.validate()
            except (MalformedObservationError, AttributeError) as e:
                logger.warning(f"Dropping malformed observation #{index}: {e}")
                result.dropped.append((index, str(e)))
                continue

            try:
                pattern_id = self.store.upsert(clean.kind, clean.content, clean.language, clean.context)
            except EngineStoppedError as e:
                result.dropped.append((index, str(e)))
                continue
            result.pattern_ids.append(pattern_id)

        if result.dropped:
            logger.info(f"Recorded {result.recorded} observations, dropped {len(result.dropped)}")
        return result

    # Feedback

    def feedback(self, event: FeedbackEvent) -> FeedbackOutcome:
        """Apply feedback to the pattern the event names."""
        if not event.pattern_id:
            error = InvalidFeedbackError("", "Feedback event carries no pattern id")
            logger.warning(str(error))
            return FeedbackOutcome(pattern_id=None, action=event.action, error=error)

        return self.feedback_processor.apply_feedback(
            event.pattern_id,
            event.action,
            timestamp=event.timestamp,
            context=event.context,
            suggestion_type=event.suggestion_type or None,
            reason=event.reason
        )

    def feedback_related(self, event: FeedbackEvent) -> List[FeedbackOutcome]:
        """Apply feedback to every pattern related to the suggestion text."""
        return self.feedback_processor.apply_related(event)

    # Retrieval

    def suggestions(
        self,
        language: str,
        query_context: Optional[Mapping[str, Any]] = None,
        min_confidence: float = 0.0,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[Any]] = None
    ) -> List[Suggestion]:
        """Ranked suggestions for a language and query context."""
        return self.retriever.get_suggestions(
            language,
            query_context,
            min_confidence=min_confidence,
            limit=limit,
            kinds=kinds
        )

    def mark_surfaced(self, pattern_ids: Iterable[str]) -> int:
        """Count patterns as suggested after they were shown to the user.

        Only needed when ``count_observations_as_suggested`` is off.
        """
        try:
            return self.store.mark_surfaced(pattern_ids)
        except EngineStoppedError as e:
            logger.warning(f"Surfaced patterns not recorded: {e}")
            return 0

    def get_pattern(self, pattern_id: str) -> Optional[Pattern]:
        return self.store.get(pattern_id)

    # Maintenance and insights

    def maintain(self, now: Optional[datetime] = None) -> Optional[MaintenanceReport]:
        """Run one maintenance sweep now."""
        try:
            return self.scheduler.run_once(now)
        except EngineStoppedError as e:
            logger.warning(f"Maintenance skipped: {e}")
            return None

    def flush(self) -> bool:
        return self.flusher.flush(force=True)

    def stats(self) -> Dict[str, Any]:
        return adaptation_stats(self.store, self.model)

    def acceptance_summary(self) -> Dict[str, Any]:
        return acceptance_summary(self.store)

    def behavior_insights(self) -> Dict[str, Any]:
        return behavior_insights(self.store.behavior())


class EngineSuite:
    """One engine per configured domain, all sharing one blob store."""

    def __init__(
        self,
        config: Optional[PatternSenseConfig] = None,
        blob_store: Optional[BlobStore] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or PatternSenseConfig()
        self.blob_store = blob_store or create_blob_store(self.config)
        self.profiles = build_domain_profiles(self.config)
        self.engines: Dict[str, AdaptiveEngine] = {
            name: AdaptiveEngine(self.config, self.blob_store, domain=name, clock=clock, profile=profile)
            for name, profile in self.profiles.items()
        }

    def init(self, start_scheduler: Optional[bool] = None) -> 'EngineSuite':
        for engine in self.engines.values():
            engine.init(start_scheduler)
        return self

    def shutdown(self) -> bool:
        results = [engine.shutdown() for engine in self.engines.values()]
        return all(results)

    def __enter__(self) -> 'EngineSuite':
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def __getitem__(self, domain: str) -> AdaptiveEngine:
        return self.engines[domain]

    def __iter__(self) -> Iterator[AdaptiveEngine]:
        return iter(self.engines.values())

    def __len__(self) -> int:
        return len(self.engines)

    def engine_for(self, kind: Any) -> AdaptiveEngine:
        """Most specific engine handling ``kind``, falling back to general."""
        kind = PatternKind.parse(kind)
        for name, profile in self.profiles.items():
            if name != 'general' and profile.handles(kind):
                return self.engines[name]
        return self.engines['general']

    def observe(self, observation: Union[Observation, Mapping[str, Any]]) -> Optional[str]:
        """Route an observation to the engine of its kind."""
        kind = observation.kind if isinstance(observation, Observation) else observation.get('kind')
        try:
            engine = self.engine_for(kind)
        except ValueError:
            engine = self.engines['general']
        return engine.observe(observation)
