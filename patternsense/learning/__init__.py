"""Adaptive pattern confidence engine."""

from .errors import (
    PatternEngineError,
    StorageReadError,
    StorageWriteError,
    MalformedObservationError,
    InvalidFeedbackError,
    EngineStoppedError,
    ConcurrentMutationConflict
)
from .models import (
    PatternKind,
    FeedbackAction,
    AdaptationReason,
    AdaptationEvent,
    UsageStats,
    Pattern,
    Observation,
    FeedbackEvent,
    UserBehaviorAggregate
)
from .confidence import ConfidenceModel
from .store import PatternStore
from .persistence import BlobStore, MemoryBlobStore, SqliteBlobStore, StateFlusher
from .feedback import FeedbackOutcome, FeedbackProcessor
from .scheduler import MaintenanceReport, MaintenanceScheduler
from .retriever import Suggestion, SuggestionRetriever
from .engine import (
    AdaptiveEngine,
    DomainProfile,
    EngineSuite,
    ObservationBatchResult,
    create_blob_store
)

__all__ = [
    'PatternEngineError',
    'StorageReadError',
    'StorageWriteError',
    'MalformedObservationError',
    'InvalidFeedbackError',
    'EngineStoppedError',
    'ConcurrentMutationConflict',
    'PatternKind',
    'FeedbackAction',
    'AdaptationReason',
    'AdaptationEvent',
    'UsageStats',
    'Pattern',
    'Observation',
    'FeedbackEvent',
    'UserBehaviorAggregate',
    'ConfidenceModel',
    'PatternStore',
    'BlobStore',
    'MemoryBlobStore',
    'SqliteBlobStore',
    'StateFlusher',
    'FeedbackOutcome',
    'FeedbackProcessor',
    'MaintenanceReport',
    'MaintenanceScheduler',
    'Suggestion',
    'SuggestionRetriever',
    'AdaptiveEngine',
    'DomainProfile',
    'EngineSuite',
    'ObservationBatchResult',
    'create_blob_store'
]
