"""
Data model of the adaptive pattern confidence engine.

Patterns are content-addressed: the id is a digest of the identity tuple
(kind, content, language, context), so re-observing the same rule updates the
existing record instead of creating a new one.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any, Mapping

from ..constants import SCHEMA_VERSION
from ..utils import json_safe, stable_digest, parse_timestamp, to_naive_local
from .errors import MalformedObservationError


class PatternKind(str, Enum):
    """Category of a learned pattern."""
    SYNTAX = "syntax"
    NAMING = "naming"
    STRUCTURE = "structure"
    STYLE = "style"
    REFACTOR = "refactor"
    TEST = "test"
    DOC = "doc"
    ERROR_HANDLING = "error_handling"
    PERSONALITY = "personality"

    @classmethod
    def parse(cls, value: Any) -> 'PatternKind':
        """Accept enum members, values and the legacy spellings."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        return cls(_KIND_ALIASES.get(text, text))


_KIND_ALIASES = {
    'refactoring': 'refactor',
    'testing': 'test',
    'documentation': 'doc',
    'error-handling': 'error_handling',
    'errorhandling': 'error_handling',
}


class FeedbackAction(str, Enum):
    """What the user did with a surfaced suggestion."""
    ACCEPT = "accept"
    REJECT = "reject"
    IGNORE = "ignore"


class AdaptationReason(str, Enum):
    """Why a pattern's confidence changed."""
    USER_FEEDBACK = "user_feedback"
    TEMPORAL_CHANGE = "temporal_change"
    CONTEXT_CHANGE = "context_change"
    CONFIDENCE_THRESHOLD = "confidence_threshold"


def pattern_id_for(kind: Any, content: str, language: str, context: Optional[Mapping[str, Any]]) -> str:
    """Derive the stable id of a pattern from its identity tuple."""
    kind_value = PatternKind.parse(kind).value
    return "pattern_" + stable_digest([kind_value, content, language, dict(context or {})])


def normalize_context(context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy a context into plain JSON types so it can be persisted."""
    if context is None:
        return {}
    if not isinstance(context, Mapping):
        raise MalformedObservationError("observation context must be a mapping")
    try:
        return json_safe(context)
    except TypeError as e:
        raise MalformedObservationError(f"observation context cannot be stored: {e}")


@dataclass
class UsageStats:
    """Usage counters of a pattern."""
    suggested_count: int = 0
    accepted_count: int = 0
    rejected_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)
    last_decayed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'suggested_count': self.suggested_count,
            'accepted_count': self.accepted_count,
            'rejected_count': self.rejected_count,
            'last_used': self.last_used.isoformat(),
            'last_decayed_at': self.last_decayed_at.isoformat() if self.last_decayed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_time: datetime) -> 'UsageStats':
        last_decayed = data.get('last_decayed_at')
        return cls(
            suggested_count=int(data.get('suggested_count', data.get('suggested', 0)) or 0),
            accepted_count=int(data.get('accepted_count', data.get('accepted', 0)) or 0),
            rejected_count=int(data.get('rejected_count', data.get('rejected', 0)) or 0),
            last_used=parse_timestamp(data.get('last_used', data.get('lastUsed')), default_time),
            last_decayed_at=parse_timestamp(last_decayed, default_time) if last_decayed else None,
        )


@dataclass(frozen=True)
class AdaptationEvent:
    """One entry of a pattern's append-only adaptation log."""
    timestamp: datetime
    reason: AdaptationReason
    old_confidence: float
    new_confidence: float
    description: str = ""

    @property
    def delta(self) -> float:
        return self.new_confidence - self.old_confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'reason': self.reason.value,
            'old_confidence': self.old_confidence,
            'new_confidence': self.new_confidence,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_time: datetime) -> 'AdaptationEvent':
        return cls(
            timestamp=parse_timestamp(data.get('timestamp'), default_time),
            reason=AdaptationReason(data.get('reason', AdaptationReason.USER_FEEDBACK.value)),
            old_confidence=float(data.get('old_confidence', data.get('oldConfidence', 0.0))),
            new_confidence=float(data.get('new_confidence', data.get('newConfidence', 0.0))),
            description=str(data.get('description', '')),
        )


@dataclass
class Pattern:
    """A learned rule together with its confidence and usage history."""
    pattern_id: str
    kind: PatternKind
    content: str
    language: str
    context: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.5
    usage: UsageStats = field(default_factory=UsageStats)
    adaptation_history: List[AdaptationEvent] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def acceptance_rate(self) -> float:
        """Accepted share of all suggestions (0 when never suggested)."""
        return self.usage.accepted_count / max(self.usage.suggested_count, 1)

    def record_adaptation(
        self,
        reason: AdaptationReason,
        old_confidence: float,
        new_confidence: float,
        description: str,
        timestamp: datetime
    ) -> AdaptationEvent:
        """Append an adaptation event; history timestamps never go backwards."""
        timestamp = to_naive_local(timestamp)
        if self.adaptation_history and timestamp < self.adaptation_history[-1].timestamp:
            timestamp = self.adaptation_history[-1].timestamp
        event = AdaptationEvent(
            timestamp=timestamp,
            reason=reason,
            old_confidence=old_confidence,
            new_confidence=new_confidence,
            description=description
        )
        self.adaptation_history.append(event)
        return event

    def copy(self) -> 'Pattern':
        """Independent copy; events are immutable and shared."""
        return replace(
            self,
            context=copy.deepcopy(self.context),
            usage=replace(self.usage),
            adaptation_history=list(self.adaptation_history)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            'pattern_id': self.pattern_id,
            'kind': self.kind.value,
            'content': self.content,
            'language': self.language,
            'context': self.context,
            'confidence': self.confidence,
            'usage': self.usage.to_dict(),
            'adaptation_history': [e.to_dict() for e in self.adaptation_history],
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], now: Optional[datetime] = None) -> 'Pattern':
        """Create from a stored document.

        Unknown fields are ignored and missing ones take defaults, so documents
        written by older releases (including the editor host's camelCase
        layout) still load.
        """
        now = now or datetime.now()
        kind = PatternKind.parse(data.get('kind', data.get('patternType', PatternKind.SYNTAX.value)))
        content = data.get('content', data.get('pattern'))
        language = data.get('language')
        if not content or not language:
            raise ValueError("stored pattern lacks content or language")
        context = dict(data.get('context') or {})
        history = data.get('adaptation_history', data.get('adaptations')) or []
        return cls(
            pattern_id=data.get('pattern_id') or data.get('patternId') or pattern_id_for(kind, content, language, context),
            kind=kind,
            content=content,
            language=language,
            context=context,
            confidence=float(data.get('confidence', 0.5)),
            usage=UsageStats.from_dict(data.get('usage') or {}, now),
            adaptation_history=[AdaptationEvent.from_dict(e, now) for e in history],
            created_at=parse_timestamp(data.get('created_at'), now),
        )


@dataclass
class Observation:
    """A pattern occurrence reported by the text-scanning heuristics."""
    kind: Any
    content: str
    language: str
    context: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> 'Observation':
        """Normalize and check required fields, returning a clean copy."""
        if self.kind is None or self.kind == '':
            raise MalformedObservationError("observation has no kind")
        try:
            kind = PatternKind.parse(self.kind)
        except ValueError:
            raise MalformedObservationError(f"unknown pattern kind: {self.kind}")
        if not isinstance(self.content, str) or not self.content.strip():
            raise MalformedObservationError("observation has no content")
        if not isinstance(self.language, str) or not self.language.strip():
            raise MalformedObservationError("observation has no language")
        context = normalize_context(self.context)
        return Observation(kind=kind, content=self.content, language=self.language.strip(), context=context)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Observation':
        return cls(
            kind=data.get('kind'),
            content=data.get('content'),
            language=data.get('language'),
            context=data.get('context') or {},
        )


@dataclass
class FeedbackEvent:
    """A user action against a previously surfaced suggestion."""
    pattern_id: Optional[str]
    action: FeedbackAction
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    suggestion_text: str = ""
    suggestion_type: str = ""
    reason: Optional[str] = None

    @property
    def language(self) -> Optional[str]:
        return self.context.get('language')


def _bump(bucket: Dict[str, Dict[str, int]], key: str, action: FeedbackAction):
    stats = bucket.setdefault(key, {'accepted': 0, 'rejected': 0, 'ignored': 0, 'total': 0})
    stats['total'] += 1
    if action == FeedbackAction.ACCEPT:
        stats['accepted'] += 1
    elif action == FeedbackAction.REJECT:
        stats['rejected'] += 1
    else:
        stats['ignored'] += 1


@dataclass
class UserBehaviorAggregate:
    """Coarse per-domain preference accumulator, independent of pattern identity.

    Fed by the same feedback events as pattern confidence, but purely additive
    and never decayed.
    """
    domain: str = "general"
    preferences: Dict[str, float] = field(default_factory=dict)
    action_counts: Dict[str, int] = field(default_factory=dict)
    language_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    suggestion_type_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    hourly_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    rejection_reasons: Dict[str, int] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    NEUTRAL_PREFERENCE = 0.5

    def record(
        self,
        action: FeedbackAction,
        timestamp: datetime,
        category: Optional[str] = None,
        language: Optional[str] = None,
        suggestion_type: Optional[str] = None,
        reason: Optional[str] = None,
        step: float = 0.1
    ):
        """Fold one feedback event into the aggregate."""
        self.action_counts[action.value] = self.action_counts.get(action.value, 0) + 1

        if category and action != FeedbackAction.IGNORE:
            current = self.preferences.get(category, self.NEUTRAL_PREFERENCE)
            if action == FeedbackAction.ACCEPT:
                self.preferences[category] = min(1.0, current + step)
            else:
                self.preferences[category] = max(0.0, current - step)

        if language:
            _bump(self.language_stats, language, action)
        if suggestion_type:
            _bump(self.suggestion_type_stats, suggestion_type, action)
        _bump(self.hourly_stats, f"{timestamp.hour}:00", action)

        if action == FeedbackAction.REJECT and reason:
            self.rejection_reasons[reason] = self.rejection_reasons.get(reason, 0) + 1

        self.updated_at = timestamp

    def copy(self) -> 'UserBehaviorAggregate':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': SCHEMA_VERSION,
            'domain': self.domain,
            'preferences': self.preferences,
            'action_counts': self.action_counts,
            'language_stats': self.language_stats,
            'suggestion_type_stats': self.suggestion_type_stats,
            'hourly_stats': self.hourly_stats,
            'rejection_reasons': self.rejection_reasons,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], domain: str = "general") -> 'UserBehaviorAggregate':
        updated = data.get('updated_at')
        return cls(
            domain=data.get('domain', domain),
            preferences={k: float(v) for k, v in (data.get('preferences') or {}).items()},
            action_counts={k: int(v) for k, v in (data.get('action_counts') or {}).items()},
            language_stats=dict(data.get('language_stats') or {}),
            suggestion_type_stats=dict(data.get('suggestion_type_stats') or {}),
            hourly_stats=dict(data.get('hourly_stats') or {}),
            rejection_reasons={k: int(v) for k, v in (data.get('rejection_reasons') or {}).items()},
            updated_at=parse_timestamp(updated, datetime.now()) if updated else None,
        )
