"""
Read-only statistics over learned patterns and user behavior.
"""

from collections import Counter
from typing import Any, Dict, List, Mapping

import numpy as np

from .confidence import ConfidenceModel
from .models import UserBehaviorAggregate
from .store import PatternStore

PREFERRED_CATEGORY_SCORE = 0.6


def _rate(accepted: int, total: int) -> float:
    return accepted / total if total > 0 else 0.0


def adaptation_stats(
    store: PatternStore,
    model: ConfidenceModel,
    top_n: int = 10,
    recent_n: int = 20
) -> Dict[str, Any]:
    """Summary of the store for dashboards."""
    patterns = list(store.all())
    confidences = np.array([p.confidence for p in patterns], dtype=float)

    top = sorted(patterns, key=lambda p: p.confidence, reverse=True)[:top_n]

    events = [
        (pattern.pattern_id, event)
        for pattern in patterns
        for event in pattern.adaptation_history
    ]
    events.sort(key=lambda item: item[1].timestamp, reverse=True)

    return {
        'domain': store.domain,
        'total_patterns': len(patterns),
        'average_confidence': float(np.mean(confidences)) if confidences.size else 0.0,
        'confidence_spread': float(np.std(confidences)) if confidences.size else 0.0,
        'top_patterns': [
            {
                'pattern_id': p.pattern_id,
                'kind': p.kind.value,
                'content': p.content,
                'language': p.language,
                'confidence': p.confidence,
                'acceptance_rate': p.acceptance_rate,
            }
            for p in top
        ],
        'recent_adaptations': [
            dict(event.to_dict(), pattern_id=pattern_id)
            for pattern_id, event in events[:recent_n]
        ],
        'strategy_effectiveness': model.strategy_effectiveness(),
    }


def acceptance_summary(store: PatternStore) -> Dict[str, Any]:
    """Suggested/accepted/rejected totals overall, per kind and per language."""
    totals = np.zeros(3, dtype=int)
    by_kind: Dict[str, np.ndarray] = {}
    by_language: Dict[str, np.ndarray] = {}

    for pattern in store.all():
        counts = np.array([
            pattern.usage.suggested_count,
            pattern.usage.accepted_count,
            pattern.usage.rejected_count,
        ])
        totals += counts
        by_kind[pattern.kind.value] = by_kind.get(pattern.kind.value, np.zeros(3, dtype=int)) + counts
        by_language[pattern.language] = by_language.get(pattern.language, np.zeros(3, dtype=int)) + counts

    def summarize(counts: np.ndarray) -> Dict[str, Any]:
        suggested, accepted, rejected = (int(c) for c in counts)
        return {
            'suggested': suggested,
            'accepted': accepted,
            'rejected': rejected,
            'acceptance_rate': _rate(accepted, suggested),
        }

    summary = summarize(totals)
    summary['by_kind'] = {kind: summarize(c) for kind, c in sorted(by_kind.items())}
    summary['by_language'] = {lang: summarize(c) for lang, c in sorted(by_language.items())}
    return summary


def _bucket_rates(buckets: Mapping[str, Mapping[str, int]]) -> Dict[str, float]:
    return {
        key: _rate(stats.get('accepted', 0), stats.get('total', 0))
        for key, stats in buckets.items()
    }


def behavior_insights(aggregate: UserBehaviorAggregate, top_reasons: int = 5) -> Dict[str, Any]:
    """What the user tends to accept, when, and why they reject."""
    preferred_categories: List[str] = [
        category
        for category, score in sorted(aggregate.preferences.items(), key=lambda kv: kv[1], reverse=True)
        if score > PREFERRED_CATEGORY_SCORE
    ]

    type_rates = _bucket_rates(aggregate.suggestion_type_stats)
    preferred_types = [
        name for name, rate in sorted(type_rates.items(), key=lambda kv: kv[1], reverse=True)
        if rate > 0
    ]

    return {
        'domain': aggregate.domain,
        'total_feedback': sum(aggregate.action_counts.values()),
        'action_counts': dict(aggregate.action_counts),
        'preferred_categories': preferred_categories,
        'preferred_suggestion_types': preferred_types,
        'language_acceptance': _bucket_rates(aggregate.language_stats),
        'hourly_acceptance': _bucket_rates(aggregate.hourly_stats),
        'common_rejection_reasons': [
            {'reason': reason, 'count': count}
            for reason, count in Counter(aggregate.rejection_reasons).most_common(top_reasons)
        ],
    }
