"""
Confidence model: adjusted confidence of a pattern for a query context.

The persisted confidence is only a baseline. At query time every enabled
adaptation strategy contributes a weighted term and the sum is clamped to the
configured bounds. Nothing here mutates a pattern; only the feedback processor
and the maintenance scheduler persist confidence changes.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from ..config import ConfidenceConfig
from ..utils import logger, days_between
from .models import Pattern
from .relevance import context_similarity

# A strategy term gets (model, pattern, query_context, now) and returns the
# unweighted contribution.
StrategyTerm = Callable[['ConfidenceModel', Pattern, Mapping[str, Any], datetime], float]


def frequency_term(model: 'ConfidenceModel', pattern: Pattern, query_context, now: datetime) -> float:
    """Acceptance ratio centred on a neutral 0.5."""
    return pattern.acceptance_rate - 0.5


def recency_term(model: 'ConfidenceModel', pattern: Pattern, query_context, now: datetime) -> float:
    """Full boost if used today, fading linearly to zero over the window."""
    idle = model.days_since_last_use(pattern, now)
    return max(0.0, 1.0 - idle / model.config.recency_window_days)


def context_term(model: 'ConfidenceModel', pattern: Pattern, query_context, now: datetime) -> float:
    return context_similarity(pattern.context, query_context)


def decay_term(model: 'ConfidenceModel', pattern: Pattern, query_context, now: datetime) -> float:
    """Staleness penalty, capped so one evaluation cannot wipe out confidence."""
    idle = model.days_since_last_use(pattern, now)
    return -min(idle * model.config.decay_rate_per_day, model.config.max_decay_penalty)


STRATEGY_TERMS: Dict[str, StrategyTerm] = {
    'frequency_based': frequency_term,
    'recency_boost': recency_term,
    'context_relevance': context_term,
    'temporal_decay': decay_term,
}


class ConfidenceModel:
    """Pure scoring function over patterns, usage statistics and elapsed time."""

    def __init__(
        self,
        config: Optional[ConfidenceConfig] = None,
        weight_overrides: Optional[Dict[str, float]] = None
    ):
        self.config = config or ConfidenceConfig()
        self.weights: Dict[str, float] = {}

        for strategy in self.config.strategies:
            if not strategy.enabled:
                continue
            if strategy.name not in STRATEGY_TERMS:
                logger.warning(f"Ignoring unknown adaptation strategy: {strategy.name}")
                continue
            self.weights[strategy.name] = strategy.weight

        for name, weight in (weight_overrides or {}).items():
            if name in self.weights:
                self.weights[name] = weight
            else:
                logger.warning(f"Weight override for disabled or unknown strategy: {name}")

    @property
    def min_confidence(self) -> float:
        return self.config.min_confidence

    @property
    def max_confidence(self) -> float:
        return self.config.max_confidence

    @property
    def initial_confidence(self) -> float:
        return self.config.initial_confidence

    def clamp(self, confidence: float) -> float:
        """Clamp a confidence value to the valid range."""
        return max(self.config.min_confidence, min(self.config.max_confidence, confidence))

    def days_since_last_use(self, pattern: Pattern, now: datetime) -> float:
        return days_between(pattern.usage.last_used, now)

    def strategy_contributions(
        self,
        pattern: Pattern,
        query_context: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, float]:
        """Weighted term of every enabled strategy, by name."""
        now = now or datetime.now()
        query_context = query_context or {}
        return {
            name: STRATEGY_TERMS[name](self, pattern, query_context, now) * weight
            for name, weight in self.weights.items()
        }

    def adjusted_confidence(
        self,
        pattern: Pattern,
        query_context: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> float:
        """Baseline confidence plus all strategy terms, clamped."""
        contributions = self.strategy_contributions(pattern, query_context, now)
        return self.clamp(pattern.confidence + sum(contributions.values()))

    def strategy_effectiveness(self) -> Dict[str, float]:
        """Weight of each configured strategy, zero when disabled."""
        return {
            s.name: self.weights.get(s.name, 0.0) if s.enabled else 0.0
            for s in self.config.strategies
        }
