"""
Suggestion retrieval: ranks stored patterns for a language and query context.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..utils import logger
from .models import Pattern, PatternKind
from .store import PatternStore


@dataclass
class Suggestion:
    """A pattern paired with its adjusted confidence for one query."""
    pattern: Pattern
    score: float

    @property
    def pattern_id(self) -> str:
        return self.pattern.pattern_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pattern_id': self.pattern.pattern_id,
            'kind': self.pattern.kind.value,
            'content': self.pattern.content,
            'language': self.pattern.language,
            'confidence': self.pattern.confidence,
            'score': self.score,
        }


class SuggestionRetriever:
    """Read-only ranking over a store snapshot."""

    def __init__(self, store: PatternStore):
        self.store = store
        self.model = store.model

    def get_suggestions(
        self,
        language: str,
        query_context: Optional[Mapping[str, Any]] = None,
        min_confidence: float = 0.0,
        limit: Optional[int] = None,
        kinds: Optional[Iterable[Any]] = None,
        now: Optional[datetime] = None
    ) -> List[Suggestion]:
        """Patterns of ``language`` scoring at least ``min_confidence``.

        Sorted by descending adjusted confidence; equal scores keep insertion
        order, so identical calls give identical results.
        """
        now = now or self.store.clock()
        query_context = dict(query_context or {})
        wanted = self._parse_kinds(kinds) if kinds else None

        suggestions = []
        for pattern in self.store.all():
            if pattern.language != language:
                continue
            if wanted is not None and pattern.kind not in wanted:
                continue
            score = self.model.adjusted_confidence(pattern, query_context, now)
            if score >= min_confidence:
                suggestions.append(Suggestion(pattern=pattern, score=score))

        suggestions.sort(key=lambda s: s.score, reverse=True)
        if limit is not None:
            suggestions = suggestions[:limit]
        return suggestions

    @staticmethod
    def _parse_kinds(kinds: Iterable[Any]) -> set:
        wanted = set()
        for kind in kinds:
            try:
                wanted.add(PatternKind.parse(kind))
            except ValueError:
                logger.warning(f"Ignoring unknown pattern kind in suggestion filter: {kind}")
        return wanted
