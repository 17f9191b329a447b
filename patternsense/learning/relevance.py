"""
Contextual relevance between a pattern's recorded context and a query context.
"""

import re
from pathlib import PurePath
from typing import Any, Callable, Dict, Mapping, Optional

_WORD_RE = re.compile(r"\W+")


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def exact_match(a: Any, b: Any) -> float:
    """1.0 on equality (case-insensitive for text), otherwise 0.0."""
    return 1.0 if _normalize(a) == _normalize(b) else 0.0


def file_name_match(a: Any, b: Any) -> float:
    """Same file scores 1.0, same extension 0.5."""
    path_a, path_b = PurePath(str(a)), PurePath(str(b))
    if path_a.name.lower() == path_b.name.lower():
        return 1.0
    if path_a.suffix and path_a.suffix.lower() == path_b.suffix.lower():
        return 0.5
    return 0.0


def word_overlap(a: Any, b: Any) -> float:
    """Common words over the larger word count."""
    words_a = [w for w in _WORD_RE.split(str(a).lower()) if w]
    words_b = [w for w in _WORD_RE.split(str(b).lower()) if w]
    total = max(len(words_a), len(words_b))
    if total == 0:
        return 0.0
    common = sum(1 for word in words_a if word in words_b)
    return min(1.0, common / total)


def set_overlap(a: Any, b: Any) -> float:
    """Jaccard overlap of two collections."""
    set_a = {_normalize(v) for v in a}
    set_b = {_normalize(v) for v in b}
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


# Attribute-specific comparisons; anything else falls back to exact_match
ATTRIBUTE_MATCHERS: Dict[str, Callable[[Any, Any], float]] = {
    'file_name': file_name_match,
    'function_context': word_overlap,
    'fileName': file_name_match,
    'functionContext': word_overlap,
}


def attribute_similarity(key: str, a: Any, b: Any) -> float:
    """Partial or binary match weight of one shared attribute."""
    if isinstance(a, (list, tuple, set)) and isinstance(b, (list, tuple, set)):
        return set_overlap(a, b)
    matcher = ATTRIBUTE_MATCHERS.get(key, exact_match)
    return matcher(a, b)


def context_similarity(
    context_a: Optional[Mapping[str, Any]],
    context_b: Optional[Mapping[str, Any]]
) -> float:
    """Average similarity over the attributes present in both contexts.

    Returns 0.0 when the contexts share no comparable attribute: a sparse
    query gets no relevance boost rather than a neutral one.
    """
    if not context_a or not context_b:
        return 0.0

    shared = [
        key for key in context_a
        if key in context_b and _present(context_a[key]) and _present(context_b[key])
    ]
    if not shared:
        return 0.0

    total = sum(attribute_similarity(key, context_a[key], context_b[key]) for key in shared)
    return max(0.0, min(1.0, total / len(shared)))
