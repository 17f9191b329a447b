"""
Utility functions for PatternSense.
"""

import json
import hashlib
import logging
from typing import Dict, Any, Mapping
from datetime import datetime
import colorama
from rich.logging import RichHandler

# Initialize colorama for cross-platform color support
colorama.init()

SECONDS_PER_DAY = 24 * 60 * 60


# Configure logging with Rich handler
def setup_logger(name: str = "patternsense", level: str = "INFO") -> logging.Logger:
    """Set up a logger with Rich formatting."""
    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers = []

    handler = RichHandler(
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=True
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger


# Global logger instance
logger = setup_logger()


def set_log_level(level: str):
    """Change the level of the global logger."""
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))


def merge_dicts(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def _canonical_default(value: Any) -> Any:
    # Set iteration order depends on the hash seed
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=canonical_json)
    return str(value)


def canonical_json(value: Any) -> str:
    """Serialize a value so that equal structures always give equal text."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_canonical_default
    )


def json_safe(value: Any) -> Any:
    """Convert a value into plain JSON types.

    Sets become sorted lists, tuples become lists and datetimes become ISO
    strings. Raises TypeError for anything else that JSON cannot hold.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        return to_naive_local(value).isoformat()
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((json_safe(v) for v in value), key=canonical_json)
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    raise TypeError(f"Value of type {type(value).__name__} is not JSON serializable")


def stable_digest(value: Any, length: int = 32) -> str:
    """SHA-256 hex digest of the canonical serialization of ``value``."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()[:length]


def to_naive_local(value: datetime) -> datetime:
    """Drop timezone info, converting aware datetimes to local time first."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days from ``earlier`` to ``later``, never negative."""
    earlier, later = to_naive_local(earlier), to_naive_local(later)
    return max(0.0, (later - earlier).total_seconds() / SECONDS_PER_DAY)


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """Parse an ISO timestamp or epoch milliseconds, falling back to ``default``."""
    if isinstance(value, datetime):
        return to_naive_local(value)
    if isinstance(value, (int, float)):
        # Persisted by the editor host as epoch milliseconds
        return datetime.fromtimestamp(value / 1000.0)
    if isinstance(value, str) and value:
        try:
            return to_naive_local(datetime.fromisoformat(value))
        except ValueError:
            return default
    return default


def parse_key_values(pairs) -> Dict[str, str]:
    """Turn ``key=value`` strings into a dictionary."""
    result = {}
    for pair in pairs or ():
        if '=' not in pair:
            raise ValueError(f"Expected key=value, got: {pair}")
        key, value = pair.split('=', 1)
        result[key.strip()] = value.strip()
    return result
