"""
Constants and default configuration for PatternSense.
"""

from pathlib import Path

CONFIG_FILES = [
    '.patternsense.yaml',
    '.patternsense.yml',
    '.patternsense.toml',
    '.patternsense.json',
]

DEFAULT_DATA_DIR = str(Path.home() / ".patternsense")

# Version of the persisted pattern document layout
SCHEMA_VERSION = 2

DEFAULT_STRATEGIES = [
    {
        'name': 'frequency_based',
        'description': 'Increase confidence for frequently accepted patterns',
        'weight': 0.2,
        'enabled': True,
    },
    {
        'name': 'recency_boost',
        'description': 'Boost confidence for recently used patterns',
        'weight': 0.15,
        'enabled': True,
    },
    {
        'name': 'context_relevance',
        'description': 'Adjust based on context similarity',
        'weight': 0.2,
        'enabled': True,
    },
    {
        'name': 'temporal_decay',
        'description': 'Gradually reduce confidence for unused patterns',
        'weight': 0.15,
        'enabled': True,
    },
]

# The per-domain analyzers of the editor add-on nudged confidence by 0.05 both
# ways; the general engine is risk averse and punishes rejections harder.
DEFAULT_DOMAINS = {
    'general': {
        'kinds': ['syntax', 'naming', 'structure', 'style', 'refactor'],
        'accept_delta': 0.1,
        'reject_delta': 0.15,
    },
    'testing': {
        'kinds': ['test'],
        'accept_delta': 0.05,
        'reject_delta': 0.05,
    },
    'refactoring': {
        'kinds': ['refactor'],
        'accept_delta': 0.05,
        'reject_delta': 0.05,
    },
    'documentation': {
        'kinds': ['doc'],
        'accept_delta': 0.05,
        'reject_delta': 0.05,
    },
    'error_handling': {
        'kinds': ['error_handling'],
        'accept_delta': 0.05,
        'reject_delta': 0.05,
    },
    'personality': {
        'kinds': ['personality', 'style'],
        'accept_delta': 0.05,
        'reject_delta': 0.05,
    },
}

DEFAULT_CONFIG = {
    'confidence': {
        'min_confidence': 0.1,
        'max_confidence': 1.0,
        'initial_confidence': 0.5,
        'decay_rate_per_day': 0.02,
        'max_decay_penalty': 0.5,
        'recency_window_days': 30,
        'cleanup_threshold': 10,
        'materiality_threshold': 0.05,
        'accept_delta': 0.1,
        'reject_delta': 0.15,
        'preference_step': 0.1,
        'count_observations_as_suggested': True,
        'strategies': DEFAULT_STRATEGIES,
    },
    'scheduler': {
        'enabled': True,
        'initial_delay': 5.0,
        'interval': 3600.0,
        'top_n': 5,
    },
    'storage': {
        'backend': 'sqlite',
        'data_dir': DEFAULT_DATA_DIR,
        'db_name': 'patterns.db',
        'flush_interval': 30.0,
        'flush_batch_size': 20,
    },
    'domains': DEFAULT_DOMAINS,
    'logging': {
        'level': 'INFO',
    },
}
