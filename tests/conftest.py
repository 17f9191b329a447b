"""
Shared fixtures for the PatternSense test suite.
"""

import copy
import logging
from datetime import datetime, timedelta

import pytest

from patternsense.config import PatternSenseConfig
from patternsense.constants import DEFAULT_CONFIG
from patternsense.learning import ConfidenceModel, PatternStore
from patternsense.utils import logger, merge_dicts


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_config(**sections) -> PatternSenseConfig:
    """Default configuration with memory storage and no background sweeps."""
    data = copy.deepcopy(DEFAULT_CONFIG)
    data = merge_dicts(data, {
        'scheduler': {'enabled': False},
        'storage': {'backend': 'memory', 'flush_interval': 3600.0, 'flush_batch_size': 1000},
    })
    data = merge_dicts(data, sections)
    return PatternSenseConfig(**data)


def set_confidence(store: PatternStore, pattern_id: str, value: float):
    """Force a stored pattern's confidence through the writer thread."""
    def mutation(txn):
        pattern = txn.get(pattern_id)
        pattern.confidence = value
        txn.put(pattern)
    store.execute(mutation)


@pytest.fixture(autouse=True)
def reset_log_level():
    """CLI flags change the global logger level; put it back after each test."""
    yield
    logger.setLevel(logging.INFO)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def model(config):
    return ConfidenceModel(config.confidence)


@pytest.fixture
def store(model, clock):
    """Running pattern store, stopped after the test."""
    pattern_store = PatternStore(model, domain="general", clock=clock)
    pattern_store.start()
    yield pattern_store
    pattern_store.stop()
