"""
Tests for the engine facade and domain suite.
"""

from datetime import datetime, timezone

import pytest

from patternsense.learning import AdaptiveEngine, EngineSuite, create_blob_store
from patternsense.learning.engine import build_domain_profiles
from patternsense.learning.errors import EngineStoppedError, InvalidFeedbackError
from patternsense.learning.models import FeedbackAction, FeedbackEvent, Observation, PatternKind
from patternsense.learning.persistence import MemoryBlobStore, SqliteBlobStore, patterns_key

from conftest import make_config


OBSERVATION = {
    'kind': 'syntax',
    'content': 'prefer const',
    'language': 'javascript',
    'context': {'file_name': 'app.js'},
}


class TestAdaptiveEngine:
    """End to end behavior of one domain engine."""

    def setup_method(self):
        self.config = make_config()
        self.blobs = MemoryBlobStore()

    def test_observe_then_feedback(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            pattern = engine.get_pattern(pattern_id)
            assert pattern.confidence == 0.5
            assert pattern.usage.suggested_count == 1

            outcome = engine.feedback(FeedbackEvent(pattern_id=pattern_id, action=FeedbackAction.ACCEPT))
            assert outcome.new_confidence == pytest.approx(0.6)
            assert engine.get_pattern(pattern_id).usage.accepted_count == 1

    def test_shutdown_flushes_state(self, clock):
        engine = AdaptiveEngine(self.config, self.blobs, clock=clock).init()
        pattern_id = engine.observe(OBSERVATION)
        assert self.blobs.read(patterns_key('general')) is None

        assert engine.shutdown() is True
        stored = self.blobs.read(patterns_key('general'))
        assert pattern_id in stored['patterns']

    def test_state_survives_restart(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            engine.feedback(FeedbackEvent(pattern_id=pattern_id, action=FeedbackAction.REJECT, reason='noisy'))

        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern = engine.get_pattern(pattern_id)
            assert pattern.confidence == pytest.approx(0.35)
            assert engine.behavior_insights()['common_rejection_reasons'] == [{'reason': 'noisy', 'count': 1}]

    def test_sqlite_restart(self, tmp_path, clock):
        blobs = SqliteBlobStore(tmp_path / "patterns.db")
        with AdaptiveEngine(self.config, blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)

        with AdaptiveEngine(self.config, blobs, clock=clock) as engine:
            assert engine.get_pattern(pattern_id) is not None

    def test_set_context_survives_restart(self, clock):
        tagged = {'kind': 'syntax', 'content': 'const', 'language': 'javascript', 'context': {'tags': {'b', 'a'}}}

        engine = AdaptiveEngine(self.config, self.blobs, clock=clock).init()
        plain_id = engine.observe({'kind': 'syntax', 'content': 'let', 'language': 'javascript',
                                   'context': {'domain': 'ui'}})
        tagged_id = engine.observe(tagged)
        assert engine.shutdown() is True

        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            assert engine.get_pattern(plain_id) is not None
            assert engine.get_pattern(tagged_id).context == {'tags': ['a', 'b']}
            assert engine.observe(tagged) == tagged_id

    def test_unstorable_context_is_dropped(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            result = engine.observe_batch([
                OBSERVATION,
                {'kind': 'syntax', 'content': 'x', 'language': 'javascript', 'context': {'handle': object()}},
            ])
            assert result.recorded == 1
            assert [index for index, _ in result.dropped] == [1]

        assert len(self.blobs.read(patterns_key('general'))['patterns']) == 1

    def test_aware_feedback_timestamp(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            engine.feedback(FeedbackEvent(pattern_id=pattern_id, action=FeedbackAction.ACCEPT))
            outcome = engine.feedback(FeedbackEvent(
                pattern_id=pattern_id,
                action=FeedbackAction.ACCEPT,
                timestamp=datetime(2024, 5, 1, 13, tzinfo=timezone.utc)
            ))

            assert outcome.ok
            assert outcome.new_confidence == pytest.approx(0.7)
            assert all(e.timestamp.tzinfo is None for e in engine.get_pattern(pattern_id).adaptation_history)

    def test_corrupt_state_starts_empty(self, clock):
        self.blobs.write_raw(patterns_key('general'), '{"patterns": {')

        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            assert len(engine.store) == 0
            assert engine.observe(OBSERVATION) is not None

    def test_batch_drops_malformed(self, clock):
        batch = [
            OBSERVATION,
            {'kind': 'syntax', 'content': '', 'language': 'javascript'},
            {'kind': 'horoscope', 'content': 'x', 'language': 'javascript'},
            'not an observation',
            Observation(kind='naming', content='camelCase', language='javascript'),
        ]

        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            result = engine.observe_batch(batch)

            assert result.recorded == 2
            assert [index for index, _ in result.dropped] == [1, 2, 3]
            assert len(engine.store) == 2

    def test_operations_after_shutdown_are_soft(self, clock):
        engine = AdaptiveEngine(self.config, self.blobs, clock=clock).init()
        pattern_id = engine.observe(OBSERVATION)
        engine.shutdown()

        assert engine.observe(OBSERVATION) is None
        assert engine.maintain() is None
        assert engine.mark_surfaced([pattern_id]) == 0
        outcome = engine.feedback(FeedbackEvent(pattern_id=pattern_id, action=FeedbackAction.ACCEPT))
        assert isinstance(outcome.error, EngineStoppedError)

    def test_feedback_without_id(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            outcome = engine.feedback(FeedbackEvent(pattern_id=None, action=FeedbackAction.ACCEPT))
            assert isinstance(outcome.error, InvalidFeedbackError)

    def test_feedback_related(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            outcomes = engine.feedback_related(FeedbackEvent(
                pattern_id=None,
                action=FeedbackAction.ACCEPT,
                context={'language': 'javascript'},
                suggestion_text='const'
            ))
            assert [o.pattern_id for o in outcomes] == [pattern_id]

    def test_suggestions(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            suggestions = engine.suggestions('javascript', {'file_name': 'app.js'}, min_confidence=0.3)

            assert [s.pattern_id for s in suggestions] == [pattern_id]
            assert suggestions[0].score == pytest.approx(0.75)

    def test_surfaced_counting_switch(self, clock):
        config = make_config(confidence={'count_observations_as_suggested': False})
        with AdaptiveEngine(config, self.blobs, clock=clock) as engine:
            pattern_id = engine.observe(OBSERVATION)
            engine.observe(OBSERVATION)
            assert engine.get_pattern(pattern_id).usage.suggested_count == 0

            surfaced = [s.pattern_id for s in engine.suggestions('javascript')]
            assert engine.mark_surfaced(surfaced) == 1
            assert engine.get_pattern(pattern_id).usage.suggested_count == 1

    def test_maintain_and_stats(self, clock):
        with AdaptiveEngine(self.config, self.blobs, clock=clock) as engine:
            engine.observe(OBSERVATION)
            report = engine.maintain()

            assert report.removed == []
            assert len(report.top) == 1
            assert engine.stats()['total_patterns'] == 1
            assert engine.acceptance_summary()['suggested'] == 1

    def test_scheduler_follows_config(self, clock):
        config = make_config(scheduler={'enabled': True, 'initial_delay': 60})
        engine = AdaptiveEngine(config, self.blobs, clock=clock).init()
        try:
            assert engine.scheduler.is_running
        finally:
            engine.shutdown()
        assert not engine.scheduler.is_running

        engine = AdaptiveEngine(config, self.blobs, clock=clock).init(start_scheduler=False)
        assert not engine.scheduler.is_running
        engine.shutdown()


class TestDomains:
    """Domain profiles and the engine suite."""

    def test_profiles_from_defaults(self):
        profiles = build_domain_profiles(make_config())

        assert set(profiles) == {'general', 'testing', 'refactoring', 'documentation', 'error_handling', 'personality'}
        assert profiles['general'].accept_delta == 0.1
        assert profiles['general'].reject_delta == 0.15
        assert profiles['testing'].accept_delta == 0.05
        assert profiles['testing'].kinds == [PatternKind.TEST]

    def test_general_profile_always_exists(self):
        profiles = build_domain_profiles(make_config().model_copy(update={'domains': {}}))
        assert list(profiles) == ['general']

    def test_domain_engine_uses_its_deltas(self, clock):
        with AdaptiveEngine(make_config(), MemoryBlobStore(), domain='testing', clock=clock) as engine:
            pattern_id = engine.observe({'kind': 'test', 'content': 'arrange act assert', 'language': 'python'})
            outcome = engine.feedback(FeedbackEvent(pattern_id=pattern_id, action=FeedbackAction.REJECT))
            assert outcome.new_confidence == pytest.approx(0.45)

    def test_strategy_weight_overrides(self):
        config = make_config(domains={'documentation': {'strategy_weights': {'context_relevance': 0.5}}})
        engine = AdaptiveEngine(config, MemoryBlobStore(), domain='documentation')
        assert engine.model.weights['context_relevance'] == 0.5

    def test_suite_routes_by_kind(self, clock):
        blobs = MemoryBlobStore()
        with EngineSuite(make_config(), blobs, clock=clock) as suite:
            assert len(suite) == 6
            assert suite.engine_for('test') is suite['testing']
            assert suite.engine_for('refactor') is suite['refactoring']
            assert suite.engine_for('syntax') is suite['general']

            pattern_id = suite.observe({'kind': 'doc', 'content': 'docstrings', 'language': 'python'})
            assert suite['documentation'].get_pattern(pattern_id) is not None
            assert suite['general'].get_pattern(pattern_id) is None
            assert suite.observe({'kind': 'unknown', 'content': 'x', 'language': 'python'}) is None

        assert patterns_key('documentation') in blobs.keys()

    def test_create_blob_store(self, tmp_path):
        assert isinstance(create_blob_store(make_config()), MemoryBlobStore)
        sqlite_config = make_config(storage={'backend': 'sqlite', 'data_dir': str(tmp_path)})
        blobs = create_blob_store(sqlite_config)
        assert isinstance(blobs, SqliteBlobStore)
        assert blobs.db_path == tmp_path / 'patterns.db'
