"""
Tests for dashboard statistics.
"""

import pytest

from patternsense.learning.feedback import FeedbackProcessor
from patternsense.learning.insights import acceptance_summary, adaptation_stats, behavior_insights
from patternsense.learning.models import FeedbackAction, UserBehaviorAggregate

from conftest import set_confidence


class TestAdaptationStats:

    def test_empty_store(self, store, model):
        stats = adaptation_stats(store, model)

        assert stats['total_patterns'] == 0
        assert stats['average_confidence'] == 0.0
        assert stats['top_patterns'] == []
        assert stats['recent_adaptations'] == []

    def test_summary(self, store, model, clock):
        processor = FeedbackProcessor(store)
        a = store.upsert('syntax', 'a', 'python')
        b = store.upsert('naming', 'b', 'python')
        set_confidence(store, b, 0.9)
        clock.advance(minutes=5)
        processor.apply_feedback(a, 'accept')

        stats = adaptation_stats(store, model, top_n=1)

        assert stats['total_patterns'] == 2
        assert stats['average_confidence'] == pytest.approx(0.75)
        assert [p['pattern_id'] for p in stats['top_patterns']] == [b]
        assert stats['recent_adaptations'][0]['pattern_id'] == a
        assert stats['strategy_effectiveness']['context_relevance'] == 0.2


class TestAcceptanceSummary:

    def test_rates(self, store):
        processor = FeedbackProcessor(store)
        a = store.upsert('syntax', 'a', 'python')
        store.upsert('syntax', 'a', 'python')
        b = store.upsert('naming', 'b', 'go')
        processor.apply_feedback(a, 'accept')
        processor.apply_feedback(b, 'reject')

        summary = acceptance_summary(store)

        assert summary['suggested'] == 3
        assert summary['accepted'] == 1
        assert summary['rejected'] == 1
        assert summary['acceptance_rate'] == pytest.approx(1 / 3)
        assert summary['by_kind']['syntax']['acceptance_rate'] == pytest.approx(0.5)
        assert summary['by_language']['go']['rejected'] == 1

    def test_empty(self, store):
        assert acceptance_summary(store)['acceptance_rate'] == 0.0


class TestBehaviorInsights:

    def test_insights(self, clock):
        aggregate = UserBehaviorAggregate(domain='general')
        for _ in range(2):
            aggregate.record(FeedbackAction.ACCEPT, clock.now, category='naming', language='python',
                             suggestion_type='inline')
        aggregate.record(FeedbackAction.REJECT, clock.now, category='style', language='python',
                         suggestion_type='hover', reason='distracting')
        aggregate.record(FeedbackAction.REJECT, clock.now, category='style', reason='distracting')
        aggregate.record(FeedbackAction.REJECT, clock.now, category='style', reason='wrong')

        insights = behavior_insights(aggregate)

        assert insights['total_feedback'] == 5
        assert insights['preferred_categories'] == ['naming']
        assert insights['preferred_suggestion_types'] == ['inline']
        assert insights['language_acceptance']['python'] == pytest.approx(2 / 3)
        assert insights['hourly_acceptance']['12:00'] == pytest.approx(0.4)
        assert insights['common_rejection_reasons'][0] == {'reason': 'distracting', 'count': 2}
