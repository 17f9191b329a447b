"""
Tests for shared helpers.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from patternsense.utils import canonical_json, days_between, json_safe, parse_timestamp, to_naive_local


NOW = datetime(2024, 5, 1, 12, 0, 0)


class TestCanonicalJson:

    def test_sets_serialize_sorted(self):
        assert canonical_json({'tags': {'gamma', 'alpha', 'beta'}}) == '{"tags":["alpha","beta","gamma"]}'
        assert canonical_json({'tags': frozenset({2, 1})}) == '{"tags":[1,2]}'

    def test_json_safe(self):
        value = {'tags': {'b', 'a'}, 'span': (1, 2), 'when': NOW, 'nested': {'ids': {3, 1}}}
        safe = json_safe(value)

        assert safe == {'tags': ['a', 'b'], 'span': [1, 2], 'when': NOW.isoformat(), 'nested': {'ids': [1, 3]}}
        assert json.loads(json.dumps(safe)) == safe

    def test_json_safe_rejects_objects(self):
        with pytest.raises(TypeError):
            json_safe({'handle': object()})


class TestTimestamps:

    def test_offset_strings_parse_naive(self):
        parsed = parse_timestamp('2024-05-01T12:00:00+00:00', NOW)

        assert parsed.tzinfo is None
        assert parsed == datetime(2024, 5, 1, 12, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    def test_aware_datetimes_parse_naive(self):
        aware = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert parse_timestamp(aware, NOW).tzinfo is None
        assert to_naive_local(NOW) is NOW

    def test_days_between_mixed(self):
        aware = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        later = to_naive_local(aware) + timedelta(days=2)

        assert days_between(aware, later) == pytest.approx(2.0)
        assert days_between(later, aware) == 0.0

    def test_unparseable_falls_back(self):
        assert parse_timestamp('yesterday', NOW) == NOW
        assert parse_timestamp(None, NOW) == NOW
