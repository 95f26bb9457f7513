"""
Tests for the overlay reconciliation engine.

This module covers:
- Effective value resolution and dirty tracking
- Bulk overrides with and without a predicate
- Reset round-trip
- Live aggregates recomputed on every mutation
- Diff completeness and exclusion of invalid overrides
- Snapshot reloads and commit folding
"""

import logging

import pytest

from campus_live.models import CommitRecord
from campus_live.overlay import Overlay
from campus_live.validation import RangeValidator


@pytest.fixture
def scores():
    """Scores out of 10 for three students; s3 has no server value yet."""
    return Overlay({"s1": 4, "s2": 7, "s3": None}, validator=RangeValidator(10))


def total(values):
    return sum(v for v in values.values() if v is not None)


class TestEffectiveValues:
    def test_server_value_when_no_override(self, scores):
        assert scores.get_effective("s1") == 4
        assert scores.get_effective("s3") is None

    def test_unknown_id_is_unset(self, scores):
        assert scores.get_effective("nobody") is None
        assert "nobody" not in scores

    def test_override_wins(self, scores):
        scores.set_override("s1", 9)
        assert scores.get_effective("s1") == 9
        assert scores.entity("s1").server_value == 4

    def test_new_id_creates_entity(self, scores):
        scores.set_override("s4", 2)
        entity = scores.entity("s4")
        assert entity.server_value is None
        assert entity.override == 2
        assert len(scores) == 4

    def test_none_override_rejected(self, scores):
        with pytest.raises(ValueError):
            scores.set_override("s1", None)

    def test_entity_copy_is_detached(self, scores):
        copy = scores.entity("s1")
        copy.override = 1
        assert scores.get_effective("s1") == 4


class TestDirtyTracking:
    def test_clean_after_load(self, scores):
        assert not scores.dirty
        assert scores.dirty_ids() == []

    def test_entity_dirty_matches_override(self, scores):
        scores.set_override("s2", 8)
        assert scores.entity("s2").dirty is True
        assert scores.entity("s1").dirty is False
        assert scores.dirty
        assert scores.dirty_ids() == ["s2"]

    def test_clear_override(self, scores):
        scores.set_override("s2", 8)
        scores.clear_override("s2")
        assert not scores.dirty
        assert scores.get_effective("s2") == 7

    def test_reset_round_trip(self, scores):
        scores.set_override("s1", 5)
        scores.set_override("s3", 6)
        scores.reset()
        assert scores.get_effective("s1") == 4
        assert scores.get_effective("s3") is None
        assert not scores.dirty


class TestBulkOverride:
    def test_all(self, scores):
        changed = scores.bulk_set_override(10)
        assert changed == 3
        assert scores.effective_values() == {"s1": 10, "s2": 10, "s3": 10}

    def test_predicate(self, scores):
        changed = scores.bulk_set_override(0, predicate=lambda e: e.server_value is None)
        assert changed == 1
        assert scores.dirty_ids() == ["s3"]

    def test_single_notification(self, scores):
        seen = []
        scores.watch(total, seen.append)
        scores.bulk_set_override(1)
        assert seen == [11, 3]


class TestLiveAggregate:
    def test_compute_from_effective_values(self, scores):
        scores.set_override("s3", 5)
        assert scores.compute_live_aggregate(total) == 16

    def test_watch_recomputes_on_every_mutation(self, scores):
        seen = []
        unwatch = scores.watch(total, seen.append)
        scores.set_override("s1", 10)
        scores.set_override("s3", 1)
        scores.clear_override("s1")
        scores.reset()
        unwatch()
        scores.set_override("s2", 0)
        assert seen == [11, 17, 18, 12, 11]

    def test_failing_watcher_is_logged(self, scores, caplog):
        calls = []

        def flaky(values):
            calls.append(values)
            if len(calls) > 1:
                raise ZeroDivisionError("no marks")
            return 0

        scores.watch(flaky, lambda agg: None)
        with caplog.at_level(logging.ERROR, logger="campus_live.overlay"):
            scores.set_override("s1", 3)
        assert "no marks" in caplog.text
        assert scores.get_effective("s1") == 3


class TestDiff:
    def test_only_valid_overrides(self, scores):
        scores.set_override("s1", 6)
        scores.set_override("s2", 11)
        scores.set_override("s3", -1)
        scores.set_override("s4", 10)
        diff = scores.diff()
        assert [(r.id, r.value) for r in diff] == [("s1", 6), ("s4", 10)]
        assert scores.invalid_entries().keys() == {"s2", "s3"}

    def test_length_matches_valid_override_count(self, scores):
        scores.set_override("s1", 0)
        scores.set_override("s2", "seven")
        valid = [i for i in scores.dirty_ids() if scores.validate(i) is None]
        assert len(scores.diff()) == len(valid) == 1

    def test_invalid_override_is_not_coerced(self, scores):
        scores.set_override("s2", 10.5)
        assert scores.diff() == []
        assert scores.get_effective("s2") == 10.5

    def test_without_validator_everything_is_sent(self):
        overlay = Overlay({"a": "x"})
        overlay.set_override("a", "anything")
        assert [r.value for r in overlay.diff()] == ["anything"]

    def test_empty_when_clean(self, scores):
        assert scores.diff() == []


class TestSnapshot:
    def test_from_records(self):
        rows = [{"student": "s1", "score": 3}, {"student": "s2", "score": None}]
        overlay = Overlay.from_records(rows, key=lambda r: r["student"], value=lambda r: r["score"])
        assert overlay.server_values() == {"s1": 3, "s2": None}

    def test_load_replaces_server_values_keeps_overrides(self, scores):
        scores.set_override("s1", 9)
        scores.set_override("s9", 1)
        scores.load({"s1": 5, "s2": 7})
        assert scores.entity("s1").server_value == 5
        assert scores.get_effective("s1") == 9
        assert "s3" not in scores
        assert scores.get_effective("s9") == 1

    def test_apply_commit_clears_sent_overrides(self, scores):
        scores.set_override("s1", 6)
        scores.set_override("s2", 8)
        sent = scores.diff()
        scores.set_override("s2", 9)

        scores.apply_commit(sent)

        assert scores.entity("s1").server_value == 6
        assert scores.entity("s1").dirty is False
        assert scores.entity("s2").server_value == 8
        assert scores.get_effective("s2") == 9
        assert scores.dirty_ids() == ["s2"]

    def test_apply_commit_for_unknown_id(self, scores):
        scores.apply_commit([CommitRecord(id="s7", value=3)])
        assert scores.get_effective("s7") == 3
        assert not scores.dirty
