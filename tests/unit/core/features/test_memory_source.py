"""
Tests for the in-memory feature source and its JSON snapshot loader.
"""
import json
import tempfile
import unittest
from datetime import date
from pathlib import Path

from core.errors import NotFoundError, ValidationError
from core.features import InMemoryFeatureSource
from core.features.memory import summarize_ratings
from core.scorer.models import FeatureBundle, TraitValue


SNAPSHOT = {
    "users": [
        {
            "id": 3,
            "interests": ["hiking", "jazz"],
            "traits": [{"key": "openness", "value": 3.5, "n": 4}],
            "quiz": {"answers": {"q1": "a"}, "score_vec": [1, 0, 2]},
            "lat": 52.52, "lng": 13.40, "location_text": "Berlin",
            "gender": "f", "birthdate": "1994-05-01", "updated_at": "2026-01-10T12:00:00Z",
            "preferences": {"genders": ["m"], "age_min": 25, "age_max": 40, "distance_km": 50},
            "quiz_contributions": [{"openness": 2, "humor": -1}],
        },
        {"id": 1, "interests": ["jazz"]},
        {"id": 2},
    ],
    "ratings": [
        {"rater_id": 1, "target_id": 3, "ratings": {"attractive": 8, "smart": 6}},
        {"rater_id": 2, "target_id": 3, "ratings": {"attractive": 6, "funny": 9}},
    ],
}

ELIGIBILITY_SNAPSHOT = {
    "users": [
        {"id": 1, "blocked_user_ids": [2]},
        {"id": 2},
        {"id": 3, "blocked_user_ids": [1]},
        {"id": 4, "visible": False},
        {"id": 5, "deleted_at": "2026-01-01T00:00:00Z"},
        {"id": 6},
    ],
}


class TestLoading(unittest.TestCase):
    def setUp(self):
        self.source = InMemoryFeatureSource.from_dict(SNAPSHOT)

    def test_bundle_fields(self):
        bundle = self.source.get_bundle(3)
        self.assertEqual(bundle.interests, frozenset({"hiking", "jazz"}))
        self.assertEqual(bundle.traits, (TraitValue("openness", 3.5, 4),))
        self.assertEqual(bundle.quiz.answers, {"q1": "a"})
        self.assertEqual(bundle.quiz.score_vec, (1.0, 0.0, 2.0))
        self.assertEqual(bundle.birthdate, date(1994, 5, 1))
        self.assertIsNotNone(bundle.updated_at.tzinfo)
        self.assertEqual(bundle.preferred_genders, frozenset({"m"}))
        self.assertEqual(bundle.preferred_distance_km, 50)

    def test_eligibility_defaults(self):
        bundle = self.source.get_bundle(1)
        self.assertTrue(bundle.visible)
        self.assertIsNone(bundle.deleted_at)
        self.assertEqual(bundle.blocked_user_ids, frozenset())

    def test_eligibility_fields(self):
        source = InMemoryFeatureSource.from_dict(ELIGIBILITY_SNAPSHOT)
        self.assertEqual(source.get_bundle(1).blocked_user_ids, frozenset({2}))
        self.assertFalse(source.get_bundle(4).visible)
        self.assertEqual(source.get_bundle(5).deleted_at.year, 2026)

    def test_ratings_are_summarized(self):
        received = self.source.get_bundle(3).ratings_received
        self.assertEqual(received.count, 2)
        self.assertAlmostEqual(received.attractive, 7.0)
        self.assertAlmostEqual(received.smart, 6.0)
        self.assertAlmostEqual(received.funny, 9.0)
        self.assertIsNone(received.interesting)
        self.assertEqual(self.source.get_bundle(1).ratings_given.count, 1)

    def test_contributions(self):
        self.assertEqual(self.source.get_quiz_trait_contributions(3), [{"openness": 2, "humor": -1}])
        self.assertEqual(self.source.get_quiz_trait_contributions(1), [])

    def test_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "features.json"
            path.write_text(json.dumps(SNAPSHOT))
            self.assertEqual(InMemoryFeatureSource.from_file(str(path)).list_user_ids(None, 10), [1, 2, 3])

    def test_invalid_snapshot(self):
        with self.assertRaises(ValidationError):
            InMemoryFeatureSource.from_dict({"users": [{"interests": ["no id"]}]})

    def test_invalid_rating_in_snapshot(self):
        data = {"users": [{"id": 1}, {"id": 2}], "ratings": [{"rater_id": 1, "target_id": 2, "ratings": {"smart": 12}}]}
        with self.assertRaises(ValidationError):
            InMemoryFeatureSource.from_dict(data)

    def test_get_unknown_user(self):
        self.assertIsNone(self.source.get_bundle(99))


class TestPaging(unittest.TestCase):
    def setUp(self):
        self.source = InMemoryFeatureSource.from_dict(SNAPSHOT)

    def test_user_ids_ascending_pages(self):
        self.assertEqual(self.source.list_user_ids(None, 2), [1, 2])
        self.assertEqual(self.source.list_user_ids(2, 2), [3])
        self.assertEqual(self.source.list_user_ids(3, 2), [])

    def test_candidates_exclude_viewer(self):
        page = self.source.list_candidates(2, None, 10)
        self.assertEqual([b.user_id for b in page], [1, 3])

    def test_candidate_pages(self):
        first = self.source.list_candidates(1, None, 1)
        self.assertEqual([b.user_id for b in first], [2])
        second = self.source.list_candidates(1, first[-1].user_id, 1)
        self.assertEqual([b.user_id for b in second], [3])
        self.assertEqual(self.source.list_candidates(1, 3, 1), [])

    def test_added_bundle_is_listed(self):
        self.source.add_bundle(FeatureBundle(user_id=0))
        self.assertEqual(self.source.list_user_ids(None, 1), [0])


class TestCandidateEligibility(unittest.TestCase):
    """Hidden, deleted and blocked users never show up as candidates."""

    def setUp(self):
        self.source = InMemoryFeatureSource.from_dict(ELIGIBILITY_SNAPSHOT)

    def candidate_ids(self, viewer_id, after=None, limit=10):
        return [b.user_id for b in self.source.list_candidates(viewer_id, after, limit)]

    def test_blocks_apply_both_ways(self):
        self.assertEqual(self.candidate_ids(1), [6])
        self.assertEqual(self.candidate_ids(2), [3, 6])
        self.assertEqual(self.candidate_ids(3), [2, 6])

    def test_hidden_and_deleted_are_skipped(self):
        self.assertEqual(self.candidate_ids(6), [1, 2, 3])

    def test_filtered_users_do_not_shrink_pages(self):
        self.assertEqual(self.candidate_ids(2, limit=1), [3])
        self.assertEqual(self.candidate_ids(2, after=3, limit=1), [6])

    def test_hidden_users_are_still_viewers(self):
        self.assertEqual(self.source.list_user_ids(None, 10), [1, 2, 3, 4, 5, 6])
        self.assertEqual(self.candidate_ids(4), [1, 2, 3, 6])

    def test_block_user(self):
        marker = self.source.snapshot_marker()
        self.source.block_user(6, 2)
        self.assertEqual(self.source.get_bundle(6).blocked_user_ids, frozenset({2}))
        self.assertNotEqual(self.source.snapshot_marker(), marker)
        self.assertEqual(self.candidate_ids(6), [1, 3])
        self.assertNotIn(6, self.candidate_ids(2))

    def test_block_user_unknown_blocker(self):
        with self.assertRaises(NotFoundError):
            self.source.block_user(99, 1)


class TestMutations(unittest.TestCase):
    def setUp(self):
        self.source = InMemoryFeatureSource.from_dict(SNAPSHOT)

    def test_replace_traits_changes_marker(self):
        marker = self.source.snapshot_marker()
        self.assertEqual(self.source.snapshot_marker(), marker)
        self.source.replace_user_traits(1, [TraitValue("humor", 2.0, 3)])
        self.assertEqual(self.source.get_bundle(1).traits, (TraitValue("humor", 2.0, 3),))
        self.assertNotEqual(self.source.snapshot_marker(), marker)

    def test_replace_traits_unknown_user(self):
        with self.assertRaises(NotFoundError):
            self.source.replace_user_traits(99, [])

    def test_add_rating_changes_marker(self):
        marker = self.source.snapshot_marker()
        self.source.add_rating(3, 1, {"smart": 10})
        self.assertEqual(self.source.get_bundle(1).ratings_received.smart, 10)
        self.assertEqual(self.source.get_bundle(3).ratings_given.count, 1)
        self.assertNotEqual(self.source.snapshot_marker(), marker)

    def test_add_rating_validation(self):
        with self.assertRaises(ValidationError):
            self.source.add_rating(1, 2, {"smart": 0})
        with self.assertRaises(ValidationError):
            self.source.add_rating(1, 1, {"smart": 5})
        with self.assertRaises(NotFoundError):
            self.source.add_rating(1, 99, {"smart": 5})

    def test_rejected_rating_leaves_marker(self):
        marker = self.source.snapshot_marker()
        with self.assertRaises(ValidationError):
            self.source.add_rating(1, 2, {"smart": 11})
        self.assertEqual(self.source.snapshot_marker(), marker)

    def test_same_content_same_marker(self):
        self.assertEqual(
            InMemoryFeatureSource.from_dict(SNAPSHOT).snapshot_marker(),
            InMemoryFeatureSource.from_dict(SNAPSHOT).snapshot_marker()
        )


class TestSummarizeRatings(unittest.TestCase):
    def test_summarize_ratings(self):
        self.assertIsNone(summarize_ratings([]))
        summary = summarize_ratings([{"attractive": 4}, {"attractive": 8, "smart": 5}])
        self.assertEqual(summary.count, 2)
        self.assertEqual(summary.attractive, 6)
        self.assertEqual(summary.smart, 5)
        self.assertIsNone(summary.funny)


if __name__ == '__main__':
    unittest.main()
