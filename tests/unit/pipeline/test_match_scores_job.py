"""
End-to-end tests for the match score job over an in-memory feature source
and the SQL result store.
"""
import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from core.errors import NotFoundError
from core.scorer import FeatureBundle, RatingSummary, TraitValue, ViewerContext
from database.uow import scoring_uow
from pipeline import match_scores
from pipeline.match_scores import (
    match_score_input_hash,
    recompute_match_scores_for_user,
    refresh_bucket,
    run_match_scores,
)
from pipeline.models import JobFlags
from tests import BERLIN, NOW

pytestmark = pytest.mark.db


def seed(source, user_ids=(1, 2, 3, 4, 5), updated_at=None, **fields):
    tags = ['hiking', 'jazz', 'chess', 'film', 'cooking']
    for i in user_ids:
        source.add_bundle(FeatureBundle(
            user_id=i,
            interests=frozenset(tags[:i]),
            traits=(TraitValue('openness', float(i), 5), TraitValue('humor', float(6 - i), 5)),
            ratings_received=RatingSummary(attractive=i + 4, smart=5, count=3),
            lat=BERLIN[0] + i * 0.05,
            lng=BERLIN[1],
            updated_at=updated_at or datetime.now(timezone.utc),
            **fields
        ))


def stored(user_id, version=None):
    with scoring_uow() as repo:
        return [(s.candidate_user_id, s.algorithm_version, s.score) for s in repo.match_scores.get_scores(user_id, version)]


def stored_candidates(user_id):
    return [c for c, _, _ in stored(user_id)]


class MatchScoreJobTestCase(unittest.TestCase):
    @pytest.fixture(autouse=True)
    def setup(self, app_context):
        self.ctx = app_context
        self.source = app_context.feature_source


class TestRunMatchScores(MatchScoreJobTestCase):
    def test_scores_every_user_top_k(self):
        seed(self.source)
        result = run_match_scores(self.ctx)

        self.assertEqual(result.processed_users, 5)
        self.assertEqual(result.skipped_users, 0)
        self.assertEqual(result.failed_users, [])
        self.assertEqual(result.written, 15)
        for user_id in range(1, 6):
            rows = stored(user_id)
            self.assertEqual(len(rows), 3)
            self.assertNotIn(user_id, [c for c, _, _ in rows])
            self.assertEqual({v for _, v, _ in rows}, {"v1"})
            scores = [s for _, _, s in rows]
            self.assertEqual(scores, sorted(scores, reverse=True))

    def test_stored_ranking_matches_full_evaluation(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)

        viewer_ctx = ViewerContext(viewer=self.source.get_bundle(3), prefs=self.ctx.prefs, now=NOW)
        expected = self.ctx.aggregator.rank(viewer_ctx, self.source.list_candidates(3, None, 100), 3)
        self.assertEqual(stored_candidates(3), [c.user_id for c, _ in expected])

    def test_unchanged_inputs_are_skipped(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        result = run_match_scores(self.ctx, now=NOW + timedelta(hours=2))
        self.assertEqual(result.processed_users, 0)
        self.assertEqual(result.skipped_users, 5)
        self.assertEqual(result.written, 0)

    def test_feature_change_recomputes(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        self.source.add_rating(1, 2, {'smart': 9})
        result = run_match_scores(self.ctx, now=NOW)
        self.assertEqual(result.processed_users, 5)

    def test_full_run_ignores_freshness(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        self.ctx.freshness.force = True
        self.assertEqual(run_match_scores(self.ctx, now=NOW).processed_users, 5)

    def test_single_user(self):
        seed(self.source)
        result = run_match_scores(self.ctx, JobFlags(user_id=2))
        self.assertEqual(result.processed_users, 1)
        self.assertEqual(len(stored(2)), 3)
        self.assertEqual(stored(1), [])

    def test_single_unknown_user_raises(self):
        seed(self.source)
        with self.assertRaises(NotFoundError):
            run_match_scores(self.ctx, JobFlags(user_id=99))

    def test_failing_user_does_not_stop_batch(self):
        seed(self.source)
        real = match_scores.recompute_match_scores_for_user

        def flaky(ctx, user_id, *args, **kwargs):
            if user_id == 2:
                raise RuntimeError("boom")
            return real(ctx, user_id, *args, **kwargs)

        with patch.object(match_scores, 'recompute_match_scores_for_user', side_effect=flaky):
            result = run_match_scores(self.ctx, now=NOW)

        self.assertEqual(result.failed_users, [2])
        self.assertEqual(result.processed_users, 4)
        self.assertFalse(result.success)
        self.assertEqual(stored(2), [])

        # The failed user was never marked fresh
        retry = run_match_scores(self.ctx, now=NOW)
        self.assertEqual(retry.processed_users, 1)
        self.assertEqual(retry.skipped_users, 4)

    def test_new_version_replaces_old_rows(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        self.ctx.config.jobs.match_scores.algorithm_version = "v2"

        result = run_match_scores(self.ctx, now=NOW)

        self.assertEqual(result.processed_users, 5)
        for user_id in range(1, 6):
            self.assertEqual(stored(user_id, "v1"), [])
            self.assertEqual({v for _, v, _ in stored(user_id)}, {"v2"})

    def test_top_k_change_recomputes(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        self.ctx.config.jobs.match_scores.top_k = 1
        result = run_match_scores(self.ctx, now=NOW)
        self.assertEqual(result.processed_users, 5)
        self.assertEqual(len(stored(4)), 1)


class TestTimeDependentScores(MatchScoreJobTestCase):
    """Newness decays with time, so unchanged features still go stale."""

    def test_passing_time_recomputes(self):
        seed(self.source, updated_at=NOW)
        run_match_scores(self.ctx, now=NOW)
        with scoring_uow() as repo:
            before = repo.match_scores.get_scores(1)[0].score_new

        later = run_match_scores(self.ctx, now=NOW + timedelta(days=120))

        self.assertEqual(later.processed_users, 5)
        self.assertEqual(later.skipped_users, 0)
        with scoring_uow() as repo:
            after = repo.match_scores.get_scores(1)[0].score_new
        self.assertEqual(before, 1.0)
        self.assertLess(after, before)

    def test_next_day_recomputes(self):
        seed(self.source, updated_at=NOW)
        run_match_scores(self.ctx, now=NOW)
        self.assertEqual(run_match_scores(self.ctx, now=NOW + timedelta(days=1)).processed_users, 5)

    def test_longer_interval_skips_within_bucket(self):
        self.ctx.config.jobs.match_scores.refresh_interval_days = 7
        seed(self.source, updated_at=NOW)
        start = datetime(2026, 1, 15, tzinfo=timezone.utc)
        run_match_scores(self.ctx, now=start)
        self.assertEqual(run_match_scores(self.ctx, now=start + timedelta(days=6)).skipped_users, 5)
        self.assertEqual(run_match_scores(self.ctx, now=start + timedelta(days=7)).processed_users, 5)


class TestCandidateEligibility(MatchScoreJobTestCase):
    """Blocked and hidden users never appear in stored scores."""

    def test_blocked_and_hidden_candidates_are_not_stored(self):
        seed(self.source, user_ids=(1, 2, 3, 5))
        seed(self.source, user_ids=(4,), visible=False)
        seed(self.source, user_ids=(6,), deleted_at=NOW)
        self.source.block_user(1, 2)

        run_match_scores(self.ctx, now=NOW)

        self.assertEqual(sorted(stored_candidates(1)), [3, 5])
        self.assertNotIn(1, stored_candidates(2))
        for user_id in range(1, 7):
            self.assertNotIn(4, stored_candidates(user_id))
            self.assertNotIn(6, stored_candidates(user_id))

    def test_hidden_users_still_get_scores(self):
        seed(self.source, user_ids=(1, 2, 3))
        seed(self.source, user_ids=(4,), visible=False)
        run_match_scores(self.ctx, now=NOW)
        self.assertEqual(sorted(stored_candidates(4)), [1, 2, 3])

    def test_new_block_removes_stored_row(self):
        seed(self.source)
        run_match_scores(self.ctx, now=NOW)
        blocked = stored_candidates(1)[0]

        self.source.block_user(blocked, 1)
        result = run_match_scores(self.ctx, now=NOW)

        self.assertEqual(result.processed_users, 5)
        self.assertNotIn(blocked, stored_candidates(1))
        self.assertNotIn(1, stored_candidates(blocked))


class TestRecomputeForUser(MatchScoreJobTestCase):
    def test_no_candidates_keeps_existing_rows(self):
        seed(self.source, user_ids=(1,))
        with scoring_uow() as repo:
            repo.match_scores.save_scores(1, "v0", [{'candidate_user_id': 7, 'score': 0.3}])

        written = recompute_match_scores_for_user(self.ctx, 1, 2, 0, 3, "v1")

        self.assertEqual(written, 0)
        rows = stored(1)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0][:2], (7, "v0"))
        self.assertAlmostEqual(rows[0][2], 0.3)

    def test_reasons_are_stored(self):
        seed(self.source, user_ids=(1, 2))
        recompute_match_scores_for_user(self.ctx, 1, 2, 0, 3, "v1")
        with scoring_uow() as repo:
            row = repo.match_scores.get_scores(1)[0]
            self.assertEqual(row.tier, "A")
            self.assertAlmostEqual(row.distance_km, 5.6, delta=0.1)
            self.assertEqual(row.reasons['components']['score_quiz']['source'], 'traits')
            self.assertEqual(row.reasons['compliance'], {'gender': True, 'age': True, 'distance': True})
            self.assertIsNotNone(row.score_nearby)


class TestInputHash(unittest.TestCase):
    def test_input_hash_covers_every_input(self):
        base = dict(user_id=1, algorithm_version="v1", prefs_fingerprint={"w": 1}, snapshot_marker="m", top_k=3,
                    as_of=date(2026, 1, 15))
        reference = match_score_input_hash(**base)
        self.assertEqual(match_score_input_hash(**base), reference)
        for key, value in [("user_id", 2), ("algorithm_version", "v2"), ("prefs_fingerprint", {"w": 2}),
                           ("snapshot_marker", "n"), ("top_k", 4), ("as_of", date(2026, 1, 16))]:
            with self.subTest(key=key):
                self.assertNotEqual(match_score_input_hash(**{**base, key: value}), reference)

    def test_refresh_bucket(self):
        self.assertEqual(refresh_bucket(datetime(2026, 1, 15, 23, 59, tzinfo=timezone.utc), 1), date(2026, 1, 15))
        offset = timezone(timedelta(hours=2))
        self.assertEqual(refresh_bucket(datetime(2026, 1, 16, 1, 0, tzinfo=offset), 1), date(2026, 1, 15))
        self.assertEqual(refresh_bucket(datetime(2026, 1, 15), 1), date(2026, 1, 15))

    def test_refresh_bucket_groups_days(self):
        first = refresh_bucket(datetime(2026, 1, 15, tzinfo=timezone.utc), 7)
        days = [refresh_bucket(datetime(2026, 1, 15, tzinfo=timezone.utc) + timedelta(days=n), 7) for n in range(7)]
        self.assertEqual(first, date(2026, 1, 15))
        self.assertEqual(set(days), {first})
        self.assertEqual(refresh_bucket(datetime(2026, 1, 22, tzinfo=timezone.utc), 7), date(2026, 1, 22))


if __name__ == '__main__':
    unittest.main()
