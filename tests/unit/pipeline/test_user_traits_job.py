import dataclasses
import unittest

import pytest

from core.errors import NotFoundError
from core.features import InMemoryFeatureSource
from core.scorer import FeatureBundle, TraitValue
from pipeline.models import JobFlags
from pipeline.user_traits import aggregate_trait_contributions, build_user_traits, run_build_user_traits

CONTRIBUTIONS = {
    1: [{"openness": 2, "humor": -1}, {"openness": 4}, {"openness": 50}],
    2: [{"humor": 3}],
}


def make_source():
    return InMemoryFeatureSource(
        bundles=[FeatureBundle(user_id=i) for i in (1, 2, 3)],
        contributions={k: list(v) for k, v in CONTRIBUTIONS.items()},
    )


class TestAggregateContributions(unittest.TestCase):
    def test_mean_of_clamped_values(self):
        traits = aggregate_trait_contributions(CONTRIBUTIONS[1])
        self.assertEqual([t.key for t in traits], ["humor", "openness"])
        self.assertEqual(traits[0], TraitValue("humor", -1.0, 1))
        self.assertAlmostEqual(traits[1].value, (2 + 4 + 10) / 3)
        self.assertEqual(traits[1].n, 3)

    def test_negative_clamp(self):
        self.assertEqual(aggregate_trait_contributions([{"x": -40}]), [TraitValue("x", -10.0, 1)])

    def test_non_numeric_values_ignored(self):
        traits = aggregate_trait_contributions([{"x": "high", "y": True, "z": None, "w": float("inf")}, None])
        self.assertEqual(traits, [])

    def test_no_contributions(self):
        self.assertEqual(aggregate_trait_contributions([]), [])


@pytest.mark.db
class TestRunBuildUserTraits(unittest.TestCase):
    @pytest.fixture(autouse=True)
    def setup(self, app_context):
        self.ctx = dataclasses.replace(app_context, feature_source=make_source())

    def test_builds_traits_for_every_user(self):
        result = run_build_user_traits(self.ctx)
        self.assertEqual(result.processed_users, 3)
        self.assertEqual(result.written, 3)
        self.assertEqual([t.key for t in self.ctx.feature_source.get_bundle(1).traits], ["humor", "openness"])
        self.assertEqual(self.ctx.feature_source.get_bundle(2).traits, (TraitValue("humor", 3.0, 1),))
        self.assertEqual(self.ctx.feature_source.get_bundle(3).traits, ())

    def test_second_run_skips(self):
        run_build_user_traits(self.ctx)
        result = run_build_user_traits(self.ctx)
        self.assertEqual(result.processed_users, 0)
        self.assertEqual(result.skipped_users, 3)

    def test_new_answers_rebuild(self):
        run_build_user_traits(self.ctx)
        self.ctx.feature_source.set_quiz_trait_contributions(2, [{"humor": 3}, {"humor": 5}])
        result = run_build_user_traits(self.ctx)
        self.assertEqual(result.processed_users, 1)
        self.assertEqual(self.ctx.feature_source.get_bundle(2).traits, (TraitValue("humor", 4.0, 2),))

    def test_reloaded_source_is_rebuilt(self):
        run_build_user_traits(self.ctx)
        reloaded = dataclasses.replace(self.ctx, feature_source=make_source())
        result = run_build_user_traits(reloaded)
        # User 3 has no answers, so its empty traits are still current
        self.assertEqual(result.processed_users, 2)
        self.assertEqual(result.skipped_users, 1)
        self.assertEqual(reloaded.feature_source.get_bundle(2).traits, (TraitValue("humor", 3.0, 1),))

    def test_version_change_rebuilds(self):
        run_build_user_traits(self.ctx)
        self.ctx.config.jobs.user_traits.algorithm_version = "v2"
        self.assertEqual(run_build_user_traits(self.ctx).processed_users, 3)

    def test_single_user(self):
        result = run_build_user_traits(self.ctx, JobFlags(user_id=2))
        self.assertEqual(result.processed_users, 1)
        self.assertEqual(self.ctx.feature_source.get_bundle(1).traits, ())

    def test_unknown_user(self):
        with self.assertRaises(NotFoundError):
            build_user_traits(self.ctx, 99, "v1")


if __name__ == '__main__':
    unittest.main()
