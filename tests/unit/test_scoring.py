import unittest

from match_service.scoring import (
    COMPLETION_BONUS_CAP,
    ScoringModel,
    category_matches,
    completion_bonus,
    recent_completions,
)
from tests.factories import history, make_doer, make_task, monday_at


class TestScoringHelpers(unittest.TestCase):

    def test_category_matches_normalizes(self):
        h = history(("Cleaning ", 1), ("cleaning", 2), ("plumbing", 3))
        self.assertEqual(category_matches(h, " CLEANING"), 2)

    def test_recent_window_is_thirty_days_inclusive(self):
        now = monday_at(10)
        h = history(("a", 0), ("a", 30), ("a", 31), now=now)
        self.assertEqual(recent_completions(h, now), 2)

    def test_completion_bonus_is_capped(self):
        self.assertEqual(completion_bonus(0), 0)
        self.assertEqual(completion_bonus(10), 20)
        self.assertEqual(completion_bonus(25), COMPLETION_BONUS_CAP)
        self.assertEqual(completion_bonus(400), COMPLETION_BONUS_CAP)


class TestScoringModel(unittest.TestCase):

    def setUp(self):
        self.model = ScoringModel()

    def test_reference_doer_scores_about_182_8(self):
        score = self.model.score(make_task(), make_doer(), [])
        self.assertAlmostEqual(score, 182.8, delta=0.1)

    def test_breakdown_parts(self):
        b = self.model.breakdown(make_task(), make_doer(), history(("cleaning", 3), ("painting", 5)), distance_km=1.0)
        self.assertEqual(b.base, 100)
        self.assertEqual(b.distance_penalty, 2.0)
        self.assertEqual(b.category_match, 20)
        self.assertEqual(b.category_experience, 5)
        self.assertEqual(b.rating, 45)
        self.assertEqual(b.recency, 0)
        self.assertEqual(b.completion, 20)
        self.assertAlmostEqual(b.total, 188.0)

    def test_no_category_bonus_when_not_offered(self):
        b = self.model.breakdown(make_task(category="plumbing"), make_doer(), [], distance_km=0)
        self.assertEqual(b.category_match, 0)

    def test_recency_only_when_requested(self):
        now = monday_at(10)
        h = history(("cleaning", 1), ("plumbing", 10), ("cleaning", 45), now=now)
        without = self.model.score(make_task(), make_doer(), h, now=now, distance_km=0)
        with_recency = self.model.score(make_task(), make_doer(), h, include_recency=True, now=now, distance_km=0)
        self.assertAlmostEqual(with_recency - without, 4.0)

    def test_never_negative(self):
        doer = make_doer(rating=0, completed=0, categories=("other",))
        self.assertEqual(self.model.score(make_task(), doer, [], distance_km=20000), 0.0)

    def test_explicit_distance_overrides_geometry(self):
        near = self.model.score(make_task(), make_doer(), [], distance_km=0)
        far = self.model.score(make_task(), make_doer(), [], distance_km=10)
        self.assertAlmostEqual(near - far, 20.0)
