from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .geo import distance_between
from .records import DoerRecord, MatchTask, TaskHistoryRecord, norm

BASE_SCORE = 100.0
DISTANCE_PENALTY_PER_KM = 2.0
CATEGORY_MATCH_BONUS = 20.0
CATEGORY_EXPERIENCE_BONUS = 5.0
RATING_MULTIPLIER = 10.0
RECENT_TASK_BONUS = 2.0
RECENT_WINDOW = timedelta(days=30)
COMPLETION_BONUS_PER_TASK = 2.0
COMPLETION_BONUS_CAP = 50.0


@dataclass(frozen=True)
class ScoreBreakdown:
    base: float
    distance_penalty: float
    category_match: float
    category_experience: float
    rating: float
    recency: float
    completion: float

    @property
    def total(self) -> float:
        raw = (
            self.base
            - self.distance_penalty
            + self.category_match
            + self.category_experience
            + self.rating
            + self.recency
            + self.completion
        )
        return max(0.0, raw)


def category_matches(history: list[TaskHistoryRecord], category: str) -> int:
    wanted = norm(category)
    return sum(1 for h in history if norm(h.category) == wanted)


def recent_completions(history: list[TaskHistoryRecord], now: datetime) -> int:
    return sum(1 for h in history if now - h.completed_at <= RECENT_WINDOW)


def completion_bonus(completed_tasks: int) -> float:
    return min(completed_tasks * COMPLETION_BONUS_PER_TASK, COMPLETION_BONUS_CAP)


class ScoringModel:
    """
    Composite suitability score for a (task, doer, history) triple.

    Best-match and recommendation share every factor; the recommendation
    flavor additionally rewards tasks completed in the last 30 days.
    Higher is better, never below zero.
    """

    def breakdown(
        self,
        task: MatchTask,
        doer: DoerRecord,
        history: list[TaskHistoryRecord],
        *,
        include_recency: bool = False,
        now: datetime | None = None,
        distance_km: float | None = None,
    ) -> ScoreBreakdown:
        profile = doer.doer_profile
        if distance_km is None:
            distance_km = distance_between(task.location, profile.current_location)

        recency = 0.0
        if include_recency:
            now = now or datetime.now(timezone.utc)
            recency = RECENT_TASK_BONUS * recent_completions(history, now)

        return ScoreBreakdown(
            base=BASE_SCORE,
            distance_penalty=DISTANCE_PENALTY_PER_KM * distance_km,
            category_match=CATEGORY_MATCH_BONUS if profile.offers(task.category) else 0.0,
            category_experience=CATEGORY_EXPERIENCE_BONUS * category_matches(history, task.category),
            rating=RATING_MULTIPLIER * (profile.ratings.average or 0.0),
            recency=recency,
            completion=completion_bonus(profile.completed_tasks),
        )

    def score(
        self,
        task: MatchTask,
        doer: DoerRecord,
        history: list[TaskHistoryRecord],
        *,
        include_recency: bool = False,
        now: datetime | None = None,
        distance_km: float | None = None,
    ) -> float:
        return self.breakdown(
            task,
            doer,
            history,
            include_recency=include_recency,
            now=now,
            distance_km=distance_km,
        ).total
