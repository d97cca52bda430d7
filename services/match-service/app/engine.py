import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError

from .availability import AvailabilityEvaluator
from .candidates import DEFAULT_OUTER_GEOFENCE_KM, Candidate, CandidateFilter
from .errors import StoreError, TaskValidationError
from .observability import MatchObserver
from .records import DoerSummary, MatchResult, MatchTask, RankedDoer
from .scoring import ScoringModel
from .stores import DoerStore, TaskHistoryStore

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_RECOMMENDATIONS = 5


@dataclass(frozen=True)
class _Scored:
    candidate: Candidate
    score: float


def coerce_task(task) -> MatchTask:
    if isinstance(task, MatchTask):
        return task
    try:
        return MatchTask.model_validate(task)
    except ValidationError as e:
        raise TaskValidationError(f"invalid task: {e}") from e


class MatchEngine:
    """
    Places a task with the doers best suited to it.

    candidates -> (service radius, schedule, history, score) per candidate,
    evaluated concurrently -> best one or top K.
    """

    def __init__(
        self,
        doer_store: DoerStore,
        history_store: TaskHistoryStore,
        *,
        outer_geofence_km: float = DEFAULT_OUTER_GEOFENCE_KM,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        availability: AvailabilityEvaluator | None = None,
        scoring: ScoringModel | None = None,
        observer: MatchObserver | None = None,
        clock=None,
    ):
        self.candidate_filter = CandidateFilter(doer_store, outer_geofence_km)
        self.history_store = history_store
        self.history_limit = history_limit
        self.max_concurrency = max(1, max_concurrency)
        self.availability = availability or AvailabilityEvaluator()
        self.scoring = scoring or ScoringModel()
        self.observer = observer or MatchObserver()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def find_best_match(self, task) -> MatchResult | None:
        task = coerce_task(task)
        scored = await self._rank(task, mode="best", include_recency=False)

        best = None
        for item in scored:
            # strictly greater: the first of equal scores keeps the spot
            if best is None or item.score > best.score:
                best = item

        if best is None:
            return None
        return MatchResult(doer=best.candidate.doer, score=best.score, distance=best.candidate.distance_km)

    async def find_best_matches(self, task, limit: int = DEFAULT_RECOMMENDATIONS) -> list[RankedDoer]:
        task = coerce_task(task)
        if limit < 1:
            raise TaskValidationError("limit must be at least 1")

        scored = await self._rank(task, mode="top_k", include_recency=True)
        scored.sort(key=lambda s: s.score, reverse=True)

        return [
            RankedDoer(
                doer=DoerSummary.from_record(item.candidate.doer),
                score=item.score,
                distance=item.candidate.distance_km,
            )
            for item in scored[:limit]
        ]

    async def _rank(self, task: MatchTask, *, mode: str, include_recency: bool) -> list[_Scored]:
        start = time.perf_counter()

        candidates = await self.candidate_filter.candidates(task)
        self.observer.candidates_found(mode, task, len(candidates))

        now = self._clock()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        jobs = [
            asyncio.ensure_future(self._evaluate(task, c, now, include_recency, semaphore))
            for c in candidates
        ]
        try:
            results = await asyncio.gather(*jobs)
        except BaseException:
            for job in jobs:
                job.cancel()
            # collect every outcome so no sibling failure goes unretrieved
            await asyncio.gather(*jobs, return_exceptions=True)
            raise

        scored = [r for r in results if r is not None]

        duration_ms = (time.perf_counter() - start) * 1000
        self.observer.pass_completed(mode, task, len(candidates), [s.score for s in scored], duration_ms)
        return scored

    async def _evaluate(
        self,
        task: MatchTask,
        candidate: Candidate,
        now: datetime,
        include_recency: bool,
        semaphore: asyncio.Semaphore,
    ) -> _Scored | None:
        doer = candidate.doer
        profile = doer.doer_profile
        try:
            if candidate.distance_km > profile.service_radius_km:
                return None
            if not self.availability.is_available(profile, task.scheduled_time):
                return None

            async with semaphore:
                history = await self.history_store.recent_completed(doer.id, self.history_limit)

            score = self.scoring.score(
                task,
                doer,
                history,
                include_recency=include_recency,
                now=now,
                distance_km=candidate.distance_km,
            )
            return _Scored(candidate=candidate, score=score)
        except StoreError:
            raise
        except Exception as e:
            # one bad doer must not sink the whole pass
            self.observer.candidate_failed(doer.id, e)
            return None
