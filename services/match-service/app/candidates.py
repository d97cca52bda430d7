from dataclasses import dataclass

from .geo import distance_between
from .records import DoerRecord, MatchTask
from .stores import DoerStore

DEFAULT_OUTER_GEOFENCE_KM = 50.0


@dataclass(frozen=True)
class Candidate:
    doer: DoerRecord
    distance_km: float


def is_eligible(doer: DoerRecord, task: MatchTask) -> bool:
    profile = doer.doer_profile
    return (
        doer.role == "doer"
        and profile.active_task_id is None
        and profile.availability.status == "available"
        and profile.offers(task.category)
    )


class CandidateFilter:
    """
    First, coarse stage of matching: doers a task could plausibly go to.

    The store narrows by geofence and flags; the filter re-checks every hard
    constraint on the validated records and applies the exact outer
    geofence. Nothing here scores.
    """

    def __init__(self, doer_store: DoerStore, outer_geofence_km: float = DEFAULT_OUTER_GEOFENCE_KM):
        self.doer_store = doer_store
        self.outer_geofence_km = outer_geofence_km

    async def candidates(self, task: MatchTask) -> list[Candidate]:
        doers = await self.doer_store.near_doers(task.location, self.outer_geofence_km, task.category)

        found = []
        for doer in doers:
            if not is_eligible(doer, task):
                continue
            distance = distance_between(task.location, doer.doer_profile.current_location)
            if distance <= self.outer_geofence_km:
                found.append(Candidate(doer=doer, distance_km=distance))

        # nearest first, as a geo-near index would return them
        found.sort(key=lambda c: c.distance_km)
        return found
