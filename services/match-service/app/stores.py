import logging
from typing import Protocol

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from .errors import StoreError
from .geo import bounding_box
from .models import DoerProfile, DoerService, Task, User
from .records import DoerRecord, GeoPoint, TaskHistoryRecord, norm

logger = logging.getLogger(__name__)


class DoerStore(Protocol):
    async def near_doers(
        self, location: GeoPoint, max_distance_km: float, category: str
    ) -> list[DoerRecord]:
        ...


class TaskHistoryStore(Protocol):
    async def recent_completed(self, doer_id: int, limit: int) -> list[TaskHistoryRecord]:
        ...


def to_doer_record(user: User) -> DoerRecord:
    """
    Convert a user row (with doer_profile and services loaded) into a
    validated record. Raises pydantic.ValidationError for unusable rows.
    """
    profile = user.doer_profile
    if profile is None:
        raise ValueError(f"user {user.id} has no doer profile")

    location = None
    if profile.latitude is not None and profile.longitude is not None:
        location = {"latitude": profile.latitude, "longitude": profile.longitude}

    photo = None
    if user.profile_photo_url:
        photo = {"url": user.profile_photo_url, "verified": bool(user.profile_photo_verified)}

    return DoerRecord.model_validate(
        {
            "id": user.id,
            "full_name": user.full_name,
            "profile_photo": photo,
            "role": user.role,
            "doer_profile": {
                "current_location": location,
                "services": [
                    {
                        "category": s.category,
                        "name": s.name,
                        "description": s.description,
                        "base_price": s.base_price,
                    }
                    for s in profile.services
                ],
                "availability": {
                    "status": profile.availability_status,
                    "schedule": profile.schedule or [],
                },
                "active_task_id": profile.active_task_id,
                "ratings": {"average": profile.rating_average or 0.0, "count": profile.rating_count or 0},
                "completed_tasks": profile.completed_tasks or 0,
                "service_radius_km": profile.service_radius_km,
                "hourly_rate": profile.hourly_rate,
            },
        }
    )


class SqlDoerStore:
    """
    Identity store over the users/doer_profiles tables.

    Applies the coarse geofence as a lat/lon range (index friendly) together
    with the role, status, active-task and category filters. Exact distance
    checks are left to the caller.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _candidate_query(self, location: GeoPoint, max_distance_km: float, category: str):
        box = bounding_box(location.latitude, location.longitude, max_distance_km)
        lon_filter = or_(*[DoerProfile.longitude.between(lo, hi) for lo, hi in box.lon_ranges])

        return (
            select(User)
            .join(DoerProfile, DoerProfile.user_id == User.id)
            .where(
                and_(
                    User.role == "doer",
                    DoerProfile.active_task_id.is_(None),
                    DoerProfile.availability_status == "available",
                    DoerProfile.latitude.between(box.min_lat, box.max_lat),
                    lon_filter,
                    DoerProfile.services.any(func.lower(func.trim(DoerService.category)) == norm(category)),
                )
            )
            .options(selectinload(User.doer_profile).selectinload(DoerProfile.services))
            .order_by(User.id)
        )

    async def near_doers(
        self, location: GeoPoint, max_distance_km: float, category: str
    ) -> list[DoerRecord]:
        stmt = self._candidate_query(location, max_distance_km, category)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                users = result.scalars().unique().all()

                records = []
                for user in users:
                    try:
                        records.append(to_doer_record(user))
                    except ValueError as e:  # pydantic.ValidationError included
                        logger.warning("skipping malformed doer %s: %s", user.id, e)
                return records
        except SQLAlchemyError as e:
            raise StoreError(f"doer query failed: {e}") from e


class SqlTaskHistoryStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def recent_completed(self, doer_id: int, limit: int) -> list[TaskHistoryRecord]:
        stmt = (
            select(Task.category, Task.completed_at)
            .where(
                Task.doer_id == doer_id,
                Task.status == "completed",
                Task.completed_at.is_not(None),
            )
            .order_by(Task.completed_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise StoreError(f"history query failed for doer {doer_id}: {e}") from e

        return [TaskHistoryRecord(category=category, completed_at=completed_at) for category, completed_at in rows]
