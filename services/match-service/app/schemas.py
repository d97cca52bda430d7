from datetime import datetime
from typing import List

from pydantic import AliasChoices, Field, field_validator

from .records import (
    Availability,
    AvailabilityStatus,
    CamelModel,
    GeoPoint,
    MatchTask,
    Ratings,
    ScheduleEntry,
    ServiceOffering,
    as_utc,
)


class RecommendRequest(CamelModel):
    task: MatchTask
    limit: int = Field(default=5, ge=1, le=50)


class CreateDoer(CamelModel):
    email: str
    full_name: str | None = None
    profile_photo_url: str | None = None
    location: GeoPoint | None = None
    services: List[ServiceOffering] = Field(default_factory=list)
    availability: Availability = Field(default_factory=Availability)
    service_radius_km: float | None = Field(default=None, gt=0)
    hourly_rate: float | None = Field(default=None, ge=0)


class UpdateLocation(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class UpdateAvailability(CamelModel):
    status: AvailabilityStatus | None = None
    schedule: List[ScheduleEntry] | None = None


class UpdateServices(CamelModel):
    services: List[ServiceOffering]


class DoerResponse(CamelModel):
    id: int
    email: str | None = None
    full_name: str | None = None
    profile_photo_url: str | None = None
    location: GeoPoint | None = None
    services: List[ServiceOffering]
    availability: Availability
    active_task_id: int | None = None
    ratings: Ratings
    completed_tasks: int
    service_radius_km: float | None = None
    hourly_rate: float | None = None


class CreateTask(CamelModel):
    title: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    category: str = Field(min_length=1)
    creator_id: int
    location: GeoPoint
    scheduled_time: datetime = Field(
        validation_alias=AliasChoices("scheduledTime", "scheduled_time", "scheduledDate"),
    )
    budget: float | None = Field(default=None, ge=0)

    @field_validator("category", mode="before")
    @classmethod
    def _strip_category(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("scheduled_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class AssignTask(CamelModel):
    # omitted -> the best match is picked
    doer_id: int | None = None


class RateTask(CamelModel):
    rating: int = Field(ge=1, le=5)


class TaskResponse(CamelModel):
    id: int
    title: str
    description: str | None = None
    category: str
    creator_id: int
    doer_id: int | None = None
    status: str
    location: GeoPoint
    scheduled_time: datetime
    completed_at: datetime | None = None
    budget: float | None = None
    rating: int | None = None


class TaskPage(CamelModel):
    items: List[TaskResponse]
    page: int
    limit: int
    total: int
    pages: int
